import pytest

from idengine.services.text_utils import (
    compute_text_similarity,
    extract_keywords,
    extract_ngrams,
    jaccard_similarity,
    normalize_text,
    strip_html,
)


def test_normalize_text_keeps_words_and_cyrillic():
    assert normalize_text("  Hello, WORLD!!  Привет — мир ") == "hello world привет мир"


def test_extract_ngrams_windows_and_short_text():
    assert extract_ngrams("one two three four five", 4) == {
        "one two three four",
        "two three four five",
    }
    assert extract_ngrams("one two three", 4) == set()
    assert extract_ngrams("a a a a a", 2) == {"a a"}


@pytest.mark.parametrize(
    "first,second",
    [
        ({"a", "b"}, {"b", "c"}),
        ({"a"}, set()),
        ({"x", "y", "z"}, {"x", "y", "z", "w"}),
    ],
)
def test_jaccard_bounds(first, second):
    value = jaccard_similarity(first, second)
    assert 0.0 <= value <= 1.0


def test_jaccard_identity_and_empty():
    assert jaccard_similarity({"a", "b"}, {"a", "b"}) == 1.0
    assert jaccard_similarity(set(), set()) == 0.0


def test_compute_text_similarity_ignores_punctuation_and_case():
    text = "The new console ships next month with a bigger battery"
    assert compute_text_similarity(text, text.upper() + "!!!") == 1.0


def test_extract_keywords_by_frequency_then_first_seen():
    text = "Console prices rise. Console makers blame chips; chips shortage hits console sales"
    assert extract_keywords(text, 3) == ["console", "chips", "prices"]


def test_strip_html_removes_tags_urls_and_entities():
    raw = "<p>Breaking&nbsp;news &amp; more https://example.com/x &#8212; <b>today</b>&hellip;</p>"
    assert strip_html(raw) == "Breaking news & more — today"
    assert strip_html(None) == ""
