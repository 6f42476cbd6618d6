"""Generation capabilities consumed by job handlers.

Real LLM, TTS and music vendors plug in through the Protocols below. The
fallback implementations are deterministic templates so the pipeline runs
end to end without any vendor configured.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel

from idengine.core.config import FEED_FETCH_TIMEOUT_SEC
from idengine.services.http_client import fetch_text, open_client
from idengine.services.text_utils import extract_keywords, split_sentences, strip_html

WORDS_PER_SECOND = 2.5
MAX_ARTICLE_CHARS = 8000
NON_CONTENT_BLOCKS_RE = re.compile(r"<(script|style|noscript)\b.*?</\1>", re.IGNORECASE | re.DOTALL)


class TopicContext(BaseModel):
    title: str
    translated_title: Optional[str] = None
    full_content: Optional[str] = None
    raw_text: Optional[str] = None
    insights: Optional[Dict[str, Any]] = None
    language: str = "en"

    @classmethod
    def from_topic(cls, topic: Dict[str, Any]) -> "TopicContext":
        return cls(
            title=topic["title"],
            translated_title=topic.get("translated_title"),
            full_content=topic.get("full_content"),
            raw_text=topic.get("raw_text"),
            insights=dict(topic["insights"]) if topic.get("insights") else None,
            language=topic.get("language") or "en",
        )

    @property
    def body(self) -> str:
        return self.full_content or self.raw_text or ""


class LLMProvider(Protocol):
    async def extract_insights(self, text: str, language: str) -> Dict[str, Any]: ...

    async def translate_title(self, title: str, language: str) -> str: ...

    async def generate_hook(
        self, title: str, style_preset: str, duration_sec: str, language: str
    ) -> str: ...

    async def generate_hook_from_context(
        self, context: TopicContext, style_preset: str, duration_sec: str
    ) -> str: ...

    async def generate_script(
        self, title: str, hook: str, style_preset: str, duration_sec: str, language: str
    ) -> str: ...

    async def generate_script_from_context(
        self, context: TopicContext, hook: str, style_preset: str, duration_sec: str
    ) -> str: ...

    async def generate_storyboard(
        self, text: str, style_preset: str, duration_sec: str, language: str
    ) -> List[Dict[str, Any]]: ...

    async def generate_storyboard_from_context(
        self, context: TopicContext, voice_text: str, style_preset: str, duration_sec: str
    ) -> List[Dict[str, Any]]: ...

    async def generate_seo(
        self,
        topic: str,
        keywords: List[str],
        language: str,
        platform: str,
        style_preset: str,
    ) -> Dict[str, Any]: ...


class TTSProvider(Protocol):
    async def generate_voice(self, text: str, style_preset: str) -> Optional[str]: ...


class MusicProvider(Protocol):
    async def pick_music(
        self, text: str, style_preset: str, duration_sec: str
    ) -> Dict[str, Any]: ...


class ArticleExtractor(Protocol):
    async def extract(self, url: str) -> Optional[str]: ...


def _scene_count(duration_sec: str) -> int:
    seconds = int(duration_sec or 30)
    return max(3, min(8, seconds // 8))


class FallbackLLMProvider:
    """Template generation built from the topic's own text."""

    async def extract_insights(self, text: str, language: str) -> Dict[str, Any]:
        sentences = split_sentences(text)
        return {
            "summary": " ".join(sentences[:2]),
            "key_points": sentences[:5],
            "keywords": extract_keywords(text, 8),
            "trending_angles": [],
            "emotional_hooks": [],
            "language": language,
        }

    async def translate_title(self, title: str, language: str) -> str:
        return title

    async def generate_hook(
        self, title: str, style_preset: str, duration_sec: str, language: str
    ) -> str:
        if language == "ru":
            return f"За {duration_sec} секунд: {title}"
        return f"In {duration_sec} seconds: {title}"

    async def generate_hook_from_context(
        self, context: TopicContext, style_preset: str, duration_sec: str
    ) -> str:
        hooks = (context.insights or {}).get("emotional_hooks") or []
        if hooks:
            return str(hooks[0])
        return await self.generate_hook(
            context.translated_title or context.title,
            style_preset,
            duration_sec,
            context.language,
        )

    async def generate_script(
        self, title: str, hook: str, style_preset: str, duration_sec: str, language: str
    ) -> str:
        return self._render_script(title, hook, [], duration_sec)

    async def generate_script_from_context(
        self, context: TopicContext, hook: str, style_preset: str, duration_sec: str
    ) -> str:
        points = list((context.insights or {}).get("key_points") or [])
        points.extend(split_sentences(context.body))
        angles = (context.insights or {}).get("trending_angles") or []
        if angles:
            points.append(f"The angle worth watching: {', '.join(angles)}.")
        return self._render_script(context.title, hook, points, duration_sec)

    def _render_script(
        self, title: str, hook: str, points: List[str], duration_sec: str
    ) -> str:
        word_budget = int(int(duration_sec or 30) * WORDS_PER_SECOND)
        lines = ["[Video Start]", f"— {hook or title}", "", "[Insert] — topic card", f"— {title}"]
        used = len((hook or title).split()) + len(title.split())
        for point in points:
            words = len(point.split())
            if used + words > word_budget:
                break
            lines.append(f"— {point}")
            used += words
        lines.extend(["", "[Finale]", "— Follow for more."])
        return "\n".join(lines)

    async def generate_storyboard(
        self, text: str, style_preset: str, duration_sec: str, language: str
    ) -> List[Dict[str, Any]]:
        lines = [line for line in text.split("\n") if line.strip()] or [text]
        count = _scene_count(duration_sec)
        scene_length = int(duration_sec or 30) // count
        return [
            {
                "scene_number": index + 1,
                "start_sec": index * scene_length,
                "duration_sec": scene_length,
                "voice_segment": lines[index % len(lines)],
                "visual": f"{style_preset} shot {index + 1}",
                "stock_keywords": extract_keywords(lines[index % len(lines)], 3),
            }
            for index in range(count)
        ]

    async def generate_storyboard_from_context(
        self, context: TopicContext, voice_text: str, style_preset: str, duration_sec: str
    ) -> List[Dict[str, Any]]:
        return await self.generate_storyboard(
            voice_text or context.title, style_preset, duration_sec, context.language
        )

    async def generate_seo(
        self,
        topic: str,
        keywords: List[str],
        language: str,
        platform: str,
        style_preset: str,
    ) -> Dict[str, Any]:
        base = [f"#{word.replace(' ', '')}" for word in (keywords or extract_keywords(topic, 5))]
        popular = ["#shorts", "#тренды", "#viral", "#fyp"] if language == "ru" else [
            "#shorts",
            "#trending",
            "#viral",
            "#fyp",
        ]
        options = [topic, f"{topic} #shorts", f"{topic}: what you missed"]
        return {
            "seo_title_options": options,
            "seo_title": options[0],
            "hashtags": (base + popular)[:10],
            "platform": platform,
        }


class FallbackTTSProvider:
    async def generate_voice(self, text: str, style_preset: str) -> Optional[str]:
        return None


MUSIC_STYLES: Dict[str, Dict[str, Any]] = {
    "news": {"mood": "Serious, Trustworthy", "bpm": 85, "genre": "News / Corporate"},
    "comedy": {"mood": "Quirky, Playful", "bpm": 120, "genre": "Comedy / Playful"},
    "cinematic": {"mood": "Epic, Emotional", "bpm": 90, "genre": "Orchestral / Cinematic"},
    "classic": {"mood": "Balanced, Neutral", "bpm": 100, "genre": "Acoustic / Soft Rock"},
}


class FallbackMusicProvider:
    async def pick_music(
        self, text: str, style_preset: str, duration_sec: str
    ) -> Dict[str, Any]:
        style = MUSIC_STYLES.get(style_preset, MUSIC_STYLES["classic"])
        return {
            **style,
            "duration_sec": duration_sec,
            "license_note": "Use royalty-free tracks",
        }


class HttpArticleExtractor:
    async def extract(self, url: str) -> Optional[str]:
        async with open_client(FEED_FETCH_TIMEOUT_SEC) as client:
            html = await fetch_text(client, url)
        text = strip_html(NON_CONTENT_BLOCKS_RE.sub(" ", html))
        return text[:MAX_ARTICLE_CHARS] or None


@dataclass
class Providers:
    llm: LLMProvider = field(default_factory=FallbackLLMProvider)
    tts: TTSProvider = field(default_factory=FallbackTTSProvider)
    music: MusicProvider = field(default_factory=FallbackMusicProvider)
    extractor: ArticleExtractor = field(default_factory=HttpArticleExtractor)


_providers = Providers()


def get_providers() -> Providers:
    return _providers


def set_providers(providers: Providers) -> None:
    global _providers
    _providers = providers
