"""One coroutine per job kind, registered in JOB_HANDLERS.

Handlers raise on failure; the worker records the error on the job and on
the linked script.
"""

import re
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from idengine.core.errors import NotFoundError, ProviderError, SimilarityRejectedError
from idengine.db import scripts_repo, sources_repo, topics_repo
from idengine.schemas.jobs import JobKind
from idengine.services import discovery, health_check, ingestion, trend_clustering
from idengine.services.job_context import JobContext
from idengine.services.providers import TopicContext, get_providers
from idengine.services.similarity import check_script_similarity
from idengine.services.trend_extraction import (
    extract_trends_from_topics,
    get_trend_signals_for_generation,
)

JobHandler = Callable[[JobContext], Awaitable[Optional[Dict[str, Any]]]]

_VOICEOVER_MARKER_RE = re.compile(r"^[—\-]\s*")
MAX_TREND_HINTS = 3


def extract_voiceover_lines(full_script: str) -> str:
    """Keep only the dash-prefixed narration lines of a script, markers removed."""
    lines = []
    for line in full_script.split("\n"):
        trimmed = line.strip()
        if not trimmed.startswith(("—", "-")):
            continue
        text = _VOICEOVER_MARKER_RE.sub("", trimmed).strip()
        if text:
            lines.append(text)
    return "\n".join(lines)


def has_extracted_content(topic: Dict[str, Any]) -> bool:
    return bool(topic.get("full_content") or topic.get("insights"))


async def _call(provider: str, awaitable: Awaitable[Any]) -> Any:
    try:
        return await awaitable
    except Exception as exc:
        raise ProviderError(provider, exc) from exc


async def _load_topic(ctx: JobContext) -> Dict[str, Any]:
    topic_id = ctx.require_id("topic_id", "Topic")
    topic = await topics_repo.fetch_topic(topic_id)
    if not topic:
        raise NotFoundError("Topic", topic_id)
    return topic


async def _load_script(ctx: JobContext) -> Dict[str, Any]:
    script_id = ctx.require_id("script_id", "Script")
    script = await scripts_repo.fetch_script(script_id)
    if not script:
        raise NotFoundError("Script", script_id)
    return script


async def _load_script_and_topic(ctx: JobContext) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    script = await _load_script(ctx)
    topic = await topics_repo.fetch_topic(script["topic_id"])
    if not topic:
        raise NotFoundError("Topic", script["topic_id"])
    return script, topic


def _topic_context(topic: Dict[str, Any]) -> Optional[TopicContext]:
    if not has_extracted_content(topic):
        return None
    return TopicContext.from_topic(topic)


def _top_labels(groups: Iterable[List[str]]) -> List[str]:
    labels = dict.fromkeys(label for group in groups for label in group)
    return list(labels)[:MAX_TREND_HINTS]


async def _with_trend_hints(topic: Dict[str, Any], context: TopicContext) -> TopicContext:
    source = await sources_repo.fetch_source(topic["source_id"])
    signals = await get_trend_signals_for_generation(
        source["category_id"] if source else None, "youtube_shorts"
    )
    if not signals:
        return context
    angles = _top_labels(s["angles"] for s in signals)
    hooks = _top_labels(s["hook_patterns"] for s in signals)
    insights = dict(context.insights or {})
    insights["trending_angles"] = list(insights.get("trending_angles") or []) + angles
    insights["emotional_hooks"] = list(insights.get("emotional_hooks") or []) + [
        f"Pattern: {hook}" for hook in hooks
    ]
    return context.model_copy(update={"insights": insights})


async def _generate_hook(script: Dict[str, Any], topic: Dict[str, Any]) -> str:
    llm = get_providers().llm
    context = _topic_context(topic)
    if context:
        return await _call(
            "llm.generate_hook_from_context",
            llm.generate_hook_from_context(context, script["style_preset"], script["duration_sec"]),
        )
    return await _call(
        "llm.generate_hook",
        llm.generate_hook(
            topic["title"], script["style_preset"], script["duration_sec"], script["language"]
        ),
    )


async def _generate_script_text(
    script: Dict[str, Any], topic: Dict[str, Any], with_trends: bool
) -> str:
    llm = get_providers().llm
    context = _topic_context(topic)
    if context:
        if with_trends:
            context = await _with_trend_hints(topic, context)
        return await _call(
            "llm.generate_script_from_context",
            llm.generate_script_from_context(
                context, script["hook"] or "", script["style_preset"], script["duration_sec"]
            ),
        )
    return await _call(
        "llm.generate_script",
        llm.generate_script(
            topic["title"],
            script["hook"] or "",
            script["style_preset"],
            script["duration_sec"],
            script["language"],
        ),
    )


async def _reject_if_similar(script_id: str, text: str) -> None:
    result = await check_script_similarity(text, exclude_script_id=script_id)
    if result.passed:
        return
    raise SimilarityRejectedError(
        result.highest_similarity, result.similar_script_id, result.similar_script_title
    )


async def _generate_storyboard(
    script: Dict[str, Any], topic: Optional[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    llm = get_providers().llm
    voice = script["voice_text"] or script["hook"] or ""
    context = _topic_context(topic) if topic else None
    if context:
        return await _call(
            "llm.generate_storyboard_from_context",
            llm.generate_storyboard_from_context(
                context, voice, script["style_preset"], script["duration_sec"]
            ),
        )
    return await _call(
        "llm.generate_storyboard",
        llm.generate_storyboard(
            voice, script["style_preset"], script["duration_sec"], script["language"]
        ),
    )


async def _pick_music(script: Dict[str, Any]) -> Dict[str, Any]:
    return await _call(
        "music.pick_music",
        get_providers().music.pick_music(
            script["voice_text"] or script["hook"] or "",
            script["style_preset"],
            script["duration_sec"],
        ),
    )


async def run_fetch_topics(ctx: JobContext) -> Dict[str, Any]:
    return await ingestion.fetch_topics(ctx)


async def run_extract_content(ctx: JobContext) -> Dict[str, Any]:
    topic = await _load_topic(ctx)
    topic_id = topic["topic_id"]
    providers = get_providers()
    await topics_repo.update_topic(topic_id, extraction_status="extracting")
    await ctx.progress(20, "extracting article")
    try:
        full_content = topic["raw_text"] or ""
        if topic["url"]:
            extracted = await _call("extractor.extract", providers.extractor.extract(topic["url"]))
            full_content = extracted or full_content
        await ctx.progress(50, "extracting insights")
        insights = await _call(
            "llm.extract_insights",
            providers.llm.extract_insights(full_content or topic["title"], topic["language"]),
        )
        await ctx.progress(80)
        await topics_repo.update_topic(
            topic_id, full_content=full_content, insights=insights, extraction_status="done"
        )
    except Exception:
        await topics_repo.update_topic(topic_id, extraction_status="failed")
        raise
    return {"topic_id": topic_id, "content_length": len(full_content)}


async def run_translate_topic(ctx: JobContext) -> Dict[str, Any]:
    topic = await _load_topic(ctx)
    await ctx.progress(30, "translating title")
    target = ctx.get("language") or "ru"
    translated = await _call(
        "llm.translate_title", get_providers().llm.translate_title(topic["title"], target)
    )
    await ctx.progress(80)
    await topics_repo.update_topic(topic["topic_id"], translated_title=translated)
    return {"topic_id": topic["topic_id"], "translated_title": translated}


async def run_generate_hook(ctx: JobContext) -> Dict[str, Any]:
    script, topic = await _load_script_and_topic(ctx)
    script_id = script["script_id"]
    await scripts_repo.update_script(script_id, status="generating")
    await ctx.progress(30, "generating hook")
    hook = await _generate_hook(script, topic)
    await ctx.progress(80)
    await scripts_repo.update_script(script_id, hook=hook, status="draft")
    return {"script_id": script_id}


async def run_generate_script(ctx: JobContext) -> Dict[str, Any]:
    script, topic = await _load_script_and_topic(ctx)
    script_id = script["script_id"]
    await scripts_repo.update_script(script_id, status="generating")
    await ctx.progress(20, "generating script")
    text = await _generate_script_text(script, topic, with_trends=True)
    await ctx.progress(70, "checking similarity")
    await _reject_if_similar(script_id, text)
    await ctx.progress(90)
    await scripts_repo.update_script(
        script_id,
        voice_text=extract_voiceover_lines(text),
        on_screen_text=text,
        status="draft",
        error=None,
    )
    return {"script_id": script_id}


async def run_generate_storyboard(ctx: JobContext) -> Dict[str, Any]:
    script = await _load_script(ctx)
    script_id = script["script_id"]
    await scripts_repo.update_script(script_id, status="generating")
    await ctx.progress(30, "generating storyboard")
    storyboard = await _generate_storyboard(script, None)
    await ctx.progress(80)
    await scripts_repo.update_script(script_id, storyboard=storyboard, status="draft")
    return {"script_id": script_id, "scenes": len(storyboard)}


async def run_generate_voice(ctx: JobContext) -> Dict[str, Any]:
    script = await _load_script(ctx)
    script_id = script["script_id"]
    await scripts_repo.update_script(script_id, status="generating")
    await ctx.progress(30, "generating voice")
    voice_file = await _call(
        "tts.generate_voice",
        get_providers().tts.generate_voice(
            script["voice_text"] or "", script["voice_style_preset"]
        ),
    )
    await ctx.progress(80)
    assets = {**script["assets"], "voice_file": voice_file}
    await scripts_repo.update_script(script_id, assets=assets, status="draft")
    return {"script_id": script_id, "voice_file": voice_file}


async def run_pick_music(ctx: JobContext) -> Dict[str, Any]:
    script = await _load_script(ctx)
    script_id = script["script_id"]
    await scripts_repo.update_script(script_id, status="generating")
    await ctx.progress(30, "picking music")
    music = await _pick_music(script)
    await ctx.progress(80)
    await scripts_repo.update_script(script_id, music=music, status="draft")
    return {"script_id": script_id}


async def run_export_package(ctx: JobContext) -> Dict[str, Any]:
    script = await _load_script(ctx)
    script_id = script["script_id"]
    await ctx.progress(50, "exporting package")
    download = f"/api/scripts/{script_id}/download"
    assets = {**script["assets"], "export_zip": download}
    await scripts_repo.update_script(script_id, assets=assets, status="exported")
    return {"script_id": script_id, "export_zip": download}


GENERATE_ALL_STEPS = (
    ("hook", 15),
    ("script", 35),
    ("storyboard", 55),
    ("music", 75),
    ("seo", 90),
)


def _step_done(step: str, script: Dict[str, Any]) -> bool:
    if step == "hook":
        return bool(script["hook"])
    if step == "script":
        return bool(script["voice_text"])
    if step == "storyboard":
        return bool(script["storyboard"])
    if step == "music":
        return bool(script["music"])
    return bool(script["seo"])


async def run_generate_all(ctx: JobContext) -> Dict[str, Any]:
    script, _ = await _load_script_and_topic(ctx)
    script_id = script["script_id"]
    generated: List[str] = []
    skipped: List[str] = []

    for step, progress in GENERATE_ALL_STEPS:
        # reload each step so earlier outputs feed later ones
        script, topic = await _load_script_and_topic(ctx)
        if _step_done(step, script):
            skipped.append(step)
            await ctx.progress(progress, f"{step} already present")
            continue
        await scripts_repo.update_script(script_id, status="generating")
        if step == "hook":
            await scripts_repo.update_script(script_id, hook=await _generate_hook(script, topic))
        elif step == "script":
            text = await _generate_script_text(script, topic, with_trends=False)
            await _reject_if_similar(script_id, text)
            await scripts_repo.update_script(
                script_id, voice_text=extract_voiceover_lines(text), on_screen_text=text
            )
        elif step == "storyboard":
            await scripts_repo.update_script(
                script_id, storyboard=await _generate_storyboard(script, topic)
            )
        elif step == "music":
            await scripts_repo.update_script(script_id, music=await _pick_music(script))
        else:
            seo = await _call(
                "llm.generate_seo",
                get_providers().llm.generate_seo(
                    topic["translated_title"] or topic["title"],
                    script["keywords"],
                    script["language"],
                    script["platform"],
                    script["style_preset"],
                ),
            )
            await scripts_repo.update_script(script_id, seo=seo)
        generated.append(step)
        await ctx.progress(progress, f"{step} generated")

    await scripts_repo.update_script(script_id, status="ready", error=None)
    return {"script_id": script_id, "generated": generated, "skipped": skipped}


async def run_health_check(ctx: JobContext) -> Dict[str, Any]:
    source_id = ctx.require_id("source_id", "Source")
    await ctx.progress(10, "probing source")
    outcome = await health_check.check_single_source(source_id)
    if not outcome:
        raise NotFoundError("Source", source_id)
    status = outcome["source"]["health"]["status"]
    await ctx.log("info", f"health check for {outcome['source']['name']}: {status}")
    return {"source_id": source_id, "status": status, "skipped": outcome["skipped"]}


async def run_health_check_all(ctx: JobContext) -> Dict[str, Any]:
    await ctx.progress(10, "probing all enabled sources")
    counts = await health_check.check_all_sources()
    await ctx.log(
        "info", f"health check all: {counts['checked']} checked, {counts['healthy']} healthy"
    )
    return counts


async def run_auto_discovery(ctx: JobContext) -> Dict[str, Any]:
    await ctx.progress(10, "discovering sources")
    category_id = ctx.get("category_id")
    if category_id:
        result = await discovery.discover_sources_for_category(str(category_id))
        await ctx.log("info", f"discovery for {category_id}: added {result['added']}")
        return result
    results = await discovery.discover_all_categories()
    total = sum(r["added"] for r in results)
    await ctx.log("info", f"discovery: added {total} sources across {len(results)} categories")
    return {"categories": len(results), "added": total}


async def run_extract_trends(ctx: JobContext) -> Dict[str, Any]:
    category_id = ctx.get("category_id")
    await ctx.progress(10, "clustering topics")
    trends = await trend_clustering.rebuild_trend_topics(category_id)
    await ctx.progress(60, "extracting trend signals")
    signals = await extract_trends_from_topics(category_id)
    await ctx.log(
        "info",
        f"extracted {len(trends)} clusters and {len(signals)} signals for {category_id or 'all'}",
    )
    return {"trend_topics": len(trends), "signals": len(signals)}


JOB_HANDLERS: Dict[JobKind, JobHandler] = {
    JobKind.fetch_topics: run_fetch_topics,
    JobKind.extract_content: run_extract_content,
    JobKind.translate_topic: run_translate_topic,
    JobKind.generate_hook: run_generate_hook,
    JobKind.generate_script: run_generate_script,
    JobKind.generate_storyboard: run_generate_storyboard,
    JobKind.generate_voice: run_generate_voice,
    JobKind.pick_music: run_pick_music,
    JobKind.export_package: run_export_package,
    JobKind.generate_all: run_generate_all,
    JobKind.health_check: run_health_check,
    JobKind.health_check_all: run_health_check_all,
    JobKind.auto_discovery: run_auto_discovery,
    JobKind.extract_trends: run_extract_trends,
}

_missing = set(JobKind) - set(JOB_HANDLERS)
if _missing:  # pragma: no cover - import-time guard
    raise RuntimeError(f"job kinds without handlers: {sorted(k.value for k in _missing)}")
