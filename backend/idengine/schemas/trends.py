from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class CategoryId(str, Enum):
    world_news = "world_news"
    russia_news = "russia_news"
    gaming = "gaming"
    memes = "memes"
    trends = "trends"
    fashion = "fashion"
    music = "music"
    interesting = "interesting"
    facts_research = "facts_research"
    movies = "movies"
    series = "series"
    medicine = "medicine"
    youtube_trends = "youtube_trends"


class TrendTopic(BaseModel):
    trend_topic_id: str
    category_id: str
    cluster_label: str
    seed_titles: List[str] = Field(default_factory=list)
    topic_ids: List[str] = Field(default_factory=list)
    context_snippets: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    entities: List[str] = Field(default_factory=list)
    angles: List[str] = Field(default_factory=list)
    hook_patterns: List[str] = Field(default_factory=list)
    pacing_hint: str
    refs: List[str] = Field(default_factory=list)
    score: int
    updated_at: Optional[str] = None


class TrendTopicsResponse(BaseModel):
    trends: List[TrendTopic]
