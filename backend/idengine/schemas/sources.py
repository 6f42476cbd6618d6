from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SourceHealth(BaseModel):
    status: str = "pending"
    http_code: Optional[int] = None
    avg_latency_ms: Optional[int] = None
    last_success_at: Optional[str] = None
    failures_count: int = 0
    freshness_hours: Optional[float] = None
    last_error: Optional[str] = None
    item_count: Optional[int] = None


class Source(BaseModel):
    source_id: str
    type: str
    name: str
    category_id: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    is_enabled: bool
    priority: int
    health: SourceHealth
    last_check_at: Optional[str] = None


class SourcesResponse(BaseModel):
    sources: List[Source]


class CategoryHealth(BaseModel):
    total: int
    enabled: int
    healthy: int
    needs_more: bool


class CategoryHealthResponse(BaseModel):
    categories: Dict[str, CategoryHealth]
