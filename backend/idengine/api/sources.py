from fastapi import APIRouter, Depends

from idengine.api.deps import require_backend_token
from idengine.schemas.sources import CategoryHealthResponse, SourcesResponse
from idengine.services.health_check import (
    get_category_health_stats,
    get_sources_needing_attention,
)

router = APIRouter()


@router.get("/sources/attention", response_model=SourcesResponse)
async def sources_attention(_: None = Depends(require_backend_token)) -> SourcesResponse:
    return SourcesResponse(sources=await get_sources_needing_attention())


@router.get("/sources/health-stats", response_model=CategoryHealthResponse)
async def sources_health_stats(_: None = Depends(require_backend_token)) -> CategoryHealthResponse:
    return CategoryHealthResponse(categories=await get_category_health_stats())
