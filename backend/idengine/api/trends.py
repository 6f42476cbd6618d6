from fastapi import APIRouter, Depends

from idengine.api.deps import require_backend_token
from idengine.db import trends_repo
from idengine.schemas.trends import CategoryId, TrendTopicsResponse
from idengine.services.trend_clustering import build_trend_topics_for_category

router = APIRouter()


@router.get("/trends", response_model=TrendTopicsResponse)
async def list_trends(_: None = Depends(require_backend_token)) -> TrendTopicsResponse:
    """Clusters persisted by the last extract_trends job."""
    return TrendTopicsResponse(trends=await trends_repo.list_trend_topics())


@router.get("/trends/{category_id}", response_model=TrendTopicsResponse)
async def category_trends(
    category_id: CategoryId, _: None = Depends(require_backend_token)
) -> TrendTopicsResponse:
    """Clusters computed on the fly from the category's fresh topics."""
    return TrendTopicsResponse(
        trends=await build_trend_topics_for_category(category_id.value)
    )
