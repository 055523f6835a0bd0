import logging
from typing import List

from fastapi import APIRouter, Depends, Request

from hagda.adapters import SAMPLE_SOURCES
from hagda.cache import TrendingManager
from hagda.schemas import ContentItem, TrendingRequest, TrendingStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trending")


def get_manager(request: Request) -> TrendingManager:
    """FastAPI dependency that provides the shared TrendingManager built at startup."""
    return request.app.state.trending_manager


@router.post("", response_model=List[ContentItem])
async def trending_for_sources(body: TrendingRequest, manager: TrendingManager = Depends(get_manager)):
    """
    Return the top trending items across the given followed sources, best first.
    Served from cache for 15 minutes unless force_refresh is set.
    """
    logger.info(f"[/trending] {len(body.sources)} sources, force_refresh={body.force_refresh}")
    return await manager.fetch_trending_content(body.sources, force_refresh=body.force_refresh)


@router.get("", response_model=List[ContentItem])
async def trending_for_sample_sources(force_refresh: bool = False, manager: TrendingManager = Depends(get_manager)):
    """Same as POST /trending, using the built-in sample sources."""
    return await manager.fetch_trending_content(SAMPLE_SOURCES, force_refresh=force_refresh)


@router.get("/status", response_model=TrendingStatus)
def status(manager: TrendingManager = Depends(get_manager)):
    """Loading flag and the last adapter error, for diagnostic display."""
    return TrendingStatus(
        is_loading=manager.is_loading,
        error=str(manager.error) if manager.error else None,
        last_fetched_at=manager.last_fetched_at,
    )


@router.post("/invalidate")
def invalidate(manager: TrendingManager = Depends(get_manager)):
    """Drop the cached result; the next request aggregates again."""
    manager.invalidate()
    return {"status": "ok"}
