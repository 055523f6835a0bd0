import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from hagda.adapters import SAMPLE_SOURCES
from hagda.brief import BriefGenerator
from hagda.schemas import BriefEngagement, BriefMode, BriefRequest, DailyBrief, EngagementRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/brief")


def get_generator(request: Request) -> BriefGenerator:
    """FastAPI dependency that provides the shared BriefGenerator built at startup."""
    return request.app.state.brief_generator


@router.post("", response_model=DailyBrief)
async def brief_for_sources(body: BriefRequest, generator: BriefGenerator = Depends(get_generator)):
    """
    Generate a new daily brief from the given followed sources.
    Without a mode, one is picked from the server's local time of day.
    """
    logger.info(f"[/brief] {len(body.sources)} sources, mode={body.mode.value if body.mode else 'auto'}")
    return await generator.generate_brief(body.sources, mode=body.mode)


@router.get("", response_model=DailyBrief)
async def brief_for_sample_sources(mode: Optional[BriefMode] = None, generator: BriefGenerator = Depends(get_generator)):
    """Same as POST /brief, using the built-in sample sources."""
    return await generator.generate_brief(SAMPLE_SOURCES, mode=mode)


@router.get("/current", response_model=DailyBrief)
def current_brief(generator: BriefGenerator = Depends(get_generator)):
    """The last generated brief, without fetching anything."""
    if generator.current_brief is None:
        raise HTTPException(status_code=404, detail="No brief generated yet")
    return generator.current_brief


@router.post("/engagement", response_model=BriefEngagement)
def record_engagement(body: EngagementRequest, generator: BriefGenerator = Depends(get_generator)):
    """Record an interaction with an item of the current brief; shapes future selections."""
    engagement = generator.record_engagement(body.brief_item_id, body.action, time_spent=body.time_spent)
    if engagement is None:
        raise HTTPException(status_code=404, detail="Brief item not found")
    return engagement
