"""
ratings.py

API endpoints for star ratings. Rating a title starts its ranking session;
removing a rating takes the title out of the list.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from ..core import metrics
from ..schemas import RateRequest, RankingSessionResponse, RatingResponse, RemoveResponse
from ..services.content_service import ContentService
from ..services.ranking.maintainer import RankingMaintainer
from ..services.ranking.resolver import start_ranking
from ..services.ranking.tiers import validate_star_rating
from ..services.ranking_store import RankingStore
from .rankings import commit_state, get_content_service, get_maintainer, get_store, http_error

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/rate", response_model=RankingSessionResponse)
async def rate_item(
    request: RateRequest,
    maintainer: RankingMaintainer = Depends(get_maintainer),
    content_service: ContentService = Depends(get_content_service),
):
    """Rate a title 1-5 stars and start placing it in the user's list.

    The response carries the first comparison to show, or the committed item
    when the title's tier is empty.
    """
    try:
        star = validate_star_rating(request.star_rating)
        content = await content_service.resolve_content(request.tmdb_id, request.content_type)
        if content is None:
            raise HTTPException(status_code=404, detail=f"Unknown {request.content_type} {request.tmdb_id}")

        ordered = maintainer.store.fetch_ordered(request.user_id, request.content_type)
        state = start_ranking(request.user_id, content, star, ordered)
        logger.info(
            f"User {request.user_id} rated '{content.title}' {star} stars; "
            f"{len(state.tier_items)} same-tier titles, up to {state.max_comparisons} comparisons"
        )
        if state.is_complete:
            return await commit_state(state, maintainer)
        return RankingSessionResponse(state=state, complete=False, comparison=state.current_comparison())
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "rate item")


@router.get("/item/{content_id}", response_model=RatingResponse)
async def get_item_rating(content_id: int, user_id: int = Query(1), store: RankingStore = Depends(get_store)):
    """The user's star rating for a title."""
    try:
        star = store.star_rating(user_id, content_id)
    except Exception as e:
        raise http_error(e, "load rating")
    if star is None:
        raise HTTPException(status_code=404, detail="Rating not found")
    return RatingResponse(user_id=user_id, content_id=content_id, star_rating=star)


@router.delete("/item/{content_id}", response_model=RemoveResponse)
async def remove_item_rating(
    content_id: int,
    user_id: int = Query(1),
    maintainer: RankingMaintainer = Depends(get_maintainer),
    content_service: ContentService = Depends(get_content_service),
):
    """Remove the rating and the title's ranking together."""
    try:
        content = content_service.get_content(content_id)
        if content is None:
            raise HTTPException(status_code=404, detail="Content not found")
        position = maintainer.remove(user_id, content.content_type, content_id, remove_rating=True)
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "remove rating")
    if position is not None:
        await metrics.increment("ranking.removals")
    return RemoveResponse(
        success=True,
        removed_position=position,
        details={"message": "Rating removed" if position is not None else "Title was not ranked"},
    )
