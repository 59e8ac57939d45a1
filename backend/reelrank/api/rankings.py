"""
rankings.py

API endpoints for a user's ranked lists: the comparison protocol
(advance/commit), manual reorder, removal and repair.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from ..core import metrics
from ..schemas import (
    AdvanceRequest,
    CommitRequest,
    MoveRequest,
    RankedItemSchema,
    RankingListResponse,
    RankingSessionResponse,
    RemoveResponse,
    RepairResponse,
)
from ..services.content_service import ContentService
from ..services.ranking.audit import audit_list
from ..services.ranking.errors import PersistenceFailure, RankingError
from ..services.ranking.maintainer import RankingMaintainer
from ..services.ranking.resolver import RankingState, resolve_position
from ..services.ranking_store import RankingStore
from ..models import CONTENT_TYPES

router = APIRouter()
logger = logging.getLogger(__name__)

SAVE_FAILED = "Could not save, try again"


def get_store() -> RankingStore:
    return RankingStore()


def get_maintainer(store: RankingStore = Depends(get_store)) -> RankingMaintainer:
    return RankingMaintainer(store)


def get_content_service() -> ContentService:
    return ContentService()


def http_error(e: Exception, action: str) -> HTTPException:
    """Map engine errors onto HTTP responses."""
    if isinstance(e, PersistenceFailure):
        logger.error(f"Failed to {action}: {e}")
        return HTTPException(status_code=503, detail=SAVE_FAILED)
    if isinstance(e, (RankingError, ValueError)):
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to {action}")


def _check_content_type(content_type: str) -> None:
    if content_type not in CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Content type must be 'movie' or 'show'")


async def commit_state(state: RankingState, maintainer: RankingMaintainer) -> RankingSessionResponse:
    """Write a completed comparison state into the list."""
    resolution = resolve_position(state)
    try:
        async with metrics.Timer("ranking.insert_ms"):
            item = maintainer.insert(
                state.user_id,
                state.content_type,
                state.content_id,
                resolution.global_position,
                state.star_rating,
            )
    except PersistenceFailure:
        await metrics.increment("ranking.persistence_failures")
        raise
    await metrics.increment("ranking.inserts")
    return RankingSessionResponse(
        state=state,
        complete=True,
        resolution=resolution,
        item=RankedItemSchema.from_item(item),
    )


@router.get("/{user_id}/{content_type}", response_model=RankingListResponse)
async def get_rankings(user_id: int, content_type: str, store: RankingStore = Depends(get_store)):
    """The user's ranked list, best first."""
    _check_content_type(content_type)
    try:
        items = store.fetch_ordered(user_id, content_type)
    except Exception as e:
        raise http_error(e, "load rankings")
    return RankingListResponse(
        user_id=user_id,
        content_type=content_type,
        total=len(items),
        items=[RankedItemSchema.from_item(item) for item in items],
    )


@router.post("/advance", response_model=RankingSessionResponse)
async def advance_ranking(request: AdvanceRequest, maintainer: RankingMaintainer = Depends(get_maintainer)):
    """Submit one "which do you prefer?" answer.

    Returns the next comparison, or the committed item once the position is
    known.
    """
    try:
        state = request.state.advance(request.prefers_new)
        await metrics.increment("ranking.comparisons")
        if state.is_complete:
            return await commit_state(state, maintainer)
        return RankingSessionResponse(state=state, complete=False, comparison=state.current_comparison())
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "advance ranking")


@router.post("/commit", response_model=RankingSessionResponse)
async def commit_ranking(request: CommitRequest, maintainer: RankingMaintainer = Depends(get_maintainer)):
    """Write a completed state (retry after a failed save)."""
    try:
        return await commit_state(request.state, maintainer)
    except HTTPException:
        raise
    except Exception as e:
        raise http_error(e, "commit ranking")


@router.put("/move", response_model=RankedItemSchema)
async def move_ranking(request: MoveRequest, maintainer: RankingMaintainer = Depends(get_maintainer)):
    """Drag an item to a new position; its tier follows its neighbours."""
    try:
        async with metrics.Timer("ranking.move_ms"):
            item = maintainer.move(request.user_id, request.content_type, request.from_position, request.to_position)
        await metrics.increment("ranking.moves")
        return RankedItemSchema.from_item(item)
    except PersistenceFailure as e:
        await metrics.increment("ranking.persistence_failures")
        raise http_error(e, "move ranking")
    except Exception as e:
        raise http_error(e, "move ranking")


@router.delete("/{user_id}/{content_type}/{content_id}", response_model=RemoveResponse)
async def remove_ranking(
    user_id: int,
    content_type: str,
    content_id: int,
    maintainer: RankingMaintainer = Depends(get_maintainer),
):
    """Take a title out of the list; the rating itself is kept."""
    _check_content_type(content_type)
    try:
        position = maintainer.remove(user_id, content_type, content_id)
    except Exception as e:
        raise http_error(e, "remove ranking")
    if position is None:
        raise HTTPException(status_code=404, detail="Ranking not found")
    await metrics.increment("ranking.removals")
    return RemoveResponse(success=True, removed_position=position)


@router.post("/{user_id}/{content_type}/repair", response_model=RepairResponse)
async def repair_rankings(user_id: int, content_type: str, maintainer: RankingMaintainer = Depends(get_maintainer)):
    """Run the monotonicity repair and report remaining invariant violations."""
    _check_content_type(content_type)
    try:
        report = audit_list(maintainer, user_id, content_type)
    except Exception as e:
        raise http_error(e, "repair rankings")
    return RepairResponse(**report)
