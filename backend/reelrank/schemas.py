"""
schemas.py

Pydantic request/response schemas for the rating and ranking endpoints.
"""
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt

from reelrank.services.ranking.resolver import CandidatePair, PositionResolution, RankingState
from reelrank.services.ranking.types import RankedItem

ContentType = Literal["movie", "show"]


class RankedItemSchema(BaseModel):
    id: int
    content_id: int
    content_type: str
    rank_position: int
    display_score: float
    star_rating: Optional[int] = None
    title: Optional[str] = None
    poster_path: Optional[str] = None

    @classmethod
    def from_item(cls, item: RankedItem) -> "RankedItemSchema":
        return cls(
            id=item.id,
            content_id=item.content_id,
            content_type=item.content_type,
            rank_position=item.rank_position,
            display_score=item.display_score,
            star_rating=item.star_rating,
            title=item.title,
            poster_path=item.content.poster_path if item.content else None,
        )


class RankingListResponse(BaseModel):
    user_id: int
    content_type: str
    total: int
    items: List[RankedItemSchema]


# Payloads
class RateRequest(BaseModel):
    """New rating or re-rating of a title."""
    tmdb_id: int
    content_type: ContentType
    # Strict so JSON booleans are refused; the tier model turns non-integral stars into a 400
    star_rating: Union[StrictInt, StrictFloat]
    user_id: int = 1


class AdvanceRequest(BaseModel):
    state: RankingState
    prefers_new: bool = Field(..., description="True when the new title beats the shown candidate")


class CommitRequest(BaseModel):
    state: RankingState


class MoveRequest(BaseModel):
    """Manual drag-and-drop reorder."""
    content_type: ContentType
    from_position: int
    to_position: int
    user_id: int = 1


class RankingSessionResponse(BaseModel):
    """Comparison protocol step: the next pair to show, or the committed item."""
    state: RankingState
    complete: bool
    comparison: Optional[CandidatePair] = None
    resolution: Optional[PositionResolution] = None
    item: Optional[RankedItemSchema] = None


class RatingResponse(BaseModel):
    user_id: int
    content_id: int
    star_rating: int


class RepairResponse(BaseModel):
    user_id: int
    content_type: str
    items: int
    corrections: int
    violations: List[str] = Field(default_factory=list)


class RemoveResponse(BaseModel):
    success: bool
    removed_position: Optional[int] = None
    details: Dict[str, Any] = Field(default_factory=dict)
