"""
Position resolver: binary insertion of a newly rated title within its star tier.

The user is asked "which do you prefer?" against titles of the same tier until
the title's rank inside the tier is known. The protocol is an explicit state
machine so the caller can hand the state to a client and resume it on the
next request:

    state = start_ranking(user_id, content, star_rating, ordered_items)
    while state.status is RankingStatus.AWAITING_COMPARISON:
        pair = state.current_comparison()
        state = state.advance(prefers_new=ask_user(pair))
    resolution = resolve_position(state)

Abandoning a state writes nothing.
"""
import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, Field

from reelrank.services.ranking.errors import RankingStateError, TierOrderingViolation
from reelrank.services.ranking.similarity import similarity_score
from reelrank.services.ranking.tiers import validate_star_rating
from reelrank.services.ranking.types import ContentRecord, RankedItem

logger = logging.getLogger(__name__)


class RankingStatus(str, Enum):
    AWAITING_COMPARISON = "awaiting_comparison"
    COMPLETE = "complete"


class TierCandidate(BaseModel):
    """A same-tier title the new title may be compared against."""
    ranking_id: int
    content_id: int
    title: Optional[str] = None
    rank_position: int
    display_score: float
    similarity: int = 0


class CandidatePair(BaseModel):
    new_content_id: int
    new_title: Optional[str] = None
    candidate: TierCandidate
    comparison_number: int
    max_comparisons: int


class PositionResolution(BaseModel):
    tier_rank: int
    global_position: int
    comparisons_made: int
    comparisons_needed: int
    warnings: List[str] = Field(default_factory=list)


def _max_comparisons(n: int) -> int:
    # ceil(log2(n + 1))
    return n.bit_length()


def _choose_pivot(items: Sequence[TierCandidate], low: int, high: int) -> int:
    """Pick the next candidate index in [low, high).

    Any index keeps the search correct; only indices whose two sides both fit
    in the remaining comparison budget keep the ceil(log2(n+1)) bound. Inside
    that window prefer the most similar title, then the midpoint.
    """
    n = high - low
    mid = (low + high) // 2
    half = 1 << (_max_comparisons(n) - 1)
    first = low + max(0, n - half)
    last = low + min(n - 1, half - 1)
    return max(
        range(first, last + 1),
        key=lambda i: (items[i].similarity, -abs(i - mid), -i),
    )


class RankingState(BaseModel):
    """Resumable binary-insertion state for one title being rated."""
    user_id: int
    content_type: str
    content_id: int
    title: Optional[str] = None
    star_rating: int
    tier_items: List[TierCandidate] = Field(default_factory=list)
    higher_count: int = 0
    low: int = 0
    high: int = 0
    comparison_index: int = 0
    comparisons: int = 0
    max_comparisons: int = 0
    status: RankingStatus = RankingStatus.AWAITING_COMPARISON
    tier_rank: Optional[int] = None

    @property
    def is_complete(self) -> bool:
        return self.status == RankingStatus.COMPLETE

    def current_comparison(self) -> Optional[CandidatePair]:
        if self.is_complete or not self.tier_items:
            return None
        self._check_bounds()
        return CandidatePair(
            new_content_id=self.content_id,
            new_title=self.title,
            candidate=self.tier_items[self.comparison_index],
            comparison_number=self.comparisons + 1,
            max_comparisons=self.max_comparisons,
        )

    def advance(self, prefers_new: bool) -> "RankingState":
        """Apply one user choice and return the next state.

        prefers_new: True when the new title beats the shown candidate.
        """
        if self.is_complete:
            raise RankingStateError("Ranking is already complete")
        self._check_bounds()

        low, high = self.low, self.high
        if prefers_new:
            high = self.comparison_index
        else:
            low = self.comparison_index + 1

        update = {"low": low, "high": high, "comparisons": self.comparisons + 1}
        if low >= high:
            update["status"] = RankingStatus.COMPLETE
            update["tier_rank"] = low + 1
        else:
            update["comparison_index"] = _choose_pivot(self.tier_items, low, high)

        logger.debug(
            f"Comparison {self.comparisons + 1} for content {self.content_id}: "
            f"prefers_new={prefers_new}, range [{low}, {high})"
        )
        return self.model_copy(update=update)

    def _check_bounds(self) -> None:
        n = len(self.tier_items)
        if not (0 <= self.low < self.high <= n and self.low <= self.comparison_index < self.high):
            raise RankingStateError(
                f"Malformed ranking state: low={self.low}, high={self.high}, "
                f"index={self.comparison_index}, tier size={n}"
            )


def start_ranking(
    user_id: int,
    content: ContentRecord,
    star_rating,
    ordered_items: Sequence[RankedItem],
) -> RankingState:
    """Build the initial state for ``content`` rated ``star_rating`` stars.

    ordered_items is the user's current list for the content type. The title
    itself (when re-rated) and items without a valid star rating never take
    part.
    """
    star = validate_star_rating(star_rating)

    others = [
        item for item in ordered_items
        if item.content_id != content.id and item.has_valid_tier
    ]
    higher_count = sum(1 for item in others if item.star_rating > star)

    tier = sorted(
        (item for item in others if item.star_rating == star),
        key=lambda item: (-item.display_score, item.rank_position),
    )
    tier_items = [
        TierCandidate(
            ranking_id=item.id,
            content_id=item.content_id,
            title=item.title,
            rank_position=item.rank_position,
            display_score=item.display_score,
            similarity=similarity_score(item.content, content),
        )
        for item in tier
    ]

    n = len(tier_items)
    state = RankingState(
        user_id=user_id,
        content_type=content.content_type,
        content_id=content.id,
        title=content.title,
        star_rating=star,
        tier_items=tier_items,
        higher_count=higher_count,
        low=0,
        high=n,
        max_comparisons=_max_comparisons(n),
    )
    if n == 0:
        return state.model_copy(update={"status": RankingStatus.COMPLETE, "tier_rank": 1})
    return state.model_copy(update={"comparison_index": _choose_pivot(tier_items, 0, n)})


def resolve_position(state: RankingState) -> PositionResolution:
    """Convert a completed state into a global list position."""
    if not state.is_complete or state.tier_rank is None:
        raise RankingStateError("Ranking comparisons are not finished")

    warnings: List[str] = []
    tier_rank = state.tier_rank
    global_position = state.higher_count + tier_rank

    lowest_allowed = state.higher_count + 1
    highest_allowed = state.higher_count + len(state.tier_items) + 1
    if global_position < lowest_allowed or global_position > highest_allowed:
        violation = TierOrderingViolation(
            f"Position {global_position} for content {state.content_id} is outside its "
            f"{state.star_rating}-star tier [{lowest_allowed}, {highest_allowed}]; clamped"
        )
        logger.warning(str(violation))
        warnings.append(str(violation))
        global_position = min(max(global_position, lowest_allowed), highest_allowed)
        tier_rank = global_position - state.higher_count

    return PositionResolution(
        tier_rank=tier_rank,
        global_position=global_position,
        comparisons_made=state.comparisons,
        comparisons_needed=state.max_comparisons,
        warnings=warnings,
    )


def rank_interactively(
    user_id: int,
    content: ContentRecord,
    star_rating,
    ordered_items: Sequence[RankedItem],
    prefer_new: Callable[[CandidatePair], bool],
) -> PositionResolution:
    """Run the whole protocol with ``prefer_new`` answering each comparison."""
    state = start_ranking(user_id, content, star_rating, ordered_items)
    while not state.is_complete:
        state = state.advance(prefer_new(state.current_comparison()))
    return resolve_position(state)
