"""
Score & consistency maintainer.

Owns every write to a user's ordered list: physical position shifts,
neighbour-interpolated display scores, tier auto-adjustment on manual
reorder, and the monotonicity repair sweep that runs after each insert and
move.

Insert and move are all-or-nothing: their row changes share one store
transaction, and a store error rolls the list back to its previous state and
surfaces as PersistenceFailure. Repair runs afterwards, one correction per
transaction, and never fails the operation that triggered it.
"""
import dataclasses
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from reelrank.services.ranking.errors import (
    InvalidPosition,
    PersistenceFailure,
    RankingStateError,
    RepairWriteFailure,
    TierOrderingViolation,
)
from reelrank.services.ranking.tiers import (
    MAX_SCORE,
    MIN_SCORE,
    SCORE_STEP,
    ScoreBand,
    band_for,
    clamp_to_band,
    round_score,
    validate_star_rating,
)
from reelrank.services.ranking.types import PositionUpdate, RankedItem
from reelrank.services.ranking_store import RankingStore, RankingUnitOfWork

logger = logging.getLogger(__name__)

BOTTOM_OFFSET = 0.3  # new bottom of the list sits this far below the item above
MOVE_OFFSET = 0.2  # moved item with a single neighbour


def insertion_score(above: Optional[RankedItem], below: Optional[RankedItem], star: int) -> float:
    band = band_for(star)
    if above is None:
        # First item, or new top of the list
        score = band.max
    elif below is None:
        score = max(above.display_score - BOTTOM_OFFSET, band.min)
    else:
        score = (above.display_score + below.display_score) / 2
    return clamp_to_band(score, star)


def adjusted_star(current: Optional[int], above: Optional[RankedItem], below: Optional[RankedItem]) -> Optional[int]:
    """Star rating a moved item must take to keep tiers ordered at its new slot.

    An item cannot sit above a higher tier without joining it, cannot sit
    below a lower tier without dropping to it, and is demoted to one tier
    above the item below when that item is more than one tier lower.
    """
    above_star = above.star_rating if above is not None and above.has_valid_tier else None
    below_star = below.star_rating if below is not None and below.has_valid_tier else None

    star = current
    if star is None:
        star = below_star if below_star is not None else above_star
        if star is None:
            return None

    if below_star is not None and star < below_star:
        star = below_star
    if above_star is not None and star > above_star:
        star = above_star
    if below_star is not None and star - below_star > 1:
        star = below_star + 1
    return star


def move_score(moved: RankedItem, above: Optional[RankedItem], below: Optional[RankedItem], star: Optional[int]) -> float:
    if above is not None and below is not None:
        score = (above.display_score + below.display_score) / 2
    elif above is not None:
        score = above.display_score - MOVE_OFFSET
    elif below is not None:
        score = below.display_score + MOVE_OFFSET
    else:
        score = moved.display_score
    if star is None:
        return round_score(min(max(score, MIN_SCORE), MAX_SCORE))
    return clamp_to_band(score, star)


def plan_repair(items: Sequence[RankedItem]) -> List[Tuple[RankedItem, float]]:
    """Score corrections that make ``items`` (ascending position) monotonic.

    Each score is first pulled into its tier band; a score that is not below
    the previous one drops to previous - 0.1, but never below its band or 1.0.
    A tier band with no room left keeps the tie.
    """
    corrections: List[Tuple[RankedItem, float]] = []
    previous: Optional[float] = None
    for item in items:
        band = band_for(item.star_rating) if item.has_valid_tier else ScoreBand(MIN_SCORE, MAX_SCORE)
        target = min(max(item.display_score, band.min), band.max)
        if previous is not None and target >= previous:
            target = max(previous - SCORE_STEP, band.min, MIN_SCORE)
            target = min(target, previous)
        target = round_score(target)
        if target != item.display_score:
            corrections.append((item, target))
        previous = target
    return corrections


class RankingMaintainer:
    """Insert, move, remove and repair rankings for one store."""

    def __init__(self, store: Optional[RankingStore] = None):
        self.store = store or RankingStore()

    # --- insertion ---------------------------------------------------------

    def insert(
        self,
        user_id: int,
        content_type: str,
        content_id: int,
        global_position: int,
        star_rating,
    ) -> RankedItem:
        """Place ``content_id`` at ``global_position`` and give it a display score.

        A title that is already ranked (re-rating) is taken out of the list
        first, in the same transaction. The backing review is set to
        ``star_rating``.
        """
        star = validate_star_rating(star_rating)

        with self.store.transaction() as uow:
            content = uow.content(content_id)
            if content is None or content.content_type != content_type:
                raise RankingStateError(f"Content {content_id} is not a ranked {content_type} title")

            existing = uow.find(user_id, content_id)
            if existing is not None:
                uow.delete(existing.id)
                uow.close_gap(user_id, content_type, existing.rank_position)

            uow.ensure_user(user_id)
            uow.set_star_rating(user_id, content_id, star)

            items = uow.ordered(user_id, content_type)
            position = self._guard_position(items, star, global_position)

            uow.shift_down(user_id, content_type, position)
            above = uow.item_at(user_id, content_type, position - 1)
            below = uow.item_at(user_id, content_type, position + 1)
            score = insertion_score(above, below, star)
            item = uow.add(user_id, content_type, content_id, position, score)

        logger.info(
            f"Ranked content {content_id} for user {user_id}/{content_type} at #{position} "
            f"({star} stars, score {score})"
        )
        return self._with_corrections(item, self._repair_after(user_id, content_type))

    def _guard_position(self, items: Sequence[RankedItem], star: int, requested: int) -> int:
        """Clamp ``requested`` into the slots that keep tiers ordered.

        The list may have changed since the comparison state was built (another
        device), so the resolver's position is re-checked against the rows
        read inside the write transaction.
        """
        n = len(items)
        lowest = 1
        highest = n + 1
        for item in items:
            if not item.has_valid_tier:
                continue
            if item.star_rating > star:
                lowest = max(lowest, item.rank_position + 1)
            elif item.star_rating < star:
                highest = min(highest, item.rank_position)

        position = min(max(int(requested), 1), n + 1)
        if lowest > highest:
            logger.warning(f"Tier ordering already broken in list ({n} items); inserting at #{position}")
            return position
        if position < lowest or position > highest:
            clamped = min(max(position, lowest), highest)
            logger.warning(str(TierOrderingViolation(
                f"Position {requested} would break {star}-star tier bounds [{lowest}, {highest}]; using {clamped}"
            )))
            return clamped
        return position

    # --- manual reorder ----------------------------------------------------

    def move(self, user_id: int, content_type: str, from_position: int, to_position: int) -> RankedItem:
        """Drag the item at ``from_position`` to ``to_position``.

        Every position, the moved item's score and any tier change are written
        in one atomic batch.
        """
        with self.store.transaction() as uow:
            items = uow.ordered(user_id, content_type)
            n = len(items)
            for label, position in (("from", from_position), ("to", to_position)):
                if not 1 <= position <= n:
                    raise InvalidPosition(f"{label}_position {position} outside 1..{n}")

            moved = items[from_position - 1]
            if from_position == to_position:
                return moved

            order = list(items)
            order.pop(from_position - 1)
            order.insert(to_position - 1, moved)
            above = order[to_position - 2] if to_position > 1 else None
            below = order[to_position] if to_position < n else None

            star = adjusted_star(moved.star_rating, above, below)
            score = move_score(moved, above, below, star)
            if star is not None and star != moved.star_rating:
                logger.info(
                    f"Moving content {moved.content_id} to #{to_position} changes its rating "
                    f"{moved.star_rating} -> {star} stars"
                )
                uow.set_star_rating(user_id, moved.content_id, star)

            uow.apply_batch(user_id, content_type, [
                PositionUpdate(
                    row_id=item.id,
                    new_position=index,
                    new_score=score if item.id == moved.id else None,
                )
                for index, item in enumerate(order, start=1)
            ])
            result = dataclasses.replace(moved, rank_position=to_position, display_score=score, star_rating=star)

        logger.info(f"Moved content {moved.content_id} for user {user_id}/{content_type}: #{from_position} -> #{to_position}")
        return self._with_corrections(result, self._repair_after(user_id, content_type))

    # --- deletion ----------------------------------------------------------

    def remove(self, user_id: int, content_type: str, content_id: int, remove_rating: bool = False) -> Optional[int]:
        """Delete the ranking and close the gap; other scores are left as they are.

        Returns the position the item held, or None when it was not ranked.
        """
        with self.store.transaction() as uow:
            item = uow.find(user_id, content_id)
            if item is None or item.content_type != content_type:
                if remove_rating:
                    uow.delete_review(user_id, content_id)
                return None
            uow.delete(item.id)
            uow.close_gap(user_id, content_type, item.rank_position)
            if remove_rating:
                uow.delete_review(user_id, content_id)

        logger.info(f"Removed content {content_id} from user {user_id}/{content_type} (was #{item.rank_position})")
        return item.rank_position

    # --- repair ------------------------------------------------------------

    def repair(self, user_id: int, content_type: str) -> int:
        """Sweep the list and write score corrections; returns how many were written.

        A correction that fails to write is logged and skipped.
        """
        return len(self._run_repair(user_id, content_type))

    def _run_repair(self, user_id: int, content_type: str) -> Dict[int, float]:
        items = self.store.fetch_ordered(user_id, content_type)
        written: Dict[int, float] = {}
        for item, score in plan_repair(items):
            try:
                with self.store.transaction() as uow:
                    self._write_correction(uow, item, score)
                written[item.id] = score
            except PersistenceFailure as e:
                failure = RepairWriteFailure(f"Could not correct ranking {item.id} to {score}: {e}")
                logger.warning(str(failure))
        if written:
            logger.info(f"Repair corrected {len(written)} scores for user {user_id}/{content_type}")
        return written

    def _write_correction(self, uow: RankingUnitOfWork, item: RankedItem, score: float) -> None:
        uow.update_score(item.id, score)

    def _repair_after(self, user_id: int, content_type: str) -> Dict[int, float]:
        try:
            return self._run_repair(user_id, content_type)
        except PersistenceFailure as e:
            # Re-attempted by the next mutating call or the nightly audit
            logger.warning(f"Repair skipped for user {user_id}/{content_type}: {e}")
            return {}

    @staticmethod
    def _with_corrections(item: RankedItem, corrections: Dict[int, float]) -> RankedItem:
        if item.id in corrections:
            return dataclasses.replace(item, display_score=corrections[item.id])
        return item
