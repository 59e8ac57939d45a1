"""
List consistency audit.

Checks one ordered list against the ranking invariants: dense positions,
tiers in descending order, non-increasing scores and scores inside their
tier band. Used by the nightly Celery audit and the repair endpoint.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from reelrank.services.ranking.maintainer import RankingMaintainer
from reelrank.services.ranking.tiers import band_for
from reelrank.services.ranking.types import RankedItem

logger = logging.getLogger(__name__)


def find_violations(items: Sequence[RankedItem]) -> List[str]:
    """Describe every invariant broken by ``items`` (ascending position)."""
    violations: List[str] = []

    positions = [item.rank_position for item in items]
    if positions != list(range(1, len(items) + 1)):
        violations.append(f"positions are not 1..{len(items)}: {positions}")

    previous: Optional[RankedItem] = None
    previous_rated: Optional[RankedItem] = None
    for item in items:
        if not item.has_valid_tier:
            violations.append(f"#{item.rank_position} (content {item.content_id}) has no valid star rating")
        else:
            band = band_for(item.star_rating)
            if not band.contains(item.display_score):
                violations.append(
                    f"#{item.rank_position} score {item.display_score} outside "
                    f"{item.star_rating}-star band {band.min}-{band.max}"
                )
            if previous_rated is not None and item.star_rating > previous_rated.star_rating:
                violations.append(
                    f"#{item.rank_position} ({item.star_rating} stars) ranked below "
                    f"#{previous_rated.rank_position} ({previous_rated.star_rating} stars)"
                )
            previous_rated = item

        if previous is not None and item.display_score > previous.display_score:
            violations.append(
                f"#{item.rank_position} score {item.display_score} above "
                f"#{previous.rank_position} score {previous.display_score}"
            )
        previous = item

    return violations


def audit_list(maintainer: RankingMaintainer, user_id: int, content_type: str) -> Dict[str, Any]:
    """Repair one list, then report what is still wrong with it."""
    corrections = maintainer.repair(user_id, content_type)
    items = maintainer.store.fetch_ordered(user_id, content_type)
    violations = find_violations(items)
    if violations:
        logger.warning(
            f"Ranking audit for user {user_id}/{content_type}: {len(violations)} violations remain "
            f"after {corrections} corrections: {violations[:5]}"
        )
    return {
        "user_id": user_id,
        "content_type": content_type,
        "items": len(items),
        "corrections": corrections,
        "violations": violations,
    }
