"""
Star tiers and their display-score bands.

Five tiers, 5 stars ranking above 4 and so on. Each tier owns a closed,
non-overlapping band of display scores; scores carry one decimal.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, NamedTuple

from reelrank.services.ranking.errors import InvalidStarRating

MIN_STARS = 1
MAX_STARS = 5

MIN_SCORE = 1.0
MAX_SCORE = 10.0
SCORE_STEP = 0.1


class ScoreBand(NamedTuple):
    min: float
    max: float

    def contains(self, score: float) -> bool:
        return self.min <= score <= self.max


TIER_BANDS: Dict[int, ScoreBand] = {
    5: ScoreBand(9.5, 10.0),
    4: ScoreBand(8.0, 9.4),
    3: ScoreBand(6.0, 7.9),
    2: ScoreBand(4.0, 5.9),
    1: ScoreBand(1.0, 3.9),
}


def is_valid_star_rating(star) -> bool:
    if isinstance(star, bool):
        return False
    if isinstance(star, float):
        if not star.is_integer():
            return False
        star = int(star)
    return isinstance(star, int) and MIN_STARS <= star <= MAX_STARS


def validate_star_rating(star) -> int:
    """Return ``star`` as an int, or raise InvalidStarRating."""
    if not is_valid_star_rating(star):
        raise InvalidStarRating(star)
    return int(star)


def band_for(star) -> ScoreBand:
    return TIER_BANDS[validate_star_rating(star)]


def compare_tiers(a, b) -> int:
    """Negative when tier ``a`` ranks first, positive when ``b`` does, 0 for the same tier."""
    return validate_star_rating(b) - validate_star_rating(a)


def round_score(score: float) -> float:
    """Round to one decimal, half away from zero (8.45 -> 8.5)."""
    return float(Decimal(str(score)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def clamp_to_band(score: float, star) -> float:
    band = band_for(star)
    return round_score(min(max(score, band.min), band.max))
