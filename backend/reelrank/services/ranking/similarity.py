"""
Similarity between a newly rated title and an already ranked one.

Used only to pick which same-tier title to show next during the comparison
protocol: a comparison against a similar title (same franchise, same
director, same genres, same era) is easier for the user to decide.
"""
from typing import Optional

from reelrank.services.ranking.types import ContentRecord

GENRE_MATCH = 3
SAME_MAKER = 5
ERA_SAME = 3  # <= 5 years apart
ERA_ADJACENT = 2  # <= 10 years
ERA_RELATED = 1  # <= 20 years
POPULARITY_TIER = 2
SAME_FRANCHISE = 10


def _popularity_tier(popularity: Optional[float]) -> str:
    pop = popularity or 0.0
    if pop > 50:
        return "blockbuster"
    if pop > 20:
        return "mainstream"
    return "indie"


def similarity_score(candidate: Optional[ContentRecord], new: Optional[ContentRecord]) -> int:
    if candidate is None or new is None:
        return 0

    score = 0

    new_genres = {g.lower() for g in new.genres}
    score += GENRE_MATCH * sum(1 for g in candidate.genres if g.lower() in new_genres)

    if candidate.maker and new.maker and candidate.maker.lower() == new.maker.lower():
        score += SAME_MAKER

    if candidate.release_year and new.release_year:
        gap = abs(candidate.release_year - new.release_year)
        if gap <= 5:
            score += ERA_SAME
        elif gap <= 10:
            score += ERA_ADJACENT
        elif gap <= 20:
            score += ERA_RELATED

    if candidate.popularity is not None and new.popularity is not None:
        if _popularity_tier(candidate.popularity) == _popularity_tier(new.popularity):
            score += POPULARITY_TIER

    if candidate.collection_id and candidate.collection_id == new.collection_id:
        score += SAME_FRANCHISE

    return score
