"""Typed values exchanged between the store and the ranking engine."""
from dataclasses import dataclass, field
from typing import Optional, Tuple

from reelrank.services.ranking.tiers import is_valid_star_rating


@dataclass(frozen=True)
class ContentRecord:
    """Catalogue attributes of a title (from the content lookup)."""
    id: int
    tmdb_id: int
    content_type: str
    title: str
    release_year: Optional[int] = None
    genres: Tuple[str, ...] = ()
    director: Optional[str] = None
    creator: Optional[str] = None
    popularity: Optional[float] = None
    collection_id: Optional[int] = None
    poster_path: Optional[str] = None

    @property
    def maker(self) -> Optional[str]:
        """Director for movies, creator for shows."""
        return self.director or self.creator


@dataclass(frozen=True)
class RankedItem:
    id: int
    user_id: int
    content_id: int
    content_type: str
    star_rating: Optional[int]
    rank_position: int
    display_score: float
    content: Optional[ContentRecord] = field(default=None, compare=False)

    @property
    def has_valid_tier(self) -> bool:
        return self.star_rating is not None and is_valid_star_rating(self.star_rating)

    @property
    def title(self) -> Optional[str]:
        return self.content.title if self.content else None


@dataclass(frozen=True)
class PositionUpdate:
    """One row of an atomic batch: ``new_score`` None leaves the score as is."""
    row_id: int
    new_position: int
    new_score: Optional[float] = None
