"""
ranking_store.py

Durable record store for rankings.

Rows become typed RankedItem / ContentRecord values here and nowhere else.
Every write happens inside ``RankingStore.transaction()``: one session, one
commit, rollback on any error. Multi-row position changes are staged in two
phases (park the rows at unique negative positions, then move them to their
final positions) so the (user, content_type, rank_position) uniqueness
constraint never sees a duplicate, even where it cannot be deferred.
"""
import json
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import and_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from reelrank.core.database import SessionLocal
from reelrank.models import Content, Ranking, Review, User
from reelrank.services.ranking.errors import PersistenceFailure
from reelrank.services.ranking.tiers import is_valid_star_rating, round_score
from reelrank.services.ranking.types import ContentRecord, PositionUpdate, RankedItem
from reelrank.utils.timezone import utc_now

logger = logging.getLogger(__name__)


def content_record_from_row(row: Optional[Content]) -> Optional[ContentRecord]:
    if row is None:
        return None
    genres: Tuple[str, ...] = ()
    if row.genres:
        try:
            parsed = json.loads(row.genres)
            if isinstance(parsed, list):
                genres = tuple(str(g) for g in parsed if g)
        except (TypeError, ValueError):
            logger.debug(f"Unparseable genres for content {row.id}: {row.genres!r}")
    return ContentRecord(
        id=int(row.id),
        tmdb_id=int(row.tmdb_id),
        content_type=str(row.content_type),
        title=str(row.title),
        release_year=int(row.release_year) if row.release_year is not None else None,
        genres=genres,
        director=row.director,
        creator=row.creator,
        popularity=float(row.popularity) if row.popularity is not None else None,
        collection_id=int(row.collection_id) if row.collection_id is not None else None,
        poster_path=row.poster_path,
    )


def _to_ranked_item(row: Ranking, star_rating) -> RankedItem:
    star = int(star_rating) if star_rating is not None and is_valid_star_rating(int(star_rating)) else None
    return RankedItem(
        id=int(row.id),
        user_id=int(row.user_id),
        content_id=int(row.content_id),
        content_type=str(row.content_type),
        star_rating=star,
        rank_position=int(row.rank_position),
        display_score=round_score(float(row.display_score)),
        content=content_record_from_row(row.content),
    )


class RankingUnitOfWork:
    """Store operations bound to one open transaction."""

    def __init__(self, session: Session):
        self.session = session

    # --- reads -------------------------------------------------------------

    def _query(self, user_id: int):
        return (
            self.session.query(Ranking, Review.star_rating)
            .outerjoin(
                Review,
                and_(Review.user_id == Ranking.user_id, Review.content_id == Ranking.content_id),
            )
            .options(joinedload(Ranking.content))
            .filter(Ranking.user_id == user_id)
        )

    def ordered(self, user_id: int, content_type: str) -> List[RankedItem]:
        rows = (
            self._query(user_id)
            .filter(Ranking.content_type == content_type)
            .order_by(Ranking.rank_position.asc())
            .all()
        )
        return [_to_ranked_item(row, star) for row, star in rows]

    def item_at(self, user_id: int, content_type: str, position: int) -> Optional[RankedItem]:
        found = (
            self._query(user_id)
            .filter(Ranking.content_type == content_type, Ranking.rank_position == position)
            .first()
        )
        return _to_ranked_item(*found) if found else None

    def find(self, user_id: int, content_id: int) -> Optional[RankedItem]:
        found = self._query(user_id).filter(Ranking.content_id == content_id).first()
        return _to_ranked_item(*found) if found else None

    def star_rating(self, user_id: int, content_id: int) -> Optional[int]:
        review = (
            self.session.query(Review)
            .filter(Review.user_id == user_id, Review.content_id == content_id)
            .first()
        )
        return int(review.star_rating) if review else None

    def content(self, content_id: int) -> Optional[ContentRecord]:
        return content_record_from_row(self.session.get(Content, content_id))

    # --- writes ------------------------------------------------------------

    def _stage(self, moves: Sequence[Tuple[Ranking, int]]) -> None:
        if not moves:
            return
        for i, (row, _) in enumerate(moves):
            row.rank_position = -(i + 1)
        self.session.flush()
        now = utc_now()
        for row, position in moves:
            row.rank_position = position
            row.updated_at = now
        self.session.flush()

    def _rows_from(self, user_id: int, content_type: str, position_filter):
        return (
            self.session.query(Ranking)
            .filter(Ranking.user_id == user_id, Ranking.content_type == content_type, position_filter)
            .order_by(Ranking.rank_position.desc())
            .all()
        )

    def shift_down(self, user_id: int, content_type: str, from_position: int) -> int:
        """Move every row at ``from_position`` or below one place down."""
        rows = self._rows_from(user_id, content_type, Ranking.rank_position >= from_position)
        self._stage([(row, row.rank_position + 1) for row in rows])
        return len(rows)

    def close_gap(self, user_id: int, content_type: str, after_position: int) -> int:
        """Move every row below ``after_position`` one place up."""
        rows = self._rows_from(user_id, content_type, Ranking.rank_position > after_position)
        self._stage([(row, row.rank_position - 1) for row in reversed(rows)])
        return len(rows)

    def apply_batch(self, user_id: int, content_type: str, updates: Sequence[PositionUpdate]) -> None:
        """Write new positions (and optionally scores) for several rows at once."""
        if not updates:
            return
        ids = [u.row_id for u in updates]
        rows = {
            row.id: row
            for row in self.session.query(Ranking).filter(
                Ranking.id.in_(ids),
                Ranking.user_id == user_id,
                Ranking.content_type == content_type,
            )
        }
        missing = [row_id for row_id in ids if row_id not in rows]
        if missing:
            raise PersistenceFailure(f"Rankings {missing} no longer exist for user {user_id}/{content_type}")

        for update in updates:
            if update.new_score is not None:
                rows[update.row_id].display_score = round_score(update.new_score)
        self._stage([(rows[u.row_id], u.new_position) for u in updates])

    def ensure_user(self, user_id: int) -> None:
        if self.session.get(User, user_id) is None:
            self.session.add(User(id=user_id, username=f"user-{user_id}"))
            self.session.flush()

    def set_star_rating(self, user_id: int, content_id: int, star_rating: int) -> None:
        review = (
            self.session.query(Review)
            .filter(Review.user_id == user_id, Review.content_id == content_id)
            .first()
        )
        if review is None:
            self.session.add(Review(user_id=user_id, content_id=content_id, star_rating=star_rating))
        else:
            review.star_rating = star_rating
            review.updated_at = utc_now()
        self.session.flush()

    def delete_review(self, user_id: int, content_id: int) -> bool:
        review = (
            self.session.query(Review)
            .filter(Review.user_id == user_id, Review.content_id == content_id)
            .first()
        )
        if review is None:
            return False
        self.session.delete(review)
        self.session.flush()
        return True

    def add(self, user_id: int, content_type: str, content_id: int, position: int, score: float) -> RankedItem:
        row = Ranking(
            user_id=user_id,
            content_id=content_id,
            content_type=content_type,
            rank_position=position,
            display_score=round_score(score),
        )
        self.session.add(row)
        self.session.flush()
        return self.find(user_id, content_id)

    def delete(self, row_id: int) -> None:
        row = self.session.get(Ranking, row_id)
        if row is not None:
            self.session.delete(row)
            self.session.flush()

    def update_score(self, row_id: int, score: float) -> None:
        row = self.session.get(Ranking, row_id)
        if row is None:
            raise PersistenceFailure(f"Ranking {row_id} no longer exists")
        row.display_score = round_score(score)
        row.updated_at = utc_now()
        self.session.flush()


class RankingStore:
    """Opens transactions against the rankings tables."""

    unit_of_work_class = RankingUnitOfWork

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    @contextmanager
    def transaction(self) -> Iterator[RankingUnitOfWork]:
        session = self.session_factory()
        try:
            if session.get_bind().dialect.name == "postgresql":
                session.execute(text("SET CONSTRAINTS ALL DEFERRED"))
            yield self.unit_of_work_class(session)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Ranking transaction rolled back: {e}")
            raise PersistenceFailure(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def fetch_ordered(self, user_id: int, content_type: str) -> List[RankedItem]:
        with self.transaction() as uow:
            return uow.ordered(user_id, content_type)

    def find(self, user_id: int, content_id: int) -> Optional[RankedItem]:
        with self.transaction() as uow:
            return uow.find(user_id, content_id)

    def star_rating(self, user_id: int, content_id: int) -> Optional[int]:
        with self.transaction() as uow:
            return uow.star_rating(user_id, content_id)

    def list_keys(self) -> List[Tuple[int, str]]:
        """Every (user_id, content_type) that has at least one ranking."""
        with self.transaction() as uow:
            rows = uow.session.query(Ranking.user_id, Ranking.content_type).distinct().all()
            return [(int(user_id), str(content_type)) for user_id, content_type in rows]
