
"""
models.py

SQLAlchemy models for User, Content (metadata cache), Review (star rating
record) and Ranking (a user's ordered placement of a title).
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Float, Text, UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from reelrank.utils.timezone import utc_now

Base = declarative_base()

CONTENT_TYPES = ("movie", "show")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=utc_now)


class Content(Base):
    """Catalogue metadata cached from TMDB.

    Only the attributes the comparison heuristic needs are kept; genres are a
    JSON array of names.
    """
    __tablename__ = "content"

    id = Column(Integer, primary_key=True)
    tmdb_id = Column(Integer, nullable=False, index=True)
    content_type = Column(String, nullable=False)  # 'movie' or 'show'
    title = Column(String, nullable=False)
    release_year = Column(Integer, nullable=True)
    genres = Column(Text, nullable=True)  # JSON array of genre names
    director = Column(String, nullable=True)  # movies
    creator = Column(String, nullable=True)  # shows
    popularity = Column(Float, nullable=True)
    collection_id = Column(Integer, nullable=True)  # TMDB collection (franchise)
    collection_name = Column(String, nullable=True)
    poster_path = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint('tmdb_id', 'content_type', name='uq_content_tmdb_type'),
    )


class Review(Base):
    """The star rating record backing a ranked item."""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content_id = Column(Integer, ForeignKey("content.id", ondelete="CASCADE"), nullable=False, index=True)
    star_rating = Column(Integer, nullable=False)  # 1-5
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint('user_id', 'content_id', name='uq_reviews_user_content'),
        CheckConstraint('star_rating >= 1 AND star_rating <= 5', name='ck_reviews_star_rating'),
    )


class Ranking(Base):
    """One user's placement of one title in its content-type list.

    rank_position is dense 1..N per (user_id, content_type). On PostgreSQL the
    position constraint is made DEFERRABLE at startup (see core.database).
    """
    __tablename__ = "rankings"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    content_id = Column(Integer, ForeignKey("content.id", ondelete="CASCADE"), nullable=False)
    content_type = Column(String, nullable=False)
    rank_position = Column(Integer, nullable=False)
    display_score = Column(Float, nullable=False)  # 1.0-10.0, one decimal
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    content = relationship("Content")

    __table_args__ = (
        UniqueConstraint('user_id', 'content_id', name='uq_rankings_user_content'),
        UniqueConstraint('user_id', 'content_type', 'rank_position', name='uq_rankings_user_type_position'),
        CheckConstraint('display_score >= 1.0 AND display_score <= 10.0', name='ck_rankings_display_score'),
        Index('ix_rankings_user_type_position', 'user_id', 'content_type', 'rank_position'),
    )
