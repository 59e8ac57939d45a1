"""Shared fixtures for the unit tests: in-memory database and list builders."""
import json

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from reelrank.core.database import init_db
from reelrank.models import Content
from reelrank.services.ranking.types import ContentRecord, RankedItem
from reelrank.services.ranking_store import RankingStore, RankingUnitOfWork


def make_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def add_content(session_factory, tmdb_id, title, content_type="movie", genres=(), **fields) -> int:
    session = session_factory()
    try:
        row = Content(
            tmdb_id=tmdb_id,
            content_type=content_type,
            title=title,
            genres=json.dumps(list(genres)),
            **fields,
        )
        session.add(row)
        session.commit()
        return row.id
    finally:
        session.close()


def build_list(maintainer, session_factory, user_id, stars, content_type="movie", start_tmdb_id=1000):
    """Insert titles with the given stars, each at the bottom of its tier.

    Returns the content ids in insertion order.
    """
    content_ids = []
    for i, star in enumerate(stars):
        content_id = add_content(session_factory, start_tmdb_id + i, f"Title {i}", content_type)
        ordered = maintainer.store.fetch_ordered(user_id, content_type)
        position = sum(1 for item in ordered if item.star_rating >= star) + 1
        maintainer.insert(user_id, content_type, content_id, position, star)
        content_ids.append(content_id)
    return content_ids


def snapshot(store, user_id, content_type="movie"):
    return [
        (item.content_id, item.rank_position, item.star_rating, item.display_score)
        for item in store.fetch_ordered(user_id, content_type)
    ]


def make_item(row_id, star, position, score, content=None, content_type="movie") -> RankedItem:
    return RankedItem(
        id=row_id,
        user_id=1,
        content_id=row_id + 100,
        content_type=content_type,
        star_rating=star,
        rank_position=position,
        display_score=score,
        content=content,
    )


def make_content(content_id, title="Untitled", **fields) -> ContentRecord:
    fields.setdefault("tmdb_id", content_id)
    fields.setdefault("content_type", "movie")
    return ContentRecord(id=content_id, title=title, **fields)


def db_error(statement):
    return OperationalError(statement, {}, Exception("database is locked"))


class FailingAddUnitOfWork(RankingUnitOfWork):
    def add(self, *args, **kwargs):
        raise db_error("INSERT INTO rankings")


class FailingAddStore(RankingStore):
    unit_of_work_class = FailingAddUnitOfWork


class FakeFetcher:
    """Stands in for the TMDB fetch; records every call."""

    def __init__(self, payloads):
        self.payloads = payloads
        self.calls = []

    async def __call__(self, tmdb_id, content_type):
        self.calls.append((tmdb_id, content_type))
        return self.payloads.get((tmdb_id, content_type))


def tmdb_movie(tmdb_id, title, **extra):
    payload = {
        "id": tmdb_id,
        "title": title,
        "release_date": "1999-03-30",
        "genres": [{"id": 28, "name": "Action"}, {"id": 878, "name": "Science Fiction"}],
        "popularity": 83.2,
        "poster_path": f"/{tmdb_id}.jpg",
        "belongs_to_collection": {"id": 2344, "name": "The Matrix Collection"},
        "credits": {"crew": [
            {"job": "Producer", "name": "Joel Silver"},
            {"job": "Director", "name": "Lana Wachowski"},
        ]},
    }
    payload.update(extra)
    return payload
