from sqlalchemy.orm import sessionmaker
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
import logging

from reelrank.core.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url


def build_engine(url: str):
    """Create an engine for ``url``.

    Pool sizing only applies to server databases; SQLite (used by the test
    suite) runs on its default single-connection pool.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    # pool_pre_ping: verify connections before using them
    # pool_recycle: recycle connections after N seconds to prevent stale connections
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Recreate the position constraint as DEFERRABLE so a multi-row shift is only
# checked at COMMIT. Safe to run on every startup.
_POSTGRES_MIGRATIONS = [
    "ALTER TABLE IF EXISTS rankings DROP CONSTRAINT IF EXISTS uq_rankings_user_type_position",
    "ALTER TABLE IF EXISTS rankings ADD CONSTRAINT uq_rankings_user_type_position "
    "UNIQUE (user_id, content_type, rank_position) DEFERRABLE INITIALLY DEFERRED",
]


def init_db(bind=None) -> None:
    """Create tables and apply idempotent PostgreSQL-only migrations."""
    from reelrank.models import Base

    bind = bind or engine
    Base.metadata.create_all(bind=bind)

    if bind.dialect.name != "postgresql":
        return

    with bind.begin() as conn:
        for stmt in _POSTGRES_MIGRATIONS:
            try:
                with conn.begin_nested():
                    conn.execute(text(stmt))
            except SQLAlchemyError as e:
                # Keep startup resilient; the staged writes in the store do not rely on deferral
                logger.warning(f"Startup migration skipped ({stmt[:60]}...): {e}")
    logger.info("Database migrations applied")
