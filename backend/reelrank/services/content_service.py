"""
content_service.py

Content metadata lookup keyed by TMDB id. The content table is the cache:
a title is fetched from TMDB the first time it is rated and read locally
afterwards.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError

from reelrank.core.database import SessionLocal
from reelrank.models import CONTENT_TYPES, Content
from reelrank.services.ranking_store import content_record_from_row
from reelrank.services.ranking.types import ContentRecord
from reelrank.services.tmdb_client import fetch_tmdb_metadata, parse_tmdb_metadata
from reelrank.utils.timezone import utc_now

logger = logging.getLogger(__name__)

Fetcher = Callable[[int, str], Awaitable[Optional[Dict[str, Any]]]]


class ContentService:
    """Resolves TMDB ids to cached ContentRecords."""

    def __init__(self, session_factory=None, fetcher: Optional[Fetcher] = None):
        self.session_factory = session_factory or SessionLocal
        self.fetcher = fetcher or fetch_tmdb_metadata

    def get_content(self, content_id: int) -> Optional[ContentRecord]:
        session = self.session_factory()
        try:
            return content_record_from_row(session.get(Content, content_id))
        finally:
            session.close()

    def _cached(self, session, external_id: int, content_type: str) -> Optional[Content]:
        return (
            session.query(Content)
            .filter(Content.tmdb_id == external_id, Content.content_type == content_type)
            .first()
        )

    async def resolve_content(self, external_id: int, content_type: str) -> Optional[ContentRecord]:
        """Look up a title, fetching and caching it from TMDB on first use.

        Returns None when the title is unknown to both the cache and TMDB.
        """
        if content_type not in CONTENT_TYPES:
            raise ValueError(f"Unknown content type: {content_type!r}")

        session = self.session_factory()
        try:
            row = self._cached(session, external_id, content_type)
            if row is not None:
                return content_record_from_row(row)
        finally:
            session.close()

        payload = await self.fetcher(external_id, content_type)
        if not payload:
            logger.info(f"No TMDB metadata for {content_type} {external_id}")
            return None

        fields = parse_tmdb_metadata(payload, content_type)
        if not fields.get("title"):
            logger.warning(f"TMDB payload for {content_type} {external_id} has no title")
            return None
        return self._store(external_id, fields)

    def _store(self, external_id: int, fields: Dict[str, Any]) -> ContentRecord:
        session = self.session_factory()
        try:
            row = Content(
                tmdb_id=external_id,
                content_type=fields["content_type"],
                title=fields["title"],
                release_year=fields.get("release_year"),
                genres=json.dumps(fields.get("genres") or []),
                director=fields.get("director"),
                creator=fields.get("creator"),
                popularity=fields.get("popularity"),
                collection_id=fields.get("collection_id"),
                collection_name=fields.get("collection_name"),
                poster_path=fields.get("poster_path"),
                updated_at=utc_now(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # Cached concurrently by another request
                session.rollback()
                row = self._cached(session, external_id, fields["content_type"])
            logger.info(f"Cached {fields['content_type']} '{row.title}' (TMDB {external_id})")
            return content_record_from_row(row)
        finally:
            session.close()
