"""
TMDB client for ReelRank.
- Async httpx client.
- API key from settings (TMDB_API_KEY).
- Handles 429 with exponential backoff and Retry-After.
- No in-module caching; results are cached in the content table by the caller.
"""
import logging
from typing import Optional, Dict, Any, List

import httpx

from reelrank.core.config import settings
from reelrank.services.rate_limit import with_backoff

TMDB_BASE = "https://api.themoviedb.org/3"
logger = logging.getLogger(__name__)

# Our content types to TMDB media types
MEDIA_TYPES = {"movie": "movie", "show": "tv"}


def tmdb_media_type(content_type: str) -> str:
    try:
        return MEDIA_TYPES[content_type]
    except KeyError:
        raise ValueError(f"Unknown content type: {content_type!r}")


async def fetch_tmdb_metadata(tmdb_id: int, content_type: str = "movie") -> Optional[Dict]:
    """Fetch title details with credits from TMDB, or None when unavailable."""
    api_key = settings.tmdb_api_key
    if not api_key:
        logger.warning("TMDB API key not configured")
        return None

    media_type = tmdb_media_type(content_type)
    url = f"{TMDB_BASE}/{media_type}/{tmdb_id}"
    params = {"api_key": api_key, "append_to_response": "credits"}

    async def make_request():
        async with httpx.AsyncClient(timeout=settings.tmdb_timeout_seconds) as client:
            resp = await client.get(url, params=params)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json()

    try:
        return await with_backoff(
            make_request,
            max_retries=settings.tmdb_max_retries,
            service="tmdb_api",
        )
    except Exception as e:
        logger.warning(f"TMDB API failed for {media_type}/{tmdb_id}: {e}")
        return None


def _year(date_str: Optional[str]) -> Optional[int]:
    if not date_str or len(date_str) < 4:
        return None
    try:
        return int(date_str[:4])
    except ValueError:
        return None


def _director(payload: Dict[str, Any]) -> Optional[str]:
    crew = (payload.get("credits") or {}).get("crew") or []
    for member in crew:
        if member.get("job") == "Director" and member.get("name"):
            return member["name"]
    return None


def _creator(payload: Dict[str, Any]) -> Optional[str]:
    creators: List[Dict[str, Any]] = payload.get("created_by") or []
    for person in creators:
        if person.get("name"):
            return person["name"]
    return None


def parse_tmdb_metadata(payload: Dict[str, Any], content_type: str) -> Dict[str, Any]:
    """Map a TMDB details payload onto content table columns."""
    collection = payload.get("belongs_to_collection") or {}
    is_movie = content_type == "movie"
    return {
        "tmdb_id": int(payload["id"]),
        "content_type": content_type,
        "title": payload.get("title") if is_movie else payload.get("name"),
        "release_year": _year(payload.get("release_date") if is_movie else payload.get("first_air_date")),
        "genres": [g.get("name") for g in payload.get("genres", []) if g.get("name")],
        "director": _director(payload) if is_movie else None,
        "creator": None if is_movie else _creator(payload),
        "popularity": payload.get("popularity"),
        "collection_id": collection.get("id"),
        "collection_name": collection.get("name"),
        "poster_path": payload.get("poster_path"),
    }
