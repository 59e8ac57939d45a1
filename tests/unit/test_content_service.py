import unittest
from unittest.mock import AsyncMock, patch

import httpx

from reelrank.services.content_service import ContentService
from reelrank.services.rate_limit import with_backoff
from reelrank.services.tmdb_client import fetch_tmdb_metadata, parse_tmdb_metadata, tmdb_media_type

from support import FakeFetcher, make_session_factory, tmdb_movie

MOVIE_PAYLOAD = tmdb_movie(603, "The Matrix")

SHOW_PAYLOAD = {
    "id": 1396,
    "name": "Breaking Bad",
    "first_air_date": "2008-01-20",
    "genres": [{"id": 18, "name": "Drama"}],
    "popularity": 40.0,
    "created_by": [{"id": 66633, "name": "Vince Gilligan"}],
}


class TestParseTmdbMetadata(unittest.TestCase):
    def test_movie_fields(self):
        fields = parse_tmdb_metadata(MOVIE_PAYLOAD, "movie")
        self.assertEqual(fields["title"], "The Matrix")
        self.assertEqual(fields["release_year"], 1999)
        self.assertEqual(fields["genres"], ["Action", "Science Fiction"])
        self.assertEqual(fields["director"], "Lana Wachowski")
        self.assertIsNone(fields["creator"])
        self.assertEqual(fields["collection_id"], 2344)

    def test_show_fields(self):
        fields = parse_tmdb_metadata(SHOW_PAYLOAD, "show")
        self.assertEqual(fields["title"], "Breaking Bad")
        self.assertEqual(fields["release_year"], 2008)
        self.assertEqual(fields["creator"], "Vince Gilligan")
        self.assertIsNone(fields["collection_id"])

    def test_media_type_mapping(self):
        self.assertEqual(tmdb_media_type("show"), "tv")
        self.assertEqual(tmdb_media_type("movie"), "movie")
        with self.assertRaises(ValueError):
            tmdb_media_type("podcast")


class TestContentService(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.factory = make_session_factory()
        self.fetcher = FakeFetcher({(603, "movie"): MOVIE_PAYLOAD, (1396, "show"): SHOW_PAYLOAD})
        self.service = ContentService(self.factory, fetcher=self.fetcher)

    async def test_fetches_once_then_reads_cache(self):
        first = await self.service.resolve_content(603, "movie")
        second = await self.service.resolve_content(603, "movie")

        self.assertEqual(first, second)
        self.assertEqual(self.fetcher.calls, [(603, "movie")])
        self.assertEqual(first.genres, ("Action", "Science Fiction"))
        self.assertEqual(first.maker, "Lana Wachowski")
        self.assertEqual(self.service.get_content(first.id).title, "The Matrix")

    async def test_same_tmdb_id_differs_by_type(self):
        show = await self.service.resolve_content(1396, "show")
        missing = await self.service.resolve_content(1396, "movie")
        self.assertEqual(show.maker, "Vince Gilligan")
        self.assertIsNone(missing)

    async def test_payload_without_title_is_rejected(self):
        service = ContentService(self.factory, fetcher=FakeFetcher({(7, "movie"): {"id": 7}}))
        self.assertIsNone(await service.resolve_content(7, "movie"))

    async def test_unknown_content_type(self):
        with self.assertRaises(ValueError):
            await self.service.resolve_content(603, "book")


class TestTmdbFetch(unittest.IsolatedAsyncioTestCase):
    async def test_no_api_key_returns_none(self):
        with patch("reelrank.services.tmdb_client.settings.tmdb_api_key", None):
            self.assertIsNone(await fetch_tmdb_metadata(603, "movie"))

    async def test_backoff_retries_429(self):
        request = httpx.Request("GET", "https://api.themoviedb.org/3/movie/603")
        limited = httpx.Response(429, headers={"Retry-After": "2"}, request=request)
        func = AsyncMock(side_effect=[
            httpx.HTTPStatusError("429", request=request, response=limited),
            {"id": 603},
        ])
        with patch("reelrank.services.rate_limit.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await with_backoff(func, max_retries=3)
        self.assertEqual(result, {"id": 603})
        sleep.assert_awaited_once_with(2.0)

    async def test_backoff_propagates_other_errors(self):
        request = httpx.Request("GET", "https://api.themoviedb.org/3/movie/603")
        broken = httpx.Response(500, request=request)
        func = AsyncMock(side_effect=httpx.HTTPStatusError("500", request=request, response=broken))
        with patch("reelrank.services.rate_limit.asyncio.sleep", new=AsyncMock()) as sleep:
            with self.assertRaises(httpx.HTTPStatusError):
                await with_backoff(func, max_retries=3)
        sleep.assert_not_awaited()
        self.assertEqual(func.await_count, 1)


if __name__ == "__main__":
    unittest.main()
