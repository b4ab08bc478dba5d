"""Unit tests for MusicBrainz API client.

This test suite covers:
- Artist and release-group enrichment
- Recording search
- Error handling (404, 503, network errors)
- Request spacing through the shared throttle gate
- Cover Art Archive probing
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

pytest.importorskip("aiohttp")
from aiohttp import ClientError

from myousic.worker.musicbrainz_client import MusicBrainzClient
from myousic.worker.rate_limiter import ThrottleGate
from myousic.worker.sources import Match, NoMatch, SourceError

ARTIST_MBID = "056e4f3e-d505-4dad-8ec1-d04f521cbb56"
RELEASE_GROUP_MBID = "48117b82-8f7a-3d3e-9f6e-6a2bc55e8d3e"


def mock_response(status=200, payload=None):
    response = AsyncMock()
    response.status = status
    response.json = AsyncMock(return_value=payload or {})
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=False)
    return response


def make_client(*responses, sleep=None):
    client = MusicBrainzClient(gate=AsyncMock(), sleep=sleep or AsyncMock())
    session = AsyncMock()
    session.get = MagicMock(side_effect=list(responses))
    client._session = session
    return client, session


@pytest.mark.asyncio
class TestMusicBrainzClient:
    """Test suite for MusicBrainzClient."""

    async def test_artist_details_union_genres_and_tags(self):
        client, session = make_client(
            mock_response(
                payload={
                    "id": ARTIST_MBID,
                    "name": "Daft Punk",
                    "country": "FR",
                    "genres": [{"name": "house"}, {"name": "electronic"}],
                    "tags": [{"name": "house"}, {"name": "french"}],
                }
            )
        )

        details = await client.get_artist_details(ARTIST_MBID)

        assert details == {
            "id": ARTIST_MBID,
            "name": "Daft Punk",
            "country": "FR",
            "genres": ["house", "electronic", "french"],
        }
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"inc": "tags genres", "fmt": "json"}

    async def test_release_group_details(self):
        client, _ = make_client(
            mock_response(
                payload={
                    "id": RELEASE_GROUP_MBID,
                    "title": "Discovery",
                    "first-release-date": "2001-03-12",
                    "genres": [{"name": "disco"}],
                }
            )
        )
        details = await client.get_release_group_details(RELEASE_GROUP_MBID)
        assert details["date"] == "2001-03-12"
        assert details["genres"] == ["disco"]

    async def test_not_found_returns_none(self):
        client, _ = make_client(mock_response(status=404))
        assert await client.get_artist_details(ARTIST_MBID) is None

    async def test_503_retries_once_after_backoff(self):
        sleep = AsyncMock()
        client, session = make_client(
            mock_response(status=503),
            mock_response(payload={"id": ARTIST_MBID, "name": "Daft Punk"}),
            sleep=sleep,
        )
        client.backoff_seconds = 2.0

        details = await client.get_artist_details(ARTIST_MBID)

        assert details["name"] == "Daft Punk"
        assert session.get.call_count == 2
        sleep.assert_awaited_once_with(2.0)

    async def test_second_503_gives_up(self):
        client, session = make_client(mock_response(status=503), mock_response(status=503))
        assert await client.get_artist_details(ARTIST_MBID) is None
        assert session.get.call_count == 2

    async def test_network_error_returns_none(self):
        client = MusicBrainzClient(gate=AsyncMock(), sleep=AsyncMock())
        session = AsyncMock()
        session.get = MagicMock(side_effect=ClientError("connection reset"))
        client._session = session
        assert await client.get_release_group_details(RELEASE_GROUP_MBID) is None

    async def test_every_request_passes_the_gate(self):
        clock = {"now": 0.0}
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            clock["now"] += seconds

        gate = ThrottleGate(1.1, clock=lambda: clock["now"], sleep=fake_sleep)
        client = MusicBrainzClient(gate=gate)
        session = AsyncMock()
        session.get = MagicMock(
            side_effect=[mock_response(payload={"id": "a"}), mock_response(payload={"id": "b"})]
        )
        client._session = session

        await client.get_artist_details("a")
        await client.get_artist_details("b")

        assert sleeps == [pytest.approx(1.1)]

    async def test_search_recording_match(self):
        client, _ = make_client(
            mock_response(
                payload={
                    "recordings": [
                        {
                            "title": "One More Time",
                            "score": 100,
                            "artist-credit": [
                                {"name": "Daft Punk", "artist": {"id": ARTIST_MBID, "name": "Daft Punk"}}
                            ],
                            "releases": [
                                {
                                    "id": "rel-1",
                                    "title": "Discovery",
                                    "date": "2001-03-07",
                                    "release-group": {"id": RELEASE_GROUP_MBID, "title": "Discovery"},
                                }
                            ],
                        }
                    ]
                }
            )
        )

        result = await client.search_recording("One More Time", "Daft Punk")

        assert isinstance(result, Match)
        candidate = result.value
        assert candidate.title == "One More Time"
        assert candidate.artist == "Daft Punk"
        assert candidate.album == "Discovery"
        assert candidate.year == 2001
        assert candidate.release_group_id == RELEASE_GROUP_MBID
        assert candidate.source == "musicbrainz"

    async def test_search_recording_no_results(self):
        client, _ = make_client(mock_response(payload={"recordings": []}))
        assert isinstance(await client.search_recording("Nothing"), NoMatch)

    async def test_search_recording_failure(self):
        client, _ = make_client(mock_response(status=500))
        assert isinstance(await client.search_recording("Anything"), SourceError)

    async def test_find_cover_art_falls_back_to_front(self):
        client = MusicBrainzClient(gate=AsyncMock())
        session = AsyncMock()
        session.head = MagicMock(side_effect=[mock_response(status=404), mock_response(status=200)])
        client._session = session

        url = await client.find_cover_art("rel-1")

        assert url == "https://coverartarchive.org/release/rel-1/front"

    async def test_find_cover_art_none(self):
        client = MusicBrainzClient(gate=AsyncMock())
        session = AsyncMock()
        session.head = MagicMock(side_effect=[mock_response(status=404), mock_response(status=404)])
        client._session = session
        assert await client.find_cover_art("rel-1") is None

    async def test_close_owned_session(self):
        client = MusicBrainzClient(gate=AsyncMock())
        session = AsyncMock()
        client._session = session
        await client.close()
        session.close.assert_awaited_once()
        assert client._session is None
