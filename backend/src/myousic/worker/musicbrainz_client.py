"""MusicBrainz API client for artist and album enrichment.

This module provides a client for the MusicBrainz API with:
- A shared throttle gate (1 request/second for unauthenticated requests)
- One retry after a back-off when the service answers 503
- User-Agent header as required by MusicBrainz
- Cover Art Archive probing for matched releases

Every failure degrades to ``None`` (or an empty result) so identification
can continue with partial data.

MusicBrainz API Documentation: https://musicbrainz.org/doc/MusicBrainz_API
"""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

from myousic.core.config import settings
from myousic.worker.rate_limiter import ThrottleGate
from myousic.worker.sources import (
    CandidateArtist,
    IdentificationCandidate,
    Match,
    NoMatch,
    SourceError,
)


def _union_names(data: Dict[str, Any]) -> List[str]:
    """Genres and tags merged, first occurrence wins."""
    names = [g.get("name") for g in data.get("genres") or []]
    names += [t.get("name") for t in data.get("tags") or []]
    return list(dict.fromkeys(n for n in names if n))


class MusicBrainzClient:
    """Client for fetching recording, artist and release-group data."""

    BASE_URL = "https://musicbrainz.org/ws/2"
    COVER_ART_URL = "https://coverartarchive.org/release"
    USER_AGENT = "Myousic/1.0.0 ( myousic_local_app@example.com )"

    def __init__(
        self,
        gate: Optional[ThrottleGate] = None,
        session: Optional[aiohttp.ClientSession] = None,
        backoff_seconds: Optional[float] = None,
        sleep=asyncio.sleep,
    ):
        """Initialize the MusicBrainz client.

        Args:
            gate: Throttle shared by every MusicBrainz caller in the process.
            session: Optional aiohttp session. If not provided, one is created
                lazily and closed by :meth:`close`.
            backoff_seconds: Wait before retrying a 503.
        """
        self.gate = gate or ThrottleGate(settings.MUSICBRAINZ_RATE_LIMIT_DELAY, name="musicbrainz")
        self._session = session
        self._owns_session = session is None
        self.backoff_seconds = (
            settings.MUSICBRAINZ_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        self._sleep = sleep

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure we have an aiohttp session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self.USER_AGENT, "Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=30),
            )
        return self._session

    async def _get(self, endpoint: str, params: Optional[Dict[str, str]] = None) -> Optional[dict]:
        """GET a JSON document, retrying once after a 503.

        Returns:
            Parsed JSON, or None on any error.
        """
        session = await self._ensure_session()
        url = f"{self.BASE_URL}/{endpoint}"
        query = dict(params or {})
        query["fmt"] = "json"

        for attempt in range(2):
            await self.gate.wait()
            try:
                async with session.get(url, params=query, headers={"User-Agent": self.USER_AGENT}) as response:
                    if response.status == 503:
                        if attempt == 0:
                            logger.warning("MusicBrainz 503, retrying...")
                            await self._sleep(self.backoff_seconds)
                            continue
                        logger.warning(f"MusicBrainz still unavailable (503) for {endpoint}")
                        return None
                    if response.status == 404:
                        logger.warning(f"MusicBrainz: not found {endpoint}")
                        return None
                    if response.status >= 400:
                        logger.warning(
                            f"MusicBrainz API error for {endpoint}: status={response.status}"
                        )
                        return None
                    return await response.json()
            except aiohttp.ClientError as e:
                logger.error(f"Network error fetching {endpoint}: {e}")
                return None
            except asyncio.TimeoutError:
                logger.error(f"Timeout fetching {endpoint}")
                return None
        return None

    async def get_artist_details(self, mbid: str) -> Optional[Dict[str, Any]]:
        """Fetch an artist with its genres (union of genres and tags)."""
        if not mbid:
            return None
        data = await self._get(f"artist/{mbid}", {"inc": "tags genres"})
        if not data:
            return None
        return {
            "id": data.get("id"),
            "name": data.get("name"),
            "country": data.get("country"),
            "genres": _union_names(data),
        }

    async def get_release_group_details(self, mbid: str) -> Optional[Dict[str, Any]]:
        """Fetch a release group (album) with its genres and first release date."""
        if not mbid:
            return None
        data = await self._get(f"release-group/{mbid}", {"inc": "genres tags ratings"})
        if not data:
            return None
        return {
            "id": data.get("id"),
            "title": data.get("title"),
            "date": data.get("first-release-date"),
            "genres": _union_names(data),
        }

    async def search_recording(self, title: str, artist: Optional[str] = None):
        """Text search for a recording; returns Match(candidate), NoMatch or SourceError."""
        if not title:
            return NoMatch("No title to search")
        query = f'recording:"{title}"'
        if artist:
            query += f' AND artist:"{artist}"'
        data = await self._get("recording", {"query": query, "limit": "1"})
        if data is None:
            return SourceError("MusicBrainz search failed")

        recordings = data.get("recordings") or []
        if not recordings:
            return NoMatch("No MusicBrainz recordings")

        rec = recordings[0]
        artists = [
            CandidateArtist(
                name=credit.get("name") or (credit.get("artist") or {}).get("name", ""),
                id=(credit.get("artist") or {}).get("id"),
            )
            for credit in rec.get("artist-credit") or []
        ]
        release = (rec.get("releases") or [{}])[0]
        release_group = release.get("release-group") or {}
        year = None
        date = release.get("date") or rec.get("first-release-date") or ""
        if date[:4].isdigit():
            year = int(date[:4])
        return Match(
            IdentificationCandidate(
                title=rec.get("title") or title,
                artist=", ".join(a.name for a in artists) or (artist or "Unknown Artist"),
                artists=artists,
                album=release_group.get("title") or release.get("title") or "Unknown Album",
                year=year,
                source="musicbrainz",
                confidence=(rec.get("score") or 0) / 100,
                release_id=release.get("id"),
                release_group_id=release_group.get("id"),
            )
        )

    async def find_cover_art(self, release_id: str) -> Optional[str]:
        """Check the Cover Art Archive for a release front cover.

        Tries the 500px thumbnail first, then the full-size front image.
        """
        if not release_id:
            return None
        session = await self._ensure_session()
        for suffix in ("front-500", "front"):
            url = f"{self.COVER_ART_URL}/{release_id}/{suffix}"
            try:
                async with session.head(url, allow_redirects=True) as response:
                    if response.status < 400:
                        return url
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"Cover art check failed for {url}: {e}")
        return None

    async def close(self):
        """Close the aiohttp session if we own it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
