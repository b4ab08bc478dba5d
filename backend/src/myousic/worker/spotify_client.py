"""Spotify Web API client (client-credentials flow) for track metadata.

Spotify stores genres on artists rather than tracks, so a match costs one
extra request for the primary artist.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from myousic.core.config import settings
from myousic.core.exceptions import ConfigurationError, IdentificationFailed
from myousic.core.normalization import Normalizer
from myousic.worker.credentials import CredentialCache
from myousic.worker.sources import (
    CandidateArtist,
    IdentificationCandidate,
    Match,
    NoMatch,
    SourceError,
)

TOKEN_SETTING_KEY = "spotify_token"


def pick_cover(images: List[Dict[str, Any]], target_height: int = 500) -> Optional[str]:
    """URL of the image whose height is closest to ``target_height``.

    On equal distance the earlier image is kept.
    """
    best = None
    for image in images or []:
        height = image.get("height") or 0
        if best is None or abs(height - target_height) < abs((best.get("height") or 0) - target_height):
            best = image
    return best.get("url") if best else None


def parse_year(release_date: Optional[str]) -> Optional[int]:
    """Leading four digits of a YYYY, YYYY-MM or YYYY-MM-DD date."""
    if release_date and release_date[:4].isdigit():
        return int(release_date[:4])
    return None


def build_query(title: str, artist: Optional[str]) -> str:
    query = f"track:{title}"
    if artist and not Normalizer.is_placeholder_artist(artist):
        query += f" artist:{artist}"
    return query


class SpotifyClient:
    """Searches the Spotify catalog for a single best track."""

    API_URL = "https://api.spotify.com/v1"
    TOKEN_URL = "https://accounts.spotify.com/api/token"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        credentials: Optional[CredentialCache] = None,
        session: Optional[aiohttp.ClientSession] = None,
        cover_target_height: Optional[int] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self.client_id = settings.SPOTIFY_CLIENT_ID if client_id is None else client_id
        self.client_secret = (
            settings.SPOTIFY_CLIENT_SECRET if client_secret is None else client_secret
        )
        self.credentials = credentials or CredentialCache(
            TOKEN_SETTING_KEY, self.fetch_token, session_factory=session_factory
        )
        self._session = session
        self._owns_session = session is None
        self.cover_target_height = cover_target_height or settings.COVER_TARGET_HEIGHT

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
        return self._session

    def _require_credentials(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("Spotify Client ID or Secret not configured in .env")

    async def fetch_token(self) -> Tuple[str, float]:
        """Client-credentials grant. Returns (access_token, expires_in)."""
        self._require_credentials()
        session = await self._ensure_session()
        async with session.post(
            self.TOKEN_URL,
            data={"grant_type": "client_credentials"},
            auth=aiohttp.BasicAuth(self.client_id, self.client_secret),
        ) as response:
            if response.status >= 400:
                raise IdentificationFailed(
                    f"Failed to authenticate with Spotify (status={response.status})"
                )
            try:
                data = await response.json()
            except (aiohttp.ContentTypeError, ValueError) as e:
                raise IdentificationFailed(f"Malformed Spotify token response: {e}")
        try:
            return data["access_token"], float(data.get("expires_in", 3600))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise IdentificationFailed(f"Malformed Spotify token response: {e!r}")

    async def get_artist_genres(self, artist_id: Optional[str], token: str) -> List[str]:
        """Capitalized genres of an artist; empty on any failure."""
        if not artist_id:
            return []
        session = await self._ensure_session()
        try:
            async with session.get(
                f"{self.API_URL}/artists/{artist_id}",
                headers={"Authorization": f"Bearer {token}"},
            ) as response:
                if response.status >= 400:
                    return []
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Failed to fetch Spotify artist genres: {e}")
            return []
        genres = data.get("genres") if isinstance(data, dict) else None
        return [Normalizer.title_case_genre(g) for g in genres or [] if isinstance(g, str)]

    async def search(self, title: str, artist: Optional[str] = None):
        """Best single track for a title (and artist, when it is not a placeholder).

        Raises:
            ConfigurationError: Client id or secret missing.
        """
        self._require_credentials()
        try:
            token = await self.credentials.get()
        except IdentificationFailed as e:
            return SourceError(str(e))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return SourceError(f"Spotify authentication failed: {e}")

        session = await self._ensure_session()
        params = {"q": build_query(title, artist), "type": "track", "limit": "1"}
        try:
            async with session.get(
                f"{self.API_URL}/search",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            ) as response:
                if response.status == 401:
                    # Token revoked early; next call refreshes
                    self.credentials.invalidate()
                if response.status >= 400:
                    logger.warning(f"Spotify search failed: status={response.status}")
                    return SourceError("Failed to search Spotify", status=response.status)
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Spotify search request failed: {e}")
            return SourceError(f"Failed to search Spotify: {e}")

        tracks = data.get("tracks") if isinstance(data, dict) else None
        items = tracks.get("items") if isinstance(tracks, dict) else None
        if not isinstance(items, list):
            logger.warning(f"Unexpected Spotify search payload: {str(data)[:200]}")
            return SourceError("Malformed Spotify search response")
        if not items:
            return NoMatch("No match found on Spotify")

        track = items[0]
        if not isinstance(track, dict):
            return SourceError("Malformed Spotify search response")
        album = track.get("album") or {}
        artists = [
            CandidateArtist(name=a.get("name", ""), id=a.get("id"))
            for a in track.get("artists") or []
        ]
        primary_id = artists[0].id if artists else None
        genres = await self.get_artist_genres(primary_id, token)

        return Match(
            IdentificationCandidate(
                title=track.get("name") or title,
                artist=Normalizer.display_artist([a.name for a in artists]),
                artists=artists,
                album=album.get("name") or "Unknown Album",
                year=parse_year(album.get("release_date")),
                genres=genres,
                cover_url=pick_cover(album.get("images") or [], self.cover_target_height),
                source="spotify",
            )
        )

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
