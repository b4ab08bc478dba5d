"""LLM-assisted cleanup of messy title/artist/album tags (Gemini REST API)."""

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from myousic.core.config import settings
from myousic.core.exceptions import ConfigurationError
from myousic.core.normalization import UNKNOWN_ALBUM, UNKNOWN_ARTIST, Normalizer
from myousic.worker.sources import (
    CandidateArtist,
    IdentificationCandidate,
    Match,
    NoMatch,
    SourceError,
)

PROMPT_TEMPLATE = """Identify a song based on the input text. Return the song details in a JSON format.
**Instructions**
1. If a particular field is not available then return Unknown Artist or Unknown Album.
2. If genre is not available then return empty array
3. Don't include coverUrl in output json if not found.
**Input Text (Song Data):**
{context}

**Required JSON Format:**
```json
{{
  "title": "Clean Title",
  "artist": "Clean Artist",
  "album": "Album Name",
  "genre": ["Genre1", "Genre2"],
  "year": 2000,
  "coverUrl": "https://cover_url.jpg"
}}
```
"""


def build_prompt(
    filename: Optional[str],
    title: Optional[str],
    artist: Optional[str],
    album: Optional[str],
) -> str:
    lines = [f'Song Title: "{title or ""}"']
    if filename:
        lines.append(f'File Name: "{filename}"')
    if artist and artist != UNKNOWN_ARTIST:
        lines.append(f'Artist Name: "{artist}"')
    if album and album != UNKNOWN_ALBUM:
        lines.append(f'Song Album: "{album}"')
    return PROMPT_TEMPLATE.format(context="\n".join(lines))


def parse_suggestion(payload: Dict[str, Any], fallback_title: str) -> IdentificationCandidate:
    """Map the model's JSON answer onto a candidate."""
    artist = str(payload.get("artist") or UNKNOWN_ARTIST)
    names = Normalizer.split_values(artist) or [UNKNOWN_ARTIST]
    genres = payload.get("genre") or []
    if isinstance(genres, str):
        genres = Normalizer.split_values(genres)
    year = payload.get("year")
    try:
        year = int(year) if year is not None else None
    except (TypeError, ValueError):
        year = None
    return IdentificationCandidate(
        title=str(payload.get("title") or fallback_title),
        artist=Normalizer.display_artist(names),
        artists=[CandidateArtist(name=n) for n in names],
        album=str(payload.get("album") or UNKNOWN_ALBUM),
        year=year,
        genres=Normalizer.merge_genres(genres, limit=settings.GENRE_LIMIT),
        cover_url=payload.get("coverUrl") or None,
        source="refine",
    )


class RefineClient:
    """Asks Gemini for cleaned-up song metadata."""

    API_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_MODEL
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=60))
        return self._session

    async def refine(
        self,
        filename: Optional[str],
        title: Optional[str],
        artist: Optional[str] = None,
        album: Optional[str] = None,
    ):
        """Returns Match(candidate), NoMatch or SourceError.

        Raises:
            ConfigurationError: No Gemini API key configured.
        """
        if not self.api_key:
            raise ConfigurationError("Gemini API key is not configured.")

        session = await self._ensure_session()
        body = {
            "contents": [{"parts": [{"text": build_prompt(filename, title, artist, album)}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        url = f"{self.API_URL}/{self.model}:generateContent"
        try:
            async with session.post(url, params={"key": self.api_key}, json=body) as response:
                if response.status >= 400:
                    logger.error(f"Gemini refinement failed: status={response.status}")
                    return SourceError("Gemini request failed", status=response.status)
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Gemini refinement failed: {e}")
            return SourceError(f"Gemini request failed: {e}")

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return NoMatch("Gemini returned no suggestion")

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Gemini returned invalid JSON: {e}")
            return SourceError("Gemini returned invalid JSON")
        if isinstance(payload, list):
            payload = payload[0] if payload else {}
        if not isinstance(payload, dict):
            return SourceError("Gemini returned an unexpected payload")

        return Match(parse_suggestion(payload, title or filename or ""))

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
