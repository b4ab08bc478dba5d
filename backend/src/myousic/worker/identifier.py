"""Identification orchestrator: fingerprint, look up, enrich, propose.

The result of every operation is an advisory ``IdentificationCandidate``;
nothing here writes to the catalog. The fingerprint and the AcoustID lookup
are load-bearing and raise on failure. MusicBrainz genre enrichment and
cover-art probing are best-effort and only ever leave fields empty.
"""

from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from myousic.core.config import settings
from myousic.core.exceptions import IdentificationError, IdentificationFailed, NoMatchFound
from myousic.core.normalization import UNKNOWN_ALBUM, UNKNOWN_ARTIST, Normalizer
from myousic.worker.acoustid_client import AcoustIDClient
from myousic.worker.fingerprint import Fingerprinter
from myousic.worker.musicbrainz_client import MusicBrainzClient
from myousic.worker.refine_client import RefineClient
from myousic.worker.sources import (
    CandidateArtist,
    IdentificationCandidate,
    Match,
    NoMatch,
    SourceError,
)
from myousic.worker.spotify_client import SpotifyClient


def select_release(recording: Dict[str, Any]) -> Tuple[Optional[dict], Optional[dict]]:
    """(release_group, release) for a recording.

    Release groups are preferred; the first release inside the first group
    is used. Recordings without groups fall back to their first direct release.
    """
    groups = recording.get("releasegroups") or []
    if groups:
        group = groups[0]
        releases = group.get("releases") or []
        return group, (releases[0] if releases else None)
    releases = recording.get("releases") or []
    return None, (releases[0] if releases else None)


def candidate_from_acoustid(result: Dict[str, Any]) -> IdentificationCandidate:
    """Build a candidate from the best AcoustID result (first recording)."""
    recording = result["recordings"][0]
    group, release = select_release(recording)

    artists = [
        CandidateArtist(name=a.get("name", ""), id=a.get("id"))
        for a in recording.get("artists") or []
        if a.get("name")
    ]
    if group and group.get("title"):
        album = group["title"]
    elif release and release.get("title"):
        album = release["title"]
    else:
        album = UNKNOWN_ALBUM

    year = None
    date = (release or {}).get("date") or {}
    if isinstance(date, dict) and date.get("year"):
        try:
            year = int(date["year"])
        except (TypeError, ValueError):
            year = None

    return IdentificationCandidate(
        title=recording.get("title") or "",
        artist=Normalizer.display_artist([a.name for a in artists]),
        artists=artists,
        album=album,
        year=year,
        source="acoustid",
        confidence=result.get("score"),
        release_id=(release or {}).get("id"),
        release_group_id=(group or {}).get("id"),
    )


class Identifier:
    """Runs the identification flows against the configured sources.

    Args:
        fingerprinter: Blocking fpcalc wrapper.
        acoustid: Fingerprint lookup client.
        musicbrainz: Enrichment client; shares the process-wide throttle.
        spotify: Catalog search client for the hybrid flow.
        refiner: LLM cleanup client.
        max_enrichment_calls: Artist detail lookups per identification.
        genre_limit: Maximum genres on a candidate.
    """

    def __init__(
        self,
        fingerprinter: Optional[Fingerprinter] = None,
        acoustid: Optional[AcoustIDClient] = None,
        musicbrainz: Optional[MusicBrainzClient] = None,
        spotify: Optional[SpotifyClient] = None,
        refiner: Optional[RefineClient] = None,
        max_enrichment_calls: Optional[int] = None,
        genre_limit: Optional[int] = None,
    ) -> None:
        self.fingerprinter = fingerprinter or Fingerprinter()
        self.acoustid = acoustid or AcoustIDClient()
        self.musicbrainz = musicbrainz or MusicBrainzClient()
        self.spotify = spotify or SpotifyClient()
        self.refiner = refiner or RefineClient()
        self.max_enrichment_calls = (
            settings.MAX_ENRICHMENT_CALLS if max_enrichment_calls is None else max_enrichment_calls
        )
        self.genre_limit = settings.GENRE_LIMIT if genre_limit is None else genre_limit

    async def identify(self, path: str) -> IdentificationCandidate:
        """Identify a file by its acoustic fingerprint.

        Raises:
            ToolMissing: fpcalc is not installed.
            FingerprintFailed: The file could not be fingerprinted.
            ConfigurationError: No AcoustID key.
            NoMatchFound: AcoustID knows nothing usable about the audio.
            IdentificationFailed: AcoustID itself failed.
        """
        fp = await self.fingerprinter.fingerprint_async(path)
        logger.debug(f"Fingerprinted {path} ({fp.duration_seconds:.0f}s)")

        result = await self.acoustid.lookup(fp)
        if isinstance(result, NoMatch):
            raise NoMatchFound()
        if isinstance(result, SourceError):
            raise IdentificationFailed(f"AcoustID lookup failed: {result.reason}")

        candidate = candidate_from_acoustid(result.value)
        candidate.genres = await self._enrich_genres(candidate)
        if candidate.release_id:
            candidate.cover_url = await self._resolve_cover(candidate.release_id)

        logger.info(
            f"Identified {path} as '{candidate.title}' by {candidate.artist} "
            f"({len(candidate.genres)} genres, cover={'yes' if candidate.cover_url else 'no'})"
        )
        return candidate

    async def _enrich_genres(self, candidate: IdentificationCandidate) -> List[str]:
        groups: List[List[str]] = []
        artist_ids = [a.id for a in candidate.artists if a.id]
        for artist_id in artist_ids[: self.max_enrichment_calls]:
            try:
                details = await self.musicbrainz.get_artist_details(artist_id)
            except Exception as e:
                logger.warning(f"Artist enrichment failed for {artist_id}: {e}")
                continue
            if details:
                groups.append(details.get("genres") or [])

        if candidate.release_group_id:
            try:
                details = await self.musicbrainz.get_release_group_details(
                    candidate.release_group_id
                )
            except Exception as e:
                logger.warning(f"Release group enrichment failed: {e}")
                details = None
            if details:
                groups.append(details.get("genres") or [])
                date = details.get("date") or ""
                if candidate.year is None and date[:4].isdigit():
                    candidate.year = int(date[:4])

        return Normalizer.merge_genres(*groups, limit=self.genre_limit)

    async def _resolve_cover(self, release_id: str) -> Optional[str]:
        try:
            return await self.musicbrainz.find_cover_art(release_id)
        except Exception as e:
            logger.warning(f"Failed to find cover art for release {release_id}: {e}")
            return None

    async def identify_spotify(
        self, path: Optional[str], title: str, artist: Optional[str]
    ) -> IdentificationCandidate:
        """Hybrid flow: clean title/artist via fingerprint, then search Spotify.

        Fingerprint failures are not fatal here: the stored tags go through a
        MusicBrainz text search instead, and are used as-is if that finds nothing.
        """
        search_title, search_artist = title, artist or UNKNOWN_ARTIST
        fingerprinted = False
        if path:
            try:
                logger.info(f"[Hybrid] Fingerprinting {path}...")
                found = await self.identify(path)
                if found.title:
                    logger.info(f"[Hybrid] AcoustID Found: {found.title} by {found.artist}")
                    search_title, search_artist = found.title, found.artist
                    fingerprinted = True
            except IdentificationError as e:
                logger.warning(f"[Hybrid] AcoustID failed, using existing metadata: {e}")

        if not fingerprinted:
            search_title, search_artist = await self._clean_by_text(search_title, artist)
            search_artist = search_artist or UNKNOWN_ARTIST

        logger.info(f"[Hybrid] Searching Spotify for: {search_title} - {search_artist}")
        result = await self.spotify.search(search_title, search_artist)
        if isinstance(result, NoMatch):
            raise NoMatchFound(result.reason)
        if isinstance(result, SourceError):
            raise IdentificationFailed(f"Spotify search failed: {result.reason}")
        return result.value

    async def _clean_by_text(
        self, title: str, artist: Optional[str]
    ) -> Tuple[str, Optional[str]]:
        """Canonical (title, artist) from a MusicBrainz recording search, else the input."""
        try:
            result = await self.musicbrainz.search_recording(title, artist)
        except Exception as e:
            logger.warning(f"[Hybrid] MusicBrainz search failed: {e}")
            return title, artist
        if isinstance(result, Match) and result.value.title:
            logger.info(
                f"[Hybrid] MusicBrainz Found: {result.value.title} by {result.value.artist}"
            )
            return result.value.title, result.value.artist
        return title, artist

    async def refine(
        self,
        filename: Optional[str],
        title: str,
        artist: Optional[str] = None,
        album: Optional[str] = None,
    ) -> IdentificationCandidate:
        """LLM cleanup of the stored tags."""
        result = await self.refiner.refine(filename, title, artist, album)
        if not isinstance(result, Match):
            raise IdentificationFailed("Failed to generate suggestions")
        return result.value

    async def close(self) -> None:
        await self.musicbrainz.close()
        await self.spotify.close()
        await self.refiner.close()
