"""Per-song identification and metadata confirmation.

Identification endpoints only return candidates; nothing is written until
the client posts a confirmed candidate to ``/apply``. All lookups go
through the process-wide identification queue because the remote services
enforce global rate limits.
"""

import asyncio
import os
from functools import partial
from typing import Awaitable, Callable, List, Tuple

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from myousic.api.deps import (
    get_broadcaster,
    get_db,
    get_entity_locks,
    get_identification_queue,
    get_identifier,
    get_search_index,
)
from myousic.api.schemas import ApplyRequest, SongOut
from myousic.core.catalog import CatalogStore
from myousic.core.config import settings
from myousic.core.events import SONG_UPDATE, EventBroadcaster
from myousic.core.exceptions import (
    ConfigurationError,
    IdentificationError,
    NoMatchFound,
    ToolMissing,
)
from myousic.core.models import Song
from myousic.core.normalization import UNKNOWN_ALBUM, Normalizer
from myousic.core.search_index import SearchIndex
from myousic.worker.covers import download_cover
from myousic.worker.identifier import Identifier
from myousic.worker.reconcile import EntityResolver
from myousic.worker.sources import IdentificationCandidate
from myousic.worker.task_queue import TaskQueue

router = APIRouter()


async def _get_song(store: CatalogStore, song_id: str) -> Song:
    song = await store.get_song(song_id)
    if song is None or not song.file_path:
        raise HTTPException(status_code=404, detail="Song or file path not found")
    return song


async def _song_context(store: CatalogStore, song: Song) -> Tuple[str, str]:
    """(artist display name, album title) of a stored song."""
    artists = await store.song_artists(song.id)
    album = await store.get_album(song.album_id) if song.album_id else None
    return (
        Normalizer.display_artist([a.name for a in artists]),
        album.title if album else UNKNOWN_ALBUM,
    )


async def _run_identification(
    queue: TaskQueue,
    task: Callable[[], Awaitable[IdentificationCandidate]],
    song_id: str,
) -> dict:
    """Run ``task`` on the identification queue and map failures to HTTP errors."""
    try:
        candidate = await queue.submit(task)
    except NoMatchFound as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (ConfigurationError, ToolMissing) as e:
        logger.error(f"Identification unavailable for song {song_id}: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except IdentificationError as e:
        logger.error(f"Identification failed for song {song_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return candidate.to_payload()


@router.post("/{song_id}/identify")
async def identify_song(
    song_id: str,
    db: AsyncSession = Depends(get_db),
    identifier: Identifier = Depends(get_identifier),
    queue: TaskQueue = Depends(get_identification_queue),
):
    """Identify a song by acoustic fingerprint (AcoustID + MusicBrainz)."""
    song = await _get_song(CatalogStore(db), song_id)
    loop = asyncio.get_running_loop()
    if not await loop.run_in_executor(None, os.path.exists, song.file_path):
        raise HTTPException(status_code=404, detail="File not found on disk")
    return await _run_identification(
        queue, partial(identifier.identify, song.file_path), song_id
    )


@router.post("/{song_id}/identify-spotify")
async def identify_song_spotify(
    song_id: str,
    db: AsyncSession = Depends(get_db),
    identifier: Identifier = Depends(get_identifier),
    queue: TaskQueue = Depends(get_identification_queue),
):
    """Fingerprint for a clean title, then take metadata from Spotify.

    A missing file is tolerated: the stored title and artist are searched.
    """
    store = CatalogStore(db)
    song = await _get_song(store, song_id)
    artist, _ = await _song_context(store, song)
    loop = asyncio.get_running_loop()
    path = song.file_path
    if not await loop.run_in_executor(None, os.path.exists, path):
        logger.warning(f"File missing for song {song_id}; searching stored tags")
        path = None
    return await _run_identification(
        queue, partial(identifier.identify_spotify, path, song.title, artist), song_id
    )


@router.post("/{song_id}/refine")
async def refine_song(
    song_id: str,
    db: AsyncSession = Depends(get_db),
    identifier: Identifier = Depends(get_identifier),
    queue: TaskQueue = Depends(get_identification_queue),
):
    """Ask the language model to clean up the stored tags."""
    store = CatalogStore(db)
    song = await _get_song(store, song_id)
    artist, album = await _song_context(store, song)
    return await _run_identification(
        queue,
        partial(
            identifier.refine, os.path.basename(song.file_path), song.title, artist, album
        ),
        song_id,
    )


def _artist_names(req: ApplyRequest) -> List[str]:
    if req.artists:
        return Normalizer.split_values(req.artists)
    return Normalizer.split_values(req.artist or "")


@router.post("/{song_id}/apply", response_model=SongOut, response_model_by_alias=True)
async def apply_candidate(
    song_id: str,
    req: ApplyRequest,
    db: AsyncSession = Depends(get_db),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    search_index: SearchIndex = Depends(get_search_index),
    entity_locks=Depends(get_entity_locks),
):
    """Persist a candidate the user confirmed.

    Artists and album go through the same create-or-reuse as the scanner. A
    remote cover is downloaded into the covers directory; if that fails the
    song keeps its current cover.
    """
    store = CatalogStore(db)
    song = await store.get_song(song_id)
    if song is None:
        raise HTTPException(status_code=404, detail="Song not found")

    artist_locks, album_locks = entity_locks
    resolver = EntityResolver(store, artist_locks, album_locks)
    genres = Normalizer.merge_genres(req.genres, limit=settings.GENRE_LIMIT)
    values = {"title": req.title.strip(), "genre": genres, "year": req.year}

    old_album_id = song.album_id
    if req.album and req.album.strip():
        album, _ = await resolver.album(req.album, req.year, genres)
        if album.id != old_album_id:
            await store.increment_album_tracks(album.id)
            if old_album_id:
                await store.increment_album_tracks(old_album_id, -1)
            values["album_id"] = album.id

    if req.cover_url:
        if req.cover_url.startswith(("http://", "https://")):
            local_url = await download_cover(req.cover_url, song_id)
            if local_url:
                values["cover_url"] = local_url
        else:
            values["cover_url"] = req.cover_url

    await store.update_song(song_id, **values)

    names = _artist_names(req)
    if names:
        artist_ids = await resolver.artist_ids(names)
        await store.replace_song_artists(song_id, artist_ids)

    song = await store.get_song(song_id)
    await db.refresh(song)
    artists = await store.song_artists(song_id)
    album = await store.get_album(song.album_id) if song.album_id else None
    out = SongOut(
        id=song.id,
        title=song.title,
        artist=Normalizer.display_artist([a.name for a in artists]),
        artist_ids=[a.id for a in artists],
        album=album.title if album else None,
        album_id=song.album_id,
        duration=song.duration_seconds,
        file_path=song.file_path,
        genre=song.genre or [],
        year=song.year,
        bitrate=song.bitrate,
        format=song.format,
        cover_url=song.cover_url,
        is_favorite=song.is_favorite,
    )
    payload = out.to_payload()
    logger.info(f"Applied metadata to song {song_id}: '{out.title}' by {out.artist}")
    broadcaster.broadcast(SONG_UPDATE, payload)
    search_index.invalidate()
    return out
