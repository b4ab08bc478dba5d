"""FastAPI dependencies and the process-wide service singletons.

Singletons are created lazily on first use so they bind to the running
event loop; ``reset_services`` drops them (used on shutdown and in tests).
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional, Tuple

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from myousic.core.catalog import CatalogStore, KeyedLock
from myousic.core.config import settings
from myousic.core.db import AsyncSessionLocal
from myousic.core.events import EventBroadcaster
from myousic.core.scan_state import ScanStateStore, scan_state
from myousic.core.search_index import SearchIndex
from myousic.worker.identifier import Identifier
from myousic.worker.musicbrainz_client import MusicBrainzClient
from myousic.worker.rate_limiter import ThrottleGate
from myousic.worker.spotify_client import SpotifyClient
from myousic.worker.task_queue import TaskQueue

_services: Dict[str, object] = {}


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async DB session."""
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives the request (scans, caches)."""
    return AsyncSessionLocal


@asynccontextmanager
async def get_db_context(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Context manager for getting async DB session outside of FastAPI dependencies.

    Use this for background tasks that need database access.
    """
    async with (session_factory or AsyncSessionLocal)() as session:
        yield session


def get_scan_state() -> ScanStateStore:
    return scan_state


def get_broadcaster() -> EventBroadcaster:
    if "broadcaster" not in _services:
        _services["broadcaster"] = EventBroadcaster(
            snapshot_provider=lambda: scan_state.snapshot().to_payload()
        )
    return _services["broadcaster"]


def get_search_index(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SearchIndex:
    if "search_index" not in _services:

        async def load_corpus():
            async with session_factory() as session:
                return await CatalogStore(session).search_corpus()

        _services["search_index"] = SearchIndex(load_corpus)
    return _services["search_index"]


def get_entity_locks() -> Tuple[KeyedLock, KeyedLock]:
    """(artist_locks, album_locks) shared by scans and the apply endpoint."""
    if "entity_locks" not in _services:
        _services["entity_locks"] = (KeyedLock(), KeyedLock())
    return _services["entity_locks"]


def get_identification_queue() -> TaskQueue:
    if "identify_queue" not in _services:
        _services["identify_queue"] = TaskQueue(settings.IDENTIFY_CONCURRENCY, name="identify")
    return _services["identify_queue"]


def get_musicbrainz_gate() -> ThrottleGate:
    """The single MusicBrainz throttle for the whole process."""
    if "musicbrainz_gate" not in _services:
        _services["musicbrainz_gate"] = ThrottleGate(
            settings.MUSICBRAINZ_RATE_LIMIT_DELAY, name="musicbrainz"
        )
    return _services["musicbrainz_gate"]


def get_identifier(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Identifier:
    if "identifier" not in _services:
        _services["identifier"] = Identifier(
            musicbrainz=MusicBrainzClient(gate=get_musicbrainz_gate()),
            spotify=SpotifyClient(session_factory=session_factory),
        )
    return _services["identifier"]


async def reset_services() -> None:
    """Close and forget every lazily created service."""
    broadcaster: Optional[EventBroadcaster] = _services.get("broadcaster")
    if broadcaster is not None:
        broadcaster.close()
    identifier: Optional[Identifier] = _services.get("identifier")
    if identifier is not None:
        await identifier.close()
    _services.clear()
