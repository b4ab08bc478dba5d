import asyncio
from pathlib import Path

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import StreamingResponse
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from myousic.api.deps import (
    get_broadcaster,
    get_db,
    get_db_context,
    get_entity_locks,
    get_scan_state,
    get_search_index,
    get_session_factory,
)
from myousic.api.schemas import (
    LibraryStats,
    RefreshResponse,
    ScanAccepted,
    ScanRequest,
    ScanStopResponse,
)
from myousic.core.catalog import CatalogStore
from myousic.core.config import settings
from myousic.core.events import EventBroadcaster
from myousic.core.exceptions import ScanAlreadyInProgress
from myousic.core.scan_state import ScanStateStore
from myousic.core.scanner_config import ScannerConfig
from myousic.core.search_index import SearchIndex
from myousic.worker.refresh import refresh_library
from myousic.worker.scanner import LibraryScanner

router = APIRouter()

# Comment frames keep proxies from closing idle event streams
KEEPALIVE_SECONDS = 15.0


async def run_library_scan(
    root_path: str,
    session_factory: async_sessionmaker[AsyncSession],
    scan_state: ScanStateStore,
    broadcaster: EventBroadcaster,
    search_index: SearchIndex,
    entity_locks,
) -> None:
    """Background task: run a scan already claimed on ``scan_state``."""
    artist_locks, album_locks = entity_locks
    async with get_db_context(session_factory) as session:
        scanner = LibraryScanner(
            CatalogStore(session),
            scan_state,
            broadcaster,
            search_index=search_index,
            config=ScannerConfig(max_concurrent_files=settings.SCAN_CONCURRENCY),
            artist_locks=artist_locks,
            album_locks=album_locks,
        )
        try:
            await scanner.run(root_path)
        finally:
            scanner.close()


@router.post("/scan", status_code=202, response_model=ScanAccepted)
async def trigger_scan(
    background_tasks: BackgroundTasks,
    req: ScanRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    scan_state: ScanStateStore = Depends(get_scan_state),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    search_index: SearchIndex = Depends(get_search_index),
    entity_locks=Depends(get_entity_locks),
):
    """Start scanning a directory; progress is published on ``/events``."""
    if not req.path or not req.path.strip():
        logger.error("Scan request rejected: Path is required")
        raise HTTPException(status_code=400, detail="Path is required")

    root_path = str(Path(req.path.strip()).expanduser().resolve())
    try:
        scan_state.start(root_path)
    except ScanAlreadyInProgress as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(f"Scan accepted for {root_path}")
    background_tasks.add_task(
        run_library_scan,
        root_path,
        session_factory,
        scan_state,
        broadcaster,
        search_index,
        entity_locks,
    )
    return ScanAccepted(path=root_path)


@router.post("/scan/stop", response_model=ScanStopResponse)
async def stop_scan(scan_state: ScanStateStore = Depends(get_scan_state)):
    """Ask the running scan to stop after its in-flight files."""
    return ScanStopResponse(stopping=scan_state.request_stop())


@router.get("/scan/status")
async def scan_status(scan_state: ScanStateStore = Depends(get_scan_state)):
    return scan_state.snapshot().to_payload()


@router.post("/refresh")
async def refresh(
    db: AsyncSession = Depends(get_db),
    broadcaster: EventBroadcaster = Depends(get_broadcaster),
    search_index: SearchIndex = Depends(get_search_index),
):
    """Remove songs whose files no longer exist on disk."""
    removed = await refresh_library(CatalogStore(db), broadcaster, search_index)
    return RefreshResponse(removed_count=removed).model_dump(by_alias=True)


@router.get("/stats")
async def library_stats(db: AsyncSession = Depends(get_db)):
    counts = await CatalogStore(db).counts()
    return LibraryStats(**counts).model_dump(by_alias=True)


@router.get("/events")
async def stream_events(broadcaster: EventBroadcaster = Depends(get_broadcaster)):
    """Server-Sent Events stream of scan and catalog events.

    The first frame is the current scan snapshot (``scan:status``).
    """
    subscription = broadcaster.subscribe()

    async def event_generator():
        try:
            while True:
                try:
                    event = await asyncio.wait_for(
                        subscription.queue.get(), timeout=KEEPALIVE_SECONDS
                    )
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                if event is None:
                    break
                yield event.to_sse()
        finally:
            broadcaster.unsubscribe(subscription)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
