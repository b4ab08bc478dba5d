"""Library scanner: walk a directory tree and ingest audio files.

The scan job moves ``idle -> scanning -> complete | error | stopped``. Files
are processed by a bounded task queue; metadata extraction and cover writes
run on a thread pool so the event loop keeps serving requests.
"""

import asyncio
import concurrent.futures
import contextvars
import os
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Set

from loguru import logger

from myousic.core.catalog import CatalogStore, KeyedLock
from myousic.core.events import SCAN_COMPLETE, SCAN_ERROR, SCAN_PROGRESS, SCAN_START, EventBroadcaster
from myousic.core.models import Album, new_id
from myousic.core.scan_state import ScanJob, ScanStateStore
from myousic.core.scanner_config import ScannerConfig
from myousic.core.search_index import SearchIndex
from myousic.core.stats import ScanStats
from myousic.worker.covers import COVERS_URL_PREFIX, write_cover
from myousic.worker.metadata import MetadataError, RawTrackMetadata, extract_metadata
from myousic.worker.reconcile import EntityResolver
from myousic.worker.task_queue import TaskQueue


class LibraryScanner:
    """Ingests a directory tree into the catalog.

    Attributes:
        store: Catalog store (shared session, internally serialized).
        scan_state: Holder of the global scan job.
        broadcaster: Publishes scan and catalog events.
        search_index: Invalidated once the scan finishes.
        config: ScannerConfig instance for configurable behavior.
        executor: Thread pool for mutagen and cover writes.
    """

    def __init__(
        self,
        store: CatalogStore,
        scan_state: ScanStateStore,
        broadcaster: EventBroadcaster,
        search_index: Optional[SearchIndex] = None,
        config: Optional[ScannerConfig] = None,
        artist_locks: Optional[KeyedLock] = None,
        album_locks: Optional[KeyedLock] = None,
        extractor: Callable[[str], RawTrackMetadata] = extract_metadata,
    ):
        self.store = store
        self.scan_state = scan_state
        self.broadcaster = broadcaster
        self.search_index = search_index
        self.config = config or ScannerConfig()
        self.resolver = EntityResolver(store, artist_locks, album_locks, self.config)
        self.extractor = extractor
        self.executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.extraction_workers
        )

    def close(self) -> None:
        self.executor.shutdown(wait=False)

    # ---------- Lifecycle ----------

    def start_scan(self, root_path: str) -> ScanJob:
        """Claim the scan slot for ``root_path``.

        Raises:
            ScanAlreadyInProgress: A scan is running; nothing is changed.
        """
        resolved = str(Path(root_path).expanduser().resolve())
        return self.scan_state.start(resolved)

    async def scan(self, root_path: str) -> ScanStats:
        """``start_scan`` followed by ``run`` (used by the CLI)."""
        job = self.start_scan(root_path)
        return await self.run(job.root_path)

    async def run(self, root_path: str) -> ScanStats:
        """Walk, dispatch and finalize a scan already claimed by ``start_scan``.

        Any failure outside a single file (walk, storage, dispatch) ends the
        job in ``error`` and frees the scan slot. Everything logged meanwhile,
        per-file tasks included, carries the scan id and lands in ``scan.log``.
        """
        with logger.contextualize(scan=new_id()[:8]):
            stats = ScanStats()
            job = self.scan_state.snapshot()
            self.broadcaster.broadcast(SCAN_START, job.to_payload())
            logger.info(
                f"Starting scan of {root_path}... "
                f"(max {self.config.max_concurrent_files} concurrent files)"
            )

            try:
                return await self._scan_files(root_path, stats)
            except Exception as e:
                logger.exception(f"Scan failed: {type(e).__name__}: {e}")
                job = self.scan_state.fail(str(e))
                self.broadcaster.broadcast(SCAN_ERROR, job.to_payload())
                return stats

    async def _scan_files(self, root_path: str, stats: ScanStats) -> ScanStats:
        self._progress(self.scan_state.set_message("Counting files..."))
        loop = asyncio.get_running_loop()
        # Copied context keeps the scan id on warnings logged from the walk thread
        ctx = contextvars.copy_context()
        files = await loop.run_in_executor(self.executor, ctx.run, self._walk, root_path)

        if self.scan_state.is_stop_requested():
            stats.stopped = True
            return self._finish(stats)

        stats.found = len(files)
        self.scan_state.set_total(len(files))
        if not files:
            job = self.scan_state.complete("No audio files found")
            self.broadcaster.broadcast(SCAN_COMPLETE, job.to_payload())
            logger.info(f"No audio files found under {root_path}")
            return stats

        self._progress(self.scan_state.set_message("Checking database..."))
        existing = await self.store.song_paths()

        queue = TaskQueue(self.config.max_concurrent_files, name="scan")
        slots = asyncio.Semaphore(self.config.max_concurrent_files)
        try:
            for path in files:
                # Wait for a free slot so a stop request leaves nothing queued
                await slots.acquire()
                if self.scan_state.is_stop_requested():
                    slots.release()
                    stats.stopped = True
                    logger.info(f"Stop requested; dispatch ended after {stats.processed} files")
                    break
                queue.submit(partial(self._run_file, path, stats, existing, slots))
        finally:
            # In-flight files finish before the job leaves ``scanning``
            await queue.join()
        return self._finish(stats)

    def _finish(self, stats: ScanStats) -> ScanStats:
        if self.search_index is not None:
            self.search_index.invalidate()
        if stats.stopped:
            job = self.scan_state.mark_stopped()
            logger.warning(f"Scan stopped: {stats}")
        else:
            job = self.scan_state.complete(
                f"Scan complete: {stats.created} new, {stats.skipped} skipped, {stats.errors} errors"
            )
            logger.success(f"Scan completed: {stats}")
        self.broadcaster.broadcast(SCAN_COMPLETE, job.to_payload())
        return stats

    def _progress(self, job: ScanJob) -> None:
        self.broadcaster.broadcast(SCAN_PROGRESS, job.to_payload())

    # ---------- Walk ----------

    def _walk(self, root_path: str) -> List[str]:
        """Iterative directory walk (blocking). Unreadable subdirectories are skipped.

        Raises:
            FileNotFoundError / NotADirectoryError / PermissionError for the root.
        """
        root = Path(root_path)
        if not root.exists():
            raise FileNotFoundError(f"Directory not found: {root_path}")
        if not root.is_dir():
            raise NotADirectoryError(f"Not a directory: {root_path}")

        extensions = self.config.audio_extensions
        files: List[str] = []
        stack = [str(root)]
        while stack:
            if self.scan_state.is_stop_requested():
                break
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                if current == str(root):
                    raise
                logger.warning(f"Skipping unreadable directory {current}: {e}")
                continue

            subdirs = []
            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        subdirs.append(entry.path)
                    elif entry.is_file() and os.path.splitext(entry.name)[1].lower() in extensions:
                        files.append(entry.path)
                except OSError as e:
                    logger.warning(f"Cannot stat {entry.path}: {e}")
            # Reverse so directories pop in name order
            stack.extend(reversed(subdirs))
        return files

    # ---------- Per file ----------

    async def _run_file(
        self,
        path: str,
        stats: ScanStats,
        existing: Set[str],
        slots: asyncio.Semaphore,
    ) -> None:
        try:
            await self.process_file(path, stats, existing)
        finally:
            stats.processed += 1
            self._progress(self.scan_state.record_file(path))
            slots.release()

    async def process_file(self, path: str, stats: ScanStats, existing: Set[str]) -> None:
        """Ingest one file. Failures are logged and counted, never raised."""
        if path in existing:
            stats.skipped += 1
            return
        try:
            # The snapshot predates the walk; rows added since then still count
            if await self.store.song_exists(path):
                existing.add(path)
                stats.skipped += 1
                return
            loop = asyncio.get_running_loop()
            meta = await loop.run_in_executor(self.executor, self.extractor, path)
            await self._insert(path, meta)
            existing.add(path)
            stats.created += 1
        except MetadataError as e:
            logger.warning(f"Metadata extraction failed for {path}: {e}")
            stats.errors += 1
        except OSError as e:
            logger.warning(f"File I/O error for {path}: {e}")
            stats.errors += 1
        except Exception as e:
            logger.exception(f"Failed to process {path}: {type(e).__name__}: {e}")
            stats.errors += 1

    async def _insert(self, path: str, meta: RawTrackMetadata) -> None:
        artist_ids = await self.resolver.artist_ids(meta.artists)
        album, _ = await self.resolver.album(meta.album, meta.year, meta.genres)
        song_id = new_id()
        cover_url = await self._store_cover(meta, album, song_id)

        await self.store.create_song(
            {
                "id": song_id,
                "title": meta.title,
                "album_id": album.id,
                "duration_seconds": meta.duration_seconds,
                "file_path": path,
                "genre": meta.genres,
                "year": meta.year,
                "bitrate": meta.bitrate,
                "format": meta.codec,
                "cover_url": cover_url,
            },
            artist_ids,
            count_in_album=True,
        )

    async def _store_cover(self, meta: RawTrackMetadata, album: Optional[Album], song_id: str) -> str:
        """Local cover URL for the song; falls back to the placeholder, never raises."""
        placeholder = self.config.placeholder_cover_url.format(song_id=song_id)
        try:
            if album is not None:
                current = await self.store.album_cover_url(album.id)
                if current and current.startswith(COVERS_URL_PREFIX):
                    return current
            if meta.cover is None:
                return placeholder

            stem = album.id if album is not None else song_id
            loop = asyncio.get_running_loop()
            url = await loop.run_in_executor(self.executor, write_cover, meta.cover, stem)
            if album is not None:
                await self.store.set_album_cover(album.id, url)
            return url
        except Exception as e:
            logger.warning(f"Cover extraction failed for {song_id}, using placeholder: {e}")
            return placeholder
