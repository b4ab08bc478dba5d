"""Refresh sweep: drop catalog songs whose backing file has disappeared."""

import asyncio
import os
from typing import Optional

from loguru import logger

from myousic.core.catalog import CatalogStore
from myousic.core.events import SONG_DELETE, EventBroadcaster
from myousic.core.search_index import SearchIndex


async def refresh_library(
    store: CatalogStore,
    broadcaster: Optional[EventBroadcaster] = None,
    search_index: Optional[SearchIndex] = None,
) -> int:
    """Delete every song whose file no longer exists.

    Independent of the scan job; it may run while a scan is in progress.
    Storage errors on a single row are logged and the sweep continues.

    Returns:
        Number of songs removed.
    """
    loop = asyncio.get_running_loop()
    removed = 0
    songs = await store.list_songs()
    logger.info(f"Refreshing library: checking {len(songs)} songs")

    for song_id, file_path, title, album_id in songs:
        if not file_path:
            continue
        exists = await loop.run_in_executor(None, os.path.exists, file_path)
        if exists:
            continue
        try:
            await store.delete_song(song_id, album_id)
        except Exception as e:
            logger.error(f"Failed to remove missing song {song_id}: {e}")
            continue
        removed += 1
        logger.info(f"Removed missing song: {title} ({file_path})")
        if broadcaster is not None:
            broadcaster.broadcast(SONG_DELETE, {"id": song_id})

    if search_index is not None:
        search_index.invalidate()
    logger.success(f"Library refreshed. Removed {removed} missing songs.")
    return removed
