"""Create-or-reuse of name-keyed artists and albums.

Two file tasks that discover the same new artist at the same time must end
up with one row. Find-then-create for a name runs under that name's lock,
so the second task always sees the row the first one created.
"""

from typing import Iterable, List, Optional, Tuple
from urllib.parse import quote

from loguru import logger

from myousic.core.catalog import CatalogStore, KeyedLock
from myousic.core.models import Album
from myousic.core.scanner_config import ScannerConfig


class EntityResolver:
    """Resolves artist and album names to catalog ids.

    Args:
        store: Catalog store used for lookups and inserts.
        artist_locks: Per-name locks for artists (share them across resolvers
            that write to the same database).
        album_locks: Per-title locks for albums.
        config: Supplies the avatar and album placeholder templates.
    """

    def __init__(
        self,
        store: CatalogStore,
        artist_locks: Optional[KeyedLock] = None,
        album_locks: Optional[KeyedLock] = None,
        config: Optional[ScannerConfig] = None,
    ) -> None:
        self.store = store
        self.artist_locks = artist_locks or KeyedLock()
        self.album_locks = album_locks or KeyedLock()
        self.config = config or ScannerConfig()

    async def artist_id(self, name: str) -> str:
        name = name.strip()
        async with self.artist_locks(name):
            artist = await self.store.find_artist_by_name(name)
            if artist is not None:
                return artist.id
            artist = await self.store.create_artist(
                name, avatar_url=self.config.artist_avatar_url.format(name=quote(name))
            )
            logger.debug(f"Created artist '{name}'")
            return artist.id

    async def artist_ids(self, names: Iterable[str]) -> List[str]:
        """Ids in input order, duplicates removed; the first stays primary."""
        ids: List[str] = []
        for name in names:
            if not name or not name.strip():
                continue
            artist_id = await self.artist_id(name)
            if artist_id not in ids:
                ids.append(artist_id)
        return ids

    async def album(
        self,
        title: str,
        year: Optional[int] = None,
        genres: Optional[List[str]] = None,
    ) -> Tuple[Album, bool]:
        """Existing album with this title (any case), or a new empty one.

        New albums start with ``track_count=0``; callers count the track through
        ``CatalogStore.create_song(..., count_in_album=True)``.

        Returns:
            (album, created)
        """
        title = title.strip()
        async with self.album_locks(title):
            album = await self.store.find_album_by_title(title)
            if album is not None:
                return album, False
            album = await self.store.create_album(
                title,
                cover_url=self.config.album_cover_url.format(title=quote(title)),
                year=year,
                genre=genres or [],
                track_count=0,
            )
            logger.debug(f"Created album '{title}'")
            return album, True
