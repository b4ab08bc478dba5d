"""Row-level access to the catalog tables used by ingestion and identification.

Every method is its own transaction and holds the store lock while it talks
to the session, so concurrent scan tasks can share one ``AsyncSession``.
"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from myousic.core.models import Album, Artist, Song, SongArtist, name_key


class KeyedLock:
    """Map of asyncio locks keyed by ``name_key`` of a name.

    Usage:
        locks = KeyedLock()
        async with locks("Daft Punk"):
            ...  # find-or-create for that name only
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def __call__(self, name: str) -> asyncio.Lock:
        key = name_key(name)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)


class CatalogStore:
    """Catalog persistence over a single async session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._lock = asyncio.Lock()

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    # ---------- Songs ----------

    async def song_paths(self) -> Set[str]:
        """All file paths currently referenced by a song."""
        async with self._lock:
            res = await self.session.execute(
                select(Song.file_path).where(Song.file_path.is_not(None))
            )
            return set(res.scalars().all())

    async def song_exists(self, path: str) -> bool:
        async with self._lock:
            res = await self.session.execute(
                select(Song.id).where(Song.file_path == path).limit(1)
            )
            return res.scalar_one_or_none() is not None

    async def get_song(self, song_id: str) -> Optional[Song]:
        async with self._lock:
            return await self.session.get(Song, song_id)

    async def list_songs(self) -> List[Tuple[str, Optional[str], str, Optional[str]]]:
        """(id, file_path, title, album_id) for every song."""
        async with self._lock:
            res = await self.session.execute(
                select(Song.id, Song.file_path, Song.title, Song.album_id)
            )
            return [tuple(row) for row in res.all()]

    async def create_song(
        self,
        fields: Dict[str, Any],
        artist_ids: Sequence[str] = (),
        count_in_album: bool = False,
    ) -> Song:
        """Insert a song with its artist links; the first artist is primary.

        With ``count_in_album`` the song's album ``track_count`` is bumped in
        the same commit, so the row and its count land or fail together.
        """
        async with self._lock:
            song = Song(**fields)
            self.session.add(song)
            try:
                await self.session.flush()
            except Exception:
                await self.session.rollback()
                raise
            seen = set()
            for i, artist_id in enumerate(artist_ids):
                if artist_id in seen:
                    continue
                seen.add(artist_id)
                self.session.add(
                    SongArtist(song_id=song.id, artist_id=artist_id, is_primary=(i == 0))
                )
            if count_in_album and song.album_id:
                await self.session.execute(
                    update(Album)
                    .where(Album.id == song.album_id)
                    .values(track_count=Album.track_count + 1)
                )
            await self._commit()
            return song

    async def update_song(self, song_id: str, **values: Any) -> None:
        async with self._lock:
            await self.session.execute(
                update(Song).where(Song.id == song_id).values(**values)
            )
            await self._commit()

    async def replace_song_artists(self, song_id: str, artist_ids: Sequence[str]) -> None:
        async with self._lock:
            await self.session.execute(
                delete(SongArtist).where(SongArtist.song_id == song_id)
            )
            seen = set()
            for i, artist_id in enumerate(artist_ids):
                if artist_id in seen:
                    continue
                seen.add(artist_id)
                self.session.add(
                    SongArtist(song_id=song_id, artist_id=artist_id, is_primary=(i == 0))
                )
            await self._commit()

    async def delete_song(self, song_id: str, album_id: Optional[str] = None) -> None:
        """Remove a song, its artist links and its share of the album count."""
        async with self._lock:
            await self.session.execute(
                delete(SongArtist).where(SongArtist.song_id == song_id)
            )
            await self.session.execute(delete(Song).where(Song.id == song_id))
            if album_id:
                await self.session.execute(
                    update(Album)
                    .where(Album.id == album_id, Album.track_count > 0)
                    .values(track_count=Album.track_count - 1)
                )
            await self._commit()

    async def song_artists(self, song_id: str) -> List[Artist]:
        """Artists of a song, primary first."""
        async with self._lock:
            res = await self.session.execute(
                select(Artist)
                .join(SongArtist, SongArtist.artist_id == Artist.id)
                .where(SongArtist.song_id == song_id)
                .order_by(SongArtist.is_primary.desc(), Artist.name)
            )
            return list(res.scalars().all())

    # ---------- Artists ----------

    async def find_artist_by_name(self, name: str) -> Optional[Artist]:
        """Case-insensitive lookup; the oldest row wins if legacy duplicates exist."""
        async with self._lock:
            res = await self.session.execute(
                select(Artist)
                .where(Artist.name_key == name_key(name))
                .order_by(Artist.created_at)
                .limit(1)
            )
            return res.scalar_one_or_none()

    async def create_artist(self, name: str, avatar_url: Optional[str] = None) -> Artist:
        async with self._lock:
            artist = Artist(name=name, name_key=name_key(name), avatar_url=avatar_url)
            self.session.add(artist)
            await self._commit()
            return artist

    # ---------- Albums ----------

    async def get_album(self, album_id: str) -> Optional[Album]:
        async with self._lock:
            return await self.session.get(Album, album_id)

    async def find_album_by_title(self, title: str) -> Optional[Album]:
        async with self._lock:
            res = await self.session.execute(
                select(Album)
                .where(Album.title_key == name_key(title))
                .order_by(Album.created_at)
                .limit(1)
            )
            return res.scalar_one_or_none()

    async def create_album(
        self,
        title: str,
        cover_url: Optional[str] = None,
        year: Optional[int] = None,
        genre: Optional[List[str]] = None,
        track_count: int = 1,
    ) -> Album:
        async with self._lock:
            album = Album(
                title=title,
                title_key=name_key(title),
                cover_url=cover_url,
                year=year,
                genre=genre or [],
                track_count=track_count,
            )
            self.session.add(album)
            await self._commit()
            return album

    async def increment_album_tracks(self, album_id: str, delta: int = 1) -> None:
        """Atomic ``track_count = track_count + delta``."""
        async with self._lock:
            await self.session.execute(
                update(Album)
                .where(Album.id == album_id)
                .values(track_count=Album.track_count + delta)
            )
            await self._commit()

    async def album_cover_url(self, album_id: str) -> Optional[str]:
        async with self._lock:
            return await self.session.scalar(
                select(Album.cover_url).where(Album.id == album_id)
            )

    async def set_album_cover(self, album_id: str, cover_url: str) -> None:
        async with self._lock:
            await self.session.execute(
                update(Album).where(Album.id == album_id).values(cover_url=cover_url)
            )
            await self._commit()

    # ---------- Aggregates ----------

    async def counts(self) -> Dict[str, int]:
        async with self._lock:
            songs = await self.session.scalar(select(func.count(Song.id)))
            albums = await self.session.scalar(select(func.count(Album.id)))
            artists = await self.session.scalar(select(func.count(Artist.id)))
        return {
            "songCount": songs or 0,
            "albumCount": albums or 0,
            "artistCount": artists or 0,
        }

    async def search_corpus(self) -> Dict[str, List[Dict[str, Any]]]:
        """Lightweight documents for the fuzzy search index.

        Only albums with tracks and artists linked to at least one song are
        included, so the index never surfaces empty entities.
        """
        async with self._lock:
            res = await self.session.execute(
                select(SongArtist.song_id, Artist.id, Artist.name)
                .join(Artist, Artist.id == SongArtist.artist_id)
                .order_by(SongArtist.is_primary.desc())
            )
            links = res.all()

            res = await self.session.execute(
                select(Song.id, Song.title, Song.album_id, Album.title)
                .outerjoin(Album, Album.id == Song.album_id)
                .order_by(Song.created_at)
            )
            song_rows = res.all()

            res = await self.session.execute(
                select(Album.id, Album.title)
                .where(Album.track_count > 0)
                .order_by(Album.created_at)
            )
            album_rows = res.all()

        artists_by_song: Dict[str, List[str]] = defaultdict(list)
        artist_names: Dict[str, str] = {}
        for song_id, artist_id, artist_name in links:
            artists_by_song[song_id].append(artist_name)
            artist_names[artist_id] = artist_name

        album_artists: Dict[str, List[str]] = defaultdict(list)
        songs = []
        for song_id, title, album_id, album_title in song_rows:
            names = artists_by_song.get(song_id, [])
            songs.append(
                {"id": song_id, "title": title, "artist": ", ".join(names), "album": album_title or ""}
            )
            if album_id:
                for name in names:
                    if name not in album_artists[album_id]:
                        album_artists[album_id].append(name)

        albums = [
            {"id": album_id, "title": title, "artist": ", ".join(album_artists.get(album_id, []))}
            for album_id, title in album_rows
        ]
        artists = [{"id": artist_id, "name": name} for artist_id, name in artist_names.items()]
        return {"songs": songs, "albums": albums, "artists": artists}
