"""Tests for CatalogStore and KeyedLock."""

import asyncio

import pytest

from myousic.core.catalog import KeyedLock
from myousic.core.models import Song


async def _song(store, path, title="Song", album_id=None, artist_ids=()):
    return await store.create_song(
        {"title": title, "file_path": path, "album_id": album_id}, artist_ids
    )


def test_keyed_lock_is_case_insensitive():
    locks = KeyedLock()
    assert locks("Daft Punk") is locks("  daft punk ")
    assert locks("Daft Punk") is not locks("Justice")
    assert len(locks) == 2


@pytest.mark.asyncio
class TestSongs:
    async def test_create_song_links_artists_first_is_primary(self, store):
        a = await store.create_artist("A")
        b = await store.create_artist("B")
        song = await _song(store, "/m/1.mp3", artist_ids=[a.id, b.id, a.id])

        artists = await store.song_artists(song.id)
        assert [x.name for x in artists] == ["A", "B"]
        assert artists[0].id == a.id

    async def test_song_paths_and_exists(self, store):
        await _song(store, "/m/1.mp3")
        await _song(store, "/m/2.mp3")
        assert await store.song_paths() == {"/m/1.mp3", "/m/2.mp3"}
        assert await store.song_exists("/m/1.mp3")
        assert not await store.song_exists("/m/3.mp3")

    async def test_create_song_counts_in_album(self, store):
        album = await store.create_album("Album", track_count=0)
        await _song(store, "/m/1.mp3", album_id=album.id)
        await store.create_song(
            {"title": "Two", "file_path": "/m/2.mp3", "album_id": album.id},
            count_in_album=True,
        )
        album = await store.get_album(album.id)
        await store.session.refresh(album)
        assert album.track_count == 1

    async def test_failed_insert_leaves_album_count_alone(self, store):
        album = await store.create_album("Album", track_count=0)
        await _song(store, "/m/1.mp3")
        with pytest.raises(Exception):
            await store.create_song(
                {"title": "Dup", "file_path": "/m/1.mp3", "album_id": album.id},
                count_in_album=True,
            )
        album = await store.get_album(album.id)
        await store.session.refresh(album)
        assert album.track_count == 0

    async def test_update_song(self, store):
        song = await _song(store, "/m/1.mp3", title="Old")
        await store.update_song(song.id, title="New", year=1999)
        refreshed = await store.get_song(song.id)
        await store.session.refresh(refreshed)
        assert refreshed.title == "New"
        assert refreshed.year == 1999

    async def test_replace_song_artists(self, store):
        a = await store.create_artist("A")
        b = await store.create_artist("B")
        song = await _song(store, "/m/1.mp3", artist_ids=[a.id])
        await store.replace_song_artists(song.id, [b.id, a.id])
        assert (await store.song_artists(song.id))[0].id == b.id
        assert len(await store.song_artists(song.id)) == 2

    async def test_delete_song_decrements_album(self, store):
        album = await store.create_album("Album", track_count=2)
        a = await store.create_artist("A")
        song = await _song(store, "/m/1.mp3", album_id=album.id, artist_ids=[a.id])

        await store.delete_song(song.id, album.id)

        assert await store.get_song(song.id) is None
        assert await store.song_artists(song.id) == []
        album = await store.get_album(album.id)
        await store.session.refresh(album)
        assert album.track_count == 1

    async def test_delete_song_never_goes_negative(self, store):
        album = await store.create_album("Album", track_count=0)
        song = await _song(store, "/m/1.mp3", album_id=album.id)
        await store.delete_song(song.id, album.id)
        album = await store.get_album(album.id)
        await store.session.refresh(album)
        assert album.track_count == 0

    async def test_list_songs(self, store):
        song = await _song(store, "/m/1.mp3", title="T")
        assert await store.list_songs() == [(song.id, "/m/1.mp3", "T", None)]


@pytest.mark.asyncio
class TestArtistsAndAlbums:
    async def test_find_artist_by_name_case_insensitive(self, store):
        artist = await store.create_artist("Daft Punk")
        found = await store.find_artist_by_name("daft punk")
        assert found.id == artist.id
        assert await store.find_artist_by_name("Justice") is None

    async def test_find_album_by_title_case_insensitive(self, store):
        album = await store.create_album("Discovery")
        assert (await store.find_album_by_title("DISCOVERY")).id == album.id

    async def test_increment_album_tracks(self, store):
        album = await store.create_album("Discovery", track_count=1)
        await asyncio.gather(*(store.increment_album_tracks(album.id) for _ in range(5)))
        album = await store.get_album(album.id)
        await store.session.refresh(album)
        assert album.track_count == 6

    async def test_album_cover(self, store):
        album = await store.create_album("Discovery", cover_url="https://x/1.jpg")
        assert await store.album_cover_url(album.id) == "https://x/1.jpg"
        await store.set_album_cover(album.id, "/uploads/covers/a.jpg")
        assert await store.album_cover_url(album.id) == "/uploads/covers/a.jpg"


@pytest.mark.asyncio
class TestAggregates:
    async def test_counts(self, store):
        a = await store.create_artist("A")
        album = await store.create_album("X")
        await _song(store, "/m/1.mp3", album_id=album.id, artist_ids=[a.id])
        assert await store.counts() == {"songCount": 1, "albumCount": 1, "artistCount": 1}

    async def test_search_corpus_excludes_empty_entities(self, store):
        a = await store.create_artist("Linked")
        await store.create_artist("Orphan")
        full = await store.create_album("Full", track_count=1)
        await store.create_album("Empty", track_count=0)
        song = await _song(store, "/m/1.mp3", title="Love Story", album_id=full.id, artist_ids=[a.id])

        corpus = await store.search_corpus()

        assert corpus["songs"] == [
            {"id": song.id, "title": "Love Story", "artist": "Linked", "album": "Full"}
        ]
        assert corpus["albums"] == [{"id": full.id, "title": "Full", "artist": "Linked"}]
        assert corpus["artists"] == [{"id": a.id, "name": "Linked"}]

    async def test_rolls_back_on_failed_commit(self, store):
        await _song(store, "/m/1.mp3")
        with pytest.raises(Exception):
            await _song(store, "/m/1.mp3")
        # Session is usable again after the rollback
        assert await store.song_paths() == {"/m/1.mp3"}
        assert isinstance(await _song(store, "/m/2.mp3"), Song)
