"""Tests for the refresh sweep."""

import pytest

from myousic.core.events import SONG_DELETE, EventBroadcaster
from myousic.worker.reconcile import EntityResolver
from myousic.worker.refresh import refresh_library


async def add_song(store, title, path, album):
    artist_ids = await EntityResolver(store).artist_ids(["Air"])
    song = await store.create_song(
        {"title": title, "file_path": path, "album_id": album.id}, artist_ids
    )
    await store.increment_album_tracks(album.id)
    return song


@pytest.mark.asyncio
class TestRefreshLibrary:
    async def test_removes_only_missing_files(self, store, db_session, tmp_path):
        present = tmp_path / "present.mp3"
        present.write_bytes(b"x")
        album, _ = await EntityResolver(store).album("Moon Safari")
        kept = await add_song(store, "La femme d'argent", str(present), album)
        gone = await add_song(store, "Sexy Boy", str(tmp_path / "gone.mp3"), album)

        broadcaster = EventBroadcaster()
        sub = broadcaster.subscribe()

        class Index:
            invalidated = 0

            def invalidate(self):
                self.invalidated += 1

        index = Index()
        removed = await refresh_library(store, broadcaster, index)

        assert removed == 1
        ids = {row[0] for row in await store.list_songs()}
        assert ids == {kept.id}
        assert await store.song_artists(gone.id) == []

        await db_session.refresh(album)
        assert album.track_count == 1

        event = sub.queue.get_nowait()
        assert event.type == SONG_DELETE
        assert event.payload == {"id": gone.id}
        assert index.invalidated == 1

    async def test_nothing_to_remove(self, store, tmp_path):
        assert await refresh_library(store) == 0

    async def test_row_failure_does_not_stop_sweep(self, store, tmp_path, monkeypatch):
        album, _ = await EntityResolver(store).album("Talkie Walkie")
        first = await add_song(store, "Cherry Blossom Girl", str(tmp_path / "a.mp3"), album)
        second = await add_song(store, "Alpha Beta Gaga", str(tmp_path / "b.mp3"), album)

        real_delete = store.delete_song
        calls = []

        async def flaky_delete(song_id, album_id=None):
            calls.append(song_id)
            if len(calls) == 1:
                raise RuntimeError("database is locked")
            await real_delete(song_id, album_id)

        monkeypatch.setattr(store, "delete_song", flaky_delete)

        removed = await refresh_library(store)

        assert removed == 1
        assert len(calls) == 2
        ids = {row[0] for row in await store.list_songs()}
        assert len(ids & {first.id, second.id}) == 1
