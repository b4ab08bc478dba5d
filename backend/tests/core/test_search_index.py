"""Tests for the fuzzy search index."""

import pytest

from myousic.core.search_index import SearchIndex, score_field

CORPUS = {
    "songs": [
        {"id": "s1", "title": "Love Story", "artist": "Taylor Swift", "album": "Fearless"},
        {"id": "s2", "title": "Lovely Day", "artist": "Bill Withers", "album": "Menagerie"},
        {"id": "s3", "title": "Yellow", "artist": "Coldplay", "album": "Parachutes"},
    ],
    "albums": [
        {"id": "a1", "title": "Fearless", "artist": "Taylor Swift"},
        {"id": "a2", "title": "Parachutes", "artist": "Coldplay"},
    ],
    "artists": [
        {"id": "r1", "name": "Taylor Swift"},
        {"id": "r2", "name": "Coldplay"},
    ],
}


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_index(corpus=CORPUS, **kwargs):
    calls = []

    async def loader():
        calls.append(1)
        return corpus

    index = SearchIndex(loader, **kwargs)
    return index, calls


def test_score_field_partial_for_longer_fields():
    assert score_field("lov", "love story") == 100
    # Field shorter than the query: plain ratio, so no free partial hit
    assert score_field("coldplay", "cold") < 70


def test_score_field_empty_value():
    assert score_field("abc", "") == 0.0


@pytest.mark.asyncio
async def test_partial_query_matches_song():
    index, _ = make_index()
    result = await index.query("Lov")
    assert "s1" in result.song_ids
    assert "s2" in result.song_ids
    assert "s3" not in result.song_ids


@pytest.mark.asyncio
async def test_nonsense_query_returns_nothing():
    index, _ = make_index()
    result = await index.query("xyzxyz")
    assert result.to_dict() == {"songIds": [], "albumIds": [], "artistIds": []}


@pytest.mark.asyncio
async def test_short_query_returns_nothing_without_loading():
    index, calls = make_index()
    assert (await index.query("a")).song_ids == []
    assert (await index.query("  !")).song_ids == []
    assert calls == []


@pytest.mark.asyncio
async def test_results_ordered_by_score_then_position():
    index, _ = make_index()
    result = await index.query("taylor swift")
    # Exact artist field on both s1 and a1 / r1
    assert result.song_ids == ["s1"]
    assert result.album_ids == ["a1"]
    assert result.artist_ids == ["r1"]


@pytest.mark.asyncio
async def test_type_filter():
    index, _ = make_index()
    result = await index.query("coldplay", type="artist")
    assert result.artist_ids == ["r2"]
    assert result.song_ids == []
    assert result.album_ids == []


@pytest.mark.asyncio
async def test_unknown_type_raises():
    index, _ = make_index()
    with pytest.raises(ValueError):
        await index.query("coldplay", type="playlist")


@pytest.mark.asyncio
async def test_limits():
    songs = [{"id": f"s{i}", "title": f"Love {i}", "artist": "", "album": ""} for i in range(30)]
    index, _ = make_index({"songs": songs, "albums": [], "artists": []})

    assert len((await index.query("love")).song_ids) == 20
    assert len((await index.query("love", limit=5)).song_ids) == 5
    assert len((await index.query("love", limit=0)).song_ids) == 30


@pytest.mark.asyncio
async def test_ttl_triggers_rebuild():
    clock = FakeClock()
    index, calls = make_index(ttl=300.0, clock=clock)

    await index.query("love")
    await index.query("love")
    assert len(calls) == 1

    clock.now += 301
    await index.query("love")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_invalidate_forces_rebuild():
    clock = FakeClock()
    index, calls = make_index(clock=clock)
    await index.query("love")
    index.invalidate()
    assert index.is_stale
    await index.query("love")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_invalidate_during_rebuild_keeps_index_stale():
    index = None

    async def loader():
        # A catalog write lands while the snapshot is being loaded
        index.invalidate()
        return CORPUS

    index = SearchIndex(loader)
    await index.rebuild()
    assert index.is_stale
