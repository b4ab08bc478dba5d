"""Tests for the language-model tag cleanup client."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from myousic.core.exceptions import ConfigurationError
from myousic.worker.refine_client import RefineClient, build_prompt, parse_suggestion
from myousic.worker.sources import Match, NoMatch, SourceError


def gemini_payload(obj):
    text = obj if isinstance(obj, str) else json.dumps(obj)
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def mock_response(status=200, payload=None):
    response = AsyncMock()
    response.status = status
    response.json = AsyncMock(return_value=payload or {})
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=False)
    return response


def make_client(response):
    session = AsyncMock()
    session.post = MagicMock(return_value=response)
    return RefineClient(api_key="key", model="gemini-test", session=session), session


def test_build_prompt_omits_placeholders():
    prompt = build_prompt("01 - track.mp3", "track", "Unknown Artist", "Unknown Album")
    assert 'Song Title: "track"' in prompt
    assert 'File Name: "01 - track.mp3"' in prompt
    assert "Artist Name" not in prompt
    assert "Song Album" not in prompt


def test_build_prompt_includes_known_fields():
    prompt = build_prompt(None, "Title", "Artist", "Album")
    assert 'Artist Name: "Artist"' in prompt
    assert 'Song Album: "Album"' in prompt


def test_parse_suggestion():
    candidate = parse_suggestion(
        {
            "title": "Get Lucky",
            "artist": "Daft Punk; Pharrell Williams",
            "album": "Random Access Memories",
            "genre": ["disco", "funk"],
            "year": "2013",
            "coverUrl": "https://x/cover.jpg",
        },
        "fallback",
    )
    assert candidate.title == "Get Lucky"
    assert [a.name for a in candidate.artists] == ["Daft Punk", "Pharrell Williams"]
    assert candidate.artist == "Daft Punk, Pharrell Williams"
    assert candidate.genres == ["Disco", "Funk"]
    assert candidate.year == 2013
    assert candidate.cover_url == "https://x/cover.jpg"
    assert candidate.source == "refine"


def test_parse_suggestion_defaults():
    candidate = parse_suggestion({"year": "unknown"}, "fallback")
    assert candidate.title == "fallback"
    assert candidate.artist == "Unknown Artist"
    assert candidate.album == "Unknown Album"
    assert candidate.year is None
    assert candidate.genres == []


@pytest.mark.asyncio
class TestRefine:
    async def test_missing_key_raises(self):
        client = RefineClient(api_key="")
        with pytest.raises(ConfigurationError):
            await client.refine("a.mp3", "a")

    async def test_success(self):
        client, session = make_client(
            mock_response(payload=gemini_payload({"title": "Clean", "artist": "Someone"}))
        )

        result = await client.refine("dirty.mp3", "dirty")

        assert isinstance(result, Match)
        assert result.value.title == "Clean"
        url = session.post.call_args[0][0]
        assert url.endswith("/gemini-test:generateContent")
        kwargs = session.post.call_args[1]
        assert kwargs["params"] == {"key": "key"}
        assert kwargs["json"]["generationConfig"] == {"responseMimeType": "application/json"}

    async def test_list_payload_uses_first_item(self):
        client, _ = make_client(mock_response(payload=gemini_payload([{"title": "First"}])))
        result = await client.refine(None, "x")
        assert result.value.title == "First"

    async def test_http_error(self):
        client, _ = make_client(mock_response(status=429))
        result = await client.refine(None, "x")
        assert isinstance(result, SourceError)
        assert result.status == 429

    async def test_invalid_json(self):
        client, _ = make_client(mock_response(payload=gemini_payload("not json")))
        assert isinstance(await client.refine(None, "x"), SourceError)

    async def test_empty_candidates(self):
        client, _ = make_client(mock_response(payload={"candidates": []}))
        assert isinstance(await client.refine(None, "x"), NoMatch)
