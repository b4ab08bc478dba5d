"""Tests for the AcoustID lookup client."""

from unittest.mock import AsyncMock, patch

import acoustid
import pytest

from myousic.core.exceptions import ConfigurationError
from myousic.worker.acoustid_client import AcoustIDClient, best_result
from myousic.worker.fingerprint import Fingerprint
from myousic.worker.sources import Match, NoMatch, SourceError

FP = Fingerprint(duration_seconds=180.0, fingerprint="AQAA")


def test_best_result_picks_highest_score():
    results = [{"id": "a", "score": 0.4}, {"id": "b", "score": 0.9}, {"id": "c", "score": 0.7}]
    assert best_result(results)["id"] == "b"


def test_best_result_first_wins_ties():
    results = [{"id": "a", "score": 0.9}, {"id": "b", "score": 0.9}]
    assert best_result(results)["id"] == "a"


def test_best_result_empty():
    assert best_result([]) is None


def make_client():
    gate = AsyncMock()
    return AcoustIDClient(api_key="key", gate=gate), gate


@pytest.mark.asyncio
class TestLookup:
    async def test_missing_key_raises(self):
        client = AcoustIDClient(api_key="", gate=AsyncMock())
        with pytest.raises(ConfigurationError):
            await client.lookup(FP)

    @patch("myousic.worker.acoustid_client.acoustid.lookup")
    async def test_returns_best_match(self, mock_lookup):
        mock_lookup.return_value = {
            "status": "ok",
            "results": [
                {"id": "low", "score": 0.5, "recordings": [{"id": "r0"}]},
                {"id": "high", "score": 0.95, "recordings": [{"id": "r1"}]},
            ],
        }
        client, gate = make_client()

        result = await client.lookup(FP)

        assert isinstance(result, Match)
        assert result.value["id"] == "high"
        gate.wait.assert_awaited_once()
        mock_lookup.assert_called_once_with(
            "key", "AQAA", 180.0, meta="recordings releases releasegroups compress"
        )

    @patch("myousic.worker.acoustid_client.acoustid.lookup")
    async def test_no_results_is_no_match(self, mock_lookup):
        mock_lookup.return_value = {"status": "ok", "results": []}
        client, _ = make_client()
        assert isinstance(await client.lookup(FP), NoMatch)

    @patch("myousic.worker.acoustid_client.acoustid.lookup")
    async def test_best_without_recordings_is_no_match(self, mock_lookup):
        mock_lookup.return_value = {"results": [{"id": "x", "score": 0.99}]}
        client, _ = make_client()
        assert isinstance(await client.lookup(FP), NoMatch)

    @patch("myousic.worker.acoustid_client.acoustid.lookup")
    async def test_web_service_error_is_source_error(self, mock_lookup):
        mock_lookup.side_effect = acoustid.WebServiceError("invalid API key")
        client, _ = make_client()
        result = await client.lookup(FP)
        assert isinstance(result, SourceError)
        assert "invalid API key" in result.reason
