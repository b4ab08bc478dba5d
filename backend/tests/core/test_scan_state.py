"""Tests for the scan job state machine."""

import pytest

from myousic.core.exceptions import ScanAlreadyInProgress
from myousic.core.scan_state import ScanStateStore, ScanStatus


def test_initial_state_is_idle():
    job = ScanStateStore().snapshot()
    assert job.status == ScanStatus.IDLE
    assert job.processed == 0


def test_start_resets_counters():
    state = ScanStateStore()
    state.start("/music")
    state.set_total(2)
    state.record_file("/music/a.mp3")
    state.complete()

    job = state.start("/other")
    assert job.status == ScanStatus.SCANNING
    assert job.root_path == "/other"
    assert job.total_found == 0
    assert job.processed == 0
    assert job.started_at is not None


def test_second_start_is_rejected_without_changes():
    state = ScanStateStore()
    state.start("/music")
    state.set_total(10)
    with pytest.raises(ScanAlreadyInProgress):
        state.start("/elsewhere")
    job = state.snapshot()
    assert job.root_path == "/music"
    assert job.total_found == 10


def test_record_file_updates_progress():
    state = ScanStateStore()
    state.start("/music")
    state.set_total(4)
    job = state.record_file("/music/sub/a.mp3")
    assert job.processed == 1
    assert job.progress == 25
    assert job.current_file == "a.mp3"


def test_complete_sets_progress_100():
    state = ScanStateStore()
    state.start("/music")
    job = state.complete("No audio files found")
    assert job.status == ScanStatus.COMPLETE
    assert job.progress == 100
    assert job.current_file == "No audio files found"
    assert job.completed_at is not None


def test_fail_records_error():
    state = ScanStateStore()
    state.start("/music")
    job = state.fail("Directory not found: /music")
    assert job.status == ScanStatus.ERROR
    assert job.error == "Directory not found: /music"


def test_stop_only_while_scanning():
    state = ScanStateStore()
    assert state.request_stop() is False
    state.start("/music")
    assert state.request_stop() is True
    assert state.is_stop_requested()
    job = state.mark_stopped()
    assert job.status == ScanStatus.STOPPED
    # A new scan clears the flag
    state.start("/music")
    assert not state.is_stop_requested()


def test_payload_is_camel_case():
    state = ScanStateStore()
    state.start("/music")
    payload = state.snapshot().to_payload()
    assert payload["status"] == "scanning"
    assert payload["rootPath"] == "/music"
    assert "totalFound" in payload
    assert "currentFile" in payload
    assert isinstance(payload["startedAt"], str)
    assert payload["completedAt"] is None


def test_snapshot_is_a_copy():
    state = ScanStateStore()
    job = state.snapshot()
    job.processed = 99
    assert state.snapshot().processed == 0
