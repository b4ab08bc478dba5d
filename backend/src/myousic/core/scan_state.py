"""In-memory state of the (single) library scan job."""

import os
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel

from myousic.core.exceptions import ScanAlreadyInProgress


class ScanStatus(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETE = "complete"
    ERROR = "error"
    STOPPED = "stopped"


class ScanJob(BaseModel):
    """Snapshot of the scan job, serialized camelCase for observers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    root_path: Optional[str] = None
    status: ScanStatus = ScanStatus.IDLE
    total_found: int = 0
    processed: int = 0
    progress: int = 0  # percent, 0-100
    current_file: str = ""
    error: Optional[str] = None
    stop_requested: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_scanning(self) -> bool:
        return self.status == ScanStatus.SCANNING

    @field_serializer("started_at", "completed_at")
    def serialize_datetime(self, dt: Optional[datetime], _info) -> Optional[str]:
        """Serialize datetime fields to ISO format strings."""
        return dt.isoformat() if dt else None

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ScanStateStore:
    """Thread-safe holder of the global ScanJob.

    Only one scan may be active. ``start`` rejects a second scan instead of
    queuing it, and leaves the running job untouched. Counters are updated
    under the lock because file tasks complete out of order.

    Usage:
        state = ScanStateStore()
        state.start("/music")
        state.set_total(120)
        state.record_file("/music/a.mp3")
        state.complete()
    """

    def __init__(self) -> None:
        self._job = ScanJob()
        self._lock = threading.Lock()

    def snapshot(self) -> ScanJob:
        """Return a copy of the current job."""
        with self._lock:
            return self._job.model_copy()

    def start(self, root_path: str) -> ScanJob:
        """Transition to scanning with fresh counters.

        Raises:
            ScanAlreadyInProgress: If a scan is already running.
        """
        with self._lock:
            if self._job.is_scanning:
                raise ScanAlreadyInProgress()
            self._job = ScanJob(
                root_path=root_path,
                status=ScanStatus.SCANNING,
                current_file="Starting scan...",
                started_at=datetime.now(timezone.utc),
            )
            return self._job.model_copy()

    def set_message(self, message: str) -> ScanJob:
        with self._lock:
            self._job.current_file = message
            return self._job.model_copy()

    def set_total(self, total: int) -> ScanJob:
        """Record how many audio files the walk found."""
        with self._lock:
            self._job.total_found = total
            return self._job.model_copy()

    def record_file(self, path: str) -> ScanJob:
        """Count one finished file, whatever its outcome."""
        with self._lock:
            job = self._job
            job.processed += 1
            job.current_file = os.path.basename(path)
            if job.total_found > 0:
                job.progress = min(100, round(job.processed * 100 / job.total_found))
            return job.model_copy()

    def complete(self, message: Optional[str] = None) -> ScanJob:
        with self._lock:
            self._job.status = ScanStatus.COMPLETE
            self._job.progress = 100
            self._job.completed_at = datetime.now(timezone.utc)
            if message:
                self._job.current_file = message
            return self._job.model_copy()

    def fail(self, error: str) -> ScanJob:
        with self._lock:
            self._job.status = ScanStatus.ERROR
            self._job.error = error
            self._job.completed_at = datetime.now(timezone.utc)
            return self._job.model_copy()

    def request_stop(self) -> bool:
        """Ask the running scan to stop dispatching files."""
        with self._lock:
            if self._job.is_scanning:
                self._job.stop_requested = True
                self._job.current_file = "Stop requested..."
                return True
        return False

    def is_stop_requested(self) -> bool:
        with self._lock:
            return self._job.stop_requested

    def mark_stopped(self) -> ScanJob:
        """Called by the scanner once in-flight files have drained."""
        with self._lock:
            self._job.status = ScanStatus.STOPPED
            self._job.completed_at = datetime.now(timezone.utc)
            self._job.current_file = "Scan stopped by user."
            return self._job.model_copy()

    def reset(self) -> None:
        with self._lock:
            self._job = ScanJob()


# Global singleton instance
scan_state = ScanStateStore()


def get_scan_state() -> ScanStateStore:
    """Return the global scan state (for dependency injection)."""
    return scan_state
