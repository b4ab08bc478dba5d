"""Statistics tracking dataclasses for scan operations."""

from dataclasses import dataclass


@dataclass
class ScanStats:
    """Statistics for a single library scan.

    Attributes:
        found: Audio files discovered by the walk.
        processed: Files whose task finished (success, skip or failure).
        created: New song rows inserted.
        skipped: Files already in the catalog (matched by path).
        errors: Files that failed extraction or insert.
        stopped: Set when a stop request ended dispatch early.

    Example:
        >>> stats = ScanStats(found=2)
        >>> stats.processed += 1
        >>> stats.created += 1
        >>> stats.to_dict()
        {'found': 2, 'processed': 1, 'created': 1, 'skipped': 0, 'errors': 0}
    """

    found: int = 0
    processed: int = 0
    created: int = 0
    skipped: int = 0
    errors: int = 0
    stopped: bool = False

    def to_dict(self) -> dict:
        """Convert stats to dictionary for API responses and logs."""
        return {
            "found": self.found,
            "processed": self.processed,
            "created": self.created,
            "skipped": self.skipped,
            "errors": self.errors,
        }

    def __str__(self) -> str:
        return (
            f"ScanStats(found={self.found}, processed={self.processed}, "
            f"created={self.created}, skipped={self.skipped}, errors={self.errors})"
        )
