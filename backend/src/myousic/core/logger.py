"""Logging configuration and setup."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from myousic.core.config import settings

NO_CONTEXT = "-"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[request_id]}</cyan>/<magenta>{extra[scan]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[request_id]}/{extra[scan]} | "
    "{name}:{function}:{line} - {message}"
)
# One line per record; the scan id leads so a single job greps cleanly
SCAN_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {extra[scan]} | {level: <8} | {message}"


def in_scan(record) -> bool:
    """True for records emitted inside a scan's ``logger.contextualize(scan=...)``."""
    return record["extra"].get("scan", NO_CONTEXT) != NO_CONTEXT


def setup_logging(data_dir: Optional[Path] = None) -> None:
    """Configures Loguru logging for console and file output.

    Sinks:
        - stderr, colorized, tagged ``<request_id>/<scan_id>``.
        - ``logs/myousic.log``: every record, rotated and zip-compressed.
        - ``logs/scan.log``: only records from inside a library scan, so a
          scan's per-file failures can be read without API noise.

    File sinks are enqueued so worker threads (mutagen, fpcalc) never block
    on disk writes.
    """
    logger.remove()
    # Defaults for worker/CLI context; the request middleware and the scanner override them
    logger.configure(extra={"request_id": NO_CONTEXT, "scan": NO_CONTEXT})

    logger.add(sys.stderr, level=settings.LOG_LEVEL, format=CONSOLE_FORMAT)

    log_dir = (data_dir or settings.DATA_DIR) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(log_dir / "myousic.log"),
        rotation=settings.LOG_ROTATION,
        retention=settings.LOG_RETENTION,
        compression="zip",
        level=settings.LOG_LEVEL,
        enqueue=True,
        backtrace=True,
        diagnose=True,
        format=FILE_FORMAT,
    )
    logger.add(
        str(log_dir / "scan.log"),
        rotation=settings.LOG_ROTATION,
        retention=settings.LOG_RETENTION,
        compression="zip",
        level=settings.LOG_LEVEL,
        enqueue=True,
        filter=in_scan,
        format=SCAN_FORMAT,
    )

    logger.info(f"Logging initialized. Log dir: {log_dir}")
