import argparse
import asyncio
import json

from loguru import logger

from myousic.core.catalog import CatalogStore
from myousic.core.config import settings
from myousic.core.db import AsyncSessionLocal, engine, init_db
from myousic.core.events import EventBroadcaster
from myousic.core.exceptions import IdentificationError, MyousicError
from myousic.core.logger import setup_logging
from myousic.core.scan_state import get_scan_state
from myousic.core.scanner_config import ScannerConfig
from myousic.worker.identifier import Identifier
from myousic.worker.refresh import refresh_library
from myousic.worker.scanner import LibraryScanner


async def run_scan(path: str) -> None:
    """Scans a music directory into the catalog.

    Args:
        path: Directory to walk.
    """
    await init_db()
    async with AsyncSessionLocal() as session:
        scanner = LibraryScanner(
            CatalogStore(session),
            get_scan_state(),
            EventBroadcaster(),
            config=ScannerConfig(max_concurrent_files=settings.SCAN_CONCURRENCY),
        )
        try:
            stats = await scanner.scan(path)
        finally:
            scanner.close()
    job = get_scan_state().snapshot()
    if job.error:
        logger.error(f"Scan ended with error: {job.error}")
    else:
        logger.info(f"Scan finished ({job.status.value}): {stats}")
    await engine.dispose()


async def run_refresh() -> None:
    """Removes songs whose files no longer exist."""
    await init_db()
    async with AsyncSessionLocal() as session:
        removed = await refresh_library(CatalogStore(session))
    logger.info(f"Removed {removed} missing songs")
    await engine.dispose()


async def run_identify(path: str) -> None:
    """Prints the identification candidate for a single file."""
    identifier = Identifier()
    try:
        candidate = await identifier.identify(path)
        print(json.dumps(candidate.to_payload(), indent=2))
    except IdentificationError as e:
        logger.warning(f"Identification failed: {e}")
    finally:
        await identifier.close()


def main():
    setup_logging()
    parser = argparse.ArgumentParser(description="Myousic Worker")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Initialize Database Tables")

    scan_parser = subparsers.add_parser("scan", help="Scan a music directory")
    scan_parser.add_argument("path", help="Directory path to scan")

    subparsers.add_parser("refresh", help="Remove songs whose files are missing")

    identify_parser = subparsers.add_parser(
        "identify", help="Identify an audio file by fingerprint"
    )
    identify_parser.add_argument("path", help="Path to the audio file")

    args = parser.parse_args()

    try:
        if args.command == "init-db":
            asyncio.run(init_db())
            logger.info("Database initialized.")

        elif args.command == "scan":
            asyncio.run(run_scan(args.path))

        elif args.command == "refresh":
            asyncio.run(run_refresh())

        elif args.command == "identify":
            asyncio.run(run_identify(args.path))

        else:
            parser.print_help()
    except MyousicError as e:
        logger.error(str(e))
        raise SystemExit(1)


if __name__ == "__main__":
    main()
