"""Cover image storage under ``UPLOAD_DIR/covers``."""

import asyncio
from pathlib import Path
from typing import Optional

import aiohttp
from loguru import logger

from myousic.core.config import settings
from myousic.worker.metadata import MIME_EXTENSIONS, EmbeddedCover

COVERS_URL_PREFIX = "/uploads/covers"


def covers_dir() -> Path:
    return settings.UPLOAD_DIR / "covers"


def write_cover(cover: EmbeddedCover, stem: str) -> str:
    """Write image bytes to ``covers/<stem><ext>`` (blocking).

    Returns:
        The public URL of the stored image.
    """
    target_dir = covers_dir()
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = f"{stem}{cover.extension}"
    (target_dir / filename).write_bytes(cover.data)
    return f"{COVERS_URL_PREFIX}/{filename}"


async def download_cover(
    url: str,
    stem: str,
    session: Optional[aiohttp.ClientSession] = None,
) -> Optional[str]:
    """Fetch a remote image into the covers directory.

    Returns the local URL, or None if the download failed.
    """
    if not url:
        return None
    owns_session = session is None
    session = session or aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
    try:
        async with session.get(url) as response:
            if response.status >= 400:
                logger.warning(f"Cover download failed ({response.status}): {url}")
                return None
            data = await response.read()
            mime = (response.headers.get("Content-Type") or "image/jpeg").split(";")[0].strip()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"Failed to download cover image: {e}")
        return None
    finally:
        if owns_session:
            await session.close()

    if mime.lower() not in MIME_EXTENSIONS:
        mime = "image/jpeg"
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, write_cover, EmbeddedCover(data, mime), stem)
    except OSError as e:
        logger.warning(f"Failed to store downloaded cover: {e}")
        return None
