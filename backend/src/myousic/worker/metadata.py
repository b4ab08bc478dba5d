"""Local tag extraction with mutagen (blocking; run in an executor)."""

import base64
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple

import mutagen
from loguru import logger
from mutagen.flac import Picture
from mutagen.mp4 import MP4Cover

from myousic.core.normalization import UNKNOWN_ALBUM, UNKNOWN_ARTIST, Normalizer

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class MetadataError(Exception):
    """A file could not be read as audio."""


@dataclass
class EmbeddedCover:
    data: bytes
    mime: str = "image/jpeg"

    @property
    def extension(self) -> str:
        return MIME_EXTENSIONS.get(self.mime.lower(), ".jpg")


@dataclass
class RawTrackMetadata:
    """Tags and stream info of one file; the first artist is the primary one."""

    title: str
    artists: List[str] = field(default_factory=lambda: [UNKNOWN_ARTIST])
    album: str = UNKNOWN_ALBUM
    year: Optional[int] = None
    genres: List[str] = field(default_factory=list)
    duration_seconds: int = 0
    bitrate: int = 0  # kbps
    codec: str = ""
    cover: Optional[EmbeddedCover] = None

    @property
    def artist(self) -> str:
        return Normalizer.display_artist(self.artists)


def _first(tags: Any, *keys: str) -> str:
    if not tags:
        return ""
    for key in keys:
        value = tags.get(key)
        if value:
            return str(value[0] if isinstance(value, list) else value).strip()
    return ""


def _parse_year(date_str: str) -> Optional[int]:
    """ID3 tags often hold just "2003"; longer dates start with the year."""
    if date_str and date_str[:4].isdigit():
        return int(date_str[:4])
    return None


def _filename_fallback(artist: str, title: str, path: Path) -> Tuple[str, str]:
    """Use "Artist - Title" from the file name when tags are missing."""
    if artist and title:
        return artist, title
    stem = path.stem
    if " - " in stem:
        left, right = stem.split(" - ", 1)
        return artist or left.strip(), title or right.strip()
    return artist, title or stem


def extract_cover(audio: Any) -> Optional[EmbeddedCover]:
    """Front cover (or first picture) from ID3, FLAC, MP4 or Vorbis tags."""
    pictures = getattr(audio, "pictures", None)
    if pictures:
        pic = next((p for p in pictures if p.type == 3), pictures[0])
        return EmbeddedCover(pic.data, pic.mime or "image/jpeg")

    tags = getattr(audio, "tags", None)
    if not tags:
        return None

    if hasattr(tags, "getall"):
        frames = tags.getall("APIC")
        if frames:
            frame = next((f for f in frames if f.type == 3), frames[0])
            return EmbeddedCover(frame.data, frame.mime or "image/jpeg")

    covers = tags.get("covr") if hasattr(tags, "get") else None
    if covers:
        cover = covers[0]
        mime = "image/png" if getattr(cover, "imageformat", None) == MP4Cover.FORMAT_PNG else "image/jpeg"
        return EmbeddedCover(bytes(cover), mime)

    blocks = tags.get("metadata_block_picture") if hasattr(tags, "get") else None
    if blocks:
        try:
            pic = Picture(base64.b64decode(blocks[0]))
            return EmbeddedCover(pic.data, pic.mime or "image/jpeg")
        except (ValueError, mutagen.MutagenError) as e:
            logger.debug(f"Unreadable embedded picture: {e}")
    return None


def extract_metadata(file_path: str) -> RawTrackMetadata:
    """Read tags, stream info and embedded cover from one file.

    Raises:
        MetadataError: Empty or unparsable file.
        OSError: The file cannot be read.
    """
    path = Path(file_path)
    if os.path.getsize(path) == 0:
        raise MetadataError(f"Empty file: {path.name}")

    try:
        easy = mutagen.File(path, easy=True)
        full = mutagen.File(path)
    except mutagen.MutagenError as e:
        raise MetadataError(f"Unreadable audio file {path.name}: {e}") from e
    if easy is None or full is None:
        raise MetadataError(f"Unsupported audio format: {path.name}")

    tags = easy.tags
    raw_artist = _first(tags, "artist", "albumartist")
    raw_title = _first(tags, "title")
    raw_artist, title = _filename_fallback(raw_artist, raw_title, path)

    artists = Normalizer.split_values(raw_artist) or [UNKNOWN_ARTIST]
    genres = Normalizer.split_values(tags.get("genre") if tags else None)

    info = easy.info
    duration = int(getattr(info, "length", 0) or 0)
    bitrate = int((getattr(info, "bitrate", 0) or 0) // 1000)

    return RawTrackMetadata(
        title=title,
        artists=artists,
        album=_first(tags, "album") or UNKNOWN_ALBUM,
        year=_parse_year(_first(tags, "date", "year")),
        genres=genres,
        duration_seconds=duration,
        bitrate=bitrate,
        codec=path.suffix.lstrip(".").upper(),
        cover=extract_cover(full),
    )
