"""SQLAlchemy models for the Myousic catalog.

Submodules:
- base: Base, TimestampMixin, new_id
- library: Artist, Album, Song, SongArtist, name_key
- system: SystemSetting
"""

from myousic.core.models.base import Base, TimestampMixin, new_id
from myousic.core.models.library import (
    Album,
    Artist,
    Song,
    SongArtist,
    name_key,
)
from myousic.core.models.system import SystemSetting

__all__ = [
    "Base",
    "TimestampMixin",
    "new_id",
    "Artist",
    "Album",
    "Song",
    "SongArtist",
    "SystemSetting",
    "name_key",
]
