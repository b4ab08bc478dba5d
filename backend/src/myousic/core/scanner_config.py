"""Configuration for scanner behavior and performance tuning."""

from dataclasses import dataclass, field
from typing import FrozenSet

AUDIO_EXTENSIONS: FrozenSet[str] = frozenset(
    {".mp3", ".wav", ".flac", ".m4a", ".aac", ".ogg", ".wma"}
)


@dataclass
class ScannerConfig:
    """Configuration for LibraryScanner behavior.

    Attributes:
        max_concurrent_files: Files processed in parallel by the scan queue (default: 4)
        extraction_workers: Thread pool size for mutagen and cover writes (default: max_concurrent_files)
        audio_extensions: Lower-case extensions (with dot) that count as audio
        placeholder_cover_url: Template for the fallback cover, keyed by song id
        artist_avatar_url: Template for new artist avatars, keyed by artist name
        album_cover_url: Template for new albums without embedded art, keyed by title

    Example:
        >>> config = ScannerConfig(max_concurrent_files=8)
        >>> scanner = LibraryScanner(store, scan_state, broadcaster, config=config)
    """

    max_concurrent_files: int = 4
    extraction_workers: int = 0
    audio_extensions: FrozenSet[str] = field(default_factory=lambda: AUDIO_EXTENSIONS)
    placeholder_cover_url: str = "https://picsum.photos/seed/{song_id}/200/200"
    artist_avatar_url: str = "https://picsum.photos/seed/{name}/200/200"
    album_cover_url: str = "https://picsum.photos/seed/{title}/300/300"

    def __post_init__(self):
        """Validate configuration values and set computed defaults.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        if self.max_concurrent_files < 1:
            raise ValueError("max_concurrent_files must be >= 1")
        if not self.extraction_workers:
            self.extraction_workers = self.max_concurrent_files
        if self.extraction_workers < 1:
            raise ValueError("extraction_workers must be >= 1")
        if not self.audio_extensions:
            raise ValueError("audio_extensions must not be empty")
        self.audio_extensions = frozenset(e.lower() for e in self.audio_extensions)
