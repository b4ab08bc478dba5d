import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Project Paths
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = Path(
        os.getenv("MYOUSIC_DATA_DIR", str(BASE_DIR.parent / "data"))
    )

    # Database
    DB_NAME: str = "myousic.db"

    @property
    def DB_PATH(self) -> Path:
        return self.DATA_DIR / self.DB_NAME

    @property
    def DB_URL(self) -> str:
        # Use forward slashes so Windows paths work in the URL (no backslash escapes)
        path = self.DB_PATH.resolve().as_posix()
        return f"sqlite+aiosqlite:///{path}"

    @property
    def UPLOAD_DIR(self) -> Path:
        return self.DATA_DIR / "uploads"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_RETENTION: str = "10 days"
    LOG_ROTATION: str = "10 MB"

    DB_ECHO: bool = False

    # External Tools
    FPCALC_PATH: str = "fpcalc"
    MP3VAL_PATH: str = "mp3val"

    # External APIs
    ACOUSTID_API_KEY: str = ""
    SPOTIFY_CLIENT_ID: str = ""
    SPOTIFY_CLIENT_SECRET: str = ""
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash-lite"

    # Concurrency
    SCAN_CONCURRENCY: int = 4
    IDENTIFY_CONCURRENCY: int = 1  # Remote services enforce global limits

    # Rate Limits (seconds between requests)
    MUSICBRAINZ_RATE_LIMIT_DELAY: float = 1.1
    MUSICBRAINZ_BACKOFF_SECONDS: float = 2.0
    ACOUSTID_RATE_LIMIT_DELAY: float = 0.34

    # Identification
    MAX_ENRICHMENT_CALLS: int = 2
    GENRE_LIMIT: int = 5
    COVER_TARGET_HEIGHT: int = 500

    # Search
    SEARCH_INDEX_TTL: float = 300.0
    SEARCH_SCORE_CUTOFF: float = 70.0


settings = Settings()

# Ensure data directory exists
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
