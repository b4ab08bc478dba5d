from typing import Any

from loguru import logger
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from myousic.core.config import settings
from myousic.core.models import Base

# Scans write from many tasks while the API reads; busy_timeout (ms) makes
# SQLite wait for the writer instead of raising "database is locked".
SQLITE_PRAGMAS = (
    ("journal_mode", "WAL"),
    ("synchronous", "NORMAL"),
    ("busy_timeout", "30000"),
)

engine = create_async_engine(
    settings.DB_URL,
    echo=settings.DB_ECHO,
    connect_args={"check_same_thread": False, "timeout": 30},
)


@event.listens_for(engine.sync_engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Apply SQLITE_PRAGMAS to every new catalog connection."""
    cursor = dbapi_connection.cursor()
    for name, value in SQLITE_PRAGMAS:
        cursor.execute(f"PRAGMA {name}={value}")
    cursor.close()


AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


async def init_db(force: bool = False) -> None:
    """Create the catalog tables (artists, albums, songs, links, settings).

    Args:
        force: Drop every table first. The catalog and the cached Spotify
            token are lost; the next scan rebuilds the catalog.
    """
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    async with engine.begin() as conn:
        if force:
            logger.warning(f"Dropping catalog tables in {settings.DB_PATH}")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Catalog tables ready ({', '.join(sorted(Base.metadata.tables))})")
