import shutil

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from myousic.api.deps import get_db
from myousic.core.config import settings

router = APIRouter()


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Check system health and DB connection."""
    try:
        await db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"disconnected: {str(e)}"

    return {"status": "ok", "database": db_status, "version": "0.1.0"}


@router.get("/sources")
async def identification_sources():
    """Which identification flows can run with the current configuration.

    Secrets are never returned, only whether they are set.
    """
    fpcalc = shutil.which(settings.FPCALC_PATH) is not None
    return {
        "fingerprint": {
            "available": fpcalc and bool(settings.ACOUSTID_API_KEY),
            "fpcalc": fpcalc,
            "mp3val": shutil.which(settings.MP3VAL_PATH) is not None,
            "acoustidKey": bool(settings.ACOUSTID_API_KEY),
        },
        "spotify": {
            "available": bool(settings.SPOTIFY_CLIENT_ID and settings.SPOTIFY_CLIENT_SECRET),
        },
        "refine": {
            "available": bool(settings.GEMINI_API_KEY),
            "model": settings.GEMINI_MODEL,
        },
    }
