"""FastAPI application entry point for the Myousic API.

The API serves:
- System health
- Library scans, refresh, stats and the live event stream
- Fuzzy search over songs, albums and artists
- Song identification (fingerprint, Spotify, language model) and the
  confirmation endpoint that persists a chosen candidate

Extracted and downloaded cover images are served from ``/uploads``.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from loguru import logger

from myousic.api.deps import reset_services
from myousic.api.middleware import RequestContextMiddleware
from myousic.api.routers import library, search, songs, system
from myousic.core.config import settings
from myousic.core.db import init_db
from myousic.core.logger import setup_logging

# Initialize Logging
setup_logging()

settings.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    # Startup
    await init_db()
    setup_logging()
    yield
    # Shutdown: end open event streams and close upstream HTTP sessions
    await reset_services()
    logger.info("Myousic API stopped.")


app = FastAPI(
    title="Myousic API",
    version="0.1.0",
    description="Music library ingestion, search and identification API",
    lifespan=lifespan,
)

# CORS - Allow Vite Frontend
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)

# Include Routers
app.include_router(system.router, prefix="/api/v1/system", tags=["System"])
app.include_router(library.router, prefix="/api/v1/library", tags=["Library"])
app.include_router(search.router, prefix="/api/v1/search", tags=["Search"])
app.include_router(songs.router, prefix="/api/v1/songs", tags=["Songs"])

app.mount("/uploads", StaticFiles(directory=str(settings.UPLOAD_DIR)), name="uploads")


@app.get("/")
async def root():
    return {"message": "Myousic API is running"}
