"""In-memory fuzzy search over songs, albums and artists.

The index is a snapshot of the catalog loaded through an async corpus loader
(normally ``CatalogStore.search_corpus``). It is rebuilt lazily: a query on a
stale or invalidated index triggers one rebuild, and concurrent queries wait
for that rebuild instead of starting their own.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from loguru import logger
from rapidfuzz import fuzz, utils

from myousic.core.config import settings

CorpusLoader = Callable[[], Awaitable[Dict[str, List[Dict[str, Any]]]]]

# Searchable fields per entity kind
FIELDS: Dict[str, Tuple[str, ...]] = {
    "songs": ("title", "artist", "album"),
    "albums": ("title", "artist"),
    "artists": ("name",),
}

TYPE_ALIASES = {
    "song": "songs",
    "songs": "songs",
    "album": "albums",
    "albums": "albums",
    "artist": "artists",
    "artists": "artists",
}

DEFAULT_LIMITS = {"songs": 20, "albums": 10, "artists": 10}
UNLIMITED = 1000
MIN_QUERY_LENGTH = 2


@dataclass
class SearchResult:
    song_ids: List[str] = field(default_factory=list)
    album_ids: List[str] = field(default_factory=list)
    artist_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "songIds": self.song_ids,
            "albumIds": self.album_ids,
            "artistIds": self.artist_ids,
        }


@dataclass
class _Entry:
    id: str
    fields: Tuple[str, ...]  # pre-processed with utils.default_process


def score_field(query: str, value: str) -> float:
    """Similarity of an already-processed query against one processed field.

    Partial matching lets "lov" hit "love story"; fields shorter than the
    query fall back to a plain ratio so short names do not match everything.
    """
    if not value:
        return 0.0
    if len(value) >= len(query):
        return fuzz.partial_ratio(query, value)
    return fuzz.ratio(query, value)


class SearchIndex:
    """Lazily rebuilt fuzzy index with a time-to-live.

    Args:
        loader: Coroutine function returning ``{"songs": [...], "albums": [...],
            "artists": [...]}`` documents.
        ttl: Seconds before a built index is considered stale.
        score_cutoff: Minimum score (0-100) for a hit.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        loader: CorpusLoader,
        ttl: float = settings.SEARCH_INDEX_TTL,
        score_cutoff: float = settings.SEARCH_SCORE_CUTOFF,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self.ttl = ttl
        self.score_cutoff = score_cutoff
        self._clock = clock
        self._entries: Dict[str, List[_Entry]] = {kind: [] for kind in FIELDS}
        self._built_at: Optional[float] = None
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def is_stale(self) -> bool:
        if self._built_at is None:
            return True
        return self._clock() - self._built_at >= self.ttl

    def invalidate(self) -> None:
        """Force the next query to rebuild."""
        self._generation += 1
        self._built_at = None

    async def rebuild(self) -> None:
        generation = self._generation
        started = self._clock()
        corpus = await self._loader()

        entries: Dict[str, List[_Entry]] = {}
        for kind, names in FIELDS.items():
            entries[kind] = [
                _Entry(
                    id=doc["id"],
                    fields=tuple(utils.default_process(str(doc.get(n) or "")) for n in names),
                )
                for doc in corpus.get(kind, [])
            ]
        self._entries = entries

        # An invalidate() that raced with the load leaves the index stale
        if generation == self._generation:
            self._built_at = started
        logger.debug(
            f"Search index rebuilt: {len(entries['songs'])} songs, "
            f"{len(entries['albums'])} albums, {len(entries['artists'])} artists"
        )

    async def ensure_fresh(self) -> None:
        if not self.is_stale:
            return
        async with self._lock:
            if self.is_stale:
                await self.rebuild()

    def _search(self, kind: str, query: str, limit: int) -> List[str]:
        scored = []
        for position, entry in enumerate(self._entries.get(kind, [])):
            best = max(score_field(query, value) for value in entry.fields)
            if best >= self.score_cutoff:
                scored.append((-best, position, entry.id))
        scored.sort()
        return [entry_id for _, _, entry_id in scored[:limit]]

    async def query(
        self,
        text: str,
        type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> SearchResult:
        """Search one kind (``song``/``album``/``artist``) or all of them.

        ``limit`` applies per kind; ``0`` means "everything" (capped at 1000)
        and ``None`` uses the per-kind defaults.
        """
        result = SearchResult()
        query = utils.default_process(text or "")
        if len(query) < MIN_QUERY_LENGTH:
            return result

        if type and type not in ("all", ""):
            kind = TYPE_ALIASES.get(type.lower())
            if kind is None:
                raise ValueError(f"Unknown search type: {type}")
            kinds = [kind]
        else:
            kinds = list(FIELDS)

        await self.ensure_fresh()

        for kind in kinds:
            if limit is None:
                kind_limit = DEFAULT_LIMITS[kind]
            elif limit <= 0:
                kind_limit = UNLIMITED
            else:
                kind_limit = limit
            ids = self._search(kind, query, kind_limit)
            if kind == "songs":
                result.song_ids = ids
            elif kind == "albums":
                result.album_ids = ids
            else:
                result.artist_ids = ids
        return result
