"""Expiring bearer credentials persisted in the system_settings table."""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from myousic.core.models import SystemSetting

# Returns (token, lifetime in seconds)
TokenFetcher = Callable[[], Awaitable[Tuple[str, float]]]


class CredentialCache:
    """Caches one expiring credential in memory and in ``system_settings``.

    The credential is reused while more than ``min_validity`` seconds remain
    and refreshed otherwise. Check-then-refresh runs under an asyncio lock so
    concurrent callers trigger a single refresh. Storage failures are logged
    and never prevent a fresh token from being returned.

    Args:
        key: system_settings key, e.g. ``spotify_token``.
        fetcher: Coroutine function obtaining a new credential.
        session_factory: Factory for short-lived sessions.
        min_validity: Seconds of remaining validity required for reuse.
        clock: Wall-clock time source (epoch seconds).
    """

    def __init__(
        self,
        key: str,
        fetcher: TokenFetcher,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        min_validity: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.key = key
        self._fetcher = fetcher
        self._session_factory = session_factory
        self.min_validity = min_validity
        self._clock = clock
        self._value: Optional[str] = None
        self._expires_at: float = 0.0
        self._force_refresh = False
        self._lock = asyncio.Lock()

    def _is_valid(self, expires_at: Optional[float]) -> bool:
        return bool(expires_at) and expires_at > self._clock() + self.min_validity

    async def get(self) -> str:
        async with self._lock:
            if self._value and self._is_valid(self._expires_at):
                return self._value

            stored = None if self._force_refresh else await self._load()
            if stored and self._is_valid(stored[1]):
                self._value, self._expires_at = stored
                return self._value

            token, lifetime = await self._fetcher()
            self._force_refresh = False
            self._value = token
            self._expires_at = self._clock() + float(lifetime)
            logger.info(f"Refreshed credential '{self.key}' (valid {int(lifetime)}s)")
            await self._store(self._value, self._expires_at)
            return self._value

    def invalidate(self) -> None:
        """Force the next ``get`` to fetch a new credential."""
        self._value = None
        self._expires_at = 0.0
        self._force_refresh = True

    async def _load(self) -> Optional[Tuple[str, float]]:
        if self._session_factory is None:
            return None
        try:
            async with self._session_factory() as session:
                row = await session.get(SystemSetting, self.key)
                if row is None or not row.value:
                    return None
                return row.value, row.expires_at or 0.0
        except Exception as e:
            logger.warning(f"Failed to read '{self.key}' from system_settings: {e}")
            return None

    async def _store(self, value: str, expires_at: float) -> None:
        if self._session_factory is None:
            return
        try:
            async with self._session_factory() as session:
                row = await session.get(SystemSetting, self.key)
                if row is None:
                    session.add(
                        SystemSetting(key=self.key, value=value, expires_at=expires_at)
                    )
                else:
                    row.value = value
                    row.expires_at = expires_at
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to save '{self.key}' to system_settings: {e}")
