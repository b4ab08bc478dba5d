"""AcoustID fingerprint lookup client.

AcoustID allows 3 requests per second per application key; requests are
spaced by an injected ``ThrottleGate``. The ``acoustid`` library call is
blocking and runs in the default executor.
"""

import asyncio
from typing import Any, Dict, List, Optional

import acoustid
from loguru import logger

from myousic.core.config import settings
from myousic.core.exceptions import ConfigurationError
from myousic.worker.fingerprint import Fingerprint
from myousic.worker.rate_limiter import ThrottleGate
from myousic.worker.sources import Match, NoMatch, SourceError

LOOKUP_META = "recordings releases releasegroups compress"


def best_result(results: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Highest-scoring result; on ties the first one seen wins."""
    best = None
    for result in results:
        if best is None or result.get("score", 0) > best.get("score", 0):
            best = result
    return best


class AcoustIDClient:
    """Looks up fingerprints against the AcoustID web service."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        gate: Optional[ThrottleGate] = None,
    ) -> None:
        self.api_key = settings.ACOUSTID_API_KEY if api_key is None else api_key
        self.gate = gate or ThrottleGate(settings.ACOUSTID_RATE_LIMIT_DELAY, name="acoustid")

    def _lookup(self, fp: Fingerprint) -> Dict[str, Any]:
        return acoustid.lookup(
            self.api_key, fp.fingerprint, fp.duration_seconds, meta=LOOKUP_META
        )

    async def lookup(self, fp: Fingerprint):
        """Returns ``Match(result)`` with the best-scoring result.

        Raises:
            ConfigurationError: No API key configured.
        """
        if not self.api_key:
            raise ConfigurationError("AcoustID API key is not configured.")

        await self.gate.wait()
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, self._lookup, fp)
        except acoustid.WebServiceError as e:
            logger.error(f"AcoustID API Error: {e}")
            return SourceError(str(e), status=getattr(e, "code", None))

        results = data.get("results") or []
        best = best_result(results)
        if best is None:
            return NoMatch("No AcoustID results")
        if not best.get("recordings"):
            logger.info(f"AcoustID result {best.get('id')} has no recordings")
            return NoMatch("Best AcoustID result has no recordings")

        logger.debug(
            f"AcoustID best match {best.get('id')} score={best.get('score')} "
            f"({len(results)} results)"
        )
        return Match(best)
