import asyncio
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import acoustid
from loguru import logger

from myousic.core.config import settings
from myousic.core.exceptions import FingerprintFailed, ToolMissing

# Extensions the repair tool knows how to fix
REPAIRABLE_EXTENSIONS = frozenset({".mp3"})


@dataclass
class Fingerprint:
    duration_seconds: float
    fingerprint: str


class Fingerprinter:
    """Computes Chromaprint fingerprints through the `fpcalc` binary.

    Wraps the `acoustid` library. MP3 files that fpcalc rejects are repaired
    in place with `mp3val` once and fingerprinted exactly one more time.
    """

    def __init__(
        self,
        fpcalc_path: Optional[str] = None,
        repair_tool_path: Optional[str] = None,
    ) -> None:
        self.fpcalc_path = fpcalc_path or settings.FPCALC_PATH
        self.repair_tool_path = repair_tool_path or settings.MP3VAL_PATH
        # pyacoustid reads the binary location from the environment
        os.environ["FPCALC"] = str(self.fpcalc_path)

    def _run_fpcalc(self, path: str) -> Fingerprint:
        duration, fingerprint = acoustid.fingerprint_file(path, force_fpcalc=True)
        if isinstance(fingerprint, bytes):
            fingerprint = fingerprint.decode("utf-8")
        return Fingerprint(duration_seconds=float(duration), fingerprint=fingerprint)

    def _repair(self, path: str) -> bool:
        """Runs the repair tool on a file. Returns True if it completed."""
        name = os.path.basename(path)
        logger.warning(f"fpcalc failed for {name}. Attempting repair with mp3val...")
        try:
            subprocess.run(
                [self.repair_tool_path, path, "-f"],
                check=True,
                capture_output=True,
                timeout=120,
            )
        except FileNotFoundError:
            logger.warning("mp3val not found. Cannot repair MP3 file. Please install mp3val.")
            return False
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Failed to repair {name}: {e}")
            return False
        logger.info(f"mp3val finished for {name}. Retrying fpcalc...")
        return True

    def fingerprint(self, path: str) -> Fingerprint:
        """Generates a fingerprint for a given audio file (blocking).

        Args:
            path: Absolute path to the audio file.

        Returns:
            The duration and fingerprint string.

        Raises:
            ToolMissing: fpcalc is not installed.
            FingerprintFailed: fpcalc could not process the file.
        """
        try:
            return self._run_fpcalc(path)
        except acoustid.NoBackendError:
            logger.error("fpcalc not found in PATH")
            raise ToolMissing("fpcalc")
        except acoustid.FingerprintGenerationError as e:
            original = e

        if Path(path).suffix.lower() in REPAIRABLE_EXTENSIONS and self._repair(path):
            try:
                return self._run_fpcalc(path)
            except acoustid.NoBackendError:
                raise ToolMissing("fpcalc")
            except acoustid.FingerprintGenerationError as e:
                logger.warning(f"Fingerprint still failing after repair: {e}")

        raise FingerprintFailed(path, str(original))

    async def fingerprint_async(self, path: str) -> Fingerprint:
        """Runs :meth:`fingerprint` in the default thread executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.fingerprint, path)
