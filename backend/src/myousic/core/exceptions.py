"""Exception hierarchy for ingestion and identification."""


class MyousicError(Exception):
    """Base class for all application errors."""


class ConfigurationError(MyousicError):
    """A required credential or setting is missing. Never retried."""


class ScanAlreadyInProgress(MyousicError):
    """A scan was requested while another one is running."""

    def __init__(self, message: str = "Scan already in progress"):
        super().__init__(message)


class IdentificationError(MyousicError):
    """Base class for failures that abort an identification."""


class ToolMissing(IdentificationError):
    """An external command-line tool is not installed (deployment error)."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"Required tool '{tool}' is not installed on the server.")


class FingerprintFailed(IdentificationError):
    """The fingerprinting tool could not process the file."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Fingerprinting failed for {path}: {reason}")


class NoMatchFound(IdentificationError):
    """The load-bearing lookup returned no usable match."""

    def __init__(self, message: str = "No matches found for this song."):
        super().__init__(message)


class IdentificationFailed(IdentificationError):
    """An upstream service failed while its result was required."""
