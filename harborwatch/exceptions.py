"""Custom exceptions for HarborWatch collection sources."""

from typing import Optional


class HarborWatchError(Exception):
    """Base class for all HarborWatch errors."""
    pass


class SourceUnavailableError(HarborWatchError):
    """Raised when a metrics source cannot be reached or reports an error.

    Covers the Docker daemon being unreachable, the Docker API answering
    with a non-success status, a per-container call timing out, and the
    OS metrics provider failing to read a counter.
    """

    def __init__(self, source: str, message: str):
        """Initialize with the failing source name.

        Args:
            source: Short name of the source ("docker", "host", ...)
            message: Human-readable failure description
        """
        self.source = source
        super().__init__(f"{source}: {message}")


class ContainerNotFoundError(HarborWatchError):
    """Raised when a container vanished between enumeration and inspection."""

    def __init__(self, container_id: str):
        self.container_id = container_id
        super().__init__(f"Container {container_id[:12]} not found")


class DecodeFailureError(HarborWatchError):
    """Raised when a source returned a payload that could not be decoded."""

    def __init__(self, source: str, message: str, payload: Optional[object] = None):
        self.source = source
        self.payload = payload
        super().__init__(f"{source}: {message}")


class ConfigLoadError(HarborWatchError):
    """Raised when optional configuration is missing or invalid.

    Never fatal: callers log it and fall back to defaults.
    """

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")
