"""Exception types raised by the DJ engine and its collaborators."""

from typing import Optional


class DJError(Exception):
    """Base class for every error the DJ surfaces to its caller."""


class CatalogError(DJError):
    """A call to the remote catalog/playback service failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NoDeviceError(DJError):
    """No playback device could be found after the configured retries."""


class ScheduleCompileError(DJError):
    """The intent compiler is unavailable or failed to answer."""
