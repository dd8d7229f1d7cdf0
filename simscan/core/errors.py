# core/errors.py


class ScanError(Exception):
    """Base class for every error raised by the scanning core"""


class InvalidPath(ScanError, ValueError):
    """The requested root is not a readable directory"""

    def __init__(self, path, reason: str = "not a readable directory"):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Invalid directory path: {self.path} ({reason})")


class InvalidRequest(ScanError, ValueError):
    """A scan request field is out of range or unknown"""


class DecodeError(ScanError):
    """An image file could not be decoded"""

    def __init__(self, path, cause: Exception = None):
        self.path = str(path)
        self.cause = cause
        message = f"Unable to decode {self.path}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class CacheUnavailable(ScanError):
    """The cache actor is gone; callers treat this as a miss"""


class WorkerLost(ScanError):
    """A coordinator or worker thread is no longer running"""


class ChannelClosed(ScanError):
    """A message could not be delivered between coordinator and workers"""
