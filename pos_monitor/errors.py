# Errors - Exception taxonomy for POS Monitor
# Per-receipt errors are isolated; only configuration errors stop a command


class MonitorError(Exception):
    """Base class for POS Monitor errors"""


class ConfigurationError(MonitorError):
    """Missing or invalid option, raised before any I/O happens"""


class DecodeError(MonitorError):
    """Malformed receipt bytes"""

    def __init__(self, message: str, offset: int = None):
        super().__init__(message)
        self.offset = offset

    def __str__(self):
        msg = super().__str__()
        if self.offset is not None:
            return f"{msg} (at byte {self.offset})"
        return msg


class OCRError(MonitorError):
    """Recognition failed.

    ``partial`` holds the translation results that were already complete
    (text decoded before the failure and the image that could not be
    recognized) so the caller can still persist them.
    """

    def __init__(self, message: str, partial=None):
        super().__init__(message)
        self.partial = list(partial or [])
