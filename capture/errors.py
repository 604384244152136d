"""Exceptions raised by the capture core."""


class CaptureError(Exception):
    """Base class for capture failures."""


class RecognitionUnavailable(CaptureError):
    """The speech recognition capability cannot be used on this system."""


class PrivilegedRequestRejected(CaptureError):
    """The platform refused a privileged start/stop request from a context."""
