"""
Error taxonomy for conversion requests.

Every failure is local to the request that raised it and is rendered by the
app as a plain-text response carrying ``status_code`` and the message.
"""

from typing import Optional


class ConversionError(Exception):
    """Base class for errors surfaced to the HTTP caller."""

    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.message = message


class InvalidRequest(ConversionError):
    """Malformed form body, or neither ``url`` nor ``html`` supplied."""


class ResourceError(ConversionError):
    """Temporary file could not be created, written or read."""


class ExecutionFailed(ConversionError):
    """The rendering binary could not start, exited non-zero, or timed out."""

    def __init__(self, message: str, stderr: str = "", cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.stderr = stderr


class RequestCancelled(ConversionError):
    """The client went away while the binary was still running."""
