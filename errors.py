"""Exception types raised by the wrapper and its adapters."""

from __future__ import annotations


class WrapperError(Exception):
    """Base class for every error raised by the wrapper."""


class InitializationError(WrapperError):
    """The host API or LRS refused to start a session."""


class NotInitializedError(WrapperError):
    """An operation was called before ``initialize()``."""


class ValidationError(WrapperError, ValueError):
    """A caller-supplied value is out of range or of the wrong type."""


class SerializationError(WrapperError):
    """Stored progress data could not be decoded as JSON."""


class BackendError(WrapperError):
    """A host verb returned a failure string, or the LRS answered non-2xx."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class CollisionError(BackendError):
    """The LRS kept rejecting statement IDs after every retry."""
