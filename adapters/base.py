"""Abstract base class for LMS/LRS backend adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from errors import NotInitializedError

# Methods an adapter may or may not implement.  The wrapper checks for them
# with ``supports()`` before delegating.
OPTIONAL_CAPABILITIES = ("set_value", "get_value", "send_statement", "get_actor")


class LmsAdapter(ABC):
    """Adapter interface for one tracking backend.

    Each adapter knows how to:
    - Open and close a session with its backend
    - Persist an opaque progress blob and read it back
    - Report completion and a 0-100 score

    Optional extras (``set_value``, ``get_value``, ``send_statement``,
    ``get_actor``) are only defined on adapters whose backend has them.
    """

    def __init__(self) -> None:
        self.initialized = False

    @property
    @abstractmethod
    def kind(self) -> str:
        """Environment kind this adapter serves, e.g. 'scorm2004'."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name, e.g. 'SCORM 2004'."""

    @abstractmethod
    def initialize(self, *args: Any) -> bool:
        """Open the session.  Raises ``InitializationError`` on refusal."""

    @abstractmethod
    def save_progress(self, data: dict) -> bool:
        """Persist *data*.  Returns False if the backend did not accept it."""

    @abstractmethod
    def get_progress(self) -> dict | None:
        """Return the last saved blob, or None/{} when nothing was saved."""

    @abstractmethod
    def set_complete(self, passed: bool = True) -> bool:
        """Mark the course complete, passed or failed."""

    @abstractmethod
    def set_score(self, score: float) -> bool:
        """Record a score on the 0-100 scale."""

    @abstractmethod
    def terminate(self) -> bool:
        """Close the session.  Terminating an idle adapter is a no-op."""

    def supports(self, capability: str) -> bool:
        return callable(getattr(self, capability, None))

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise NotInitializedError(f"{self.name} API not initialized")
