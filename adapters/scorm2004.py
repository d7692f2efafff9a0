"""SCORM 2004 (4th Edition) runtime adapter."""

from __future__ import annotations

import json
import logging
from typing import Any

from errors import BackendError, InitializationError, SerializationError
from storage import LocalStore

from .base import LmsAdapter

logger = logging.getLogger(__name__)

# cmi.suspend_data holds at most 64000 characters in SCORM 2004.
SUSPEND_DATA_LIMIT = 64000

_UNSET_STATUSES = ("", "unknown", "not attempted")


class Scorm2004Adapter(LmsAdapter):
    """Adapter for a host-injected ``API_1484_11`` object.

    Unlike SCORM 1.2, completion and success are tracked separately, so a
    learner can finish a course and still fail it.
    """

    def __init__(self, api: Any, store: LocalStore | None = None) -> None:
        super().__init__()
        self.api = api
        self.store = store

    @property
    def kind(self) -> str:
        return "scorm2004"

    @property
    def name(self) -> str:
        return "SCORM 2004"

    def initialize(self) -> bool:
        try:
            result = self.api.Initialize("")
        except Exception as exc:
            logger.error("Initialization error", exc_info=True)
            raise InitializationError(f"Initialize raised: {exc}") from exc
        if result != "true":
            raise InitializationError(self.get_last_error())

        self._clear_local_data()

        try:
            status = self.api.GetValue("cmi.completion_status")
            if not status or status in _UNSET_STATUSES:
                self.api.SetValue("cmi.completion_status", "incomplete")
                self.api.Commit("")
        except Exception as exc:
            self._abandon_session()
            raise InitializationError(f"Could not set initial completion status: {exc}") from exc

        self.initialized = True
        logger.info("Initialized successfully")
        return True

    def _abandon_session(self) -> None:
        try:
            self.api.Terminate("")
        except Exception:
            logger.warning("Terminate failed while abandoning session", exc_info=True)

    def _clear_local_data(self) -> None:
        if self.store is None:
            return
        try:
            removed = self.store.remove_prefixed("scorm")
        except OSError:
            # Storage can be blocked inside some LMS frames.
            logger.debug("Local store unavailable", exc_info=True)
            return
        if removed:
            logger.info("Cleared %d local storage key(s)", len(removed))

    def _commit(self, action: str) -> bool:
        result = self.api.Commit("")
        if result == "true":
            return True
        logger.error("Commit failed while %s: %s", action, self.get_last_error())
        return False

    def save_progress(self, data: dict) -> bool:
        self._require_initialized()
        try:
            serialized = json.dumps(data)
            if len(serialized) > SUSPEND_DATA_LIMIT:
                logger.warning(
                    "Data exceeds 64KB limit (%d characters)", len(serialized)
                )
            self.api.SetValue("cmi.suspend_data", serialized)
            if "location" in data:
                self.api.SetValue("cmi.location", str(data["location"]))
            return self._commit("saving progress")
        except Exception:
            logger.error("Error saving progress", exc_info=True)
            return False

    def get_progress(self) -> dict | None:
        self._require_initialized()
        try:
            suspend_data = self.api.GetValue("cmi.suspend_data")
        except Exception:
            logger.error("Error loading progress", exc_info=True)
            return None
        if not suspend_data:
            return None
        try:
            return json.loads(suspend_data)
        except ValueError as exc:
            raise SerializationError(f"cmi.suspend_data is not valid JSON: {exc}") from exc

    def set_complete(self, passed: bool = True) -> bool:
        self._require_initialized()
        try:
            if self.api.GetValue("cmi.completion_status") == "completed":
                return True
            self.api.SetValue("cmi.completion_status", "completed")
            self.api.SetValue("cmi.success_status", "passed" if passed else "failed")
            return self._commit("setting completion")
        except Exception:
            logger.error("Error setting completion", exc_info=True)
            return False

    def set_score(self, score: float) -> bool:
        self._require_initialized()
        try:
            self.api.SetValue("cmi.score.scaled", str(score / 100))
            self.api.SetValue("cmi.score.raw", str(score))
            self.api.SetValue("cmi.score.min", "0")
            self.api.SetValue("cmi.score.max", "100")
            return self._commit("setting score")
        except Exception:
            logger.error("Error setting score", exc_info=True)
            return False

    def terminate(self) -> bool:
        if not self.initialized:
            return True
        try:
            # Only suspend an unfinished attempt; a completed course leaves
            # cmi.exit to the LMS default.
            if self.api.GetValue("cmi.completion_status") != "completed":
                self.api.SetValue("cmi.exit", "suspend")
            self.api.Commit("")
            result = self.api.Terminate("")
        except Exception:
            logger.error("Error terminating", exc_info=True)
            return False

        if result == "true":
            logger.info("Terminated successfully")
            self.initialized = False
            return True
        logger.error("Terminate failed: %s", self.get_last_error())
        return False

    def set_value(self, key: str, value: Any) -> bool:
        self._require_initialized()
        try:
            result = self.api.SetValue(key, str(value))
            self.api.Commit("")
        except Exception as exc:
            raise BackendError(f"SetValue({key}) raised: {exc}") from exc
        return result == "true"

    def get_value(self, key: str) -> str | None:
        self._require_initialized()
        try:
            return self.api.GetValue(key)
        except Exception as exc:
            raise BackendError(f"GetValue({key}) raised: {exc}") from exc

    def get_last_error(self) -> str:
        """Describe the host's last error as 'Error <code>: <text> - <diagnostic>'."""
        try:
            code = self.api.GetLastError()
            text = self.api.GetErrorString(code)
            diagnostic = self.api.GetDiagnostic(code)
        except Exception:
            return "Error unknown: host did not report an error"
        return f"Error {code}: {text} - {diagnostic}"
