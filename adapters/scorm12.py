"""SCORM 1.2 runtime adapter."""

from __future__ import annotations

import json
import logging
from typing import Any

from errors import BackendError, InitializationError, SerializationError
from storage import LocalStore

from .base import LmsAdapter

logger = logging.getLogger(__name__)

# cmi.suspend_data is limited to 4096 characters in SCORM 1.2.
SUSPEND_DATA_LIMIT = 4096

_UNSET_STATUSES = ("", "not attempted")


class Scorm12Adapter(LmsAdapter):
    """Adapter for a host-injected SCORM 1.2 ``API`` object.

    Every verb is prefixed with ``LMS`` and signals success by returning
    the string ``"true"``.  Completion and success share one field,
    ``cmi.core.lesson_status``.
    """

    def __init__(self, api: Any, store: LocalStore | None = None) -> None:
        super().__init__()
        self.api = api
        self.store = store

    @property
    def kind(self) -> str:
        return "scorm12"

    @property
    def name(self) -> str:
        return "SCORM 1.2"

    def initialize(self) -> bool:
        try:
            result = self.api.LMSInitialize("")
        except Exception as exc:
            logger.error("Initialization error", exc_info=True)
            raise InitializationError(f"LMSInitialize raised: {exc}") from exc
        if result != "true":
            raise InitializationError("LMSInitialize failed")

        self._clear_local_data()

        try:
            status = self.api.LMSGetValue("cmi.core.lesson_status")
            if not status or status in _UNSET_STATUSES:
                self.api.LMSSetValue("cmi.core.lesson_status", "incomplete")
                self.api.LMSCommit("")
        except Exception as exc:
            self._abandon_session()
            raise InitializationError(f"Could not set initial lesson status: {exc}") from exc

        self.initialized = True
        logger.info("Initialized successfully")
        return True

    def _abandon_session(self) -> None:
        """Close a host session that opened but could not be set up."""
        try:
            self.api.LMSFinish("")
        except Exception:
            logger.warning("LMSFinish failed while abandoning session", exc_info=True)

    def _clear_local_data(self) -> None:
        """Drop leftovers from local testing so they cannot shadow LMS state."""
        if self.store is None:
            return
        try:
            removed = self.store.remove_prefixed("scorm")
        except OSError:
            logger.debug("Local store unavailable", exc_info=True)
            return
        if removed:
            logger.info("Cleared %d local storage key(s)", len(removed))

    def save_progress(self, data: dict) -> bool:
        self._require_initialized()
        try:
            serialized = json.dumps(data)
            if len(serialized) > SUSPEND_DATA_LIMIT:
                logger.warning(
                    "Data exceeds 4KB limit (%d characters)", len(serialized)
                )
            self.api.LMSSetValue("cmi.suspend_data", serialized)
            if "location" in data:
                self.api.LMSSetValue("cmi.core.lesson_location", str(data["location"]))
            result = self.api.LMSCommit("")
        except Exception:
            logger.error("Error saving progress", exc_info=True)
            return False

        if result == "true":
            logger.info("Progress saved")
            return True
        logger.error("LMSCommit returned %r while saving progress", result)
        return False

    def get_progress(self) -> dict | None:
        self._require_initialized()
        try:
            suspend_data = self.api.LMSGetValue("cmi.suspend_data")
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
        status = "passed" if passed else "failed"
        try:
            self.api.LMSSetValue("cmi.core.lesson_status", status)
            result = self.api.LMSCommit("")
        except Exception:
            logger.error("Error setting completion", exc_info=True)
            return False

        if result == "true":
            logger.info("Course marked as %s", status)
            return True
        return False

    def set_score(self, score: float) -> bool:
        self._require_initialized()
        try:
            self.api.LMSSetValue("cmi.core.score.raw", str(score))
            self.api.LMSSetValue("cmi.core.score.min", "0")
            self.api.LMSSetValue("cmi.core.score.max", "100")
            result = self.api.LMSCommit("")
        except Exception:
            logger.error("Error setting score", exc_info=True)
            return False

        if result == "true":
            logger.info("Score set: %s", score)
            return True
        return False

    def terminate(self) -> bool:
        if not self.initialized:
            return True
        try:
            result = self.api.LMSFinish("")
        except Exception:
            logger.error("Error terminating", exc_info=True)
            return False

        if result == "true":
            logger.info("Terminated successfully")
            self.initialized = False
            return True
        logger.error("LMSFinish returned %r", result)
        return False

    def set_value(self, key: str, value: Any) -> bool:
        self._require_initialized()
        try:
            result = self.api.LMSSetValue(key, str(value))
            self.api.LMSCommit("")
        except Exception as exc:
            raise BackendError(f"LMSSetValue({key}) raised: {exc}") from exc
        return result == "true"

    def get_value(self, key: str) -> str | None:
        self._require_initialized()
        try:
            return self.api.LMSGetValue(key)
        except Exception as exc:
            raise BackendError(f"LMSGetValue({key}) raised: {exc}") from exc
