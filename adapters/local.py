"""Local storage adapter, used when no LMS or LRS is present."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from errors import SerializationError, WrapperError
from storage import LocalStore

from .base import LmsAdapter

logger = logging.getLogger(__name__)

STORAGE_KEY = "scorm_local_data"


class LocalStorageAdapter(LmsAdapter):
    """Keeps progress in a ``LocalStore`` under a single fixed key.

    Completion and score are folded into the progress blob itself
    (``_completed``, ``_passed``, ``_completedAt``, ``_score``), so a course
    developed locally can see what it would have reported to an LMS.
    """

    def __init__(self, store: LocalStore | None = None) -> None:
        super().__init__()
        self.store = store if store is not None else LocalStore()

    @property
    def kind(self) -> str:
        return "local"

    @property
    def name(self) -> str:
        return "Local storage"

    def initialize(self) -> bool:
        logger.info("Running in local development mode")
        self.initialized = True
        return True

    def save_progress(self, data: dict) -> bool:
        self._require_initialized()
        try:
            self.store.set_item(STORAGE_KEY, json.dumps(data))
        except (TypeError, ValueError, OSError):
            logger.error("Error saving progress", exc_info=True)
            return False
        logger.debug("Progress saved: %r", data)
        return True

    def get_progress(self) -> dict | None:
        self._require_initialized()
        serialized = self.store.get_item(STORAGE_KEY)
        if not serialized:
            return None
        try:
            return json.loads(serialized)
        except ValueError as exc:
            raise SerializationError(f"Stored progress is not valid JSON: {exc}") from exc

    def set_complete(self, passed: bool = True) -> bool:
        self._require_initialized()
        try:
            data = self.get_progress() or {}
        except WrapperError:
            logger.error("Cannot mark complete over unreadable progress", exc_info=True)
            return False
        data["_completed"] = True
        data["_passed"] = bool(passed)
        data["_completedAt"] = datetime.now(timezone.utc).isoformat()
        ok = self.save_progress(data)
        if ok:
            logger.info("Course marked as complete")
        return ok

    def set_score(self, score: float) -> bool:
        self._require_initialized()
        try:
            data = self.get_progress() or {}
        except WrapperError:
            logger.error("Cannot set score over unreadable progress", exc_info=True)
            return False
        data["_score"] = score
        ok = self.save_progress(data)
        if ok:
            logger.info("Score set: %s", score)
        return ok

    def terminate(self) -> bool:
        logger.info("Terminating local session")
        self.initialized = False
        return True

    def set_value(self, key: str, value: str) -> bool:
        self._require_initialized()
        try:
            self.store.set_item(f"scorm_{key}", value)
        except OSError:
            logger.error("Error setting value %s", key, exc_info=True)
            return False
        return True

    def get_value(self, key: str) -> str | None:
        self._require_initialized()
        return self.store.get_item(f"scorm_{key}")
