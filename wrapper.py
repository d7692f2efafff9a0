"""Unified tracking API over SCORM 2004, SCORM 1.2, xAPI and local storage.

One ``ScormWrapper`` is created per page session and handed to the code
that needs it::

    wrapper = ScormWrapper(window, store)
    wrapper.initialize()
    wrapper.save_progress({"page": 3})
    wrapper.set_score(85)
    wrapper.set_complete(passed=True)
    wrapper.terminate()
"""

from __future__ import annotations

import logging
import math
import numbers
from typing import Any

import requests

from adapters import EnvironmentDetector, LmsAdapter, get_adapter
from adapters.detector import Environment
from config import DEFAULTS
from errors import BackendError, NotInitializedError, ValidationError
from frames import FrameWindow
from storage import LocalStore

logger = logging.getLogger(__name__)

# Browser unload timing is unreliable, so every one of these ends the session.
UNLOAD_EVENTS = ("pagehide", "beforeunload", "unload")


class ScormWrapper:
    """Owns exactly one adapter for the lifetime of a page session."""

    def __init__(
        self,
        window: Any = None,
        store: LocalStore | None = None,
        config: dict | None = None,
        detector: EnvironmentDetector | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config or DEFAULTS
        self.window = window if window is not None else FrameWindow()
        if store is None:
            path = config.get("storage_path") if config else None
            store = LocalStore.open(path) if path else LocalStore()
        self.store = store
        self.detector = detector or EnvironmentDetector()
        self.session = session
        self.adapter: LmsAdapter | None = None
        self.environment: Environment | None = None
        self.initialized = False
        self._listeners_registered = False

    # ── Lifecycle ────────────────────────────────────────────────────────

    def initialize(self) -> bool:
        """Detect the environment, build its adapter and open the session."""
        if self.initialized:
            logger.warning("Already initialized")
            return True

        self.environment = self.detector.detect(self.window)
        self.adapter = self._build_adapter(self.environment)

        if self.environment.kind == "xapi":
            self.adapter.initialize(self.environment.handle)
        else:
            self.adapter.initialize()

        self.initialized = True
        self._setup_auto_terminate()
        return True

    def _build_adapter(self, environment: Environment) -> LmsAdapter:
        adapter_cls = get_adapter(environment.kind)
        if environment.kind in ("scorm2004", "scorm12"):
            return adapter_cls(environment.handle, store=self.store)
        if environment.kind == "xapi":
            return adapter_cls(
                store=self.store,
                session=self.session,
                timeout=self.config.get("http_timeout", DEFAULTS["http_timeout"]),
                default_actor=self.config.get("default_actor"),
                default_activity_id=self.config.get("default_activity_id"),
            )
        return adapter_cls(store=self.store)

    def terminate(self) -> bool:
        if not self.initialized:
            return True
        try:
            result = self.adapter.terminate()
        except BackendError:
            logger.error("Error terminating session", exc_info=True)
            result = False
        self.initialized = False
        return result

    def _setup_auto_terminate(self) -> None:
        if self._listeners_registered:
            return
        add_listener = getattr(self.window, "add_event_listener", None)
        if add_listener is None:
            logger.debug("Window has no event listeners; auto-terminate disabled")
            return
        for event in UNLOAD_EVENTS:
            add_listener(event, self._on_unload)
        # Mobile browsers often skip unload and only hide the page.
        add_listener("visibilitychange", self._on_visibility_change)
        self._listeners_registered = True

    def _on_unload(self) -> None:
        if self.initialized:
            self.terminate()

    def _on_visibility_change(self) -> None:
        if getattr(self.window, "visibility_state", None) == "hidden" and self.initialized:
            self.terminate()

    # ── Core tracking ────────────────────────────────────────────────────

    def save_progress(self, data: dict) -> bool:
        self._ensure_initialized()
        try:
            return self.adapter.save_progress(data)
        except BackendError:
            logger.error("Error saving progress", exc_info=True)
            return False

    def get_progress(self) -> dict | None:
        self._ensure_initialized()
        try:
            return self.adapter.get_progress()
        except BackendError:
            logger.error("Error loading progress", exc_info=True)
            return None

    def set_complete(self, passed: bool = True) -> bool:
        self._ensure_initialized()
        try:
            return self.adapter.set_complete(passed)
        except BackendError:
            logger.error("Error setting completion", exc_info=True)
            return False

    def set_score(self, score: float) -> bool:
        """Record a score between 0 and 100 inclusive."""
        self._ensure_initialized()
        if (
            isinstance(score, bool)
            or not isinstance(score, numbers.Real)
            or math.isnan(score)
            or not 0 <= score <= 100
        ):
            raise ValidationError("Score must be a number between 0 and 100")
        if not isinstance(score, int):
            # Fraction and other Real types do not serialize to JSON or CMI.
            score = float(score)
        try:
            return self.adapter.set_score(score)
        except BackendError:
            logger.error("Error setting score", exc_info=True)
            return False

    # ── Optional capabilities ────────────────────────────────────────────

    def set_value(self, key: str, value: Any) -> bool:
        self._ensure_initialized()
        if self.adapter.supports("set_value"):
            return self.adapter.set_value(key, value)
        logger.warning("set_value not supported by %s adapter", self.adapter.name)
        return False

    def get_value(self, key: str) -> str | None:
        self._ensure_initialized()
        if self.adapter.supports("get_value"):
            return self.adapter.get_value(key)
        logger.warning("get_value not supported by %s adapter", self.adapter.name)
        return None

    def send_statement(self, statement: dict) -> bool:
        self._ensure_initialized()
        if not self.adapter.supports("send_statement"):
            logger.warning("send_statement only supported in xAPI environments")
            return False
        try:
            return self.adapter.send_statement(statement)
        except BackendError:
            logger.error("Error sending statement", exc_info=True)
            return False

    def get_actor(self) -> dict | None:
        self._ensure_initialized()
        if self.adapter.supports("get_actor"):
            return self.adapter.get_actor()
        return None

    # ── State ────────────────────────────────────────────────────────────

    def get_environment_type(self) -> str:
        return self.environment.kind if self.environment else "unknown"

    def is_initialized(self) -> bool:
        return self.initialized

    def _ensure_initialized(self) -> None:
        if not self.initialized:
            raise NotInitializedError("Wrapper not initialized. Call initialize() first.")
