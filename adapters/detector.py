"""Auto-detect the tracking environment from the window/frame hierarchy."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs

logger = logging.getLogger(__name__)

# Upper bound on parent hops, against frame graphs that never reach a top.
FIND_ATTEMPT_LIMIT = 500

ENVIRONMENT_KINDS = ("scorm2004", "scorm12", "xapi", "local")

_LAUNCH_PARAMS = ("endpoint", "auth", "actor", "activity_id", "registration")


@dataclass(frozen=True)
class Environment:
    """The backend found for this page session."""
    kind: str     # one of ENVIRONMENT_KINDS
    handle: Any   # host API object, xAPI config dict, or None for local


def _probe(win: Any, name: str) -> Any:
    """Read *name* from *win*, treating any access error as 'absent'."""
    try:
        return getattr(win, name, None)
    except Exception:
        logger.debug("Cannot read %s on %r (cross-origin?)", name, win, exc_info=True)
        return None


class EnvironmentDetector:
    """Find a SCORM host API, an xAPI launch, or settle for local mode.

    Search order:
      1. ``API_1484_11`` / ``API`` walking up from the window itself
      2. the same walk starting from ``window.parent``
      3. the same walk starting from ``window.top.opener``
      4. xAPI launch parameters in the query string, then ``xAPIConfig``
      5. local
    """

    def __init__(self, attempt_limit: int = FIND_ATTEMPT_LIMIT) -> None:
        self.attempt_limit = attempt_limit
        self.hops = 0  # parent hops taken by the last find_api() call

    def find_api(self, win: Any) -> Environment | None:
        """Walk up parent frames from *win* looking for a SCORM API object."""
        self.hops = 0
        while win is not None:
            api_2004 = _probe(win, "API_1484_11")
            if api_2004 is not None:
                return Environment("scorm2004", api_2004)
            api_12 = _probe(win, "API")
            if api_12 is not None:
                return Environment("scorm12", api_12)

            parent = _probe(win, "parent")
            if parent is None or parent is win or self.hops >= self.attempt_limit:
                return None
            self.hops += 1
            win = parent
        return None

    def detect(self, window: Any) -> Environment:
        found = self.find_api(window)

        if found is None:
            parent = _probe(window, "parent")
            if parent is not None and parent is not window:
                found = self.find_api(parent)

        if found is None:
            top = _probe(window, "top")
            opener = _probe(top, "opener") if top is not None else None
            if opener is not None:
                found = self.find_api(opener)

        if found is not None:
            logger.info("Detected %s host API", found.kind)
            return found

        xapi_config = self.find_xapi_config(window)
        if xapi_config is not None:
            logger.info("Detected xAPI launch configuration")
            return Environment("xapi", xapi_config)

        logger.info("No LMS detected, using local mode")
        return Environment("local", None)

    def find_xapi_config(self, window: Any) -> dict | None:
        """Read xAPI launch data from the query string or ``xAPIConfig``."""
        search = _probe(window, "location_search") or ""
        params = parse_qs(search.lstrip("?"))
        launch = {key: params[key][0] for key in _LAUNCH_PARAMS if key in params}

        if launch.get("endpoint"):
            return {
                "endpoint": launch["endpoint"],
                "auth": launch.get("auth"),
                "actor": self._parse_actor(launch.get("actor")),
                "activityId": launch.get("activity_id"),
                "registration": launch.get("registration"),
            }

        global_config = _probe(window, "xAPIConfig")
        if isinstance(global_config, Mapping) and global_config:
            return dict(global_config)
        if global_config:
            logger.warning("Ignoring xAPIConfig that is not a mapping: %s", type(global_config).__name__)
        return None

    @staticmethod
    def _parse_actor(raw: str | None) -> dict | None:
        # parse_qs has already percent-decoded the value.
        if not raw:
            return None
        try:
            actor = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed actor launch parameter: %r", raw)
            return None
        return actor if isinstance(actor, dict) else None
