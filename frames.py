"""In-process model of a browser window/frame hierarchy.

The detector only ever touches a window through plain attribute access
(``parent``, ``top``, ``opener``, ``API``, ``API_1484_11``, ``xAPIConfig``,
``location_search``), so any object with those attributes works.  This
module provides a ready-made one for the console and the tests.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable
from urllib.parse import urlparse


class CrossOriginError(PermissionError):
    """Raised when a frame on another origin is read."""


class FrameWindow:
    """A window with parent/top/opener links and event listeners.

    A top-level window is its own parent, like in a browser.  Frames
    created with ``cross_origin=True`` raise ``CrossOriginError`` when any
    of their host-visible attributes are read from outside; their
    ``parent`` and ``top`` links stay readable, as a WindowProxy's do.
    """

    _GUARDED = frozenset({"API", "API_1484_11", "xAPIConfig", "opener", "location_search"})

    def __init__(
        self,
        parent: "FrameWindow | None" = None,
        *,
        api: Any = None,
        api_1484_11: Any = None,
        location_search: str = "",
        xapi_config: dict | None = None,
        opener: "FrameWindow | None" = None,
        cross_origin: bool = False,
    ) -> None:
        self._parent = parent
        self._cross_origin = cross_origin
        self.__dict__["API"] = api
        self.__dict__["API_1484_11"] = api_1484_11
        self.__dict__["location_search"] = location_search
        self.__dict__["xAPIConfig"] = xapi_config
        self.__dict__["opener"] = opener
        self.visibility_state = "visible"
        self._listeners: dict[str, list[Callable[[], None]]] = defaultdict(list)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "FrameWindow":
        """Build a top-level window whose query string comes from *url*."""
        return cls(location_search=urlparse(url).query, **kwargs)

    def __getattribute__(self, name: str) -> Any:
        if name in FrameWindow._GUARDED and object.__getattribute__(self, "_cross_origin"):
            raise CrossOriginError(f"Blocked a frame from accessing '{name}' on another origin")
        return object.__getattribute__(self, name)

    @property
    def parent(self) -> "FrameWindow":
        return self._parent if self._parent is not None else self

    @property
    def top(self) -> "FrameWindow":
        win = self
        while win._parent is not None:
            win = win._parent
        return win

    def chain(self, depth: int) -> "FrameWindow":
        """Nest *depth* child frames below this window and return the innermost."""
        win = self
        for _ in range(depth):
            win = FrameWindow(parent=win)
        return win

    # ── Events ───────────────────────────────────────────────────────────

    def add_event_listener(self, event: str, callback: Callable[[], None]) -> None:
        self._listeners[event].append(callback)

    def dispatch_event(self, event: str) -> None:
        for callback in list(self._listeners.get(event, [])):
            callback()

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def hide(self) -> None:
        """Switch the document to hidden and fire ``visibilitychange``."""
        self.visibility_state = "hidden"
        self.dispatch_event("visibilitychange")
