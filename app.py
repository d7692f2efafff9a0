"""SCORM/xAPI Bridge: Textual session console.

Builds a simulated launch window from the configured launch URL (or the
global ``xapi`` block), runs a ``ScormWrapper`` session against it and
lets you drive every tracking call by hand.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Footer, Header, Input, Label, Log, Static

from config import load_config, save_config
from errors import WrapperError
from frames import FrameWindow
from storage import LocalStore
from wrapper import ScormWrapper

logger = logging.getLogger(__name__)

EXPERIENCED_VERB = "http://adlnet.gov/expapi/verbs/experienced"

ENV_ICONS = {
    "scorm2004": "\U0001f3eb",
    "scorm12": "\U0001f4da",
    "xapi": "\U0001f310",
    "local": "\U0001f4bb",
    "unknown": "❓",
}


def build_window(config: dict) -> FrameWindow:
    """Top-level window for the configured launch URL and xAPI block."""
    return FrameWindow.from_url(
        config.get("launch_url", ""),
        xapi_config=config.get("xapi") or None,
    )


# ── Value Dialog ─────────────────────────────────────────────────────────────


class ValueDialog(ModalScreen[str | None]):
    """Ask for a single value (progress JSON, score, statement text)."""

    DEFAULT_CSS = """
    ValueDialog {
        align: center middle;
    }
    #value-box {
        width: 70;
        height: auto;
        border: thick $accent;
        background: $surface;
        padding: 1 2;
    }
    #value-box Label {
        width: 100%;
        margin-bottom: 1;
    }
    #value-buttons {
        width: 100%;
        height: auto;
        align: center middle;
        margin-top: 1;
    }
    #value-buttons Button {
        margin: 0 1;
    }
    """

    def __init__(self, prompt: str, value: str = "") -> None:
        super().__init__()
        self.prompt = prompt
        self.initial = value

    def compose(self) -> ComposeResult:
        with Vertical(id="value-box"):
            yield Label(self.prompt)
            yield Input(value=self.initial, id="value-input")
            with Horizontal(id="value-buttons"):
                yield Button("OK", id="value-ok", variant="primary")
                yield Button("Cancel", id="value-cancel")

    @on(Button.Pressed, "#value-ok")
    @on(Input.Submitted, "#value-input")
    def accept(self) -> None:
        self.dismiss(self.query_one("#value-input", Input).value)

    @on(Button.Pressed, "#value-cancel")
    def cancel(self) -> None:
        self.dismiss(None)

    def key_escape(self) -> None:
        self.dismiss(None)


# ── Settings Screen ──────────────────────────────────────────────────────────


class SettingsScreen(ModalScreen[bool]):
    """Edit launch and storage configuration."""

    DEFAULT_CSS = """
    SettingsScreen {
        align: center middle;
    }
    #settings-box {
        width: 80;
        height: auto;
        max-height: 40;
        border: thick $accent;
        background: $surface;
        padding: 1 2;
    }
    .setting-row {
        width: 100%;
        height: auto;
        margin-bottom: 1;
    }
    .setting-row Label {
        width: 100%;
    }
    .setting-row Input {
        width: 100%;
    }
    #settings-buttons {
        width: 100%;
        height: auto;
        align: center middle;
        margin-top: 1;
    }
    #settings-buttons Button {
        margin: 0 1;
    }
    """

    def __init__(self, config: dict) -> None:
        super().__init__()
        self.config = config

    def compose(self) -> ComposeResult:
        xapi = self.config.get("xapi") or {}
        with Vertical(id="settings-box"):
            yield Label("[bold]Settings[/bold]")

            with Vertical(classes="setting-row"):
                yield Label("Launch URL (xAPI query parameters):")
                yield Input(value=self.config["launch_url"], id="input-launch-url")

            with Vertical(classes="setting-row"):
                yield Label("Local storage file:")
                yield Input(value=self.config["storage_path"], id="input-storage")

            with Vertical(classes="setting-row"):
                yield Label("Global xAPI endpoint:")
                yield Input(value=xapi.get("endpoint", ""), id="input-endpoint")

            with Vertical(classes="setting-row"):
                yield Label("Global xAPI Authorization header:")
                yield Input(value=xapi.get("auth", ""), id="input-auth", password=True)

            with Horizontal(id="settings-buttons"):
                yield Button("Save", id="save-settings", variant="primary")
                yield Button("Cancel", id="cancel-settings")

    @on(Button.Pressed, "#save-settings")
    def save(self) -> None:
        self.config["launch_url"] = self.query_one("#input-launch-url", Input).value.strip()
        self.config["storage_path"] = self.query_one("#input-storage", Input).value.strip()

        endpoint = self.query_one("#input-endpoint", Input).value.strip()
        auth = self.query_one("#input-auth", Input).value.strip()
        if endpoint:
            xapi = dict(self.config.get("xapi") or {})
            xapi.update({"endpoint": endpoint, "auth": auth})
            self.config["xapi"] = xapi
        else:
            self.config["xapi"] = {}

        save_config(self.config)
        self.dismiss(True)

    @on(Button.Pressed, "#cancel-settings")
    def cancel(self) -> None:
        self.dismiss(False)


# ── Main App ─────────────────────────────────────────────────────────────────


class SessionConsole(App):
    """SCORM/xAPI Bridge session console."""

    TITLE = "SCORM/xAPI Bridge"

    CSS = """
    #session-log {
        width: 100%;
        height: 1fr;
    }
    #toolbar {
        width: 100%;
        height: 3;
        dock: bottom;
        align: center middle;
        background: $primary-background;
        padding: 0 1;
    }
    #toolbar Button {
        margin: 0 1;
    }
    #status-bar {
        width: 100%;
        height: 1;
        dock: bottom;
        background: $accent;
        color: $text;
        padding: 0 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+n", "start", "Initialize"),
        Binding("ctrl+t", "terminate", "Terminate"),
        Binding("ctrl+y", "hide_page", "Hide page"),
        Binding("ctrl+s", "settings", "Settings"),
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, config: dict | None = None) -> None:
        super().__init__()
        self.config = config or load_config()
        self.wrapper: ScormWrapper | None = None
        # Wrapper calls and the file-backed store are not thread-safe.
        self._session_lock = threading.Lock()

    def compose(self) -> ComposeResult:
        yield Header()
        yield Log(id="session-log", highlight=True)
        with Horizontal(id="toolbar"):
            yield Button("Initialize", id="btn-init", variant="primary")
            yield Button("Save", id="btn-save")
            yield Button("Load", id="btn-load")
            yield Button("Score", id="btn-score")
            yield Button("Complete", id="btn-complete", variant="success")
            yield Button("Fail", id="btn-fail", variant="error")
            yield Button("Statement", id="btn-statement")
            yield Button("Terminate", id="btn-terminate", variant="warning")
            yield Button("Settings", id="btn-settings")
        yield Static("Not initialized", id="status-bar")
        yield Footer()

    def _set_status(self, text: str) -> None:
        self.query_one("#status-bar", Static).update(text)

    def _log(self, text: str) -> None:
        self.query_one("#session-log", Log).write_line(text)

    def _report(self, text: str) -> None:
        """Thread-safe log line from a worker."""
        self.call_from_thread(self._log, text)

    def _refresh_status(self) -> None:
        if self.wrapper is None:
            self._set_status("Not initialized")
            return
        kind = self.wrapper.get_environment_type()
        state = "active" if self.wrapper.is_initialized() else "terminated"
        self._set_status(f"{ENV_ICONS.get(kind, '')} {kind}: session {state}")

    # ── Session ──────────────────────────────────────────────────────────

    def action_start(self) -> None:
        self.start_session()

    @work(thread=True, group="session")
    def start_session(self) -> None:
        with self._session_lock:
            self._start_session()

    def _start_session(self) -> None:
        if self.wrapper is not None and self.wrapper.is_initialized():
            self._report("Session already active")
            return
        store = LocalStore.open(self.config["storage_path"])
        self.wrapper = ScormWrapper(build_window(self.config), store, self.config)
        try:
            self.wrapper.initialize()
            self._report(f"Initialized in {self.wrapper.get_environment_type()} mode")
            actor = self.wrapper.get_actor()
            if actor:
                self._report(f"Actor: {json.dumps(actor)}")
            self._report(f"Saved progress: {json.dumps(self.wrapper.get_progress())}")
        except WrapperError as exc:
            self._report(f"{type(exc).__name__}: {exc}")
        self.call_from_thread(self._refresh_status)

    @work(thread=True, group="session")
    def run_call(self, label: str, method: str, *args) -> None:
        if self.wrapper is None:
            self._report("Initialize a session first")
            return
        try:
            result = self.call_wrapper(method, *args)
        except WrapperError as exc:
            self._report(f"{label}: {type(exc).__name__}: {exc}")
        else:
            self._report(f"{label}: {json.dumps(result)}")
        self.call_from_thread(self._refresh_status)

    def call_wrapper(self, method: str, *args):
        """Run one wrapper method while holding the session lock."""
        with self._session_lock:
            return getattr(self.wrapper, method)(*args)

    # ── Buttons ──────────────────────────────────────────────────────────

    @on(Button.Pressed, "#btn-init")
    def on_init(self) -> None:
        self.start_session()

    @on(Button.Pressed, "#btn-save")
    def on_save(self) -> None:
        def on_result(raw: str | None) -> None:
            if raw is None:
                return
            try:
                data = json.loads(raw)
            except ValueError as exc:
                self._log(f"Not valid JSON: {exc}")
                return
            self.run_call("Save", "save_progress", data)

        self.push_screen(ValueDialog("Progress data (JSON):", '{"page": 1}'), on_result)

    @on(Button.Pressed, "#btn-load")
    def on_load(self) -> None:
        self.run_call("Load", "get_progress")

    @on(Button.Pressed, "#btn-score")
    def on_score(self) -> None:
        def on_result(raw: str | None) -> None:
            if raw is None:
                return
            try:
                score = float(raw)
            except ValueError:
                self._log(f"Not a number: {raw!r}")
                return
            self.run_call("Score", "set_score", score)

        self.push_screen(ValueDialog("Score (0-100):", "100"), on_result)

    @on(Button.Pressed, "#btn-complete")
    def on_complete(self) -> None:
        self.run_call("Complete", "set_complete", True)

    @on(Button.Pressed, "#btn-fail")
    def on_fail(self) -> None:
        self.run_call("Complete (failed)", "set_complete", False)

    @on(Button.Pressed, "#btn-statement")
    def on_statement(self) -> None:
        def on_result(text: str | None) -> None:
            if not text:
                return
            activity = self.config.get("default_activity_id", "")
            statement = {
                "verb": {"id": EXPERIENCED_VERB, "display": {"en-US": "experienced"}},
                "object": {
                    "id": activity,
                    "definition": {"name": {"en-US": text}},
                },
            }
            self.run_call("Statement", "send_statement", statement)

        self.push_screen(ValueDialog("What did the learner experience?"), on_result)

    @on(Button.Pressed, "#btn-terminate")
    def on_terminate(self) -> None:
        self.action_terminate()

    def action_terminate(self) -> None:
        self.run_call("Terminate", "terminate")

    def action_hide_page(self) -> None:
        self.hide_page()

    @work(thread=True, group="session")
    def hide_page(self) -> None:
        """Simulate the tab being hidden, which ends the session."""
        if self.wrapper is None:
            return
        with self._session_lock:
            self.wrapper.window.hide()
        self._report("Page hidden (visibilitychange)")
        self.call_from_thread(self._refresh_status)

    # ── Settings ─────────────────────────────────────────────────────────

    @on(Button.Pressed, "#btn-settings")
    def on_settings_btn(self) -> None:
        self.action_settings()

    def action_settings(self) -> None:
        def on_dismiss(saved: bool | None) -> None:
            if saved:
                self.config = load_config()
                self._set_status("Settings saved. Initialize a new session to apply them")

        self.push_screen(SettingsScreen(self.config), on_dismiss)


def main() -> None:
    config = load_config()
    Path(config["log_file"]).parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=config["log_file"],
        level=getattr(logging, str(config["log_level"]).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    SessionConsole(config).run()


if __name__ == "__main__":
    main()
