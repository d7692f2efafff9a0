"""Tests for the ScormWrapper facade.

Convention: test_<situation>_<expected outcome>
"""

import json
import logging
from fractions import Fraction

import pytest

from conftest import FakeScorm12Api, FakeScorm2004Api, FlakyStatusApi, make_response
from errors import InitializationError, NotInitializedError, ValidationError
from frames import FrameWindow
from storage import LocalStore
from wrapper import UNLOAD_EVENTS, ScormWrapper


@pytest.fixture
def local_wrapper(store):
    wrapper = ScormWrapper(FrameWindow(), store)
    wrapper.initialize()
    return wrapper


def _scorm2004_wrapper(api, store=None):
    inner = FrameWindow(api_1484_11=api).chain(2)
    return ScormWrapper(inner, store or LocalStore())


# ──────────────────────────────────────────────
# LIFECYCLE
# ──────────────────────────────────────────────

class TestLifecycle:

    def test_before_initialize_environment_is_unknown(self):
        wrapper = ScormWrapper()
        assert wrapper.get_environment_type() == "unknown"
        assert wrapper.is_initialized() is False

    def test_no_host_no_params_runs_local(self, local_wrapper):
        assert local_wrapper.get_environment_type() == "local"
        assert local_wrapper.is_initialized() is True

    def test_second_initialize_is_harmless(self, local_wrapper, caplog):
        adapter = local_wrapper.adapter
        with caplog.at_level(logging.WARNING):
            assert local_wrapper.initialize() is True
        assert "Already initialized" in caplog.text
        assert local_wrapper.adapter is adapter

    def test_refused_host_initialize_propagates(self):
        wrapper = _scorm2004_wrapper(FakeScorm2004Api(init_result="false"))
        with pytest.raises(InitializationError):
            wrapper.initialize()
        assert wrapper.is_initialized() is False

    def test_initialize_can_be_retried_after_status_setup_failure(self):
        api = FlakyStatusApi()
        wrapper = ScormWrapper(FrameWindow(api=api).chain(1))
        with pytest.raises(InitializationError):
            wrapper.initialize()
        assert wrapper.initialize() is True
        assert wrapper.get_environment_type() == "scorm12"
        assert api.count("LMSFinish") == 1

    @pytest.mark.parametrize("method,args", [
        ("save_progress", ({"page": 1},)),
        ("get_progress", ()),
        ("set_complete", ()),
        ("set_score", (50,)),
        ("set_value", ("k", "v")),
        ("get_value", ("k",)),
        ("send_statement", ({},)),
        ("get_actor", ()),
    ])
    def test_data_calls_before_initialize_raise(self, method, args):
        with pytest.raises(NotInitializedError):
            getattr(ScormWrapper(), method)(*args)

    def test_terminate_before_initialize_is_noop(self):
        assert ScormWrapper().terminate() is True

    def test_terminate_ends_session(self, local_wrapper):
        assert local_wrapper.terminate() is True
        assert local_wrapper.is_initialized() is False
        with pytest.raises(NotInitializedError):
            local_wrapper.get_progress()


# ──────────────────────────────────────────────
# PROGRESS
# ──────────────────────────────────────────────

class TestProgress:

    def test_nothing_saved_returns_none(self, local_wrapper):
        assert local_wrapper.get_progress() is None

    def test_local_progress_survives_reload(self, tmp_path):
        path = tmp_path / "storage.json"
        first = ScormWrapper(FrameWindow(), LocalStore.open(path))
        first.initialize()
        assert first.save_progress({"page": 3}) is True
        first.window.dispatch_event("pagehide")

        reloaded = ScormWrapper(FrameWindow(), LocalStore.open(path))
        reloaded.initialize()
        assert reloaded.get_environment_type() == "local"
        assert reloaded.get_progress() == {"page": 3}

    def test_scorm2004_round_trip(self, scorm2004_api):
        wrapper = _scorm2004_wrapper(scorm2004_api)
        wrapper.initialize()
        blob = {"page": 2, "quiz": {"q1": "B"}}
        assert wrapper.save_progress(blob) is True
        assert wrapper.get_progress() == blob

    def test_local_completion_is_merged_into_progress(self, local_wrapper):
        local_wrapper.save_progress({"page": 5})
        assert local_wrapper.set_score(90) is True
        assert local_wrapper.set_complete(passed=True) is True
        data = local_wrapper.get_progress()
        assert data["page"] == 5
        assert data["_score"] == 90
        assert data["_completed"] is True
        assert data["_passed"] is True
        assert "_completedAt" in data


# ──────────────────────────────────────────────
# SCORE VALIDATION
# ──────────────────────────────────────────────

class TestScoreValidation:

    @pytest.mark.parametrize("score", [-1, 101, "50", float("nan"), float("inf"), None, True])
    def test_invalid_scores_are_rejected(self, local_wrapper, score):
        with pytest.raises(ValidationError):
            local_wrapper.set_score(score)

    @pytest.mark.parametrize("score", [0, 100, 57, 99.5])
    def test_valid_scores_are_accepted(self, local_wrapper, score):
        assert local_wrapper.set_score(score) is True

    def test_validation_error_is_a_value_error(self, local_wrapper):
        with pytest.raises(ValueError):
            local_wrapper.set_score(-5)

    def test_fraction_score_reaches_lrs_as_float(self, store, lrs_session):
        window = FrameWindow(xapi_config={"endpoint": "https://lrs.example.com", "auth": "Basic x"})
        wrapper = ScormWrapper(window, store, session=lrs_session)
        wrapper.initialize()

        assert wrapper.set_score(Fraction(1, 2)) is True
        sent = json.loads(lrs_session.post.call_args.kwargs["data"])
        assert sent["result"]["score"]["raw"] == 0.5

    def test_fraction_score_written_as_decimal_to_scorm12(self):
        api = FakeScorm12Api()
        wrapper = ScormWrapper(FrameWindow(api=api).chain(1))
        wrapper.initialize()
        assert wrapper.set_score(Fraction(1, 2)) is True
        assert api.values["cmi.core.score.raw"] == "0.5"

    def test_integer_score_keeps_integer_text(self):
        api = FakeScorm12Api()
        wrapper = ScormWrapper(FrameWindow(api=api).chain(1))
        wrapper.initialize()
        wrapper.set_score(57)
        assert api.values["cmi.core.score.raw"] == "57"


# ──────────────────────────────────────────────
# OPTIONAL CAPABILITIES
# ──────────────────────────────────────────────

class TestCapabilities:

    def test_send_statement_outside_xapi_is_false(self, local_wrapper):
        assert local_wrapper.send_statement({"verb": {"id": "x"}}) is False

    def test_get_actor_outside_xapi_is_none(self, local_wrapper):
        assert local_wrapper.get_actor() is None

    def test_local_set_and_get_value_use_scorm_prefix(self, local_wrapper, store):
        assert local_wrapper.set_value("bookmark", "intro") is True
        assert store.get_item("scorm_bookmark") == "intro"
        assert local_wrapper.get_value("bookmark") == "intro"
        assert local_wrapper.get_value("missing") is None

    def test_scorm12_set_and_get_value(self):
        api = FakeScorm12Api()
        wrapper = ScormWrapper(FrameWindow(api=api).chain(1))
        wrapper.initialize()
        assert wrapper.get_environment_type() == "scorm12"
        assert wrapper.set_value("cmi.core.lesson_location", "p4") is True
        assert wrapper.get_value("cmi.core.lesson_location") == "p4"

    def test_xapi_launch_uses_lrs(self, store, lrs_session):
        url = (
            "https://content.example.com/index.html"
            "?endpoint=https%3A%2F%2Flrs.example.com%2Fxapi"
            "&auth=Basic%20abc"
            "&actor=%7B%22name%22%3A%5B%22Ada%22%5D%7D"
        )
        wrapper = ScormWrapper(FrameWindow.from_url(url), store, session=lrs_session)
        wrapper.initialize()

        assert wrapper.get_environment_type() == "xapi"
        assert wrapper.get_actor() == {"name": "Ada"}
        assert wrapper.send_statement({"verb": {"id": "x"}}) is True
        assert lrs_session.post.call_count == 1

    def test_xapi_statement_failure_is_false(self, store, lrs_session):
        lrs_session.post.return_value = make_response(500, "boom")
        window = FrameWindow(xapi_config={"endpoint": "https://lrs.example.com", "auth": "Basic x"})
        wrapper = ScormWrapper(window, store, session=lrs_session)
        wrapper.initialize()
        assert wrapper.set_complete() is False

    def test_xapi_uses_configured_defaults(self, store, lrs_session):
        config = {
            "http_timeout": 5,
            "default_actor": {"name": "Config User", "mbox": "mailto:cfg@example.com"},
            "default_activity_id": "http://example.com/activities/configured",
        }
        window = FrameWindow(xapi_config={"endpoint": "https://lrs.example.com", "auth": "Basic x"})
        wrapper = ScormWrapper(window, store, config=config, session=lrs_session)
        wrapper.initialize()

        assert wrapper.get_actor()["name"] == "Config User"
        assert wrapper.adapter.activity_id == "http://example.com/activities/configured"
        assert wrapper.adapter.timeout == 5


# ──────────────────────────────────────────────
# AUTO-TERMINATE
# ──────────────────────────────────────────────

class TestAutoTerminate:

    @pytest.mark.parametrize("event", UNLOAD_EVENTS)
    def test_unload_events_terminate(self, scorm2004_api, event):
        wrapper = _scorm2004_wrapper(scorm2004_api)
        wrapper.initialize()
        wrapper.window.dispatch_event(event)
        assert wrapper.is_initialized() is False
        assert scorm2004_api.count("Terminate") == 1

    def test_hidden_page_terminates(self, scorm2004_api):
        wrapper = _scorm2004_wrapper(scorm2004_api)
        wrapper.initialize()
        wrapper.window.hide()
        assert wrapper.is_initialized() is False

    def test_visible_visibility_change_keeps_session(self, local_wrapper):
        local_wrapper.window.dispatch_event("visibilitychange")
        assert local_wrapper.is_initialized() is True

    def test_redundant_events_terminate_once(self, scorm2004_api):
        wrapper = _scorm2004_wrapper(scorm2004_api)
        wrapper.initialize()
        for event in ("pagehide", "beforeunload", "unload"):
            wrapper.window.dispatch_event(event)
        assert scorm2004_api.count("Terminate") == 1

    def test_listeners_registered_once_per_session_object(self, store):
        window = FrameWindow()
        wrapper = ScormWrapper(window, store)
        wrapper.initialize()
        wrapper.terminate()
        wrapper.initialize()
        assert window.listener_count("pagehide") == 1
        assert window.listener_count("visibilitychange") == 1

    def test_window_without_events_still_initializes(self, store):
        class BareWindow:
            parent = None

        wrapper = ScormWrapper(BareWindow(), store)
        assert wrapper.initialize() is True
        assert wrapper.get_environment_type() == "local"
