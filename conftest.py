"""Shared fixtures: fake SCORM hosts, an in-memory store, a mock LRS session."""

import os
import sys
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from storage import LocalStore


class FakeScorm12Api:
    """Minimal SCORM 1.2 host: an in-memory CMI data model."""

    def __init__(self, init_result="true", commit_result="true", finish_result="true"):
        self.values = {"cmi.core.lesson_status": "not attempted", "cmi.suspend_data": ""}
        self.init_result = init_result
        self.commit_result = commit_result
        self.finish_result = finish_result
        self.calls = []

    def LMSInitialize(self, arg):
        self.calls.append(("LMSInitialize",))
        return self.init_result

    def LMSGetValue(self, key):
        self.calls.append(("LMSGetValue", key))
        return self.values.get(key, "")

    def LMSSetValue(self, key, value):
        self.calls.append(("LMSSetValue", key, value))
        self.values[key] = value
        return "true"

    def LMSCommit(self, arg):
        self.calls.append(("LMSCommit",))
        return self.commit_result

    def LMSFinish(self, arg):
        self.calls.append(("LMSFinish",))
        return self.finish_result

    def count(self, verb):
        return sum(1 for call in self.calls if call[0] == verb)


class FakeScorm2004Api:
    """Minimal SCORM 2004 host."""

    def __init__(self, init_result="true", commit_result="true", terminate_result="true"):
        self.values = {"cmi.completion_status": "unknown", "cmi.suspend_data": ""}
        self.init_result = init_result
        self.commit_result = commit_result
        self.terminate_result = terminate_result
        self.last_error = "0"
        self.calls = []

    def Initialize(self, arg):
        self.calls.append(("Initialize",))
        if self.init_result != "true":
            self.last_error = "103"
        return self.init_result

    def GetValue(self, key):
        self.calls.append(("GetValue", key))
        return self.values.get(key, "")

    def SetValue(self, key, value):
        self.calls.append(("SetValue", key, value))
        self.values[key] = value
        return "true"

    def Commit(self, arg):
        self.calls.append(("Commit",))
        return self.commit_result

    def Terminate(self, arg):
        self.calls.append(("Terminate",))
        return self.terminate_result

    def GetLastError(self):
        return self.last_error

    def GetErrorString(self, code):
        return {"0": "No Error", "103": "Already Initialized"}.get(code, "General Exception")

    def GetDiagnostic(self, code):
        return f"diagnostic for {code}"

    def count(self, verb):
        return sum(1 for call in self.calls if call[0] == verb)


class FlakyStatusApi(FakeScorm12Api):
    """A 1.2 host that drops its first status read and refuses re-entry while open."""

    def __init__(self):
        super().__init__()
        self.open = False
        self.failures = 1

    def LMSInitialize(self, arg):
        self.calls.append(("LMSInitialize",))
        if self.open:
            return "false"
        self.open = True
        return "true"

    def LMSGetValue(self, key):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("host busy")
        return super().LMSGetValue(key)

    def LMSFinish(self, arg):
        self.open = False
        return super().LMSFinish(arg)


def make_response(status_code=200, text="", json_data=None):
    """A stand-in for ``requests.Response``."""
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("no JSON body")
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def store():
    return LocalStore()


@pytest.fixture
def scorm12_api():
    return FakeScorm12Api()


@pytest.fixture
def scorm2004_api():
    return FakeScorm2004Api()


@pytest.fixture
def lrs_session():
    """Mock ``requests.Session`` answering 200 to everything by default."""
    session = MagicMock()
    session.post.return_value = make_response(200, '["ok"]')
    session.put.return_value = make_response(204)
    session.get.return_value = make_response(404)
    return session
