"""xAPI (Experience API) adapter.

Talks to a Learning Record Store over HTTP:

  1. Statements API: ``POST {endpoint}/statements`` for completion, score,
     termination and any statement the course sends itself.
  2. State API: ``PUT/GET {endpoint}/activities/state`` with
     ``stateId=progress`` for the bookmark blob.

Without both an endpoint and an auth header the adapter runs in local
mode: statements are only logged and progress goes to the local store.
Remote failures on the progress path fall back to the same store.
"""

from __future__ import annotations

import copy
import json
import logging
import random
import time
import uuid
from datetime import datetime, timezone
from typing import Any

import requests

from errors import BackendError, CollisionError, InitializationError
from storage import LocalStore

from .base import LmsAdapter

logger = logging.getLogger(__name__)

XAPI_VERSION = "1.0.3"
DEFAULT_TIMEOUT = 30
MAX_STATEMENT_ATTEMPTS = 5
# Oldest queued statements are dropped past this many.
MAX_PENDING_STATEMENTS = 100
STATE_ID = "progress"

DEFAULT_ACTOR = {"name": "Test User", "mbox": "mailto:test@example.com"}
DEFAULT_ACTIVITY_ID = "http://example.com/activities/course"
COURSE_ACTIVITY_TYPE = "http://adlnet.gov/expapi/activities/course"

ADL_VERBS: dict[str, str] = {
    "completed": "http://adlnet.gov/expapi/verbs/completed",
    "scored": "http://adlnet.gov/expapi/verbs/scored",
    "terminated": "http://adlnet.gov/expapi/verbs/terminated",
}

# Phrases LRSs use in a 403 body when a statement id or registration
# has already been stored.
_CONFLICT_MARKERS = ("existing registration", "already exists", "conflict")

_LEGACY_ACCOUNT_FIELDS = {
    "accountServiceHomePage": "homePage",
    "accountName": "name",
}


# ── Helpers ──────────────────────────────────────────────────────────────────


def generate_uuid() -> str:
    """Return a random version-4 UUID string.

    Uses the OS randomness source through ``uuid.uuid4``; where that is
    unavailable a v4-shaped UUID is built from ``random`` mixed with the
    clock.  The fallback is only good enough to keep ids distinct.
    """
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        return _weak_uuid4()


def _weak_uuid4() -> str:
    stamp = time.time_ns()
    out = []
    for ch in "xxxxxxxx-xxxx-4xxx-yxxx-xxxxxxxxxxxx":
        if ch not in "xy":
            out.append(ch)
            continue
        r = (int(random.random() * 16) + stamp) % 16
        stamp //= 16
        out.append(format(r if ch == "x" else (r & 0x3) | 0x8, "x"))
    return "".join(out)


def _unwrap(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def normalize_actor(actor: dict | None) -> dict:
    """Return an xAPI-conformant copy of *actor*.

    Some hosts (SCORM Cloud among them) send ``name`` and ``account`` as
    one-element lists, and older launchers use ``accountServiceHomePage``
    and ``accountName`` inside the account.  Both are fixed up here.
    """
    if not actor:
        return dict(DEFAULT_ACTOR)

    normalized = copy.deepcopy(actor)
    if "name" in normalized:
        normalized["name"] = _unwrap(normalized["name"])

    if "account" in normalized:
        account = _unwrap(normalized["account"])
        if isinstance(account, dict):
            account = {
                _LEGACY_ACCOUNT_FIELDS.get(key, key): _unwrap(value)
                for key, value in account.items()
            }
            normalized["account"] = account
        elif account is None:
            del normalized["account"]
    return normalized


def _now_iso() -> str:
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _is_success(response: requests.Response) -> bool:
    return 200 <= response.status_code < 300


def _is_id_conflict(response: requests.Response) -> bool:
    if response.status_code == 409:
        return True
    if response.status_code != 403:
        return False
    body = (response.text or "").lower()
    return any(marker in body for marker in _CONFLICT_MARKERS)


# ── Adapter ──────────────────────────────────────────────────────────────────


class XapiAdapter(LmsAdapter):
    """Adapter for an xAPI Learning Record Store."""

    def __init__(
        self,
        store: LocalStore | None = None,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        default_actor: dict | None = None,
        default_activity_id: str | None = None,
    ) -> None:
        super().__init__()
        self.store = store if store is not None else LocalStore()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.default_actor = default_actor or DEFAULT_ACTOR
        self.default_activity_id = default_activity_id or DEFAULT_ACTIVITY_ID
        self.config: dict | None = None

    @property
    def kind(self) -> str:
        return "xapi"

    @property
    def name(self) -> str:
        return "xAPI"

    @property
    def is_remote(self) -> bool:
        """True when both an LRS endpoint and credentials are configured."""
        return bool(self.config and self.config["endpoint"] and self.config["auth"])

    @property
    def activity_id(self) -> str | None:
        return self.config["activityId"] if self.config else None

    @property
    def registration(self) -> str | None:
        return self.config["registration"] if self.config else None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def initialize(self, config: dict | None = None) -> bool:
        if self.initialized:
            return True
        if config is None:
            raise InitializationError("xAPI config is required")

        endpoint = config.get("endpoint") or None
        if endpoint:
            endpoint = endpoint.rstrip("/")

        self.config = {
            "endpoint": endpoint,
            "auth": config.get("auth") or None,
            "actor": normalize_actor(config.get("actor") or self.default_actor),
            "activityId": config.get("activityId")
            or config.get("activity_id")
            or self.default_activity_id,
            "registration": config.get("registration") or generate_uuid(),
        }
        self.initialized = True

        if self.is_remote:
            logger.info("Initializing with LRS: %s", endpoint)
            logger.debug("Actor: %r", self.config["actor"])
            self._flush_pending()
        else:
            logger.info("Initializing in local mode (no LRS configured)")
        return True

    def terminate(self) -> bool:
        if not self.initialized:
            return True
        ok = self.send_statement(self._course_statement("terminated"))
        self.initialized = False
        logger.info("Terminated")
        return ok

    # ── Statements ───────────────────────────────────────────────────────

    def send_statement(self, statement: dict) -> bool:
        """Send one statement.

        Missing ``id``, ``timestamp`` and ``actor`` are filled in.  A remote
        failure returns False and parks the statement in the pending queue,
        which is re-sent on the next remote ``initialize()``.
        """
        self._require_initialized()
        statement = copy.deepcopy(statement)
        statement.setdefault("id", generate_uuid())
        statement.setdefault("timestamp", _now_iso())
        statement.setdefault("actor", copy.deepcopy(self.config["actor"]))
        logger.debug("Statement: %r", statement)

        if not self.is_remote:
            logger.info("Local mode - statement logged (not sent to LRS)")
            return True

        try:
            self._post_statement(statement)
        except (BackendError, requests.RequestException):
            logger.error("Failed to send statement %s", statement["id"], exc_info=True)
            self._queue_pending(statement)
            return False
        logger.info("Statement sent successfully")
        return True

    def _post_statement(self, statement: dict) -> None:
        """POST *statement*, swapping in a fresh id on each id conflict."""
        url = f"{self.config['endpoint']}/statements"
        for attempt in range(1, MAX_STATEMENT_ATTEMPTS + 1):
            response = self.session.post(
                url,
                headers=self._headers(json_body=True),
                data=json.dumps(statement),
                timeout=self.timeout,
            )
            if _is_success(response):
                return
            if not _is_id_conflict(response):
                raise BackendError(
                    f"LRS returned {response.status_code}: {response.text}",
                    status=response.status_code,
                    body=response.text,
                )
            if attempt == MAX_STATEMENT_ATTEMPTS:
                break
            old_id = statement["id"]
            statement["id"] = generate_uuid()
            logger.warning(
                "Statement id %s rejected as duplicate (attempt %d/%d), retrying as %s",
                old_id, attempt, MAX_STATEMENT_ATTEMPTS, statement["id"],
            )
        raise CollisionError(
            f"LRS rejected statement ids {MAX_STATEMENT_ATTEMPTS} times",
            status=response.status_code,
            body=response.text,
        )

    def _pending_key(self) -> str:
        return f"xapi_pending_{self.activity_id}"

    def _queue_pending(self, statement: dict) -> None:
        try:
            pending = json.loads(self.store.get_item(self._pending_key()) or "[]")
            pending.append(statement)
            if len(pending) > MAX_PENDING_STATEMENTS:
                dropped = len(pending) - MAX_PENDING_STATEMENTS
                logger.warning("Pending queue full, dropping %d oldest statement(s)", dropped)
                pending = pending[dropped:]
            self.store.set_item(self._pending_key(), json.dumps(pending))
        except (ValueError, OSError):
            logger.error("Could not queue statement %s", statement.get("id"), exc_info=True)

    def _flush_pending(self) -> None:
        raw = self.store.get_item(self._pending_key())
        if not raw:
            return
        try:
            pending = json.loads(raw)
        except ValueError:
            logger.error("Discarding unreadable pending statement queue")
            self.store.remove_item(self._pending_key())
            return

        remaining = []
        for statement in pending:
            try:
                self._post_statement(statement)
            except (BackendError, requests.RequestException):
                logger.warning("Pending statement %s still not accepted", statement.get("id"))
                remaining.append(statement)
        if remaining:
            self.store.set_item(self._pending_key(), json.dumps(remaining))
        else:
            self.store.remove_item(self._pending_key())
        logger.info("Re-sent %d of %d pending statement(s)", len(pending) - len(remaining), len(pending))

    def pending_statements(self) -> list[dict]:
        raw = self.store.get_item(self._pending_key())
        return json.loads(raw) if raw else []

    # ── Progress (State API) ─────────────────────────────────────────────

    def save_progress(self, data: dict) -> bool:
        self._require_initialized()
        if not self.is_remote:
            return self._save_local(data)

        try:
            response = self.session.put(
                f"{self.config['endpoint']}/activities/state",
                params=self._state_params(),
                headers=self._headers(json_body=True),
                data=json.dumps(data),
                timeout=self.timeout,
            )
            if not _is_success(response):
                raise BackendError(
                    f"LRS returned {response.status_code}: {response.text}",
                    status=response.status_code,
                    body=response.text,
                )
        except (BackendError, requests.RequestException):
            logger.error("Failed to save state, falling back to local storage", exc_info=True)
            return self._save_local(data)
        logger.info("State saved to LRS")
        return True

    def get_progress(self) -> dict:
        self._require_initialized()
        if not self.is_remote:
            return self._load_local()

        try:
            response = self.session.get(
                f"{self.config['endpoint']}/activities/state",
                params=self._state_params(),
                headers=self._headers(),
                timeout=self.timeout,
            )
            if response.status_code == 404:
                logger.info("No saved state found in LRS")
                return {}
            if not _is_success(response):
                raise BackendError(
                    f"LRS returned {response.status_code}: {response.text}",
                    status=response.status_code,
                    body=response.text,
                )
            data = response.json()
        except (BackendError, requests.RequestException, ValueError):
            logger.error("Failed to load state, falling back to local storage", exc_info=True)
            return self._load_local()
        logger.debug("State loaded from LRS: %r", data)
        return data

    def _local_key(self) -> str:
        return f"xapi_progress_{self.activity_id}"

    def _save_local(self, data: dict) -> bool:
        try:
            self.store.set_item(self._local_key(), json.dumps(data))
        except (TypeError, ValueError, OSError):
            logger.error("Failed to save to local storage", exc_info=True)
            return False
        logger.info("State saved to local storage")
        return True

    def _load_local(self) -> dict:
        raw = self.store.get_item(self._local_key())
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError:
            logger.error("Failed to load from local storage", exc_info=True)
            return {}

    # ── Completion / score ───────────────────────────────────────────────

    def set_complete(self, passed: bool = True) -> bool:
        self._require_initialized()
        statement = self._course_statement(
            "completed", result={"completion": True, "success": bool(passed)}
        )
        return self.send_statement(statement)

    def set_score(self, score: float, min_score: float = 0, max_score: float = 100) -> bool:
        self._require_initialized()
        scaled = (score - min_score) / (max_score - min_score)
        statement = self._course_statement(
            "scored",
            result={
                "score": {
                    "scaled": scaled,
                    "raw": score,
                    "min": min_score,
                    "max": max_score,
                }
            },
        )
        return self.send_statement(statement)

    # ── Accessors ────────────────────────────────────────────────────────

    def get_actor(self) -> dict | None:
        return copy.deepcopy(self.config["actor"]) if self.config else None

    def get_config(self) -> dict | None:
        return copy.deepcopy(self.config)

    # ── Internals ────────────────────────────────────────────────────────

    def _headers(self, json_body: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": self.config["auth"],
            "X-Experience-API-Version": XAPI_VERSION,
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _state_params(self) -> dict[str, str]:
        params = {
            "activityId": self.activity_id,
            "agent": json.dumps(self.config["actor"]),
            "stateId": STATE_ID,
        }
        if self.registration:
            params["registration"] = self.registration
        return params

    def _course_statement(self, verb: str, result: dict | None = None) -> dict:
        statement: dict[str, Any] = {
            "actor": copy.deepcopy(self.config["actor"]),
            "verb": {"id": ADL_VERBS[verb], "display": {"en-US": verb}},
            "object": {
                "id": self.activity_id,
                "definition": {"type": COURSE_ACTIVITY_TYPE},
            },
            "context": {"registration": self.registration},
        }
        if result is not None:
            statement["result"] = result
        return statement
