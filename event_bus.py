"""In-process notifications for record installs and mutation outcomes."""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from stockview.canonical_json import canonical_dumps


Event = Dict[str, Any]
Handler = Callable[[Event], None]

RECORD_INSTALLED = "stock.record.installed"
RECORD_FAILED = "stock.record.failed"
MUTATION_SUCCEEDED = "stock.mutation.succeeded"
MUTATION_FAILED = "stock.mutation.failed"

EVENT_NAMES = frozenset({RECORD_INSTALLED, RECORD_FAILED, MUTATION_SUCCEEDED, MUTATION_FAILED})

SCHEMA_VERSION = "1"

logger = logging.getLogger("stockview.events")


@dataclass
class EventValidationError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message} (path={self.path})" if self.path else f"{self.code}: {self.message}"


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def validate_event(event: Any) -> None:
    """Check the envelope: known name, JSON-safe payload, complete meta."""
    if not isinstance(event, dict):
        raise EventValidationError("EVENT_INVALID", "event must be object")
    name = event.get("name")
    if name not in EVENT_NAMES:
        raise EventValidationError("EVENT_NAME_INVALID", f"unknown event name: {name!r}", "name")

    payload = event.get("payload")
    if not isinstance(payload, dict):
        raise EventValidationError("PAYLOAD_INVALID", "payload must be an object", "payload")
    try:
        canonical_dumps(payload)
    except (TypeError, ValueError) as exc:
        raise EventValidationError("PAYLOAD_INVALID", str(exc), "payload") from exc

    meta = event.get("meta")
    if not isinstance(meta, dict):
        raise EventValidationError("META_INVALID", "meta must be object", "meta")
    checks = (
        ("event_id", lambda v: isinstance(v, str) and bool(v), "event_id must be non-empty string"),
        ("occurred_at", lambda v: isinstance(v, str) and v.endswith("Z"), "occurred_at must be a UTC timestamp"),
        ("schema_version", lambda v: v == SCHEMA_VERSION, f"schema_version must be '{SCHEMA_VERSION}'"),
    )
    for key, ok, message in checks:
        if not ok(meta.get(key)):
            raise EventValidationError(f"META_{key.upper()}_INVALID", message, f"meta.{key}")


def make_event(name: str, payload: dict, meta: dict | None = None) -> Event:
    event = {
        "name": name,
        "payload": copy.deepcopy(payload),
        "meta": {
            "event_id": str(uuid.uuid4()),
            "occurred_at": _utc_stamp(),
            "schema_version": SCHEMA_VERSION,
            **copy.deepcopy(meta or {}),
        },
    }
    validate_event(event)
    return event


class EventBus:
    """Synchronous fan-out to subscribers.

    A subscriber registered under ``"*"`` receives every event. A failing
    subscriber is logged and skipped; delivery to the rest continues.
    """

    def __init__(self) -> None:
        self._subs: Dict[str, List[Handler]] = {}
        self.published = 0

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subs.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> bool:
        handlers = self._subs.get(name) or []
        if handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            self._subs.pop(name, None)
        return True

    def publish(self, event: dict) -> None:
        validate_event(event)
        self.published += 1
        targets = list(self._subs.get(event["name"], [])) + list(self._subs.get("*", []))
        for handler in targets:
            try:
                handler(event)
            except Exception:
                logger.exception("event_handler_failed event=%s", event["name"])

    def emit(self, name: str, payload: dict) -> Event:
        event = make_event(name, payload)
        self.publish(event)
        return event
