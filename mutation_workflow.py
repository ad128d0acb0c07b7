"""Mutation workflows (count, add, remove, transfer, edit).

Each kind owns an isolated state machine::

    closed -> open -> submitting -> closed   (success, record refreshed)
                                 -> open     (failure, error kept, no refresh)

Workflows share nothing but the record store they refresh.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List

from event_bus import MUTATION_FAILED, MUTATION_SUCCEEDED, EventBus
from record_store import RecordStore


logger = logging.getLogger("stockview.workflows")

Issue = Dict[str, Any]
Submitter = Callable[[str, Any, dict], Awaitable[Any]]

KINDS = ("count", "add", "remove", "transfer", "edit")

MUTATION_FLOW: Dict[str, Any] = {
    "id": "stock_mutation",
    "initial_state": "closed",
    "states": [{"id": "closed"}, {"id": "open"}, {"id": "submitting"}],
    "transitions": [
        {"id": "open", "from": "closed", "to": "open"},
        {"id": "cancel", "from": "open", "to": "closed"},
        {"id": "submit", "from": "open", "to": "submitting"},
        {"id": "succeed", "from": "submitting", "to": "closed"},
        {"id": "fail", "from": "submitting", "to": "open"},
    ],
}

_QUANTITY_POSITIVE = {"type": "number", "exclusiveMinimum": 0}

PAYLOAD_SCHEMAS: Dict[str, dict] = {
    "count": {
        "type": "object",
        "required": ["quantity"],
        "properties": {"quantity": {"type": "number", "minimum": 0}, "notes": {"type": "string"}},
        "additionalProperties": False,
    },
    "add": {
        "type": "object",
        "required": ["quantity"],
        "properties": {"quantity": _QUANTITY_POSITIVE, "notes": {"type": "string"}},
        "additionalProperties": False,
    },
    "remove": {
        "type": "object",
        "required": ["quantity"],
        "properties": {"quantity": _QUANTITY_POSITIVE, "notes": {"type": "string"}},
        "additionalProperties": False,
    },
    "transfer": {
        "type": "object",
        "required": ["location"],
        "properties": {
            "location": {"type": "integer"},
            "quantity": _QUANTITY_POSITIVE,
            "notes": {"type": "string"},
        },
        "additionalProperties": False,
    },
    "edit": {
        "type": "object",
        "properties": {
            "batch": {"type": "string"},
            "packaging": {"type": "string"},
            "status": {"type": "integer"},
            "serial": {"type": "string"},
            "location": {"type": "integer"},
            "supplier_part": {"type": "integer"},
            "notes": {"type": "string"},
        },
        "additionalProperties": False,
    },
}


@dataclass
class MutationFailure(Exception):
    code: str
    message: str
    detail: dict | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message}"

    def to_issue(self, path: str | None = None) -> Issue:
        return _issue(self.code, self.message, path, self.detail)


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _validate_flow(flow: dict, errors: List[Issue]) -> None:
    states = flow.get("states")
    if not isinstance(states, list):
        errors.append(_issue("WORKFLOW_INVALID", "states must be list", "$.states"))
        return
    state_ids = [s.get("id") for s in states if isinstance(s, dict)]
    if len(set(state_ids)) != len(state_ids):
        errors.append(_issue("WORKFLOW_INVALID", "state ids must be unique", "$.states"))
    if flow.get("initial_state") not in state_ids:
        errors.append(_issue("WORKFLOW_INVALID", "initial_state unknown", "$.initial_state"))
    for idx, tr in enumerate(flow.get("transitions") or []):
        if tr.get("from") not in state_ids or tr.get("to") not in state_ids:
            errors.append(_issue("WORKFLOW_INVALID", "transition references unknown state", f"$.transitions[{idx}]"))


def plan_transition(flow: dict, current_state: str, transition_id: str) -> dict:
    errors: List[Issue] = []
    _validate_flow(flow, errors)
    if errors:
        return {"ok": False, "errors": errors, "plan": None}
    for tr in flow.get("transitions") or []:
        if tr.get("id") == transition_id and tr.get("from") == current_state:
            plan = {
                "workflow_id": flow.get("id"),
                "current_state": current_state,
                "transition_id": transition_id,
                "next_state": tr.get("to"),
            }
            return {"ok": True, "errors": errors, "plan": plan}
    errors.append(
        _issue(
            "WORKFLOW_TRANSITION_INVALID",
            f"Cannot {transition_id} from {current_state}",
            "$.state",
            {"state": current_state, "transition": transition_id},
        )
    )
    return {"ok": False, "errors": errors, "plan": None}


def _type_ok(expected: str, value: Any) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "object":
        return isinstance(value, dict)
    return True


def validate_payload(payload: Any, schema: dict) -> List[Issue]:
    errors: List[Issue] = []
    if not isinstance(payload, dict):
        errors.append(_issue("PAYLOAD_NOT_OBJECT", "payload must be object", "payload"))
        return errors
    for key in schema.get("required") or []:
        if key not in payload:
            errors.append(_issue("PAYLOAD_REQUIRED_MISSING", f"Missing required field: {key}", f"payload.{key}"))
    properties = schema.get("properties") or {}
    for key, value in payload.items():
        rule = properties.get(key)
        if rule is None:
            if schema.get("additionalProperties") is False:
                errors.append(_issue("PAYLOAD_ADDITIONAL_FORBIDDEN", f"Unknown field: {key}", f"payload.{key}"))
            continue
        expected = rule.get("type")
        if expected and not _type_ok(expected, value):
            errors.append(_issue("PAYLOAD_TYPE_INVALID", f"{key} must be {expected}", f"payload.{key}"))
            continue
        if "minimum" in rule and value < rule["minimum"]:
            errors.append(_issue("PAYLOAD_RANGE_INVALID", f"{key} must be >= {rule['minimum']}", f"payload.{key}"))
        if "exclusiveMinimum" in rule and value <= rule["exclusiveMinimum"]:
            errors.append(_issue("PAYLOAD_RANGE_INVALID", f"{key} must be > {rule['exclusiveMinimum']}", f"payload.{key}"))
    return errors


def build_request(kind: str, record: dict, payload: dict) -> dict:
    """Translate a form payload into the stock API request body."""
    if kind == "edit":
        return dict(payload)
    quantity = payload.get("quantity")
    if quantity is None:
        quantity = record.get("quantity")
    request = {
        "items": [{"pk": record.get("pk"), "quantity": quantity}],
        "notes": payload.get("notes") or "",
    }
    if kind == "transfer":
        request["location"] = payload.get("location")
    return request


class MutationWorkflow:
    def __init__(
        self,
        kind: str,
        store: RecordStore,
        submitter: Submitter,
        bus: EventBus | None = None,
        actor: dict | None = None,
    ) -> None:
        if kind not in KINDS:
            raise ValueError(f"Unknown mutation kind: {kind}")
        self.kind = kind
        self._store = store
        self._submitter = submitter
        self._bus = bus
        self._actor = actor
        self.state = MUTATION_FLOW["initial_state"]
        self.errors: List[Issue] = []
        self.history: List[dict] = []

    @property
    def is_open(self) -> bool:
        return self.state != "closed"

    def _apply(self, transition_id: str, detail: dict | None = None) -> dict:
        result = plan_transition(MUTATION_FLOW, self.state, transition_id)
        if not result["ok"]:
            return result
        plan = result["plan"]
        self.history.append(
            {
                "at": _now(),
                "actor": self._actor,
                "from_state": plan["current_state"],
                "to_state": plan["next_state"],
                "transition_id": transition_id,
                "detail": detail,
            }
        )
        self.state = plan["next_state"]
        return result

    def open(self) -> dict:
        result = self._apply("open")
        if result["ok"]:
            self.errors = []
            logger.info("workflow_opened kind=%s pk=%s", self.kind, self._store.identity)
        return {"ok": result["ok"], "errors": result["errors"], "state": self.state}

    def cancel(self) -> dict:
        result = self._apply("cancel")
        if result["ok"]:
            self.errors = []
        return {"ok": result["ok"], "errors": result["errors"], "state": self.state}

    async def submit(self, payload: dict) -> dict:
        if self.state != "open":
            result = plan_transition(MUTATION_FLOW, self.state, "submit")
            return {"ok": False, "errors": result["errors"], "state": self.state, "refreshed": False}

        errors = validate_payload(payload, PAYLOAD_SCHEMAS[self.kind])
        record = self._store.snapshot or {}
        if not errors and record.get("pk") is None:
            errors.append(_issue("MUTATION_NO_RECORD", "No stock item loaded", "pk"))
        if errors:
            self.errors = errors
            return {"ok": False, "errors": errors, "state": self.state, "refreshed": False}

        pk = record["pk"]
        request = build_request(self.kind, record, payload)
        self._apply("submit")
        try:
            await self._submitter(self.kind, pk, request)
        except MutationFailure as exc:
            return self._failed(pk, exc)
        except Exception as exc:
            logger.exception("workflow_submit_error kind=%s pk=%s", self.kind, pk)
            return self._failed(pk, MutationFailure("MUTATION_FAILED", str(exc)))

        # Stays submitting until the refreshed snapshot is installed.
        snapshot = await self._store.refresh()
        self._apply("succeed", {"refreshed": snapshot is not None})
        self.errors = []
        logger.info("workflow_succeeded kind=%s pk=%s refreshed=%s", self.kind, pk, snapshot is not None)
        if self._bus is not None:
            self._bus.emit(MUTATION_SUCCEEDED, {"kind": self.kind, "pk": pk})
        return {"ok": True, "errors": [], "state": self.state, "refreshed": snapshot is not None}

    def _failed(self, pk: Any, exc: MutationFailure) -> dict:
        self._apply("fail", {"code": exc.code})
        self.errors = [exc.to_issue("$")]
        logger.warning("workflow_failed kind=%s pk=%s code=%s", self.kind, pk, exc.code)
        if self._bus is not None:
            self._bus.emit(MUTATION_FAILED, {"kind": self.kind, "pk": pk, "code": exc.code})
        return {"ok": False, "errors": list(self.errors), "state": self.state, "refreshed": False}

    def to_dict(self) -> dict:
        return {"kind": self.kind, "state": self.state, "errors": list(self.errors)}


class MutationWorkflows:
    """One workflow per kind, sharing a record store.

    With ``exclusive=True`` only one kind may be open at a time; by default
    kinds are independent and only the same kind cannot open twice.
    """

    def __init__(
        self,
        store: RecordStore,
        submitter: Submitter,
        bus: EventBus | None = None,
        actor: dict | None = None,
        exclusive: bool = False,
    ) -> None:
        self.exclusive = exclusive
        self._flows = {kind: MutationWorkflow(kind, store, submitter, bus, actor) for kind in KINDS}

    def __getitem__(self, kind: str) -> MutationWorkflow:
        return self._flows[kind]

    def open(self, kind: str) -> dict:
        if self.exclusive:
            busy = [k for k, flow in self._flows.items() if flow.is_open and k != kind]
            if busy:
                return {
                    "ok": False,
                    "errors": [_issue("MUTATION_BUSY", "Another stock operation is in progress", "kind", {"open": busy})],
                    "state": self._flows[kind].state,
                }
        return self._flows[kind].open()

    def open_kinds(self) -> List[str]:
        return [kind for kind, flow in self._flows.items() if flow.is_open]

    def to_dict(self) -> Dict[str, dict]:
        return {kind: flow.to_dict() for kind, flow in self._flows.items()}
