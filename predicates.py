"""Visibility predicates attached to descriptors."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import condition_eval


logger = logging.getLogger("stockview.predicates")


@dataclass(frozen=True)
class Predicate:
    """A condition node evaluated against the current snapshot at render time.

    Evaluation is total: a malformed condition or a value of the wrong type
    resolves to ``False`` so the descriptor is hidden rather than failing the
    render pass.
    """

    condition: Mapping[str, Any]

    def evaluate(self, record: Mapping[str, Any] | None, actor: Mapping[str, Any] | None = None) -> bool:
        ctx = {"record": dict(record or {}), "actor": dict(actor or {})}
        try:
            return condition_eval.eval_condition(dict(self.condition), ctx)
        except condition_eval.ConditionEvalError as exc:
            logger.debug("predicate_degraded code=%s path=%s", exc.code, exc.path)
            return False

    def to_dict(self) -> dict:
        return dict(self.condition)


def _var(path: str) -> dict:
    return {"var": f"record.{path}"}


ALWAYS = Predicate({"op": "and", "children": []})
NEVER = Predicate({"op": "or", "children": []})


def field_truthy(path: str) -> Predicate:
    """Visible when the field holds a truthy value; absent, None, "" and 0 hide."""
    return Predicate({"op": "truthy", "left": _var(path)})


def field_falsy(path: str) -> Predicate:
    return Predicate({"op": "falsy", "left": _var(path)})


def field_gt(path: str, value: float) -> Predicate:
    return Predicate({"op": "gt", "left": _var(path), "right": {"literal": value}})


def any_of(*predicates: Predicate) -> Predicate:
    return Predicate({"op": "or", "children": [dict(p.condition) for p in predicates]})


def all_of(*predicates: Predicate) -> Predicate:
    return Predicate({"op": "and", "children": [dict(p.condition) for p in predicates]})


def negate(predicate: Predicate) -> Predicate:
    return Predicate({"op": "not", "children": [dict(predicate.condition)]})
