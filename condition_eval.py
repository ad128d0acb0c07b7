"""Visibility condition DSL evaluator.

Conditions are JSON-shaped nodes evaluated against a render context of the
form ``{"record": <snapshot>, "actor": <actor>}``. Value nodes are
``{"var": "record.part_detail.trackable"}``, ``{"literal": 1}`` or
``{"array": [...]}``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple


@dataclass
class ConditionEvalError(Exception):
    code: str
    message: str
    path: str | None = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message} (path={self.path})" if self.path else f"{self.code}: {self.message}"


class ConditionSchemaError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_SCHEMA_ERROR", message, path)


class ConditionDepthError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_DEPTH_EXCEEDED", message, path)


class VarResolveError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_VAR_UNRESOLVED", message, path)


class TypeErrorInCondition(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_TYPE_ERROR", message, path)


class UnknownOpError(ConditionEvalError):
    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__("CONDITION_UNKNOWN_OP", message, path)


_MISSING = object()

_COMPARE: Dict[str, Callable[[float, float], bool]] = {
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
}


def _numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_set(value: Any) -> bool:
    # Cleared optional text fields come back from the API as "".
    return value is not None and value is not _MISSING and value != ""


class _Evaluation:
    """One evaluation pass over a condition tree."""

    def __init__(self, ctx: dict, limit: int) -> None:
        self.ctx = ctx
        self.limit = limit

    def _enter(self, depth: int, path: str) -> None:
        if depth > self.limit:
            raise ConditionDepthError("Depth limit exceeded", path)

    def lookup(self, name: str, path: str) -> Any:
        current: Any = self.ctx
        for segment in name.split("."):
            if not isinstance(current, dict) or segment not in current:
                raise VarResolveError(f"Unresolved var: {name}", path)
            current = current[segment]
        return current

    def value(self, node: Any, path: str, depth: int, optional: bool = False) -> Any:
        self._enter(depth, path)
        if not isinstance(node, dict):
            raise ConditionSchemaError("Value node must be object", path)
        if "var" in node:
            name = node["var"]
            if not isinstance(name, str):
                raise ConditionSchemaError("var must be string", path)
            try:
                return self.lookup(name, path)
            except VarResolveError:
                if optional:
                    return _MISSING
                raise
        if "literal" in node:
            return node["literal"]
        if "array" in node:
            items = node["array"]
            if not isinstance(items, list):
                raise ConditionSchemaError("array must be list", path)
            return [self.value(item, f"{path}.array[{i}]", depth + 1) for i, item in enumerate(items)]
        raise ConditionSchemaError("Invalid value node", path)

    def operand(self, cond: dict, side: str, path: str, depth: int, optional: bool = False) -> Any:
        if side not in cond:
            raise ConditionSchemaError(f"Missing required field: {side}", path)
        return self.value(cond[side], f"{path}.{side}", depth + 1, optional)

    def pair(self, cond: dict, path: str, depth: int) -> Tuple[Any, Any]:
        return self.operand(cond, "left", path, depth), self.operand(cond, "right", path, depth)

    def children(self, cond: dict, path: str) -> list:
        if "children" not in cond:
            raise ConditionSchemaError("Missing required field: children", path)
        children = cond["children"]
        if not isinstance(children, list):
            raise ConditionSchemaError("children must be list", f"{path}.children")
        return children

    def condition(self, cond: Any, path: str, depth: int) -> bool:
        self._enter(depth, path)
        if not isinstance(cond, dict):
            raise ConditionSchemaError("Condition must be object", path)
        op = cond.get("op")
        if op is None:
            raise ConditionSchemaError("Missing op", path)
        handler = _OPS.get(op)
        if handler is None:
            raise UnknownOpError(f"Unknown op: {op}", path)
        return handler(self, op, cond, path, depth)


def _logical(ev: _Evaluation, op: str, cond: dict, path: str, depth: int) -> bool:
    children = ev.children(cond, path)
    if op == "not":
        if len(children) != 1:
            raise ConditionSchemaError("not requires single child", f"{path}.children")
        return not ev.condition(children[0], f"{path}.children[0]", depth + 1)
    results = (ev.condition(child, f"{path}.children[{i}]", depth + 1) for i, child in enumerate(children))
    return all(results) if op == "and" else any(results)


def _equality(ev: _Evaluation, op: str, cond: dict, path: str, depth: int) -> bool:
    left, right = ev.pair(cond, path, depth)
    return (left == right) == (op == "eq")


def _ordering(ev: _Evaluation, op: str, cond: dict, path: str, depth: int) -> bool:
    left, right = ev.pair(cond, path, depth)
    if not (_numeric(left) and _numeric(right)):
        raise TypeErrorInCondition("Comparison requires numbers", path)
    for side, number in (("left", left), ("right", right)):
        if isinstance(number, float) and not math.isfinite(number):
            raise TypeErrorInCondition("Non-finite number", f"{path}.{side}")
    return _COMPARE[op](left, right)


def _contains(ev: _Evaluation, op: str, cond: dict, path: str, depth: int) -> bool:
    left, right = ev.pair(cond, path, depth)
    if isinstance(left, list) or (isinstance(left, str) and isinstance(right, str)):
        return right in left
    raise TypeErrorInCondition("contains requires string or list left", path)


def _membership(ev: _Evaluation, op: str, cond: dict, path: str, depth: int) -> bool:
    left, right = ev.pair(cond, path, depth)
    if not isinstance(right, list):
        raise TypeErrorInCondition("right must be list", f"{path}.right")
    return (left in right) == (op == "in")


def _presence(ev: _Evaluation, op: str, cond: dict, path: str, depth: int) -> bool:
    value = ev.operand(cond, "left", path, depth, optional=True)
    if op in ("exists", "not_exists"):
        return _is_set(value) == (op == "exists")
    truthy = value is not _MISSING and bool(value)
    return truthy == (op == "truthy")


_OPS: Dict[str, Callable[[_Evaluation, str, dict, str, int], bool]] = {
    "and": _logical,
    "or": _logical,
    "not": _logical,
    "eq": _equality,
    "neq": _equality,
    "gt": _ordering,
    "gte": _ordering,
    "lt": _ordering,
    "lte": _ordering,
    "contains": _contains,
    "in": _membership,
    "not_in": _membership,
    "exists": _presence,
    "not_exists": _presence,
    "truthy": _presence,
    "falsy": _presence,
}


def eval_condition(cond: dict, ctx: dict, depth_limit: int = 10) -> bool:
    """Evaluate ``cond`` against ``ctx``.

    Unresolved vars are an error everywhere except under the presence ops
    (``exists``, ``not_exists``, ``truthy``, ``falsy``), where they read as
    unset.
    """
    if not isinstance(ctx, dict):
        raise ConditionSchemaError("ctx must be object", "$")
    return _Evaluation(ctx, depth_limit).condition(cond, "$", 1)
