"""Action menus for the stock detail page (barcode, operations, general)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Protocol, Tuple

from predicates import ALWAYS, Predicate, field_falsy, field_truthy


logger = logging.getLogger("stockview.actions")

Issue = Dict[str, Any]
Handler = Callable[[], Any]


def _issue(code: str, message: str, path: str | None = None, detail: dict | None = None) -> Issue:
    return {"code": code, "message": message, "path": path, "detail": detail}


class PermissionChecker(Protocol):
    def check(self, role: str, permission: str) -> bool: ...


class RolePermissions:
    """Permission capability built from an actor's role grants.

    Grants are ``"<role>.<permission>"`` strings (``"stock.change"``) or a
    bare role name granting every permission on it. Superusers pass every
    check.
    """

    def __init__(self, actor: Mapping[str, Any] | None) -> None:
        actor = actor or {}
        self.actor_id = actor.get("id")
        self.is_superuser = bool(actor.get("is_superuser"))
        roles = actor.get("roles") or []
        self.grants = frozenset(r for r in roles if isinstance(r, str))

    def check(self, role: str, permission: str) -> bool:
        if self.is_superuser:
            return True
        return role in self.grants or f"{role}.{permission}" in self.grants

    def fingerprint(self) -> dict:
        return {"id": self.actor_id, "superuser": self.is_superuser, "grants": sorted(self.grants)}


class AllowAll:
    def check(self, role: str, permission: str) -> bool:
        return True

    def fingerprint(self) -> dict:
        return {"allow_all": True}


@dataclass(frozen=True)
class Action:
    name: str
    label: str
    tooltip: str
    icon: str
    color: str | None = None
    visible: Predicate = field(default=ALWAYS)
    permission: Tuple[str, str] | None = None
    requires_pk: bool = False

    def permitted(self, permissions: PermissionChecker) -> bool:
        if self.permission is None:
            return True
        role, perm = self.permission
        return bool(permissions.check(role, perm))


@dataclass(frozen=True)
class ActionMenu:
    key: str
    tooltip: str | None
    icon: str
    actions: Tuple[Action, ...]


_CHANGE = ("stock", "change")


def build_action_menus() -> List[ActionMenu]:
    barcode = ActionMenu(
        "barcode",
        "Barcode Actions",
        "qrcode",
        (
            Action("view_barcode", "View", "View barcode", "qrcode", permission=("stock", "view")),
            Action(
                "link_barcode",
                "Link Barcode",
                "Link custom barcode",
                "link",
                visible=field_falsy("barcode_hash"),
                permission=_CHANGE,
            ),
            Action(
                "unlink_barcode",
                "Unlink Barcode",
                "Unlink custom barcode",
                "unlink",
                visible=field_truthy("barcode_hash"),
                permission=_CHANGE,
            ),
        ),
    )
    operations = ActionMenu(
        "operations",
        "Stock Operations",
        "packages",
        (
            Action("count", "Count", "Count stock", "stocktake", "blue", permission=_CHANGE, requires_pk=True),
            Action("add", "Add", "Add stock", "add", "green", permission=_CHANGE, requires_pk=True),
            Action("remove", "Remove", "Remove stock", "remove", "red", permission=_CHANGE, requires_pk=True),
            Action("transfer", "Transfer", "Transfer stock", "transfer", "blue", permission=_CHANGE, requires_pk=True),
        ),
    )
    general = ActionMenu(
        "stock",
        None,
        "dots",
        (
            Action("duplicate", "Duplicate", "Duplicate stock item", "copy", permission=("stock", "add"), requires_pk=True),
            Action("edit", "Edit", "Edit stock item", "edit", "blue", permission=_CHANGE, requires_pk=True),
            Action("delete", "Delete", "Delete stock item", "delete", "red", permission=("stock", "delete"), requires_pk=True),
        ),
    )
    return [barcode, operations, general]


def _render_action(action: Action, record: Mapping[str, Any], permissions: PermissionChecker, hide_denied: bool) -> dict:
    permitted = action.permitted(permissions)
    visible = action.visible.evaluate(record)
    if hide_denied and not permitted:
        visible = False
    return {
        "name": action.name,
        "label": action.label,
        "tooltip": action.tooltip,
        "icon": action.icon,
        "color": action.color,
        "visible": visible,
        "enabled": permitted,
    }


def assemble_actions(
    record: Mapping[str, Any] | None,
    permissions: PermissionChecker,
    hide_denied: bool = False,
    menus: List[ActionMenu] | None = None,
) -> List[dict]:
    """Render every menu for ``record`` and the acting user's permissions.

    Denied actions stay visible but disabled unless ``hide_denied`` is set.
    """
    record = record or {}
    menus = menus if menus is not None else build_action_menus()
    return [
        {
            "key": menu.key,
            "tooltip": menu.tooltip,
            "icon": menu.icon,
            "actions": [_render_action(a, record, permissions, hide_denied) for a in menu.actions],
        }
        for menu in menus
    ]


def find_action(name: str, menus: List[ActionMenu] | None = None) -> Action | None:
    for menu in menus if menus is not None else build_action_menus():
        for action in menu.actions:
            if action.name == name:
                return action
    return None


def invoke_action(
    name: str,
    record: Mapping[str, Any] | None,
    permissions: PermissionChecker,
    handlers: Mapping[str, Handler],
) -> dict:
    """Run the trigger bound to action ``name``.

    Actions that need a record identity are a no-op (``invoked=False``) while
    the record has none.
    """
    errors: List[Issue] = []
    record = record or {}
    action = find_action(name)
    if action is None:
        errors.append(_issue("ACTION_UNKNOWN", f"Unknown action: {name}", "name"))
        return {"ok": False, "errors": errors, "invoked": False, "result": None}

    if action.requires_pk and not record.get("pk"):
        logger.debug("action_skipped_no_pk action=%s", name)
        return {"ok": True, "errors": errors, "invoked": False, "result": None}

    if not action.visible.evaluate(record):
        errors.append(_issue("ACTION_HIDDEN", "Action not available for this record", "visible"))
    elif not action.permitted(permissions):
        errors.append(_issue("ACTION_FORBIDDEN", "Actor lacks required permission", "permission", {"permission": list(action.permission or ())}))
    elif name not in handlers:
        errors.append(_issue("ACTION_HANDLER_MISSING", f"No handler bound for {name}", "handlers"))
    if errors:
        return {"ok": False, "errors": errors, "invoked": False, "result": None}

    result = handlers[name]()
    logger.info("action_invoked action=%s pk=%s", name, record.get("pk"))
    return {"ok": True, "errors": errors, "invoked": True, "result": result}
