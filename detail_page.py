"""Stock detail page: record store, assemblers and workflows wired together."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping

from action_assembler import PermissionChecker, RolePermissions, assemble_actions, invoke_action
from badge_assembler import assemble_badges
from breadcrumbs import LocationTreeState, build_breadcrumbs
from derived_fields import derive_fields
from event_bus import RECORD_INSTALLED, Event, EventBus
from mutation_workflow import KINDS, MutationWorkflows
from panel_assembler import assemble_panels, find_panel, load_panel_content, render_panels
from record_store import RecordStore
from view_cache import ViewCache


logger = logging.getLogger("stockview.page")

PAGE_TITLE = "Stock Item"


class StockDetailPage:
    """Detail view for one stock item.

    ``backend`` provides the record, mutation and listing coroutines (see
    ``app.api_client.StockApiClient``). ``handlers`` binds triggers for the
    actions whose effect lives outside this page (barcode dialogs, duplicate,
    delete).
    """

    def __init__(
        self,
        backend: Any,
        permissions: PermissionChecker | None = None,
        actor: dict | None = None,
        handlers: Mapping[str, Callable[[], Any]] | None = None,
        hide_denied: bool = False,
        exclusive_workflows: bool = False,
        bus: EventBus | None = None,
        cache: ViewCache | None = None,
    ) -> None:
        self.backend = backend
        self.bus = bus or EventBus()
        self.permissions = permissions or RolePermissions(actor)
        self.hide_denied = hide_denied
        self.store = RecordStore(backend.get_record, bus=self.bus)
        self.workflows = MutationWorkflows(self.store, self._submit, self.bus, actor, exclusive_workflows)
        self.location_tree = LocationTreeState()
        self.cache = cache or ViewCache()
        self._external_handlers = dict(handlers or {})
        self.bus.subscribe(RECORD_INSTALLED, self._on_record_installed)

    async def navigate(self, identity: Any) -> dict | None:
        return await self.store.load(identity)

    async def refresh(self) -> dict | None:
        return await self.store.refresh()

    async def _submit(self, kind: str, pk: Any, request: dict) -> Any:
        if kind == "edit":
            return await self.backend.edit_record(pk, request)
        return await getattr(self.backend, f"{kind}_stock")(request)

    def _on_record_installed(self, event: Event) -> None:
        dropped = self.cache.invalidate(event["payload"].get("pk"))
        logger.debug("view_cache_invalidated pk=%s dropped=%s", event["payload"].get("pk"), dropped)

    def handlers(self) -> Dict[str, Callable[[], Any]]:
        bound: Dict[str, Callable[[], Any]] = dict(self._external_handlers)
        for kind in KINDS:
            bound[kind] = lambda kind=kind: self.workflows.open(kind)
        return bound

    def invoke(self, action_name: str) -> dict:
        return invoke_action(action_name, self.store.snapshot, self.permissions, self.handlers())

    def open_location_tree(self) -> None:
        self.location_tree.open(self.store.snapshot)

    def close_location_tree(self) -> None:
        self.location_tree.close()

    async def save_notes(self, text: str) -> dict | None:
        pk = (self.store.snapshot or {}).get("pk")
        if pk is None:
            return None
        await self.backend.save_notes(pk, text)
        return await self.store.refresh()

    async def load_panel(self, key: str) -> Any:
        panel = find_panel(assemble_panels(self.store.snapshot), key)
        if panel is None:
            raise KeyError(f"Unknown panel: {key}")
        return await load_panel_content(panel, self.backend, self.store.snapshot)

    def _context(self) -> dict:
        fingerprint = getattr(self.permissions, "fingerprint", None)
        checker = fingerprint() if callable(fingerprint) else {"checker": type(self.permissions).__name__, "id": id(self.permissions)}
        return {"permissions": checker, "hide_denied": self.hide_denied}

    def _compose(self, record: Mapping[str, Any] | None) -> dict:
        augmented = derive_fields(record) or dict(record or {})
        part = augmented.get("part_detail") or {}
        return {
            "title": PAGE_TITLE,
            "subtitle": part.get("full_name"),
            "image": part.get("thumbnail"),
            "breadcrumbs": build_breadcrumbs(augmented),
            "actions": assemble_actions(augmented, self.permissions, hide_denied=self.hide_denied),
            "panels": render_panels(augmented),
        }

    def render(self) -> dict:
        store = self.store
        if store.status == "error" and store.error is not None:
            return {
                "status": "not_found" if store.not_found else "error",
                "overlay": False,
                "errors": [store.error.to_issue()],
            }

        record = store.snapshot
        if record is None:
            body = self._compose(None)
        else:
            key = self.cache.key(record.get("pk", store.identity), store.version, self._context())
            body = self.cache.get_or_build(key, lambda: self._compose(record))

        view = {
            "status": store.status,
            "overlay": store.loading,
            **body,
            "badges": [b.to_dict() for b in assemble_badges(record, store.loading)],
            "location_tree": self.location_tree.to_dict(),
            "workflows": self.workflows.to_dict(),
            "errors": [],
        }
        return view
