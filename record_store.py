"""Current stock record snapshot with last-identity-wins fetching."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from event_bus import RECORD_FAILED, RECORD_INSTALLED, EventBus


logger = logging.getLogger("stockview.record_store")

Fetcher = Callable[[Any, Dict[str, Any]], Awaitable[dict]]

# Nested part, location and ancestor-path detail are required by the field
# groups, panels and breadcrumbs.
DETAIL_PARAMS: Dict[str, Any] = {
    "part_detail": True,
    "location_detail": True,
    "path_detail": True,
}

STATUSES = ("idle", "loading", "ready", "error")


@dataclass
class RecordError(Exception):
    code: str
    message: str
    identity: Any = None

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.code}: {self.message} (identity={self.identity!r})"

    def to_issue(self) -> dict:
        return {"code": self.code, "message": self.message, "path": "pk", "detail": {"identity": self.identity}}


class FetchFailure(RecordError):
    def __init__(self, message: str, identity: Any = None) -> None:
        super().__init__("RECORD_FETCH_FAILED", message, identity)


class NotFound(RecordError):
    def __init__(self, message: str = "Stock item not found", identity: Any = None) -> None:
        super().__init__("RECORD_NOT_FOUND", message, identity)


class StaleResponse(RecordError):
    def __init__(self, identity: Any = None) -> None:
        super().__init__("RECORD_STALE_RESPONSE", "Response for a superseded fetch", identity)


class RecordStore:
    """Owns the record snapshot shown on the page.

    Every fetch takes a ticket; only the response for the latest ticket is
    installed. Snapshots are replaced wholesale and ``version`` is bumped on
    every install.
    """

    def __init__(self, fetch: Fetcher, params: Dict[str, Any] | None = None, bus: EventBus | None = None) -> None:
        self._fetch = fetch
        self.params = dict(DETAIL_PARAMS)
        if params:
            self.params.update(params)
        self._bus = bus
        self._ticket = 0
        self.identity: Any = None
        self.snapshot: dict | None = None
        self.version = 0
        self.status = "idle"
        self.error: RecordError | None = None
        self.discarded = 0

    @property
    def loading(self) -> bool:
        return self.status == "loading"

    @property
    def not_found(self) -> bool:
        return isinstance(self.error, NotFound)

    async def load(self, identity: Any) -> dict | None:
        if identity != self.identity:
            self.snapshot = None
        self.identity = identity
        return await self._run(identity)

    async def refresh(self) -> dict | None:
        """Re-run the last fetch. Returns the new snapshot, or None."""
        if self.identity is None:
            return None
        return await self._run(self.identity)

    async def _run(self, identity: Any) -> dict | None:
        self._ticket += 1
        ticket = self._ticket
        self.status = "loading"
        self.error = None
        logger.debug("record_fetch pk=%s ticket=%s", identity, ticket)
        try:
            record = await self._fetch(identity, dict(self.params))
            if not isinstance(record, dict):
                raise FetchFailure("Record payload must be an object", identity)
        except RecordError as exc:
            if ticket != self._ticket:
                self._discard(identity)
                return None
            self._fail(exc)
            return None
        except Exception as exc:
            if ticket != self._ticket:
                self._discard(identity)
                return None
            logger.exception("record_fetch_error pk=%s", identity)
            self._fail(FetchFailure(str(exc), identity))
            return None

        if ticket != self._ticket:
            self._discard(identity)
            return None
        self._install(identity, record)
        return self.snapshot

    def _install(self, identity: Any, record: dict) -> None:
        self.snapshot = copy.deepcopy(record)
        self.version += 1
        self.status = "ready"
        self.error = None
        logger.info("record_installed pk=%s version=%s", identity, self.version)
        if self._bus is not None:
            self._bus.emit(RECORD_INSTALLED, {"pk": identity, "version": self.version})

    def _fail(self, exc: RecordError) -> None:
        self.status = "error"
        self.error = exc
        if isinstance(exc, NotFound):
            self.snapshot = None
        logger.warning("record_fetch_failed pk=%s code=%s message=%s", exc.identity, exc.code, exc.message)
        if self._bus is not None:
            self._bus.emit(RECORD_FAILED, {"pk": exc.identity, "code": exc.code})

    def _discard(self, identity: Any) -> None:
        self.discarded += 1
        logger.debug("record_response_discarded %s", StaleResponse(identity))
