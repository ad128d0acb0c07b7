"""Async client for the stock REST API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import httpx

from app import settings
from mutation_workflow import MutationFailure
from record_store import FetchFailure, NotFound


logger = logging.getLogger("stockview.api")

_OPERATION_PATHS = {
    "count": "/api/stock/count/",
    "add": "/api/stock/add/",
    "remove": "/api/stock/remove/",
    "transfer": "/api/stock/transfer/",
}


def _query(params: Dict[str, Any] | None) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            out[key] = "true" if value else "false"
        else:
            out[key] = str(value)
    return out


def _results(body: Any) -> List[dict]:
    if isinstance(body, dict) and isinstance(body.get("results"), list):
        return body["results"]
    if isinstance(body, list):
        return body
    return []


def _error_detail(res: httpx.Response) -> dict:
    try:
        body = res.json()
    except ValueError:
        body = res.text
    return {"status": res.status_code, "body": body}


class StockApiClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        token = settings.api_token() if token is None else token
        if token:
            headers["Authorization"] = f"Token {token}"
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_url(),
            headers=headers,
            timeout=timeout if timeout is not None else settings.api_timeout(),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "StockApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _get(self, path: str, params: Dict[str, Any] | None = None, identity: Any = None) -> Any:
        try:
            res = await self._client.get(path, params=_query(params))
        except httpx.HTTPError as exc:
            logger.warning("api_transport_error path=%s error=%s", path, exc)
            raise FetchFailure(f"Transport error: {exc}", identity) from exc
        if res.status_code == 404:
            raise NotFound(identity=identity)
        if res.status_code >= 400:
            logger.warning("api_fetch_failed path=%s status=%s", path, res.status_code)
            raise FetchFailure(f"Unexpected status {res.status_code}", identity)
        return res.json()

    async def _send(self, method: str, path: str, body: dict) -> Any:
        try:
            res = await self._client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            logger.warning("api_transport_error path=%s error=%s", path, exc)
            raise MutationFailure("MUTATION_TRANSPORT_ERROR", str(exc)) from exc
        if res.status_code >= 400:
            logger.warning("api_mutation_failed path=%s status=%s", path, res.status_code)
            raise MutationFailure("MUTATION_REJECTED", f"Request rejected with status {res.status_code}", _error_detail(res))
        if not res.content:
            return None
        return res.json()

    async def get_record(self, pk: Any, params: Dict[str, Any] | None = None) -> dict:
        return await self._get(f"/api/stock/{pk}/", params, identity=pk)

    async def count_stock(self, request: dict) -> Any:
        return await self._send("POST", _OPERATION_PATHS["count"], request)

    async def add_stock(self, request: dict) -> Any:
        return await self._send("POST", _OPERATION_PATHS["add"], request)

    async def remove_stock(self, request: dict) -> Any:
        return await self._send("POST", _OPERATION_PATHS["remove"], request)

    async def transfer_stock(self, request: dict) -> Any:
        return await self._send("POST", _OPERATION_PATHS["transfer"], request)

    async def edit_record(self, pk: Any, changes: dict) -> Any:
        return await self._send("PATCH", f"/api/stock/{pk}/", changes)

    async def get_notes(self, pk: Any) -> str:
        body = await self._get(f"/api/stock/{pk}/", identity=pk)
        return (body or {}).get("notes") or ""

    async def save_notes(self, pk: Any, text: str) -> Any:
        return await self._send("PATCH", f"/api/stock/{pk}/", {"notes": text})

    async def list_attachments(self, model: str, pk: Any) -> List[dict]:
        return _results(await self._get("/api/attachment/", {"model_type": model, "model_id": pk}, identity=pk))

    async def list_test_results(self, stock_item: Any, part: Any) -> List[dict]:
        return _results(await self._get("/api/stock/test/", {"stock_item": stock_item, "part": part}, identity=stock_item))

    async def list_installed_items(self, parent: Any) -> List[dict]:
        return _results(await self._get("/api/stock/", {"belongs_to": parent, "part_detail": True}, identity=parent))

    async def list_child_items(self, ancestor: Any) -> List[dict]:
        return _results(await self._get("/api/stock/", {"ancestor": ancestor, "part_detail": True}, identity=ancestor))

    async def list_tracking(self, item: Any) -> List[dict]:
        return _results(await self._get("/api/stock/track/", {"item": item}, identity=item))
