"""FastAPI app serving composed stock detail views."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app import settings
from app.api_client import StockApiClient
from app.auth import DEV_ACTOR, JwtAuthMiddleware
from app.stores import InMemoryStockBackend
from action_assembler import RolePermissions
from detail_page import StockDetailPage
from mutation_workflow import KINDS
from record_store import RecordError


logger = logging.getLogger("stockview")
logging.basicConfig(level=logging.INFO)

backend: Any = None


def get_backend() -> Any:
    global backend
    if backend is None:
        backend = InMemoryStockBackend() if settings.use_memory_backend() else StockApiClient()
        logger.info("backend_ready kind=%s", type(backend).__name__)
    return backend


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    closer = getattr(backend, "aclose", None)
    if closer is not None:
        await closer()


app = FastAPI(title="Stock Detail", lifespan=lifespan)
app.add_middleware(JwtAuthMiddleware, jwks_url=settings.jwks_url(), issuer=settings.jwt_issuer(), audience=settings.jwt_audience())
app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(settings.cors_origins()),
    allow_origin_regex=r"^http://(localhost|127\.0\.0\.1):\d+$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _errors_response(errors: list, status: int = 400, **extra: Any) -> JSONResponse:
    body = {"ok": False, **extra, "errors": errors, "warnings": []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _resolve_actor(request: Request) -> dict | JSONResponse:
    actor = getattr(request.state, "actor", None)
    if actor is None and settings.auth_disabled():
        actor = dict(DEV_ACTOR)
    if not actor or not actor.get("id"):
        return _error_response("AUTH_REQUIRED", "Authenticated user required", status=401)
    return actor


async def _safe_json(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def _open_page(request: Request, pk: int) -> StockDetailPage | JSONResponse:
    actor = _resolve_actor(request)
    if isinstance(actor, JSONResponse):
        return actor
    page = StockDetailPage(get_backend(), permissions=RolePermissions(actor), actor=actor)
    await page.navigate(pk)
    error = page.store.error
    if error is not None:
        status = 404 if page.store.not_found else 502
        return _errors_response([error.to_issue()], status=status)
    return page


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/stock/{pk}/detail")
async def stock_detail(pk: int, request: Request):
    page = await _open_page(request, pk)
    if isinstance(page, JSONResponse):
        return page
    return _ok_response({"view": page.render()})


@app.get("/stock/{pk}/panels/{key}")
async def stock_panel(pk: int, key: str, request: Request):
    page = await _open_page(request, pk)
    if isinstance(page, JSONResponse):
        return page
    try:
        content = await page.load_panel(key)
    except KeyError:
        return _error_response("PANEL_UNKNOWN", f"Unknown panel: {key}", "key", status=404)
    except RecordError as exc:
        return _errors_response([exc.to_issue()], status=404 if exc.code == "RECORD_NOT_FOUND" else 502)
    return _ok_response({"panel": key, "content": content})


@app.post("/stock/{pk}/operations/{kind}")
async def stock_operation(pk: int, kind: str, request: Request):
    if kind not in KINDS:
        return _error_response("OPERATION_UNKNOWN", f"Unknown operation: {kind}", "kind", status=404)
    page = await _open_page(request, pk)
    if isinstance(page, JSONResponse):
        return page
    body = await _safe_json(request)
    payload = body.get("payload") if isinstance(body.get("payload"), dict) else body

    opened = page.invoke(kind)
    if not opened["ok"]:
        status = 403 if any(e["code"] == "ACTION_FORBIDDEN" for e in opened["errors"]) else 400
        return _errors_response(opened["errors"], status=status)
    result = opened.get("result") or {}
    if not result.get("ok", False):
        return _errors_response(result.get("errors") or [], status=409)

    submitted = await page.workflows[kind].submit(payload)
    if not submitted["ok"]:
        return _errors_response(submitted["errors"], status=400, workflow=page.workflows[kind].to_dict())
    logger.info("operation_applied kind=%s pk=%s actor=%s", kind, pk, page.permissions.actor_id)
    return _ok_response({"workflow": page.workflows[kind].to_dict(), "view": page.render()})


@app.put("/stock/{pk}/notes")
async def stock_notes(pk: int, request: Request):
    page = await _open_page(request, pk)
    if isinstance(page, JSONResponse):
        return page
    if not page.permissions.check("stock", "change"):
        return _error_response("ACTION_FORBIDDEN", "Actor lacks required permission", "permission", status=403)
    body = await _safe_json(request)
    notes = body.get("notes")
    if not isinstance(notes, str):
        return _error_response("NOTES_INVALID", "notes must be string", "notes")
    await page.save_notes(notes)
    return _ok_response({"notes": (page.store.snapshot or {}).get("notes") or ""})
