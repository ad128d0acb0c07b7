"""Bearer JWT auth middleware producing the acting user for permission checks."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import httpx
from jose import jwt
from jose.exceptions import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from app import settings


logger = logging.getLogger("stockview.auth")

PUBLIC_PATHS = frozenset({"/health"})

DEV_ACTOR = {"id": "dev-user", "roles": [], "is_superuser": True}


class JwksCache:
    """Signing keys fetched from the identity provider, kept for ``ttl`` seconds.

    Fetches go through ``client`` when one is given; otherwise a short-lived
    ``httpx.AsyncClient`` is opened per fetch.
    """

    def __init__(
        self,
        url: str,
        ttl: float = 600.0,
        clock: Callable[[], float] = time.time,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.ttl = ttl
        self._clock = clock
        self._client = client
        self._keys: list | None = None
        self._fetched_at = 0.0

    async def _get(self) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(self.url)
        async with httpx.AsyncClient(timeout=10.0) as client:
            return await client.get(self.url)

    async def _fetch(self) -> list:
        resp = await self._get()
        resp.raise_for_status()
        self._keys = list(resp.json().get("keys") or [])
        self._fetched_at = self._clock()
        logger.info("jwks_fetched url=%s keys=%s", self.url, len(self._keys))
        return self._keys

    async def keys(self, force: bool = False) -> list:
        fresh = self._keys is not None and self._clock() - self._fetched_at < self.ttl
        return self._keys if fresh and not force else await self._fetch()

    async def find(self, kid: Any) -> dict | None:
        # A rotated key shows up as an unknown kid; refetch once before giving up.
        for force in (False, True):
            match = next((k for k in await self.keys(force=force) if k.get("kid") == kid), None)
            if match is not None:
                return match
        return None


def bearer_token(request: Request) -> Optional[str]:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Bearer":
        return None
    return token.strip() or None


async def verify_token(token: str, jwks: JwksCache, issuer: Optional[str], audience: Optional[str]) -> dict:
    header = jwt.get_unverified_header(token)
    key = await jwks.find(header.get("kid"))
    if key is None:
        raise JWTError("Unknown kid")
    return jwt.decode(
        token,
        key,
        algorithms=[header.get("alg", "RS256")],
        issuer=issuer,
        audience=audience,
        options={"verify_aud": audience is not None, "verify_iss": issuer is not None},
    )


def actor_from_claims(claims: dict) -> dict:
    roles = claims.get("roles")
    if roles is None:
        roles = (claims.get("app_metadata") or {}).get("roles")
    return {
        "id": claims.get("sub"),
        "roles": [r for r in roles or [] if isinstance(r, str)],
        "is_superuser": bool(claims.get("is_superuser")),
    }


def _unauthorized(code: str, message: str, detail: dict | None = None) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": "Authorization", "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(body, status_code=401)


class JwtAuthMiddleware(BaseHTTPMiddleware):
    """Attaches ``request.state.actor`` from a verified bearer token.

    With ``STOCKVIEW_DISABLE_AUTH`` set every request acts as the dev
    superuser.
    """

    def __init__(
        self,
        app,
        jwks_url: str,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(app)
        self.jwks = JwksCache(jwks_url, client=client)
        self.issuer = issuer
        self.audience = audience

    async def dispatch(self, request: Request, call_next):
        if settings.auth_disabled():
            request.state.actor = dict(DEV_ACTOR)
            return await call_next(request)
        if request.method == "OPTIONS" or request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        token = bearer_token(request)
        if token is None:
            logger.warning("auth_missing_token path=%s", request.url.path)
            return _unauthorized("AUTH_MISSING_TOKEN", "Missing bearer token")
        try:
            claims = await verify_token(token, self.jwks, self.issuer, self.audience)
        except (JWTError, httpx.HTTPError) as exc:
            logger.warning("auth_invalid_token path=%s issuer=%s error=%s", request.url.path, self.issuer, exc)
            return _unauthorized("AUTH_INVALID_TOKEN", "Invalid bearer token", {"error": str(exc)})

        request.state.actor = actor_from_claims(claims)
        return await call_next(request)
