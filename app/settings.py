from __future__ import annotations

import os
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def api_url() -> str:
    return (os.getenv("STOCKVIEW_API_URL") or "http://localhost:8000").strip().rstrip("/")


def api_token() -> str:
    return (os.getenv("STOCKVIEW_API_TOKEN") or "").strip()


def api_timeout() -> float:
    return float(os.getenv("STOCKVIEW_API_TIMEOUT", "10"))


def use_memory_backend() -> bool:
    return _flag("STOCKVIEW_USE_MEMORY")


def auth_disabled() -> bool:
    return _flag("STOCKVIEW_DISABLE_AUTH")


def jwks_url() -> str:
    return (os.getenv("STOCKVIEW_JWKS_URL") or "").strip()


def jwt_issuer() -> str | None:
    return (os.getenv("STOCKVIEW_JWT_ISSUER") or "").strip() or None


def jwt_audience() -> str | None:
    return (os.getenv("STOCKVIEW_JWT_AUD") or "").strip() or None


def cors_origins() -> set[str]:
    return {
        origin.strip().rstrip("/")
        for origin in os.getenv("STOCKVIEW_CORS_ORIGINS", "").split(",")
        if origin.strip()
    }
