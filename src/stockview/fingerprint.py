"""Content fingerprints used as cache keys."""

from __future__ import annotations

import hashlib
from typing import Any

from .canonical_json import canonical_dumps


def context_hash(obj: Any) -> str:
    """Return the canonical SHA-256 fingerprint of a JSON-shaped object."""
    data = canonical_dumps(obj).encode("utf-8")
    digest = hashlib.sha256(data).hexdigest()
    return f"sha256:{digest}"
