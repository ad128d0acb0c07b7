"""Stock view kernel utilities."""

from .canonical_json import CanonicalJsonTypeError, canonical_dumps
from .fingerprint import context_hash

__all__ = [
    "CanonicalJsonTypeError",
    "canonical_dumps",
    "context_hash",
]
