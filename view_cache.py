"""Composed view cache keyed on record identity and snapshot version."""

from __future__ import annotations

import copy
from collections import OrderedDict
from typing import Any, Callable, Tuple

from stockview.fingerprint import context_hash


CacheKey = Tuple[str, int, str]


class ViewCache:
    """Small LRU of composed views.

    Entries are keyed on ``(pk, version, context fingerprint)``. A refresh
    bumps the store version, so stale views are never returned; ``invalidate``
    drops every entry for a record eagerly.
    """

    def __init__(self, max_entries: int = 32) -> None:
        self._max = max_entries
        self._entries: "OrderedDict[CacheKey, Any]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(pk: Any, version: int, context: Any) -> CacheKey:
        return (str(pk), int(version), context_hash(context))

    def get_or_build(self, key: CacheKey, build: Callable[[], Any]) -> Any:
        if key in self._entries:
            self.hits += 1
            self._entries.move_to_end(key)
            return copy.deepcopy(self._entries[key])
        self.misses += 1
        value = build()
        self._entries[key] = copy.deepcopy(value)
        while len(self._entries) > self._max:
            self._entries.popitem(last=False)
        return value

    def invalidate(self, pk: Any) -> int:
        target = str(pk)
        stale = [k for k in self._entries if k[0] == target]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
