"""
braincrm/cache.py

Short-lived collection cache.

Rules:
- Holds plain dict snapshots only (never ORM instances) keyed by table name.
- Never a source of truth: every entry can be dropped at any time.
- Services emit `collection_changed` AFTER a confirmed commit. The cache listens
  to it and drops every entry of that table, so the next reader reloads.

Any other reader can observe the same signal for a single table:

    collection_changed.connect(on_invoices_changed, sender="invoices")
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Hashable

from blinker import Namespace

logger = logging.getLogger(__name__)

# Guards every read and write of the entries across request threads.
_cache_lock = threading.RLock()

_signals = Namespace()

# sender = table name ("clients", "invoices", "role_permissions", ...)
collection_changed = _signals.signal("collection-changed")


class CollectionCache:
    """Per-table memo of list results and permission sets."""

    def __init__(self) -> None:
        self._entries: Dict[str, Dict[Hashable, Any]] = {}

    def init_app(self, app) -> None:
        # A fresh app never sees entries loaded by another one.
        self.clear()
        collection_changed.connect(self._on_collection_changed)
        app.extensions["braincrm_cache"] = self

    def get_or_load(self, table: str, key: Hashable, loader: Callable[[], Any]) -> Any:
        with _cache_lock:
            bucket = self._entries.setdefault(table, {})
            if key not in bucket:
                bucket[key] = loader()
            return bucket[key]

    def peek(self, table: str, key: Hashable) -> Any:
        """Return a cached value without loading (None when absent)."""
        with _cache_lock:
            return self._entries.get(table, {}).get(key)

    def invalidate(self, table: str) -> None:
        with _cache_lock:
            dropped = self._entries.pop(table, None)
        if dropped:
            logger.debug("cache: dropped %d entries for %s", len(dropped), table)

    def clear(self) -> None:
        with _cache_lock:
            self._entries.clear()

    def _on_collection_changed(self, sender: str, **_: Any) -> None:
        self.invalidate(sender)


def notify_changed(table: str) -> None:
    """Emit the refresh signal for a table. Call only after a successful commit."""
    collection_changed.send(table)
