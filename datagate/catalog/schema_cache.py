# Copyright (c) 2025 Kenneth Stott
#
# This source code is licensed under the Business Source License 1.1
# found in the LICENSE file in the root directory of this source tree.
#
# NOTICE: Use of this software for training artificial intelligence or
# machine learning models is strictly prohibited without explicit written
# permission from the copyright holder.

"""Thread-safe TTL cache for compact schema text.

Entries are keyed by data-source identity. An entry past its expiry is
treated as a miss and dropped on lookup; it is never served.

Usage:
    cache = SchemaCache(ttl_seconds=300)
    ddl = cache.get("postgres:db.local:5432:app:reader")
    if ddl is None:
        ddl = introspect()
        cache.set("postgres:db.local:5432:app:reader", ddl)
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


class SchemaCache:
    """Key -> (value, expiry) store guarded by a lock."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                logger.debug(f"Schema cache entry expired: {key}")
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_schema_cache: Optional[SchemaCache] = None
_schema_cache_lock = threading.Lock()


def get_schema_cache() -> SchemaCache:
    """Return the process-wide schema cache shared by all connectors."""
    global _schema_cache
    if _schema_cache is None:
        with _schema_cache_lock:
            if _schema_cache is None:
                from datagate.config import get_config
                _schema_cache = SchemaCache(ttl_seconds=get_config().schema_.cache_ttl_seconds)
    return _schema_cache


def reset_schema_cache() -> None:
    """Drop the shared cache (and its TTL) so it is rebuilt from config."""
    global _schema_cache
    with _schema_cache_lock:
        _schema_cache = None
