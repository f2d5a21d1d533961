"""
Schedule cache adapters.

Derived schedules (evaluations, previews) are cached per product with a
fixed TTL. Every rule mutation for a product must call invalidate_product so
readers never see a schedule computed from stale rules.

Expired entries are swept on every put, so the cache holds at most the
entries written within one TTL.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any

from src.components.availability.ports import ClockPort, RulesPort

DEFAULT_TTL_SECONDS = 300


class TTLScheduleCache:
    """In-process TTL cache keyed by (product_id, key)."""

    def __init__(self, clock: ClockPort, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._clock = clock
        self._ttl = timedelta(seconds=ttl_seconds)
        self._lock = threading.Lock()
        self._entries: dict[str, dict[str, tuple[datetime, Any]]] = {}

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get(self, product_id: str, key: str) -> Any | None:
        now = self._clock.now_utc()
        with self._lock:
            entry = self._entries.get(product_id, {}).get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                del self._entries[product_id][key]
                return None
            return value

    def put(self, product_id: str, key: str, value: Any) -> None:
        now = self._clock.now_utc()
        with self._lock:
            self._sweep(now)
            self._entries.setdefault(product_id, {})[key] = (now + self._ttl, value)

    def invalidate_product(self, product_id: str) -> None:
        with self._lock:
            self._entries.pop(product_id, None)

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        with self._lock:
            return sum(len(v) for v in self._entries.values())

    def _sweep(self, now: datetime) -> None:
        # Caller holds the lock
        for product_id in list(self._entries):
            entries = self._entries[product_id]
            for key in [k for k, (expires_at, _) in entries.items() if expires_at <= now]:
                del entries[key]
            if not entries:
                del self._entries[product_id]


class NoOpScheduleCache:
    """Default cache that never stores anything."""

    def get(self, product_id: str, key: str) -> Any | None:
        return None

    def put(self, product_id: str, key: str, value: Any) -> None:
        pass

    def invalidate_product(self, product_id: str) -> None:
        pass


def create_schedule_cache(clock: ClockPort, rules: RulesPort | None = None) -> TTLScheduleCache:
    """Factory function to create a TTL cache sized from the rules file."""
    ttl_seconds = rules.get_cache_ttl_seconds() if rules is not None else DEFAULT_TTL_SECONDS
    return TTLScheduleCache(clock, ttl_seconds)
