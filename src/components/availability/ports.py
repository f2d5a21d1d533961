"""
Availability component port definitions.

All clock access, timezone lookups, persistence and caching come in through
these ports so the evaluation functions stay pure.
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any, Protocol

from src.core.entities import AvailabilityRule, AvailabilitySchedule


class ClockPort(Protocol):
    """Clock interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...


class TimeZonePort(Protocol):
    """IANA timezone database lookup."""

    def get_zone(self, name: str) -> tzinfo:
        """Resolve an IANA zone name. Raises KeyError for unknown zones."""
        ...

    def is_valid(self, name: str) -> bool:
        """Check if a zone name resolves."""
        ...


class RuleRepoPort(Protocol):
    """Persistence interface for availability rules."""

    def load_rules(self, product_id: str) -> list[AvailabilityRule]:
        """Load all rules for a product."""
        ...

    def save_rule(self, rule: AvailabilityRule) -> AvailabilityRule:
        """Insert or replace a rule."""
        ...

    def delete_rule(self, rule_id: str) -> None:
        """Delete a rule by ID."""
        ...


class ScheduleSinkPort(Protocol):
    """Sink the external job runner polls for due transitions."""

    def materialize(self, schedule: AvailabilitySchedule) -> None:
        """Persist a computed future transition."""
        ...


class VariantLookupPort(Protocol):
    """Catalog lookup for product variants."""

    def list_variant_ids(self, product_id: str) -> list[str]:
        """List variant IDs belonging to a product."""
        ...


class ScheduleCachePort(Protocol):
    """Cache for derived schedules, with a per-product invalidation hook."""

    def get(self, product_id: str, key: str) -> Any | None:
        """Get a cached value, or None on miss."""
        ...

    def put(self, product_id: str, key: str, value: Any) -> None:
        """Store a value for a product."""
        ...

    def invalidate_product(self, product_id: str) -> None:
        """Drop everything cached for a product."""
        ...


class RulesPort(Protocol):
    """Port for availability engine configuration."""

    def get_default_state(self) -> str:
        """Get the baseline state when no rule matches."""
        ...

    def get_default_timezone(self) -> str:
        """Get the timezone assumed for configs that omit one."""
        ...

    def get_horizon_days(self) -> int:
        """Get how far ahead schedule computation searches."""
        ...

    def get_max_priority(self) -> int:
        """Get the highest allowed rule priority."""
        ...

    def get_hidden_priority(self) -> int:
        """Get the priority given to migrated hidden rules."""
        ...

    def get_max_bulk_products(self) -> int:
        """Get the maximum number of products per bulk request."""
        ...

    def get_max_past_years(self) -> int:
        """Get how far in the past a rule's start date may lie."""
        ...

    def get_max_future_years(self) -> int:
        """Get how far in the future a rule's end date may lie."""
        ...

    def get_bulk_max_workers(self) -> int:
        """Get the thread pool size for bulk operations."""
        ...

    def get_cache_ttl_seconds(self) -> int:
        """Get how long derived schedules stay cached."""
        ...
