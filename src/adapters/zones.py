"""
IANA Timezone Adapter.

Implements the TimeZonePort interface over the IANA tz database via zoneinfo
(falling back to the tzdata package where the host has no system database).
Rules carry their own zone names, so zones are resolved per rule rather than
bound to a single display timezone.

Key behaviors:
- get_zone: resolves and memoizes ZoneInfo instances per resolver
- is_valid: validation-time check used before a rule is saved
"""

from __future__ import annotations

from datetime import tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class ZoneInfoResolver:
    """
    Timezone resolver backed by zoneinfo.

    Handles daylight-saving transitions inside rule windows correctly.
    """

    def __init__(self) -> None:
        self._zones: dict[str, tzinfo] = {}

    def get_zone(self, name: str) -> tzinfo:
        """
        Resolve an IANA zone name.

        Raises:
            KeyError: if the zone is unknown
        """
        zone = self._zones.get(name)
        if zone is None:
            try:
                zone = ZoneInfo(name)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise KeyError(f"Unknown timezone: {name}") from e
            self._zones[name] = zone
        return zone

    def is_valid(self, name: str) -> bool:
        """Check if a zone name resolves."""
        if not name:
            return False
        try:
            self.get_zone(name)
        except KeyError:
            return False
        return True


def create_zone_resolver() -> ZoneInfoResolver:
    """Factory function to create a zone resolver."""
    return ZoneInfoResolver()
