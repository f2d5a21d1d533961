"""
RuleMatcher - decides whether a single rule is active at an instant.

Predicates, all of which must hold:
1. Absolute bounds: start_date <= instant <= end_date (inclusive, UTC)
2. Seasonal window (seasonal rules): month/day membership in the rule's zone,
   wrapping across the year boundary when start > end
3. Time window (time_based rules): weekday (0=Sunday) and minute-of-day in
   the rule's zone, wrapping past midnight when end < start
4. Inventory: caller-supplied below_threshold flag
5. Custom: caller-supplied predicate; fails closed when absent

Disabled rules never match.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import UTC, datetime

from src.core.entities import (
    AvailabilityRule,
    RuleType,
    SeasonalConfig,
    SeasonalRule,
    TimeBasedRule,
)

from .models import ProductContext
from .ports import TimeZonePort

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

EMPTY_CONTEXT = ProductContext()


def default_zones(zones: TimeZonePort | None) -> TimeZonePort:
    """Return the injected resolver, or a zoneinfo-backed one."""
    if zones is not None:
        return zones
    from src.adapters.zones import ZoneInfoResolver

    return ZoneInfoResolver()


def to_utc_instant(instant: datetime) -> datetime:
    """Normalize an instant to UTC. Wall-clock (naive) values are refused."""
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise ValueError("Evaluation instant must be timezone-aware")
    return instant.astimezone(UTC)


def parse_hhmm(value: str) -> int:
    """Parse HH:MM into minute-of-day."""
    match = TIME_PATTERN.match(value or "")
    if match is None:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def sunday_based_weekday(dt: datetime) -> int:
    """Weekday with 0=Sunday .. 6=Saturday."""
    return (dt.weekday() + 1) % 7


def in_wrapping_range(value: int, start: int, end: int) -> bool:
    """Inclusive range test that wraps when start > end."""
    if start > end:
        return value >= start or value <= end
    return start <= value <= end


# --- Individual Predicates ---


def within_bounds(rule: AvailabilityRule, instant: datetime) -> bool:
    """Absolute start/end bounds, both inclusive."""
    if rule.start_date is not None and instant < rule.start_date:
        return False
    if rule.end_date is not None and instant > rule.end_date:
        return False
    return True


def season_year(config: SeasonalConfig, local: datetime) -> int:
    """Year in which the season containing `local` opened."""
    md = local.month * 100 + local.day
    start = config.start_month * 100 + config.start_day
    end = config.end_month * 100 + config.end_day
    if start > end and md <= end:
        return local.year - 1
    return local.year


def anchor_year(rule: SeasonalRule) -> int | None:
    """Calendar year of start_date as written; the one-off season opens in it."""
    if rule.start_date is None:
        return None
    return rule.start_date.year


def within_season(
    rule: SeasonalRule,
    instant: datetime,
    zones: TimeZonePort,
) -> bool:
    """Seasonal month/day window in the rule's timezone."""
    config = rule.seasonal_config
    tz = zones.get_zone(config.timezone)
    local = instant.astimezone(tz)

    md = local.month * 100 + local.day
    start = config.start_month * 100 + config.start_day
    end = config.end_month * 100 + config.end_day
    if not in_wrapping_range(md, start, end):
        return False

    if config.yearly:
        return True

    # Non-yearly windows only apply to the season anchored by start_date
    anchor = anchor_year(rule)
    if anchor is None:
        return False
    return season_year(config, local) == anchor


def within_time_window(
    rule: TimeBasedRule,
    instant: datetime,
    zones: TimeZonePort,
) -> bool:
    """Weekday and time-of-day window in the rule's timezone."""
    restrictions = rule.time_restrictions
    local = instant.astimezone(zones.get_zone(restrictions.timezone))

    if sunday_based_weekday(local) not in restrictions.days_of_week:
        return False

    minute = local.hour * 60 + local.minute
    return in_wrapping_range(
        minute,
        parse_hhmm(restrictions.start_time),
        parse_hhmm(restrictions.end_time),
    )


# --- Matcher ---


def matches(
    rule: AvailabilityRule,
    instant: datetime,
    context: ProductContext | None = None,
    zones: TimeZonePort | None = None,
) -> bool:
    """Check whether a rule is active at the given instant."""
    if not rule.enabled:
        return False

    instant = to_utc_instant(instant)
    if not within_bounds(rule, instant):
        return False

    ctx = context or EMPTY_CONTEXT

    if rule.rule_type == RuleType.DATE_RANGE:
        return True
    if rule.rule_type == RuleType.SEASONAL:
        return within_season(rule, instant, default_zones(zones))  # type: ignore[arg-type]
    if rule.rule_type == RuleType.TIME_BASED:
        return within_time_window(rule, instant, default_zones(zones))  # type: ignore[arg-type]
    if rule.rule_type == RuleType.INVENTORY:
        return ctx.below_threshold
    if rule.rule_type == RuleType.CUSTOM:
        if ctx.custom_predicate is None:
            return False
        return bool(ctx.custom_predicate(rule, instant))
    return False


def matching_rules(
    rules: Iterable[AvailabilityRule],
    instant: datetime,
    context: ProductContext | None = None,
    zones: TimeZonePort | None = None,
) -> list[AvailabilityRule]:
    """All rules active at the instant, in input order."""
    resolver = default_zones(zones)
    return [r for r in rules if matches(r, instant, context, resolver)]
