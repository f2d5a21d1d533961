"""
ScheduleComputer - finds the next instant at which a product's state changes.

Strategy:
- Every enabled rule contributes candidate boundaries strictly after the
  start instant and within the horizon: start_date, end_date + 1us (end is
  inclusive), seasonal open/close (local midnights) and time window
  open/close plus local midnights (weekday changes). Recurrences are stepped
  per year/day, never scanned per second.
- Candidates are sorted and re-resolved in order; the first whose effective
  state differs from the state at the start instant is the answer.
- No change within the horizon returns None. The horizon bounds work on
  yearly rules with no end date.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Sequence
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from src.core.entities import (
    AvailabilityRule,
    AvailabilityState,
    NextStateChange,
    RuleType,
    SeasonalRule,
    TimeBasedRule,
)

from ._matcher import anchor_year, default_zones, parse_hhmm, to_utc_instant
from ._resolver import Resolution, precedence_key, resolve_at
from .models import ProductContext
from .ports import TimeZonePort

logger = logging.getLogger(__name__)

# Smallest step past an inclusive end bound
RESOLUTION = timedelta(microseconds=1)

_ONE_MINUTE = timedelta(minutes=1)
_ONE_DAY = timedelta(days=1)
_MAX_GAP_MINUTES = 24 * 60

ResolutionObserver = Callable[[datetime, Resolution], None]


# --- Wall-clock Helpers ---


def wall_clock_to_utc(day: date, minute: int, tz: tzinfo) -> datetime:
    """
    First UTC instant whose local wall time is at or after day + minute.

    Wall times inside a DST gap do not exist; they map to the first minute
    after the gap.
    """
    naive = datetime.combine(day, time(minute // 60, minute % 60))
    utc = naive.replace(tzinfo=tz).astimezone(UTC)
    if utc.astimezone(tz).replace(tzinfo=None) == naive:
        return utc

    probe = min(utc, naive.replace(tzinfo=tz, fold=1).astimezone(UTC))
    for _ in range(_MAX_GAP_MINUTES):
        if probe.astimezone(tz).replace(tzinfo=None) >= naive:
            break
        probe += _ONE_MINUTE
    return probe


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


# --- Boundary Generation ---


def _bound_boundaries(rule: AvailabilityRule) -> Iterator[datetime]:
    if rule.start_date is not None:
        yield rule.start_date.astimezone(UTC)
    if rule.end_date is not None:
        yield rule.end_date.astimezone(UTC) + RESOLUTION


def _seasonal_boundaries(
    rule: SeasonalRule,
    start: datetime,
    limit: datetime,
    zones: TimeZonePort,
) -> Iterator[datetime]:
    config = rule.seasonal_config
    tz = zones.get_zone(config.timezone)
    wraps = (config.start_month, config.start_day) > (config.end_month, config.end_day)

    if config.yearly:
        years: Iterable[int] = range(
            start.astimezone(tz).year - 1, limit.astimezone(tz).year + 1
        )
    else:
        anchor = anchor_year(rule)
        years = () if anchor is None else (anchor,)

    for year in years:
        opens = _safe_date(year, config.start_month, config.start_day)
        if opens is not None:
            yield wall_clock_to_utc(opens, 0, tz)
        closes = _safe_date(year + 1 if wraps else year, config.end_month, config.end_day)
        if closes is not None:
            yield wall_clock_to_utc(closes + _ONE_DAY, 0, tz)


def _time_window_boundaries(
    rule: TimeBasedRule,
    start: datetime,
    limit: datetime,
    zones: TimeZonePort,
) -> Iterator[datetime]:
    restrictions = rule.time_restrictions
    tz = zones.get_zone(restrictions.timezone)
    open_minute = parse_hhmm(restrictions.start_time)
    close_minute = parse_hhmm(restrictions.end_time) + 1  # end minute is inclusive

    day = start.astimezone(tz).date() - _ONE_DAY
    last = limit.astimezone(tz).date() + _ONE_DAY
    while day <= last:
        yield wall_clock_to_utc(day, 0, tz)
        yield wall_clock_to_utc(day, open_minute, tz)
        if close_minute >= 24 * 60:
            yield wall_clock_to_utc(day + _ONE_DAY, 0, tz)
        else:
            yield wall_clock_to_utc(day, close_minute, tz)
        day += _ONE_DAY


def rule_boundaries(
    rule: AvailabilityRule,
    start: datetime,
    limit: datetime,
    zones: TimeZonePort,
) -> list[datetime]:
    """Boundary instants of one rule in (start, limit], unsorted."""
    candidates = list(_bound_boundaries(rule))
    if rule.rule_type == RuleType.SEASONAL:
        candidates.extend(_seasonal_boundaries(rule, start, limit, zones))  # type: ignore[arg-type]
    elif rule.rule_type == RuleType.TIME_BASED:
        candidates.extend(_time_window_boundaries(rule, start, limit, zones))  # type: ignore[arg-type]
    return [at for at in candidates if start < at <= limit]


def candidate_boundaries(
    rules: Iterable[AvailabilityRule],
    start: datetime,
    limit: datetime,
    zones: TimeZonePort,
) -> list[tuple[datetime, AvailabilityRule]]:
    """
    Unique boundary instants across all enabled rules, ascending.

    When several rules share an instant, the one with the highest precedence
    is kept as the trigger.
    """
    by_instant: dict[datetime, AvailabilityRule] = {}
    for rule in rules:
        if not rule.enabled:
            continue
        for at in rule_boundaries(rule, start, limit, zones):
            current = by_instant.get(at)
            if current is None or precedence_key(rule) < precedence_key(current):
                by_instant[at] = rule
    return sorted(by_instant.items(), key=lambda item: item[0])


# --- Schedule Computer ---


def next_change(
    rules: Sequence[AvailabilityRule],
    from_instant: datetime,
    horizon: timedelta,
    context: ProductContext | None = None,
    *,
    default_state: AvailabilityState = AvailabilityState.AVAILABLE,
    zones: TimeZonePort | None = None,
    strict: bool = True,
    observer: ResolutionObserver | None = None,
) -> NextStateChange | None:
    """
    Next state-changing instant strictly after from_instant.

    Args:
        rules: The product's rules
        from_instant: Timezone-aware start instant
        horizon: How far past from_instant to search
        context: Inventory/custom inputs, held constant across the search
        default_state: Baseline state when no rule matches
        zones: Timezone resolver
        strict: Raise on unorderable ties instead of picking deterministically
        observer: Called with every (instant, resolution) evaluated

    Returns:
        The change, or None if nothing changes within the horizon.
    """
    resolver = default_zones(zones)
    start = to_utc_instant(from_instant)
    if horizon <= timedelta(0):
        return None
    limit = start + horizon

    current = resolve_at(rules, start, context, resolver, strict=strict)
    if observer is not None:
        observer(start, current)
    baseline = current.state(default_state)

    for at, trigger in candidate_boundaries(rules, start, limit, resolver):
        resolution = resolve_at(rules, at, context, resolver, strict=strict)
        if observer is not None:
            observer(at, resolution)
        state = resolution.state(default_state)
        if state != baseline:
            return NextStateChange(
                at=at,
                state=state,
                rule=resolution.winner or trigger,
            )

    logger.debug(
        "No state change within %s of %s (%d rules)",
        horizon,
        start.isoformat(),
        len(rules),
    )
    return None
