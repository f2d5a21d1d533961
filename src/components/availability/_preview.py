"""
PreviewGenerator - resolved availability timeline over a window.

Resolves every candidate boundary in the window once, in order, recording
every transition and every conflict between simultaneously matching rules.
Unorderable ties never abort a preview; they are reported as manual
conflicts for an admin to fix.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime

from src.core.entities import (
    AvailabilityPreview,
    AvailabilityRule,
    AvailabilitySchedule,
    AvailabilityState,
    FutureState,
    RuleConflict,
)

from ._evaluator import rules_for_product
from ._matcher import default_zones, to_utc_instant
from ._resolver import Resolution, resolve_at
from ._schedule import ResolutionObserver, candidate_boundaries
from .models import ProductContext
from .ports import TimeZonePort

logger = logging.getLogger(__name__)


class ConflictRecorder:
    """Collects each (winner, loser) pair once, at its first detection."""

    def __init__(self) -> None:
        self._seen: set[tuple[int, int]] = set()
        self.conflicts: list[RuleConflict] = []

    def __call__(self, at: datetime, resolution: Resolution) -> None:
        for winner, loser, strategy in resolution.pairs():
            key = (id(winner), id(loser))
            if key in self._seen:
                continue
            self._seen.add(key)
            self.conflicts.append(
                RuleConflict(
                    winner=winner,
                    loser=loser,
                    detected_at=at,
                    resolution=strategy,
                )
            )


def iter_transitions(
    rules: Sequence[AvailabilityRule],
    start: datetime,
    until: datetime,
    context: ProductContext | None = None,
    *,
    default_state: AvailabilityState = AvailabilityState.AVAILABLE,
    zones: TimeZonePort | None = None,
    observer: ResolutionObserver | None = None,
) -> Iterator[FutureState]:
    """
    Yield state transitions in (start, until], strictly ascending.

    Candidate boundaries are generated once for the whole window and
    resolved in order. Callers may stop consuming at any point.
    """
    resolver = default_zones(zones)
    cursor = to_utc_instant(start)
    end = to_utc_instant(until)
    if end <= cursor:
        return

    current = resolve_at(rules, cursor, context, resolver, strict=False)
    if observer is not None:
        observer(cursor, current)
    state = current.state(default_state)

    for at, trigger in candidate_boundaries(rules, cursor, end, resolver):
        resolution = resolve_at(rules, at, context, resolver, strict=False)
        if observer is not None:
            observer(at, resolution)
        next_state = resolution.state(default_state)
        if next_state != state:
            yield FutureState(date=at, state=next_state, rule=resolution.winner or trigger)
            state = next_state


def preview(
    product_id: str,
    rules: Iterable[AvailabilityRule],
    start: datetime,
    until: datetime,
    context: ProductContext | None = None,
    *,
    default_state: AvailabilityState = AvailabilityState.AVAILABLE,
    zones: TimeZonePort | None = None,
) -> AvailabilityPreview:
    """
    Build the timeline of a product between start and until.

    Raises:
        ValueError: if either bound is naive or until precedes start
    """
    resolver = default_zones(zones)
    window_start = to_utc_instant(start)
    window_end = to_utc_instant(until)
    if window_end < window_start:
        raise ValueError("Preview end must not precede its start")

    own_rules = rules_for_product(product_id, rules)
    recorder = ConflictRecorder()

    current = resolve_at(own_rules, window_start, context, resolver, strict=False)
    recorder(window_start, current)

    future_states = tuple(
        iter_transitions(
            own_rules,
            window_start,
            window_end,
            context,
            default_state=default_state,
            zones=resolver,
            observer=recorder,
        )
    )

    logger.debug(
        "Preview for %s over %s..%s: %d transitions, %d conflicts",
        product_id,
        window_start.isoformat(),
        window_end.isoformat(),
        len(future_states),
        len(recorder.conflicts),
    )

    return AvailabilityPreview(
        product_id=product_id,
        current_state=current.state(default_state),
        window_start=window_start,
        window_end=window_end,
        future_states=future_states,
        conflicts=tuple(recorder.conflicts),
    )


def schedules_from_preview(result: AvailabilityPreview) -> list[AvailabilitySchedule]:
    """Turn a preview's transitions into schedule rows for the job runner."""
    return [
        AvailabilitySchedule(
            rule_id=state.rule.id,
            product_id=result.product_id,
            scheduled_at=state.date,
            state_change=state.state.value,
        )
        for state in result.future_states
        if state.rule is not None
    ]
