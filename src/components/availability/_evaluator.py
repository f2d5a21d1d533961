"""
RuleEvaluator - effective availability state of a product at an instant.

Pure and deterministic: the same rules, instant and context always give the
same evaluation. Rules belonging to other products are ignored.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timedelta

from src.core.entities import (
    AvailabilityEvaluation,
    AvailabilityRule,
    AvailabilityState,
)

from ._matcher import default_zones, matching_rules, to_utc_instant
from ._resolver import resolve
from ._schedule import next_change
from .models import ProductContext, RuleStatistics
from .ports import TimeZonePort

logger = logging.getLogger(__name__)

DEFAULT_HORIZON = timedelta(days=366)


def rules_for_product(
    product_id: str,
    rules: Iterable[AvailabilityRule],
) -> list[AvailabilityRule]:
    """Keep only the product's own rules."""
    return [r for r in rules if r.product_id == product_id]


def evaluate(
    product_id: str,
    rules: Iterable[AvailabilityRule],
    instant: datetime,
    context: ProductContext | None = None,
    *,
    default_state: AvailabilityState = AvailabilityState.AVAILABLE,
    horizon: timedelta = DEFAULT_HORIZON,
    zones: TimeZonePort | None = None,
) -> AvailabilityEvaluation:
    """
    Evaluate a product's state at an instant.

    Raises:
        ValueError: if instant is naive
        AmbiguousRuleError: if two matching rules cannot be ordered
    """
    resolver = default_zones(zones)
    at = to_utc_instant(instant)
    own_rules = rules_for_product(product_id, rules)

    resolution = resolve(matching_rules(own_rules, at, context, resolver))
    upcoming = next_change(
        own_rules,
        at,
        horizon,
        context,
        default_state=default_state,
        zones=resolver,
    )

    evaluation = AvailabilityEvaluation(
        product_id=product_id,
        current_state=resolution.state(default_state),
        effective_rule=resolution.winner,
        applied_rules=resolution.ordered,
        computed_at=at,
        next_state_change=upcoming,
    )

    logger.debug(
        "Evaluated %s at %s: %s (rule=%s, %d matching)",
        product_id,
        at.isoformat(),
        evaluation.current_state.value,
        resolution.winner.id if resolution.winner else None,
        len(resolution.ordered),
    )
    return evaluation


def evaluate_many(
    product_rules: Mapping[str, Sequence[AvailabilityRule]],
    instant: datetime,
    contexts: Mapping[str, ProductContext] | None = None,
    *,
    default_state: AvailabilityState = AvailabilityState.AVAILABLE,
    horizon: timedelta = DEFAULT_HORIZON,
    zones: TimeZonePort | None = None,
) -> dict[str, AvailabilityEvaluation]:
    """Evaluate several products at the same instant."""
    resolver = default_zones(zones)
    contexts = contexts or {}
    return {
        product_id: evaluate(
            product_id,
            rules,
            instant,
            contexts.get(product_id),
            default_state=default_state,
            horizon=horizon,
            zones=resolver,
        )
        for product_id, rules in product_rules.items()
    }


def summarize_rules(rules: Iterable[AvailabilityRule]) -> RuleStatistics:
    """Counts by type and state over a rule set."""
    rules = list(rules)
    by_type = Counter(r.rule_type.value for r in rules)
    by_state = Counter(r.state.value for r in rules)
    return RuleStatistics(
        total_rules=len(rules),
        active_rules=sum(1 for r in rules if r.enabled),
        rules_by_type=dict(by_type),
        rules_by_state=dict(by_state),
    )
