"""
ConflictResolver - picks the single effective rule among matching rules.

Total order, applied successively:
1. Highest priority
2. Most specific rule type: date_range > time_based > seasonal > inventory > custom
3. Lexicographically smallest rule id

Only two rules sharing priority, type and id are unorderable; strict
resolution raises AmbiguousRuleError for them, lenient resolution picks one
deterministically and reports the conflict as manual.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from itertools import combinations

from src.core.entities import (
    AvailabilityRule,
    AvailabilityState,
    ResolutionStrategy,
    RuleType,
)

from ._matcher import matching_rules
from .models import AmbiguousRuleError, ProductContext, StaticConflict
from .ports import TimeZonePort

# Lower rank = more specific
SPECIFICITY_RANK: dict[RuleType, int] = {
    RuleType.DATE_RANGE: 0,
    RuleType.TIME_BASED: 1,
    RuleType.SEASONAL: 2,
    RuleType.INVENTORY: 3,
    RuleType.CUSTOM: 4,
}


def precedence_key(rule: AvailabilityRule) -> tuple[int, int, str]:
    """Sort key; the smallest key wins."""
    return (-rule.priority, SPECIFICITY_RANK[rule.rule_type], rule.id)


def decided_by(winner: AvailabilityRule, other: AvailabilityRule) -> ResolutionStrategy:
    """Which tier separated the winner from another matching rule."""
    if winner.priority != other.priority:
        return ResolutionStrategy.PRIORITY
    if SPECIFICITY_RANK[winner.rule_type] != SPECIFICITY_RANK[other.rule_type]:
        return ResolutionStrategy.DATE
    return ResolutionStrategy.MANUAL


@dataclass(frozen=True)
class Resolution:
    """Outcome of conflict resolution at one instant."""

    winner: AvailabilityRule | None
    ordered: tuple[AvailabilityRule, ...]
    ambiguous: bool = False

    def state(self, default_state: AvailabilityState) -> AvailabilityState:
        """Effective state, falling back to the caller's baseline."""
        if self.winner is None:
            return default_state
        return self.winner.state

    def pairs(self) -> list[tuple[AvailabilityRule, AvailabilityRule, ResolutionStrategy]]:
        """(winner, loser, strategy) for every rule the winner beat."""
        if self.winner is None:
            return []
        result = []
        for loser in self.ordered[1:]:
            strategy = decided_by(self.winner, loser)
            if self.ambiguous and precedence_key(loser) == precedence_key(self.winner):
                strategy = ResolutionStrategy.MANUAL
            result.append((self.winner, loser, strategy))
        return result


def resolve(
    matching: Sequence[AvailabilityRule],
    *,
    strict: bool = True,
) -> Resolution:
    """
    Pick the winner among rules that matched the same instant.

    Input order never influences the outcome.

    Raises:
        AmbiguousRuleError: if strict and the top two rules are unorderable
    """
    ordered = sorted(matching, key=precedence_key)
    if not ordered:
        return Resolution(winner=None, ordered=())

    ambiguous = len(ordered) > 1 and precedence_key(ordered[0]) == precedence_key(
        ordered[1]
    )
    if ambiguous:
        if strict:
            raise AmbiguousRuleError([ordered[0].id, ordered[1].id])
        ordered = sorted(ordered, key=lambda r: (*precedence_key(r), r.state.value))

    return Resolution(winner=ordered[0], ordered=tuple(ordered), ambiguous=ambiguous)


def resolve_at(
    rules: Iterable[AvailabilityRule],
    instant: datetime,
    context: ProductContext | None = None,
    zones: TimeZonePort | None = None,
    *,
    strict: bool = True,
) -> Resolution:
    """Match then resolve in one step."""
    return resolve(matching_rules(rules, instant, context, zones), strict=strict)


# --- Static Conflict Detection ---


def has_date_overlap(rule_a: AvailabilityRule, rule_b: AvailabilityRule) -> bool:
    """Overlap of two complete date ranges. Open-ended ranges are not judged."""
    if None in (rule_a.start_date, rule_a.end_date, rule_b.start_date, rule_b.end_date):
        return False
    return rule_a.start_date <= rule_b.end_date and rule_b.start_date <= rule_a.end_date  # type: ignore[operator]


def detect_rule_conflicts(rules: Iterable[AvailabilityRule]) -> list[StaticConflict]:
    """
    Pairwise analysis of a rule set, independent of any instant.

    - priority: two enabled rules share a priority
    - date_overlap: two enabled rules with overlapping date ranges assert
      different states
    """
    enabled = sorted((r for r in rules if r.enabled), key=lambda r: r.id)
    conflicts: list[StaticConflict] = []

    for rule_a, rule_b in combinations(enabled, 2):
        if rule_a.priority == rule_b.priority:
            conflicts.append(StaticConflict(rule_a, rule_b, "priority"))
        if has_date_overlap(rule_a, rule_b) and rule_a.state != rule_b.state:
            conflicts.append(StaticConflict(rule_a, rule_b, "date_overlap"))

    return conflicts
