"""
Tests for RuleEvaluator.

Evaluation is pure: same rules, instant and context give the same result.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from src.adapters.zones import ZoneInfoResolver
from src.components.availability import (
    AmbiguousRuleError,
    ProductContext,
    evaluate,
    evaluate_many,
    summarize_rules,
)
from src.core.entities import (
    AvailabilityRule,
    AvailabilityState,
    DateRangeRule,
    InventoryRule,
    SeasonalConfig,
    SeasonalRule,
)


@pytest.fixture
def scenario_rules() -> list[AvailabilityRule]:
    """Year-long hide, overridden by a December season."""
    return [
        DateRangeRule(
            id="hide-2024",
            product_id="p1",
            name="Hidden all year",
            priority=1,
            state=AvailabilityState.HIDDEN,
            start_date=datetime(2024, 1, 1, tzinfo=UTC),
            end_date=datetime(2024, 12, 31, tzinfo=UTC),
        ),
        SeasonalRule(
            id="december",
            product_id="p1",
            name="December",
            priority=10,
            state=AvailabilityState.AVAILABLE,
            seasonal_config=SeasonalConfig(
                start_month=12, start_day=1, end_month=12, end_day=31, yearly=True
            ),
        ),
    ]


class TestEvaluate:
    """Single product evaluation."""

    def test_no_rules_is_available(self, frozen_now: datetime, zones: ZoneInfoResolver) -> None:
        evaluation = evaluate("p1", [], frozen_now, zones=zones)

        assert evaluation.current_state == AvailabilityState.AVAILABLE
        assert evaluation.effective_rule is None
        assert evaluation.applied_rules == ()
        assert evaluation.next_state_change is None
        assert evaluation.computed_at == frozen_now

    def test_custom_baseline(self, frozen_now: datetime, zones: ZoneInfoResolver) -> None:
        evaluation = evaluate(
            "p1", [], frozen_now, default_state=AvailabilityState.COMING_SOON, zones=zones
        )
        assert evaluation.current_state == AvailabilityState.COMING_SOON

    def test_higher_priority_season_wins_in_december(
        self, scenario_rules: list[AvailabilityRule], zones: ZoneInfoResolver
    ) -> None:
        evaluation = evaluate(
            "p1", scenario_rules, datetime(2024, 12, 15, tzinfo=UTC), zones=zones
        )

        assert evaluation.current_state == AvailabilityState.AVAILABLE
        assert evaluation.effective_rule is not None
        assert evaluation.effective_rule.id == "december"
        assert [r.id for r in evaluation.applied_rules] == ["december", "hide-2024"]

    def test_only_date_rule_in_june(
        self, scenario_rules: list[AvailabilityRule], zones: ZoneInfoResolver
    ) -> None:
        evaluation = evaluate(
            "p1", scenario_rules, datetime(2024, 6, 15, tzinfo=UTC), zones=zones
        )

        assert evaluation.current_state == AvailabilityState.HIDDEN
        assert [r.id for r in evaluation.applied_rules] == ["hide-2024"]

    def test_next_change_reported(
        self, scenario_rules: list[AvailabilityRule], zones: ZoneInfoResolver
    ) -> None:
        evaluation = evaluate(
            "p1", scenario_rules, datetime(2024, 6, 15, tzinfo=UTC), zones=zones
        )

        change = evaluation.next_state_change
        assert change is not None
        # December 1st, local midnight in Los Angeles
        assert change.at == datetime(2024, 12, 1, 8, 0, tzinfo=UTC)
        assert change.state == AvailabilityState.AVAILABLE
        assert change.rule is not None and change.rule.id == "december"

    def test_horizon_limits_next_change(
        self, scenario_rules: list[AvailabilityRule], zones: ZoneInfoResolver
    ) -> None:
        evaluation = evaluate(
            "p1",
            scenario_rules,
            datetime(2024, 6, 15, tzinfo=UTC),
            horizon=timedelta(days=7),
            zones=zones,
        )
        assert evaluation.next_state_change is None

    def test_other_products_ignored(
        self, scenario_rules: list[AvailabilityRule], zones: ZoneInfoResolver
    ) -> None:
        evaluation = evaluate(
            "p2", scenario_rules, datetime(2024, 6, 15, tzinfo=UTC), zones=zones
        )
        assert evaluation.current_state == AvailabilityState.AVAILABLE
        assert evaluation.applied_rules == ()

    def test_deterministic(
        self, scenario_rules: list[AvailabilityRule], zones: ZoneInfoResolver
    ) -> None:
        at = datetime(2024, 12, 15, tzinfo=UTC)
        first = evaluate("p1", scenario_rules, at, zones=zones)
        second = evaluate("p1", list(reversed(scenario_rules)), at, zones=zones)
        assert first == second

    def test_context_feeds_inventory_rules(
        self, frozen_now: datetime, zones: ZoneInfoResolver
    ) -> None:
        rule = InventoryRule(
            id="low", product_id="p1", name="Low stock", state=AvailabilityState.SOLD_OUT
        )

        assert evaluate("p1", [rule], frozen_now, zones=zones).current_state == (
            AvailabilityState.AVAILABLE
        )
        evaluation = evaluate(
            "p1", [rule], frozen_now, ProductContext(below_threshold=True), zones=zones
        )
        assert evaluation.current_state == AvailabilityState.SOLD_OUT

    def test_naive_instant_rejected(self, zones: ZoneInfoResolver) -> None:
        with pytest.raises(ValueError):
            evaluate("p1", [], datetime(2024, 6, 15), zones=zones)

    def test_ambiguous_rules_raise(self, frozen_now: datetime, zones: ZoneInfoResolver) -> None:
        rules = [
            DateRangeRule(id="x", product_id="p1", name="A", state=AvailabilityState.HIDDEN),
            DateRangeRule(id="x", product_id="p1", name="B", state=AvailabilityState.SOLD_OUT),
        ]
        with pytest.raises(AmbiguousRuleError):
            evaluate("p1", rules, frozen_now, zones=zones)

    def test_json_shape(
        self, scenario_rules: list[AvailabilityRule], zones: ZoneInfoResolver
    ) -> None:
        evaluation = evaluate(
            "p1", scenario_rules, datetime(2024, 12, 15, tzinfo=UTC), zones=zones
        )

        data = evaluation.model_dump(mode="json")

        assert data["current_state"] == "available"
        assert data["effective_rule"]["rule_type"] == "seasonal"
        assert data["computed_at"].startswith("2024-12-15T00:00:00")


class TestEvaluateMany:
    """Batch evaluation."""

    def test_each_product_evaluated(
        self, scenario_rules: list[AvailabilityRule], zones: ZoneInfoResolver
    ) -> None:
        results = evaluate_many(
            {"p1": scenario_rules, "p2": []},
            datetime(2024, 6, 15, tzinfo=UTC),
            zones=zones,
        )

        assert results["p1"].current_state == AvailabilityState.HIDDEN
        assert results["p2"].current_state == AvailabilityState.AVAILABLE


class TestSummarizeRules:
    """Rule statistics."""

    def test_counts(self, scenario_rules: list[AvailabilityRule]) -> None:
        disabled = DateRangeRule(
            id="off",
            product_id="p1",
            name="Off",
            state=AvailabilityState.HIDDEN,
            enabled=False,
        )

        stats = summarize_rules([*scenario_rules, disabled])

        assert stats.total_rules == 3
        assert stats.active_rules == 2
        assert stats.rules_by_type == {"date_range": 2, "seasonal": 1}
        assert stats.rules_by_state == {"hidden": 2, "available": 1}
