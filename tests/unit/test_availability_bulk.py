"""
Tests for BulkOperationProcessor.

Each product (and variant) is an isolated unit; failures are collected in
the result, never raised.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import pytest

from src.adapters.clock import FrozenClock
from src.adapters.memory_store import InMemoryRuleRepo, InMemoryVariantLookup
from src.adapters.zones import ZoneInfoResolver
from src.components.availability import BulkOperationProcessor, EngineConfig
from src.core.entities import (
    AvailabilityRule,
    AvailabilityState,
    DateRangeRule,
    RuleDraft,
    RuleType,
)

# --- Mock Implementations ---


class FlakyRepo(InMemoryRuleRepo):
    """Repo whose writes fail for selected products."""

    def __init__(self, failing: set[str]) -> None:
        super().__init__()
        self.failing = failing

    def save_rule(self, rule: AvailabilityRule) -> AvailabilityRule:
        if rule.product_id in self.failing:
            raise ConnectionError("database unavailable")
        return super().save_rule(rule)


class FailingNthSaveRepo(InMemoryRuleRepo):
    """Repo whose nth write fails; earlier writes stick."""

    def __init__(self, fail_on: int) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.saves = 0

    def save_rule(self, rule: AvailabilityRule) -> AvailabilityRule:
        self.saves += 1
        if self.saves == self.fail_on:
            raise ConnectionError("connection reset")
        return super().save_rule(rule)


@dataclass
class MockCache:
    """Records invalidations."""

    invalidated: list[str] = field(default_factory=list)

    def get(self, product_id: str, key: str) -> Any | None:
        return None

    def put(self, product_id: str, key: str, value: Any) -> None:
        pass

    def invalidate_product(self, product_id: str) -> None:
        self.invalidated.append(product_id)


class ExplodingVariants:
    def list_variant_ids(self, product_id: str) -> list[str]:
        raise TimeoutError("catalog timeout")


def hide_draft(**overrides: Any) -> RuleDraft:
    fields: dict[str, Any] = {
        "name": "Summer hide",
        "rule_type": RuleType.DATE_RANGE,
        "state": AvailabilityState.HIDDEN,
        "priority": 10,
        "start_date": datetime(2024, 7, 1, tzinfo=UTC),
        "end_date": datetime(2024, 7, 31, tzinfo=UTC),
    }
    fields.update(overrides)
    return RuleDraft(**fields)


@pytest.fixture
def cache() -> MockCache:
    return MockCache()


@pytest.fixture
def processor(
    repo: InMemoryRuleRepo,
    cache: MockCache,
    clock: FrozenClock,
    zones: ZoneInfoResolver,
) -> BulkOperationProcessor:
    counter = itertools.count(1)
    return BulkOperationProcessor(
        repo=repo,
        cache=cache,
        clock=clock,
        zones=zones,
        id_factory=lambda: f"rule-{next(counter)}",
    )


# --- Tests ---


class TestRequestValidation:
    """Request-level errors stop before any unit runs."""

    def test_empty_products(self, processor: BulkOperationProcessor) -> None:
        result = processor.apply([], [hide_draft()], "create")

        assert not result.success
        assert [e.code for e in result.errors] == ["product_ids_required"]
        assert result.succeeded == []

    def test_create_without_drafts(
        self, processor: BulkOperationProcessor, repo: InMemoryRuleRepo
    ) -> None:
        result = processor.apply(["p1"], [], "create")

        assert [e.code for e in result.errors] == ["drafts_required"]
        assert repo.list_all() == []


class TestCreate:
    """Bulk create."""

    def test_creates_rule_per_product(
        self,
        processor: BulkOperationProcessor,
        repo: InMemoryRuleRepo,
        cache: MockCache,
        frozen_now: datetime,
    ) -> None:
        result = processor.apply(["p1", "p2"], [hide_draft()], "create")

        assert result.success
        assert result.succeeded == ["p1", "p2"]
        rules = sorted(repo.list_all(), key=lambda r: r.id)
        assert [(r.id, r.product_id) for r in rules] == [("rule-1", "p1"), ("rule-2", "p2")]
        assert all(r.created_at == frozen_now for r in rules)
        assert cache.invalidated == ["p1", "p2"]

    def test_partial_failure_is_isolated(
        self,
        clock: FrozenClock,
        zones: ZoneInfoResolver,
        cache: MockCache,
    ) -> None:
        repo = FlakyRepo(failing={"p3"})
        processor = BulkOperationProcessor(repo=repo, cache=cache, clock=clock, zones=zones)

        result = processor.apply(["p1", "p2", "p3", "p4", "p5"], [hide_draft()], "create")

        assert result.succeeded == ["p1", "p2", "p4", "p5"]
        assert len(result.failed) == 1
        assert result.failed[0].product_id == "p3"
        assert "database unavailable" in result.failed[0].error
        assert "p3" not in cache.invalidated

    def test_failure_after_first_save_reports_written_rules(
        self,
        clock: FrozenClock,
        zones: ZoneInfoResolver,
        cache: MockCache,
    ) -> None:
        repo = FailingNthSaveRepo(fail_on=2)
        counter = itertools.count(1)
        processor = BulkOperationProcessor(
            repo=repo,
            cache=cache,
            clock=clock,
            zones=zones,
            id_factory=lambda: f"rule-{next(counter)}",
        )

        result = processor.apply(
            ["p1"], [hide_draft(), hide_draft(name="Autumn hide")], "create"
        )

        assert result.succeeded == []
        [failure] = result.failed
        assert "connection reset" in failure.error
        assert failure.written == ("rule-1",)
        assert [r.id for r in repo.load_rules("p1")] == ["rule-1"]
        # The product changed, so its cached schedules are dropped
        assert cache.invalidated == ["p1"]

    def test_invalid_draft_fails_every_unit(
        self, processor: BulkOperationProcessor, repo: InMemoryRuleRepo
    ) -> None:
        result = processor.apply(["p1", "p2"], [hide_draft(priority=5000)], "create")

        assert result.succeeded == []
        assert {f.product_id for f in result.failed} == {"p1", "p2"}
        assert "Priority" in result.failed[0].error
        assert repo.list_all() == []

    def test_all_drafts_validated_before_saving(
        self, processor: BulkOperationProcessor, repo: InMemoryRuleRepo
    ) -> None:
        result = processor.apply(["p1"], [hide_draft(), hide_draft(name="")], "create")

        assert [f.product_id for f in result.failed] == ["p1"]
        assert repo.list_all() == []

    def test_variants_are_independent_units(
        self,
        repo: InMemoryRuleRepo,
        clock: FrozenClock,
        zones: ZoneInfoResolver,
    ) -> None:
        processor = BulkOperationProcessor(
            repo=repo,
            variants=InMemoryVariantLookup({"p1": ["p1-red", "p1-blue"]}),
            clock=clock,
            zones=zones,
        )

        result = processor.apply(["p1"], [hide_draft()], "create", apply_to_variants=True)

        assert result.succeeded == ["p1", "p1-red", "p1-blue"]
        assert {r.product_id for r in repo.list_all()} == {"p1", "p1-red", "p1-blue"}

    def test_variant_lookup_failure_recorded(
        self,
        repo: InMemoryRuleRepo,
        clock: FrozenClock,
        zones: ZoneInfoResolver,
    ) -> None:
        processor = BulkOperationProcessor(
            repo=repo, variants=ExplodingVariants(), clock=clock, zones=zones
        )

        result = processor.apply(["p1"], [hide_draft()], "create", apply_to_variants=True)

        assert result.succeeded == ["p1"]
        assert [f.product_id for f in result.failed] == ["p1"]
        assert "Variant lookup failed" in result.failed[0].error

    def test_thread_pool_gives_same_result(
        self,
        repo: InMemoryRuleRepo,
        clock: FrozenClock,
        zones: ZoneInfoResolver,
    ) -> None:
        processor = BulkOperationProcessor(
            repo=repo,
            clock=clock,
            zones=zones,
            config=EngineConfig(bulk_max_workers=4),
        )
        ids = [f"p{i}" for i in range(20)]

        result = processor.apply(ids, [hide_draft()], "create")

        assert result.succeeded == ids
        assert len(repo.list_all()) == 20


class TestUpdateDelete:
    """Bulk update and delete."""

    @pytest.fixture
    def seeded(self, repo: InMemoryRuleRepo) -> InMemoryRuleRepo:
        for product_id in ("p1", "p2"):
            repo.save_rule(
                DateRangeRule(
                    id=f"{product_id}-hide",
                    product_id=product_id,
                    name="Summer hide",
                    priority=10,
                    state=AvailabilityState.HIDDEN,
                    start_date=datetime(2024, 7, 1, tzinfo=UTC),
                    end_date=datetime(2024, 7, 31, tzinfo=UTC),
                    created_at=datetime(2024, 1, 1, tzinfo=UTC),
                )
            )
        return repo

    def test_update_by_name(
        self,
        processor: BulkOperationProcessor,
        seeded: InMemoryRuleRepo,
        frozen_now: datetime,
    ) -> None:
        result = processor.apply(["p1", "p2"], [RuleDraft(name="Summer hide", priority=50)], "update")

        assert result.success
        for rule in seeded.list_all():
            assert rule.priority == 50
            assert rule.created_at == datetime(2024, 1, 1, tzinfo=UTC)
            assert rule.updated_at == frozen_now

    def test_update_by_id(
        self, processor: BulkOperationProcessor, seeded: InMemoryRuleRepo
    ) -> None:
        result = processor.apply(["p1", "p2"], [RuleDraft(id="p1-hide", priority=50)], "update")

        assert result.succeeded == ["p1"]
        assert [f.product_id for f in result.failed] == ["p2"]
        assert "p1-hide" in result.failed[0].error
        priorities = {r.id: r.priority for r in seeded.list_all()}
        assert priorities == {"p1-hide": 50, "p2-hide": 10}

    def test_update_rejects_invalid_merge(
        self, processor: BulkOperationProcessor, seeded: InMemoryRuleRepo
    ) -> None:
        result = processor.apply(
            ["p1"],
            [RuleDraft(name="Summer hide", end_date=datetime(2024, 6, 1, tzinfo=UTC))],
            "update",
        )

        assert [f.product_id for f in result.failed] == ["p1"]
        assert seeded.load_rules("p1")[0].end_date == datetime(2024, 7, 31, tzinfo=UTC)

    def test_delete_matching(
        self, processor: BulkOperationProcessor, seeded: InMemoryRuleRepo
    ) -> None:
        result = processor.apply(["p1"], [RuleDraft(id="p1-hide")], "delete")

        assert result.success
        assert [r.id for r in seeded.list_all()] == ["p2-hide"]

    def test_delete_all(self, processor: BulkOperationProcessor, seeded: InMemoryRuleRepo) -> None:
        result = processor.apply(["p1", "p2"], None, "delete")

        assert result.succeeded == ["p1", "p2"]
        assert seeded.list_all() == []
