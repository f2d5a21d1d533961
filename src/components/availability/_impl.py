"""
AvailabilityService - orchestrates rule storage, evaluation and scheduling.

Key behaviors:
- Evaluation and preview are pure functions over the product's stored rules;
  results are cached per product when no caller context is supplied
- Every mutation (single-rule or bulk) invalidates the product's cache
- Materialization turns upcoming transitions into schedule rows for the
  external job runner
- Clock, timezone, persistence and cache access are injected
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from src.core.entities import (
    AvailabilityEvaluation,
    AvailabilityPreview,
    AvailabilityRule,
    AvailabilitySchedule,
    RuleDraft,
)

from ._bulk import BulkOperationProcessor
from ._config import DEFAULT_CONFIG, EngineConfig
from ._evaluator import evaluate, summarize_rules
from ._matcher import default_zones
from ._migration import from_legacy
from ._preview import preview, schedules_from_preview
from ._resolver import detect_rule_conflicts
from ._validator import build_rule, coerce_draft, merge_draft, validate_rule
from .models import (
    BulkOperation,
    BulkResult,
    InvalidRuleError,
    LegacyFlags,
    ProductContext,
    RuleStatistics,
    RuleValidationError,
    StaticConflict,
)
from .ports import (
    ClockPort,
    RuleRepoPort,
    ScheduleCachePort,
    ScheduleSinkPort,
    TimeZonePort,
    VariantLookupPort,
)

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Availability service.

    Single entry point for admin workflows and storefront reads.
    """

    def __init__(
        self,
        repo: RuleRepoPort,
        clock: ClockPort | None = None,
        zones: TimeZonePort | None = None,
        cache: ScheduleCachePort | None = None,
        sink: ScheduleSinkPort | None = None,
        variants: VariantLookupPort | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        """Initialize availability service."""
        self._repo = repo
        self._clock = clock
        self._zones = default_zones(zones)
        self._cache = cache
        self._sink = sink
        self._config = config or DEFAULT_CONFIG
        self._bulk = BulkOperationProcessor(
            repo=repo,
            variants=variants,
            cache=cache,
            clock=clock,
            zones=self._zones,
            config=self._config,
        )

    def _now_utc(self) -> datetime:
        """Get current UTC time."""
        if self._clock:
            return self._clock.now_utc()
        return datetime.now(UTC)

    def _cached(self, product_id: str, key: str) -> Any | None:
        if self._cache is None:
            return None
        return self._cache.get(product_id, key)

    def _store(self, product_id: str, key: str, value: Any) -> None:
        if self._cache is not None:
            self._cache.put(product_id, key, value)

    def _invalidate(self, product_id: str) -> None:
        if self._cache is not None:
            self._cache.invalidate_product(product_id)

    # --- Reads ---

    def evaluate(
        self,
        product_id: str,
        at: datetime | None = None,
        context: ProductContext | None = None,
    ) -> AvailabilityEvaluation:
        """
        Evaluate a product's state, defaulting to now.

        Only evaluations at an explicit instant are cached; now changes on
        every call.

        Raises:
            ValueError: if at is naive
            AmbiguousRuleError: if two matching rules cannot be ordered
        """
        return self._evaluate(
            product_id,
            at or self._now_utc(),
            context,
            cacheable=at is not None and context is None,
        )

    def _evaluate(
        self,
        product_id: str,
        instant: datetime,
        context: ProductContext | None,
        cacheable: bool,
    ) -> AvailabilityEvaluation:
        key = f"evaluate:{instant.isoformat()}"
        if cacheable:
            cached = self._cached(product_id, key)
            if cached is not None:
                return cached  # type: ignore[no-any-return]

        result = evaluate(
            product_id,
            self._repo.load_rules(product_id),
            instant,
            context,
            default_state=self._config.default_state,
            horizon=self._config.horizon,
            zones=self._zones,
        )
        if cacheable:
            self._store(product_id, key, result)
        return result

    def evaluate_many(
        self,
        product_ids: Sequence[str],
        at: datetime | None = None,
        contexts: Mapping[str, ProductContext] | None = None,
    ) -> dict[str, AvailabilityEvaluation]:
        """Evaluate several products at the same instant."""
        instant = at or self._now_utc()
        contexts = contexts or {}
        return {
            product_id: self._evaluate(
                product_id,
                instant,
                contexts.get(product_id),
                cacheable=at is not None and product_id not in contexts,
            )
            for product_id in dict.fromkeys(product_ids)
        }

    def preview(
        self,
        product_id: str,
        until: datetime,
        start: datetime | None = None,
        context: ProductContext | None = None,
        draft_rules: Sequence[AvailabilityRule] | None = None,
    ) -> AvailabilityPreview:
        """
        Timeline between start (default now) and until.

        draft_rules replaces the stored rules for what-if previews and is
        never cached. Neither is a window that starts now.
        """
        window_start = start or self._now_utc()
        cacheable = start is not None and context is None and draft_rules is None
        key = f"preview:{window_start.isoformat()}:{until.isoformat()}"
        if cacheable:
            cached = self._cached(product_id, key)
            if cached is not None:
                return cached  # type: ignore[no-any-return]

        rules = draft_rules if draft_rules is not None else self._repo.load_rules(product_id)
        result = preview(
            product_id,
            rules,
            window_start,
            until,
            context,
            default_state=self._config.default_state,
            zones=self._zones,
        )
        if cacheable:
            self._store(product_id, key, result)
        return result

    def conflicts(self, product_id: str) -> list[StaticConflict]:
        """Static conflicts among a product's rules."""
        return detect_rule_conflicts(self._repo.load_rules(product_id))

    def statistics(self, product_ids: Sequence[str]) -> RuleStatistics:
        """Rule counts across products."""
        rules: list[AvailabilityRule] = []
        for product_id in dict.fromkeys(product_ids):
            rules.extend(self._repo.load_rules(product_id))
        return summarize_rules(rules)

    # --- Validation ---

    def validate(
        self,
        draft: RuleDraft | Mapping[str, Any],
        partial: bool = False,
    ) -> list[RuleValidationError]:
        """Validate a candidate rule against the current time."""
        return validate_rule(
            draft,
            partial=partial,
            now=self._now_utc(),
            config=self._config,
            zones=self._zones,
        )

    # --- Single-rule Mutations ---

    def create_rule(
        self,
        draft: RuleDraft | Mapping[str, Any],
    ) -> tuple[AvailabilityRule | None, list[RuleValidationError]]:
        """
        Create one rule.

        Ids are always assigned here; a caller-supplied id is ignored.

        Returns:
            Tuple of (rule, errors). Rule is None if errors.
        """
        now = self._now_utc()
        candidate, errors = coerce_draft(draft, self._config.default_timezone)
        if candidate is None:
            return None, errors
        try:
            rule = build_rule(
                candidate.model_copy(update={"id": None}),
                timestamp=now,
                now=now,
                config=self._config,
                zones=self._zones,
            )
        except InvalidRuleError as e:
            return None, e.errors

        with self._bulk.lock_for(rule.product_id):
            saved = self._repo.save_rule(rule)
        self._invalidate(rule.product_id)
        logger.info("Created rule %s for %s", saved.id, saved.product_id)
        return saved, []

    def update_rule(
        self,
        product_id: str,
        rule_id: str,
        draft: RuleDraft,
    ) -> tuple[AvailabilityRule | None, list[RuleValidationError]]:
        """
        Overlay a partial draft on an existing rule.

        Returns:
            Tuple of (rule, errors). Rule is None if errors.
        """
        now = self._now_utc()
        with self._bulk.lock_for(product_id):
            existing = next(
                (r for r in self._repo.load_rules(product_id) if r.id == rule_id),
                None,
            )
            if existing is None:
                return None, [
                    RuleValidationError(
                        code="rule_not_found",
                        message=f"Rule {rule_id} not found",
                        field="id",
                    )
                ]
            try:
                rule = build_rule(
                    merge_draft(existing, draft),
                    timestamp=now,
                    created_at=existing.created_at,
                    now=now,
                    config=self._config,
                    zones=self._zones,
                )
            except InvalidRuleError as e:
                return None, e.errors
            saved = self._repo.save_rule(rule)

        self._invalidate(product_id)
        return saved, []

    def delete_rule(self, product_id: str, rule_id: str) -> list[RuleValidationError]:
        """Delete one rule; returns errors (empty on success)."""
        with self._bulk.lock_for(product_id):
            if not any(r.id == rule_id for r in self._repo.load_rules(product_id)):
                return [
                    RuleValidationError(
                        code="rule_not_found",
                        message=f"Rule {rule_id} not found",
                        field="id",
                    )
                ]
            self._repo.delete_rule(rule_id)

        self._invalidate(product_id)
        return []

    # --- Bulk ---

    def apply_bulk(
        self,
        product_ids: Sequence[str],
        drafts: Sequence[RuleDraft] | None,
        operation: BulkOperation,
        apply_to_variants: bool = False,
    ) -> BulkResult:
        """Bulk mutation, then re-materialize schedules for changed units."""
        result = self._bulk.apply(product_ids, drafts, operation, apply_to_variants)
        if self._sink is not None:
            partial = [f.product_id for f in result.failed if f.written]
            for product_id in [*result.succeeded, *partial]:
                self.materialize_schedules(product_id)
        return result

    # --- Migration ---

    def migrate(self, product_id: str, flags: LegacyFlags) -> list[RuleDraft]:
        """Rule drafts for legacy flags. Nothing is saved."""
        return from_legacy(product_id, flags, config=self._config)

    # --- Schedules ---

    def materialize_schedules(
        self,
        product_id: str,
        horizon: timedelta | None = None,
    ) -> list[AvailabilitySchedule]:
        """
        Persist upcoming transitions for the job runner.

        Returns the computed schedules; the sink decides about duplicates.
        """
        now = self._now_utc()
        result = preview(
            product_id,
            self._repo.load_rules(product_id),
            now,
            now + (horizon or self._config.horizon),
            default_state=self._config.default_state,
            zones=self._zones,
        )
        schedules = schedules_from_preview(result)
        if self._sink is not None:
            for schedule in schedules:
                self._sink.materialize(schedule)

        logger.info("Materialized %d schedules for %s", len(schedules), product_id)
        return schedules


# --- Factory ---


def create_availability_service(
    repo: RuleRepoPort,
    clock: ClockPort | None = None,
    zones: TimeZonePort | None = None,
    cache: ScheduleCachePort | None = None,
    sink: ScheduleSinkPort | None = None,
    variants: VariantLookupPort | None = None,
    config: EngineConfig | None = None,
) -> AvailabilityService:
    """Create an AvailabilityService."""
    return AvailabilityService(
        repo=repo,
        clock=clock,
        zones=zones,
        cache=cache,
        sink=sink,
        variants=variants,
        config=config,
    )
