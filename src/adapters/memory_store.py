"""
In-memory adapters for the availability ports.

Used by tests and local development in place of a real database. Each
adapter guards its state with a lock so bulk operations running on a thread
pool see consistent data.
"""

from __future__ import annotations

import threading
from datetime import datetime

from src.core.entities import AvailabilityRule, AvailabilitySchedule


class InMemoryRuleRepo:
    """Rule store keyed by rule ID."""

    def __init__(self, rules: list[AvailabilityRule] | None = None) -> None:
        self._lock = threading.Lock()
        self._rules: dict[str, AvailabilityRule] = {}
        for rule in rules or []:
            self._rules[rule.id] = rule

    def load_rules(self, product_id: str) -> list[AvailabilityRule]:
        with self._lock:
            return [r for r in self._rules.values() if r.product_id == product_id]

    def save_rule(self, rule: AvailabilityRule) -> AvailabilityRule:
        with self._lock:
            self._rules[rule.id] = rule
        return rule

    def delete_rule(self, rule_id: str) -> None:
        with self._lock:
            if self._rules.pop(rule_id, None) is None:
                raise KeyError(f"Rule {rule_id} not found")

    def list_all(self) -> list[AvailabilityRule]:
        with self._lock:
            return list(self._rules.values())


class InMemoryScheduleSink:
    """Schedule sink with the polling side a job runner would use."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._schedules: dict[str, AvailabilitySchedule] = {}

    def materialize(self, schedule: AvailabilitySchedule) -> None:
        with self._lock:
            # One pending row per (rule, instant, target state)
            for existing in self._schedules.values():
                if (
                    not existing.processed
                    and existing.rule_id == schedule.rule_id
                    and existing.scheduled_at == schedule.scheduled_at
                    and existing.state_change == schedule.state_change
                ):
                    return
            self._schedules[schedule.id] = schedule

    def list_due(self, now_utc: datetime) -> list[AvailabilitySchedule]:
        """List unprocessed schedules at or before now, oldest first."""
        with self._lock:
            due = [
                s
                for s in self._schedules.values()
                if not s.processed and s.scheduled_at <= now_utc
            ]
        return sorted(due, key=lambda s: s.scheduled_at)

    def mark_processed(
        self,
        schedule_id: str,
        processed_at: datetime,
        error_message: str | None = None,
    ) -> AvailabilitySchedule:
        with self._lock:
            schedule = self._schedules[schedule_id]
            updated = schedule.model_copy(
                update={
                    "processed": True,
                    "processed_at": processed_at,
                    "error_message": error_message,
                }
            )
            self._schedules[schedule_id] = updated
        return updated

    def list_all(self) -> list[AvailabilitySchedule]:
        with self._lock:
            return sorted(self._schedules.values(), key=lambda s: s.scheduled_at)


class InMemoryVariantLookup:
    """Variant lookup over a fixed product -> variants mapping."""

    def __init__(self, variants: dict[str, list[str]] | None = None) -> None:
        self._variants = variants or {}

    def list_variant_ids(self, product_id: str) -> list[str]:
        return list(self._variants.get(product_id, []))
