"""
Availability component input/output models.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

from src.core.entities import (
    AvailabilityEvaluation,
    AvailabilityPreview,
    AvailabilityRule,
    AvailabilitySchedule,
    RuleDraft,
)

# --- Validation Error ---


@dataclass(frozen=True)
class RuleValidationError:
    """Field-level rule validation error."""

    code: str
    message: str
    field: str | None = None


class InvalidRuleError(Exception):
    """Raised when a draft cannot be turned into a rule."""

    def __init__(self, errors: list[RuleValidationError]) -> None:
        self.errors = errors
        super().__init__(
            "Rule validation failed: " + "; ".join(e.message for e in errors)
        )


class AmbiguousRuleError(Exception):
    """Raised when two matching rules cannot be ordered deterministically."""

    def __init__(self, rule_ids: Sequence[str]) -> None:
        self.rule_ids = tuple(rule_ids)
        super().__init__(f"Cannot pick a winner between rules {', '.join(self.rule_ids)}")


# --- Evaluation Context ---


CustomPredicate = Callable[[AvailabilityRule, datetime], bool]


@dataclass(frozen=True)
class ProductContext:
    """
    Caller-supplied inputs for rules the engine cannot decide on its own.

    below_threshold feeds inventory rules; custom_predicate feeds custom rules.
    """

    below_threshold: bool = False
    custom_predicate: CustomPredicate | None = None


# --- Bulk Models ---


BulkOperation = Literal["create", "update", "delete"]


@dataclass(frozen=True)
class BulkFailure:
    """
    One unit (product or variant) that could not be mutated.

    written holds ids of rules already saved or deleted when the unit
    failed part way; they are not rolled back.
    """

    product_id: str
    error: str
    variant_of: str | None = None
    written: tuple[str, ...] = ()


@dataclass(frozen=True)
class BulkResult:
    """Partial-failure result of a bulk operation."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)
    errors: list[RuleValidationError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed and not self.errors


# --- Migration Models ---


@dataclass(frozen=True)
class LegacyFlags:
    """Ad hoc availability flags from the external catalog."""

    is_hidden: bool = False
    is_preorder: bool = False
    preorder_start_date: datetime | None = None
    preorder_end_date: datetime | None = None
    preorder_message: str | None = None
    expected_delivery_date: datetime | None = None


# --- Statistics ---


@dataclass(frozen=True)
class RuleStatistics:
    """Counts over a rule set."""

    total_rules: int
    active_rules: int
    rules_by_type: dict[str, int]
    rules_by_state: dict[str, int]


@dataclass(frozen=True)
class StaticConflict:
    """Pair of rules that may collide regardless of the evaluation instant."""

    rule_a: AvailabilityRule
    rule_b: AvailabilityRule
    conflict_type: Literal["priority", "date_overlap"]


# --- Input Models ---


@dataclass(frozen=True)
class EvaluateInput:
    """Input for evaluating a product's current state."""

    product_id: str
    at: datetime | None = None
    context: ProductContext | None = None


@dataclass(frozen=True)
class PreviewInput:
    """Input for previewing a product's timeline."""

    product_id: str
    until: datetime
    start: datetime | None = None
    context: ProductContext | None = None
    draft_rules: tuple[AvailabilityRule, ...] | None = None


@dataclass(frozen=True)
class ValidateRuleInput:
    """Input for validating a candidate rule."""

    draft: RuleDraft | dict[str, Any]
    partial: bool = False


@dataclass(frozen=True)
class BulkInput:
    """Input for a bulk rule mutation."""

    product_ids: tuple[str, ...]
    operation: BulkOperation
    drafts: tuple[RuleDraft, ...] = ()
    apply_to_variants: bool = False


@dataclass(frozen=True)
class MigrateInput:
    """Input for converting legacy catalog flags into rule drafts."""

    product_id: str
    flags: LegacyFlags


@dataclass(frozen=True)
class MaterializeInput:
    """Input for persisting upcoming transitions for the job runner."""

    product_id: str
    horizon: timedelta | None = None


@dataclass(frozen=True)
class StatisticsInput:
    """Input for rule statistics over a set of products."""

    product_ids: tuple[str, ...]


# --- Output Models ---


@dataclass(frozen=True)
class EvaluationOutput:
    """Output for evaluate operation."""

    evaluation: AvailabilityEvaluation | None
    errors: list[RuleValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class PreviewOutput:
    """Output for preview operation."""

    preview: AvailabilityPreview | None
    errors: list[RuleValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class ValidationOutput:
    """Output for validate operation."""

    errors: list[RuleValidationError]
    is_valid: bool


@dataclass(frozen=True)
class BulkOutput:
    """Output for bulk operation."""

    result: BulkResult
    errors: list[RuleValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class MigrateOutput:
    """Output for migration operation."""

    drafts: tuple[RuleDraft, ...]
    errors: list[RuleValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class MaterializeOutput:
    """Output for materialize operation."""

    schedules: tuple[AvailabilitySchedule, ...]
    errors: list[RuleValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class StatisticsOutput:
    """Output for statistics operation."""

    statistics: RuleStatistics
    errors: list[RuleValidationError] = field(default_factory=list)
    success: bool = True


__all__ = [
    "AmbiguousRuleError",
    "BulkFailure",
    "BulkInput",
    "BulkOperation",
    "BulkOutput",
    "BulkResult",
    "CustomPredicate",
    "EvaluateInput",
    "EvaluationOutput",
    "InvalidRuleError",
    "LegacyFlags",
    "MaterializeInput",
    "MaterializeOutput",
    "MigrateInput",
    "MigrateOutput",
    "PreviewInput",
    "PreviewOutput",
    "ProductContext",
    "RuleStatistics",
    "RuleValidationError",
    "StaticConflict",
    "StatisticsInput",
    "StatisticsOutput",
    "ValidateRuleInput",
    "ValidationOutput",
]
