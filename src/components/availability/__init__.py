"""
Availability component - product availability rule engine.
"""

from ._bulk import BulkOperationProcessor
from ._config import DEFAULT_CONFIG, EngineConfig, build_config
from ._evaluator import evaluate, evaluate_many, summarize_rules
from ._impl import AvailabilityService, create_availability_service
from ._matcher import matches, matching_rules
from ._migration import from_legacy, from_legacy_many
from ._preview import iter_transitions, preview, schedules_from_preview
from ._resolver import Resolution, detect_rule_conflicts, resolve, resolve_at
from ._schedule import next_change
from ._validator import build_rule, merge_draft, validate_bulk_request, validate_rule
from .component import (
    run,
    run_bulk,
    run_evaluate,
    run_materialize,
    run_migrate,
    run_preview,
    run_statistics,
    run_validate,
)
from .models import (
    AmbiguousRuleError,
    BulkFailure,
    BulkInput,
    BulkOutput,
    BulkResult,
    EvaluateInput,
    EvaluationOutput,
    InvalidRuleError,
    LegacyFlags,
    MaterializeInput,
    MaterializeOutput,
    MigrateInput,
    MigrateOutput,
    PreviewInput,
    PreviewOutput,
    ProductContext,
    RuleStatistics,
    RuleValidationError,
    StaticConflict,
    StatisticsInput,
    StatisticsOutput,
    ValidateRuleInput,
    ValidationOutput,
)
from .ports import (
    ClockPort,
    RuleRepoPort,
    RulesPort,
    ScheduleCachePort,
    ScheduleSinkPort,
    TimeZonePort,
    VariantLookupPort,
)

__all__ = [
    # Entry points
    "run",
    "run_bulk",
    "run_evaluate",
    "run_materialize",
    "run_migrate",
    "run_preview",
    "run_statistics",
    "run_validate",
    # Input models
    "BulkInput",
    "EvaluateInput",
    "MaterializeInput",
    "MigrateInput",
    "PreviewInput",
    "StatisticsInput",
    "ValidateRuleInput",
    # Output models
    "BulkFailure",
    "BulkOutput",
    "BulkResult",
    "EvaluationOutput",
    "MaterializeOutput",
    "MigrateOutput",
    "PreviewOutput",
    "RuleStatistics",
    "RuleValidationError",
    "StaticConflict",
    "StatisticsOutput",
    "ValidationOutput",
    # Context and errors
    "AmbiguousRuleError",
    "InvalidRuleError",
    "LegacyFlags",
    "ProductContext",
    # Ports
    "ClockPort",
    "RuleRepoPort",
    "RulesPort",
    "ScheduleCachePort",
    "ScheduleSinkPort",
    "TimeZonePort",
    "VariantLookupPort",
    # Engine
    "DEFAULT_CONFIG",
    "AvailabilityService",
    "BulkOperationProcessor",
    "EngineConfig",
    "Resolution",
    "build_config",
    "build_rule",
    "create_availability_service",
    "detect_rule_conflicts",
    "evaluate",
    "evaluate_many",
    "from_legacy",
    "from_legacy_many",
    "iter_transitions",
    "matches",
    "matching_rules",
    "merge_draft",
    "next_change",
    "preview",
    "resolve",
    "resolve_at",
    "schedules_from_preview",
    "summarize_rules",
    "validate_bulk_request",
    "validate_rule",
]
