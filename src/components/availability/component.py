"""
Availability component - product availability rule engine.

Evaluates which availability state applies to a product at an instant,
previews future transitions, validates and bulk-edits rules, and migrates
legacy catalog flags.

Invariants:
- I1: Exactly one effective rule per (product, instant) after resolution
- I2: Seasonal rules carry a seasonal config, time-based rules carry time
  restrictions
- I3: start_date <= end_date when both are present
- I4: Ties are broken by priority, then rule type specificity, then rule id
- I5: Schedule transitions are strictly increasing in time
"""

from __future__ import annotations

from ._config import EngineConfig, build_config
from ._impl import AvailabilityService
from ._migration import from_legacy
from ._validator import validate_rule
from .models import (
    AmbiguousRuleError,
    BulkInput,
    BulkOutput,
    BulkResult,
    EvaluateInput,
    EvaluationOutput,
    MaterializeInput,
    MaterializeOutput,
    MigrateInput,
    MigrateOutput,
    PreviewInput,
    PreviewOutput,
    RuleValidationError,
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


def _create_service(
    repo: RuleRepoPort,
    clock: ClockPort | None,
    zones: TimeZonePort | None,
    cache: ScheduleCachePort | None = None,
    sink: ScheduleSinkPort | None = None,
    variants: VariantLookupPort | None = None,
    config: EngineConfig | None = None,
) -> AvailabilityService:
    """Create availability service from ports."""
    return AvailabilityService(
        repo=repo,
        clock=clock,
        zones=zones,
        cache=cache,
        sink=sink,
        variants=variants,
        config=config,
    )


def _instant_error(e: ValueError) -> RuleValidationError:
    return RuleValidationError(code="invalid_instant", message=str(e), field="at")


def _ambiguity_error(e: AmbiguousRuleError) -> RuleValidationError:
    return RuleValidationError(code="ambiguous_rules", message=str(e), field=None)


# --- Component Entry Points ---


def run_evaluate(
    inp: EvaluateInput,
    *,
    repo: RuleRepoPort,
    clock: ClockPort | None = None,
    zones: TimeZonePort | None = None,
    cache: ScheduleCachePort | None = None,
    rules: RulesPort | None = None,
) -> EvaluationOutput:
    """
    Evaluate a product's current availability state.

    Args:
        inp: Input containing product ID, optional instant and context.
        repo: Rule repository port.
        clock: Optional clock port (instant defaults to now).
        zones: Optional timezone port.
        cache: Optional schedule cache port.
        rules: Optional rules port for configuration.

    Returns:
        EvaluationOutput with the evaluation or errors.
    """
    service = _create_service(repo, clock, zones, cache=cache, config=build_config(rules))
    try:
        evaluation = service.evaluate(inp.product_id, inp.at, inp.context)
    except AmbiguousRuleError as e:
        return EvaluationOutput(evaluation=None, errors=[_ambiguity_error(e)], success=False)
    except ValueError as e:
        return EvaluationOutput(evaluation=None, errors=[_instant_error(e)], success=False)

    return EvaluationOutput(evaluation=evaluation, errors=[], success=True)


def run_preview(
    inp: PreviewInput,
    *,
    repo: RuleRepoPort,
    clock: ClockPort | None = None,
    zones: TimeZonePort | None = None,
    cache: ScheduleCachePort | None = None,
    rules: RulesPort | None = None,
) -> PreviewOutput:
    """
    Preview a product's availability timeline.

    Args:
        inp: Input containing product ID, window and optional draft rules.
        repo: Rule repository port.
        clock: Optional clock port (window start defaults to now).
        zones: Optional timezone port.
        cache: Optional schedule cache port.
        rules: Optional rules port for configuration.

    Returns:
        PreviewOutput with the preview or errors.
    """
    service = _create_service(repo, clock, zones, cache=cache, config=build_config(rules))
    try:
        result = service.preview(
            inp.product_id,
            inp.until,
            start=inp.start,
            context=inp.context,
            draft_rules=inp.draft_rules,
        )
    except ValueError as e:
        return PreviewOutput(preview=None, errors=[_instant_error(e)], success=False)

    return PreviewOutput(preview=result, errors=[], success=True)


def run_validate(
    inp: ValidateRuleInput,
    *,
    clock: ClockPort | None = None,
    zones: TimeZonePort | None = None,
    rules: RulesPort | None = None,
) -> ValidationOutput:
    """
    Validate a candidate rule.

    Args:
        inp: Input containing the draft (or mapping) and partial flag.
        clock: Optional clock port for past/future window checks.
        zones: Optional timezone port.
        rules: Optional rules port for configuration.

    Returns:
        ValidationOutput with errors (empty when valid).
    """
    now = clock.now_utc() if clock else None
    errors = validate_rule(
        inp.draft,
        partial=inp.partial,
        now=now,
        config=build_config(rules),
        zones=zones,
    )
    return ValidationOutput(errors=errors, is_valid=len(errors) == 0)


def run_bulk(
    inp: BulkInput,
    *,
    repo: RuleRepoPort,
    clock: ClockPort | None = None,
    zones: TimeZonePort | None = None,
    cache: ScheduleCachePort | None = None,
    sink: ScheduleSinkPort | None = None,
    variants: VariantLookupPort | None = None,
    rules: RulesPort | None = None,
) -> BulkOutput:
    """
    Apply a rule mutation across many products.

    Args:
        inp: Input containing product IDs, operation and drafts.
        repo: Rule repository port.
        clock: Optional clock port.
        zones: Optional timezone port.
        cache: Optional schedule cache port (invalidated per product).
        sink: Optional schedule sink (re-materialized per product).
        variants: Optional variant lookup port.
        rules: Optional rules port for configuration.

    Returns:
        BulkOutput with per-unit results.
    """
    service = _create_service(
        repo,
        clock,
        zones,
        cache=cache,
        sink=sink,
        variants=variants,
        config=build_config(rules),
    )
    result: BulkResult = service.apply_bulk(
        inp.product_ids,
        inp.drafts,
        inp.operation,
        apply_to_variants=inp.apply_to_variants,
    )
    return BulkOutput(result=result, errors=list(result.errors), success=result.success)


def run_migrate(
    inp: MigrateInput,
    *,
    rules: RulesPort | None = None,
) -> MigrateOutput:
    """
    Convert legacy catalog flags into rule drafts.

    Args:
        inp: Input containing product ID and legacy flags.
        rules: Optional rules port for configuration.

    Returns:
        MigrateOutput with drafts (nothing is persisted).
    """
    drafts = from_legacy(inp.product_id, inp.flags, config=build_config(rules))
    return MigrateOutput(drafts=tuple(drafts), errors=[], success=True)


def run_materialize(
    inp: MaterializeInput,
    *,
    repo: RuleRepoPort,
    sink: ScheduleSinkPort,
    clock: ClockPort | None = None,
    zones: TimeZonePort | None = None,
    rules: RulesPort | None = None,
) -> MaterializeOutput:
    """
    Persist upcoming transitions for the external job runner.

    Args:
        inp: Input containing product ID and optional horizon.
        repo: Rule repository port.
        sink: Schedule sink port.
        clock: Optional clock port.
        zones: Optional timezone port.
        rules: Optional rules port for configuration.

    Returns:
        MaterializeOutput with the schedules handed to the sink.
    """
    service = _create_service(repo, clock, zones, sink=sink, config=build_config(rules))
    schedules = service.materialize_schedules(inp.product_id, inp.horizon)
    return MaterializeOutput(schedules=tuple(schedules), errors=[], success=True)


def run_statistics(
    inp: StatisticsInput,
    *,
    repo: RuleRepoPort,
    rules: RulesPort | None = None,
) -> StatisticsOutput:
    """
    Rule counts across products.

    Args:
        inp: Input containing product IDs.
        repo: Rule repository port.
        rules: Optional rules port for configuration.

    Returns:
        StatisticsOutput with totals by type and state.
    """
    service = _create_service(repo, None, None, config=build_config(rules))
    return StatisticsOutput(statistics=service.statistics(inp.product_ids))


def run(
    inp: (
        EvaluateInput
        | PreviewInput
        | ValidateRuleInput
        | BulkInput
        | MigrateInput
        | MaterializeInput
        | StatisticsInput
    ),
    *,
    repo: RuleRepoPort,
    clock: ClockPort | None = None,
    zones: TimeZonePort | None = None,
    cache: ScheduleCachePort | None = None,
    sink: ScheduleSinkPort | None = None,
    variants: VariantLookupPort | None = None,
    rules: RulesPort | None = None,
) -> (
    EvaluationOutput
    | PreviewOutput
    | ValidationOutput
    | BulkOutput
    | MigrateOutput
    | MaterializeOutput
    | StatisticsOutput
):
    """
    Main entry point for the availability component.

    Dispatches to appropriate handler based on input type.

    Args:
        inp: Input object determining the operation.
        repo: Rule repository port.
        clock: Optional clock port.
        zones: Optional timezone port.
        cache: Optional schedule cache port.
        sink: Optional schedule sink port.
        variants: Optional variant lookup port.
        rules: Optional rules port for configuration.

    Returns:
        Appropriate output object based on input type.
    """
    if isinstance(inp, EvaluateInput):
        return run_evaluate(inp, repo=repo, clock=clock, zones=zones, cache=cache, rules=rules)
    elif isinstance(inp, PreviewInput):
        return run_preview(inp, repo=repo, clock=clock, zones=zones, cache=cache, rules=rules)
    elif isinstance(inp, ValidateRuleInput):
        return run_validate(inp, clock=clock, zones=zones, rules=rules)
    elif isinstance(inp, BulkInput):
        return run_bulk(
            inp,
            repo=repo,
            clock=clock,
            zones=zones,
            cache=cache,
            sink=sink,
            variants=variants,
            rules=rules,
        )
    elif isinstance(inp, MigrateInput):
        return run_migrate(inp, rules=rules)
    elif isinstance(inp, MaterializeInput):
        if sink is None:
            raise ValueError("MaterializeInput requires a schedule sink")
        return run_materialize(inp, repo=repo, sink=sink, clock=clock, zones=zones, rules=rules)
    elif isinstance(inp, StatisticsInput):
        return run_statistics(inp, repo=repo, rules=rules)
    else:
        raise ValueError(f"Unknown input type: {type(inp)}")
