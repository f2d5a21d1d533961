"""
RuleValidator - decides whether a candidate rule may become an AvailabilityRule.

Key behaviors:
- Errors are collected, never raised, for data-shape problems
- Mapping input is parsed into a RuleDraft; parse failures become field errors
- partial drafts (updates) skip the required-field checks only
- Calendar days are checked against a non-leap year, so Feb 29 is rejected
- build_rule raises InvalidRuleError carrying the collected errors
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from src.core.entities import (
    RULE_CLASSES,
    AvailabilityRule,
    AvailabilityState,
    BaseRule,
    PreOrderSettings,
    RuleDraft,
    RuleType,
    SeasonalConfig,
    TimeRestrictions,
    ViewOnlySettings,
)

from ._config import DEFAULT_CONFIG, EngineConfig
from ._matcher import TIME_PATTERN, default_zones
from .models import InvalidRuleError, RuleValidationError
from .ports import TimeZonePort

# Days per month in a non-leap year
MONTH_DAYS = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)

BULK_OPERATIONS = ("create", "update", "delete")

_REQUIRED_FIELDS = ("product_id", "name", "rule_type", "state")


# --- Input Coercion ---


def _field_path(loc: Sequence[Any]) -> str | None:
    return ".".join(str(part) for part in loc) or None


def errors_from_pydantic(exc: ValidationError) -> list[RuleValidationError]:
    """Convert pydantic errors into field-level validation errors."""
    return [
        RuleValidationError(
            code="invalid_field",
            message=err["msg"],
            field=_field_path(err["loc"]),
        )
        for err in exc.errors()
    ]


def coerce_draft(
    draft: RuleDraft | Mapping[str, Any],
    default_timezone: str,
) -> tuple[RuleDraft | None, list[RuleValidationError]]:
    """
    Parse mapping input into a RuleDraft.

    Nested seasonal/time configs without a timezone get the configured
    default.

    Raises:
        TypeError: if draft is None or not a mapping
    """
    if draft is None:
        raise TypeError("Rule draft is required")
    if isinstance(draft, RuleDraft):
        return draft, []
    if not isinstance(draft, Mapping):
        raise TypeError(f"Expected RuleDraft or mapping, got {type(draft).__name__}")

    data = dict(draft)
    for key in ("seasonal_config", "time_restrictions"):
        nested = data.get(key)
        if isinstance(nested, Mapping) and "timezone" not in nested:
            data[key] = {**nested, "timezone": default_timezone}

    try:
        return RuleDraft.model_validate(data), []
    except ValidationError as e:
        return None, errors_from_pydantic(e)


# --- Individual Checks ---


def _is_naive(value: datetime) -> bool:
    return value.tzinfo is None or value.utcoffset() is None


def shift_years(value: datetime, years: int) -> datetime:
    """Move a datetime by whole years; Feb 29 lands on Feb 28."""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)


def validate_required(draft: RuleDraft) -> list[RuleValidationError]:
    """Fields every complete rule needs."""
    return [
        RuleValidationError(
            code="required",
            message=f"{name} is required",
            field=name,
        )
        for name in _REQUIRED_FIELDS
        if getattr(draft, name) is None
    ]


def validate_name(name: str | None) -> list[RuleValidationError]:
    """Name must not be blank."""
    if name is not None and not name.strip():
        return [
            RuleValidationError(
                code="name_empty",
                message="Rule name cannot be empty",
                field="name",
            )
        ]
    return []


def validate_priority(
    priority: int | None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> list[RuleValidationError]:
    """Priority must lie in [0, max_priority]."""
    if priority is None:
        return []
    if priority < 0 or priority > config.max_priority:
        return [
            RuleValidationError(
                code="priority_out_of_range",
                message=f"Priority must be between 0 and {config.max_priority}",
                field="priority",
            )
        ]
    return []


def validate_type_payload(draft: RuleDraft) -> list[RuleValidationError]:
    """The payload for the declared rule type must be present."""
    if draft.rule_type == RuleType.SEASONAL and draft.seasonal_config is None:
        return [
            RuleValidationError(
                code="seasonal_config_required",
                message="Seasonal rules require a seasonal config",
                field="seasonal_config",
            )
        ]
    if draft.rule_type == RuleType.TIME_BASED and draft.time_restrictions is None:
        return [
            RuleValidationError(
                code="time_restrictions_required",
                message="Time-based rules require time restrictions",
                field="time_restrictions",
            )
        ]
    return []


def validate_date_window(
    start_date: datetime | None,
    end_date: datetime | None,
    now: datetime | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> list[RuleValidationError]:
    """Absolute bounds: aware, ordered, and within the configured limits."""
    errors: list[RuleValidationError] = []

    for name, value in (("start_date", start_date), ("end_date", end_date)):
        if value is not None and _is_naive(value):
            errors.append(
                RuleValidationError(
                    code="naive_datetime",
                    message=f"{name} must include a timezone offset",
                    field=name,
                )
            )
    if errors:
        return errors

    if start_date is not None and end_date is not None and start_date > end_date:
        errors.append(
            RuleValidationError(
                code="invalid_date_range",
                message="Start date must be before or equal to end date",
                field="end_date",
            )
        )

    if now is not None:
        if start_date is not None and start_date < shift_years(now, -config.max_past_years):
            errors.append(
                RuleValidationError(
                    code="start_date_too_old",
                    message=f"Start date cannot be more than {config.max_past_years} years in the past",
                    field="start_date",
                )
            )
        if end_date is not None and end_date > shift_years(now, config.max_future_years):
            errors.append(
                RuleValidationError(
                    code="end_date_too_far",
                    message=f"End date cannot be more than {config.max_future_years} years in the future",
                    field="end_date",
                )
            )

    return errors


def validate_timezone(
    name: str,
    zones: TimeZonePort,
    field: str,
) -> list[RuleValidationError]:
    """Zone name must resolve in the IANA database."""
    if zones.is_valid(name):
        return []
    return [
        RuleValidationError(
            code="invalid_timezone",
            message=f"Unknown timezone: {name}",
            field=field,
        )
    ]


def validate_month_day(month: int, day: int, field: str) -> list[RuleValidationError]:
    """Month 1-12 and a day that exists in that month of a non-leap year."""
    if not 1 <= month <= 12:
        return [
            RuleValidationError(
                code="invalid_month",
                message=f"Month must be between 1 and 12, got {month}",
                field=f"{field}_month",
            )
        ]
    max_day = MONTH_DAYS[month - 1]
    if not 1 <= day <= max_day:
        return [
            RuleValidationError(
                code="invalid_day",
                message=f"Day must be between 1 and {max_day} for month {month}",
                field=f"{field}_day",
            )
        ]
    return []


def validate_seasonal_config(
    seasonal: SeasonalConfig,
    start_date: datetime | None,
    zones: TimeZonePort,
) -> list[RuleValidationError]:
    """Month/day window, anchor for one-off seasons, and timezone."""
    errors: list[RuleValidationError] = []
    errors.extend(
        validate_month_day(seasonal.start_month, seasonal.start_day, "seasonal_config.start")
    )
    errors.extend(
        validate_month_day(seasonal.end_month, seasonal.end_day, "seasonal_config.end")
    )

    # A non-recurring season only applies to the year start_date names
    if not seasonal.yearly and start_date is None:
        errors.append(
            RuleValidationError(
                code="season_anchor_required",
                message="Non-yearly seasonal rules require a start date",
                field="start_date",
            )
        )

    errors.extend(validate_timezone(seasonal.timezone, zones, "seasonal_config.timezone"))
    return errors


def validate_time_restrictions(
    restrictions: TimeRestrictions,
    zones: TimeZonePort,
) -> list[RuleValidationError]:
    """Weekdays, HH:MM bounds, and timezone."""
    errors: list[RuleValidationError] = []

    if not restrictions.days_of_week:
        errors.append(
            RuleValidationError(
                code="days_required",
                message="At least one day of week is required",
                field="time_restrictions.days_of_week",
            )
        )
    elif any(not 0 <= day <= 6 for day in restrictions.days_of_week):
        errors.append(
            RuleValidationError(
                code="invalid_weekday",
                message="Days of week must be between 0 (Sunday) and 6 (Saturday)",
                field="time_restrictions.days_of_week",
            )
        )

    for name in ("start_time", "end_time"):
        value = getattr(restrictions, name)
        if not TIME_PATTERN.match(value or ""):
            errors.append(
                RuleValidationError(
                    code="invalid_time",
                    message=f"{name} must be in HH:MM format",
                    field=f"time_restrictions.{name}",
                )
            )

    errors.extend(validate_timezone(restrictions.timezone, zones, "time_restrictions.timezone"))
    return errors


def validate_pre_order_settings(
    settings: PreOrderSettings,
    now: datetime | None = None,
) -> list[RuleValidationError]:
    """Deposit, quantity and delivery date sanity."""
    errors: list[RuleValidationError] = []

    if settings.deposit_required and (
        settings.deposit_amount is None or settings.deposit_amount <= 0
    ):
        errors.append(
            RuleValidationError(
                code="invalid_deposit_amount",
                message="Deposit amount must be greater than 0 when a deposit is required",
                field="pre_order_settings.deposit_amount",
            )
        )

    if settings.max_quantity is not None and settings.max_quantity <= 0:
        errors.append(
            RuleValidationError(
                code="invalid_max_quantity",
                message="Maximum quantity must be greater than 0",
                field="pre_order_settings.max_quantity",
            )
        )

    delivery = settings.expected_delivery_date
    if delivery is not None and now is not None:
        if _is_naive(delivery):
            delivery = delivery.replace(tzinfo=UTC)
        if delivery <= now:
            errors.append(
                RuleValidationError(
                    code="delivery_date_in_past",
                    message="Expected delivery date must be in the future",
                    field="pre_order_settings.expected_delivery_date",
                )
            )

    return errors


def validate_pre_order(
    draft: RuleDraft,
    now: datetime | None = None,
) -> list[RuleValidationError]:
    """Pre-order rules need settings; enabled ones need complete settings."""
    errors: list[RuleValidationError] = []
    settings = draft.pre_order_settings

    if draft.state == AvailabilityState.PRE_ORDER:
        if settings is None:
            errors.append(
                RuleValidationError(
                    code="pre_order_settings_required",
                    message="Pre-order rules require pre-order settings",
                    field="pre_order_settings",
                )
            )
        elif draft.enabled is not False and not settings.is_complete:
            errors.append(
                RuleValidationError(
                    code="pre_order_settings_incomplete",
                    message="Enabled pre-order rules require a message and expected delivery date",
                    field="pre_order_settings",
                )
            )

    if settings is not None:
        errors.extend(validate_pre_order_settings(settings, now))

    return errors


# --- Validator ---


def validate_draft(
    draft: RuleDraft,
    *,
    partial: bool = False,
    now: datetime | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
    zones: TimeZonePort | None = None,
) -> list[RuleValidationError]:
    """Run every check against an already-parsed draft."""
    resolver = default_zones(zones)
    errors: list[RuleValidationError] = []

    if not partial:
        errors.extend(validate_required(draft))

    errors.extend(validate_name(draft.name))
    errors.extend(validate_priority(draft.priority, config))
    errors.extend(validate_type_payload(draft))
    errors.extend(validate_date_window(draft.start_date, draft.end_date, now, config))

    if draft.seasonal_config is not None and draft.rule_type in (None, RuleType.SEASONAL):
        errors.extend(validate_seasonal_config(draft.seasonal_config, draft.start_date, resolver))
    if draft.time_restrictions is not None and draft.rule_type in (None, RuleType.TIME_BASED):
        errors.extend(validate_time_restrictions(draft.time_restrictions, resolver))

    errors.extend(validate_pre_order(draft, now))
    return errors


def validate_rule(
    draft: RuleDraft | Mapping[str, Any],
    *,
    partial: bool = False,
    now: datetime | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
    zones: TimeZonePort | None = None,
) -> list[RuleValidationError]:
    """
    Validate a candidate rule.

    Args:
        draft: RuleDraft or mapping of draft fields
        partial: Skip required-field checks (update overlays)
        now: Enables the past/future window and delivery date checks
        config: Engine limits
        zones: Timezone resolver

    Returns:
        List of errors; empty means valid.
    """
    candidate, errors = coerce_draft(draft, config.default_timezone)
    if candidate is None:
        return errors
    return validate_draft(candidate, partial=partial, now=now, config=config, zones=zones)


def build_rule(
    draft: RuleDraft | Mapping[str, Any],
    *,
    rule_id: str | None = None,
    timestamp: datetime | None = None,
    created_at: datetime | None = None,
    now: datetime | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
    zones: TimeZonePort | None = None,
) -> AvailabilityRule:
    """
    Validate a complete draft and build the typed rule.

    The draft's own id wins over rule_id; a fresh UUID is used when neither
    is given. timestamp becomes updated_at (and created_at unless given).

    Raises:
        InvalidRuleError: if validation fails
    """
    candidate, errors = coerce_draft(draft, config.default_timezone)
    if candidate is not None:
        errors = validate_draft(candidate, now=now, config=config, zones=zones)
    if errors or candidate is None:
        raise InvalidRuleError(errors)

    rule_type = candidate.rule_type
    data = candidate.model_dump(exclude_none=True)
    data["id"] = candidate.id or rule_id or str(uuid4())
    if rule_type != RuleType.SEASONAL:
        data.pop("seasonal_config", None)
    if rule_type != RuleType.TIME_BASED:
        data.pop("time_restrictions", None)
    if candidate.state == AvailabilityState.VIEW_ONLY and candidate.view_only_settings is None:
        data["view_only_settings"] = ViewOnlySettings()
    if timestamp is not None:
        data["created_at"] = created_at or timestamp
        data["updated_at"] = timestamp
    elif created_at is not None:
        data["created_at"] = created_at

    try:
        return RULE_CLASSES[rule_type].model_validate(data)  # type: ignore[index,return-value]
    except ValidationError as e:
        raise InvalidRuleError(errors_from_pydantic(e)) from e


def merge_draft(rule: BaseRule, draft: RuleDraft) -> RuleDraft:
    """
    Overlay the fields a partial draft explicitly sets onto an existing rule.

    The rule's id and product are kept.
    """
    base = rule.model_dump(include=set(RuleDraft.model_fields))
    overlay = draft.model_dump(exclude_unset=True)
    merged = {**base, **overlay, "id": rule.id, "product_id": rule.product_id}
    return RuleDraft.model_validate(merged)


# --- Bulk Request ---


def validate_bulk_request(
    product_ids: Sequence[str],
    operation: str,
    drafts: Sequence[RuleDraft] = (),
    config: EngineConfig = DEFAULT_CONFIG,
) -> list[RuleValidationError]:
    """Request-level checks before any product is touched."""
    errors: list[RuleValidationError] = []

    if not product_ids:
        errors.append(
            RuleValidationError(
                code="product_ids_required",
                message="At least one product ID is required",
                field="product_ids",
            )
        )
    elif len(product_ids) > config.max_bulk_products:
        errors.append(
            RuleValidationError(
                code="too_many_products",
                message=f"Cannot process more than {config.max_bulk_products} products at once",
                field="product_ids",
            )
        )

    if operation not in BULK_OPERATIONS:
        errors.append(
            RuleValidationError(
                code="invalid_operation",
                message=f"Operation must be one of: {', '.join(BULK_OPERATIONS)}",
                field="operation",
            )
        )
    elif operation in ("create", "update") and not drafts:
        errors.append(
            RuleValidationError(
                code="drafts_required",
                message=f"Rules are required for {operation} operation",
                field="drafts",
            )
        )

    return errors
