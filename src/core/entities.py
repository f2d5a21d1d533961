"""
Domain Entities for the product availability engine.

Leaf value types shared by every availability component:
- AvailabilityState / RuleType enums
- Rule payload configs (seasonal window, time restrictions, pre-order, view-only)
- AvailabilityRule: tagged union discriminated on rule_type
- RuleDraft: flat, all-optional candidate used for create/update/migration
- AvailabilitySchedule: materialized future transition for the job runner

Invariants:
- I1: seasonal rules always carry a SeasonalConfig
- I2: time_based rules always carry TimeRestrictions
- I3: rules are immutable once built
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field

__all__ = [
    "DEFAULT_TIMEZONE",
    "RULE_CLASSES",
    "AvailabilityEvaluation",
    "AvailabilityPreview",
    "AvailabilityRule",
    "AvailabilitySchedule",
    "AvailabilityState",
    "BaseRule",
    "CustomRule",
    "DateRangeRule",
    "FutureState",
    "InventoryRule",
    "NextStateChange",
    "PreOrderSettings",
    "ResolutionStrategy",
    "RuleConflict",
    "RuleDraft",
    "RuleType",
    "SeasonalConfig",
    "SeasonalRule",
    "TimeBasedRule",
    "TimeRestrictions",
    "ViewOnlySettings",
]

DEFAULT_TIMEZONE = "America/Los_Angeles"


# --- Enums ---


class AvailabilityState(str, Enum):
    """Single state a product is in at an instant."""

    AVAILABLE = "available"
    PRE_ORDER = "pre_order"
    VIEW_ONLY = "view_only"
    HIDDEN = "hidden"
    COMING_SOON = "coming_soon"
    SOLD_OUT = "sold_out"
    RESTRICTED = "restricted"


class RuleType(str, Enum):
    """Rule discriminator; selects which config payload is relevant."""

    DATE_RANGE = "date_range"
    SEASONAL = "seasonal"
    INVENTORY = "inventory"
    CUSTOM = "custom"
    TIME_BASED = "time_based"


# --- Rule Payloads ---


class SeasonalConfig(BaseModel):
    """Recurring month/day window, e.g. Dec 20 -> Jan 5."""

    model_config = ConfigDict(frozen=True)

    start_month: int
    start_day: int
    end_month: int
    end_day: int
    yearly: bool = True
    timezone: str = DEFAULT_TIMEZONE


class TimeRestrictions(BaseModel):
    """Day-of-week and HH:MM window. days_of_week uses 0=Sunday."""

    model_config = ConfigDict(frozen=True)

    days_of_week: tuple[int, ...]
    start_time: str
    end_time: str
    timezone: str = DEFAULT_TIMEZONE


class PreOrderSettings(BaseModel):
    """Pre-order metadata, meaningful when state is pre_order."""

    model_config = ConfigDict(frozen=True)

    message: str | None = None
    expected_delivery_date: datetime | None = None
    max_quantity: int | None = None
    deposit_required: bool = False
    deposit_amount: Decimal | None = None

    @property
    def is_complete(self) -> bool:
        """Admin has filled in the customer-facing fields."""
        return bool(self.message) and self.expected_delivery_date is not None


class ViewOnlySettings(BaseModel):
    """View-only metadata, meaningful when state is view_only."""

    model_config = ConfigDict(frozen=True)

    message: str | None = None  # None -> storefront default message
    show_price: bool = True
    allow_wishlist: bool = False
    notify_when_available: bool = True


# --- AvailabilityRule (tagged union) ---


class BaseRule(BaseModel):
    """Fields shared by every rule variant."""

    model_config = ConfigDict(frozen=True)

    id: str
    product_id: str
    name: str
    description: str | None = None
    enabled: bool = True
    priority: int = 0
    state: AvailabilityState
    start_date: AwareDatetime | None = None
    end_date: AwareDatetime | None = None
    pre_order_settings: PreOrderSettings | None = None
    view_only_settings: ViewOnlySettings | None = None
    override_square: bool = False
    created_at: AwareDatetime | None = None
    updated_at: AwareDatetime | None = None


class DateRangeRule(BaseRule):
    """Absolute start/end bounds only."""

    rule_type: Literal[RuleType.DATE_RANGE] = RuleType.DATE_RANGE


class SeasonalRule(BaseRule):
    """Recurring calendar window."""

    rule_type: Literal[RuleType.SEASONAL] = RuleType.SEASONAL
    seasonal_config: SeasonalConfig


class TimeBasedRule(BaseRule):
    """Day-of-week / time-of-day window."""

    rule_type: Literal[RuleType.TIME_BASED] = RuleType.TIME_BASED
    time_restrictions: TimeRestrictions


class InventoryRule(BaseRule):
    """Applies when the caller reports stock below threshold."""

    rule_type: Literal[RuleType.INVENTORY] = RuleType.INVENTORY


class CustomRule(BaseRule):
    """Applies when the caller-supplied predicate says so."""

    rule_type: Literal[RuleType.CUSTOM] = RuleType.CUSTOM


AvailabilityRule = Annotated[
    DateRangeRule | SeasonalRule | TimeBasedRule | InventoryRule | CustomRule,
    Field(discriminator="rule_type"),
]

RULE_CLASSES: dict[RuleType, type[BaseRule]] = {
    RuleType.DATE_RANGE: DateRangeRule,
    RuleType.SEASONAL: SeasonalRule,
    RuleType.TIME_BASED: TimeBasedRule,
    RuleType.INVENTORY: InventoryRule,
    RuleType.CUSTOM: CustomRule,
}


# --- RuleDraft ---


class RuleDraft(BaseModel):
    """
    Candidate rule, possibly partial.

    Used as create/update input and as migration output. Nothing here is
    enforced beyond field types; RuleValidator decides whether a draft can
    become an AvailabilityRule.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str | None = None
    product_id: str | None = None
    name: str | None = None
    description: str | None = None
    enabled: bool | None = None
    priority: int | None = None
    rule_type: RuleType | None = None
    state: AvailabilityState | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    seasonal_config: SeasonalConfig | None = None
    time_restrictions: TimeRestrictions | None = None
    pre_order_settings: PreOrderSettings | None = None
    view_only_settings: ViewOnlySettings | None = None
    override_square: bool | None = None


# --- AvailabilitySchedule ---


class AvailabilitySchedule(BaseModel):
    """
    Materialized future transition.

    Created by the engine, polled and marked processed by the external job
    runner.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    rule_id: str
    product_id: str
    scheduled_at: AwareDatetime
    state_change: str
    processed: bool = False
    processed_at: datetime | None = None
    error_message: str | None = None


# --- Engine Outputs ---


class ResolutionStrategy(str, Enum):
    """Which tie-break tier decided a conflict."""

    PRIORITY = "priority"
    DATE = "date"  # rule type specificity (absolute dates rank highest)
    MANUAL = "manual"  # fell through to the id tie-break; needs admin attention


class NextStateChange(BaseModel):
    """Next instant at which the effective state changes."""

    model_config = ConfigDict(frozen=True)

    at: AwareDatetime
    state: AvailabilityState
    rule: AvailabilityRule | None = None


class AvailabilityEvaluation(BaseModel):
    """Effective state of a product at an instant."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    current_state: AvailabilityState
    effective_rule: AvailabilityRule | None = None
    applied_rules: tuple[AvailabilityRule, ...] = ()
    computed_at: AwareDatetime
    next_state_change: NextStateChange | None = None


class FutureState(BaseModel):
    """One transition on a preview timeline."""

    model_config = ConfigDict(frozen=True)

    date: AwareDatetime
    state: AvailabilityState
    rule: AvailabilityRule | None = None


class RuleConflict(BaseModel):
    """Two rules that matched at the same instant, and how it was settled."""

    model_config = ConfigDict(frozen=True)

    winner: AvailabilityRule
    loser: AvailabilityRule
    detected_at: AwareDatetime
    resolution: ResolutionStrategy


class AvailabilityPreview(BaseModel):
    """Resolved timeline for a requested window."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    current_state: AvailabilityState
    window_start: AwareDatetime
    window_end: AwareDatetime
    future_states: tuple[FutureState, ...] = ()
    conflicts: tuple[RuleConflict, ...] = ()
