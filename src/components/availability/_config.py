"""
Availability engine configuration.

Defaults mirror availability_rules.yaml; component entry points build an
EngineConfig from a RulesPort when one is injected.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from src.core.entities import DEFAULT_TIMEZONE, AvailabilityState

from .ports import RulesPort


@dataclass(frozen=True)
class EngineConfig:
    """Engine configuration from rules."""

    # Evaluation
    default_state: AvailabilityState = AvailabilityState.AVAILABLE
    default_timezone: str = DEFAULT_TIMEZONE
    horizon_days: int = 366

    # Validation
    max_priority: int = 1000
    max_past_years: int = 2
    max_future_years: int = 5

    # Migration
    hidden_priority: int = 1000

    # Bulk
    max_bulk_products: int = 100
    bulk_max_workers: int = 1

    @property
    def horizon(self) -> timedelta:
        return timedelta(days=self.horizon_days)


DEFAULT_CONFIG = EngineConfig()


def build_config(rules: RulesPort | None) -> EngineConfig:
    """Build engine config from rules port."""
    if rules is None:
        return DEFAULT_CONFIG

    return EngineConfig(
        default_state=AvailabilityState(rules.get_default_state()),
        default_timezone=rules.get_default_timezone(),
        horizon_days=rules.get_horizon_days(),
        max_priority=rules.get_max_priority(),
        max_past_years=rules.get_max_past_years(),
        max_future_years=rules.get_max_future_years(),
        hidden_priority=rules.get_hidden_priority(),
        max_bulk_products=rules.get_max_bulk_products(),
        bulk_max_workers=rules.get_bulk_max_workers(),
    )
