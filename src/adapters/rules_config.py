"""
RulesPort adapter over the loaded availability_rules.yaml.
"""

from __future__ import annotations

from pathlib import Path

from src.rules.loader import load_rules
from src.rules.models import AvailabilityRulesConfig


class RulesConfigAdapter:
    """Exposes the validated rules file through the RulesPort accessors."""

    def __init__(self, config: AvailabilityRulesConfig | None = None) -> None:
        self._config = config or AvailabilityRulesConfig()

    @classmethod
    def from_file(cls, path: Path | None = None) -> RulesConfigAdapter:
        return cls(load_rules(path))

    @property
    def config(self) -> AvailabilityRulesConfig:
        return self._config

    def get_default_state(self) -> str:
        return self._config.engine.default_state.value

    def get_default_timezone(self) -> str:
        return self._config.engine.default_timezone

    def get_horizon_days(self) -> int:
        return self._config.engine.horizon_days

    def get_max_priority(self) -> int:
        return self._config.priority.max

    def get_hidden_priority(self) -> int:
        return self._config.migration.hidden_priority

    def get_max_bulk_products(self) -> int:
        return self._config.bulk.max_products

    def get_max_past_years(self) -> int:
        return self._config.validation.max_past_years

    def get_max_future_years(self) -> int:
        return self._config.validation.max_future_years

    def get_bulk_max_workers(self) -> int:
        return self._config.bulk.max_workers

    def get_cache_ttl_seconds(self) -> int:
        return self._config.cache.ttl_seconds
