"""
Rules file loading and validation tests.

Verifies that the loader validates availability_rules.yaml structure and
that the RulesPort adapter exposes the values the engine reads.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from src.adapters.rules_config import RulesConfigAdapter
from src.components.availability import build_config
from src.core.entities import AvailabilityState
from src.rules.loader import RULES_PATH_ENV, load_rules, resolve_rules_path
from src.rules.models import AvailabilityRulesConfig


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent.parent


@pytest.fixture
def valid_rules_path(project_root: Path) -> Path:
    """Path to the shipped rules file."""
    return project_root / "availability_rules.yaml"


def write_rules(tmp_path: Path, rules: dict[str, Any] | str) -> Path:
    path = tmp_path / "rules.yaml"
    if isinstance(rules, str):
        path.write_text(rules)
    else:
        path.write_text(yaml.dump(rules))
    return path


class TestRulesLoading:
    """Loading the rules file."""

    def test_load_shipped_rules_file(self, valid_rules_path: Path) -> None:
        rules = load_rules(valid_rules_path)

        assert rules.engine.default_state == AvailabilityState.AVAILABLE
        assert rules.engine.default_timezone == "America/Los_Angeles"
        assert rules.priority.max == 1000
        assert rules.cache.ttl_seconds == 300
        assert rules.bulk.max_workers == 4
        assert rules.migration.hidden_priority == 1000

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_rules(tmp_path / "missing.yaml")

    def test_invalid_yaml_raises_value_error(self, tmp_path: Path) -> None:
        path = write_rules(tmp_path, "engine: [unclosed")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_rules(path)

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = write_rules(tmp_path, "")
        assert load_rules(path) == AvailabilityRulesConfig()

    def test_partial_file_keeps_other_defaults(self, tmp_path: Path) -> None:
        path = write_rules(tmp_path, {"bulk": {"max_products": 10}})

        rules = load_rules(path)

        assert rules.bulk.max_products == 10
        assert rules.bulk.max_workers == 1
        assert rules.validation.max_future_years == 5

    def test_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = write_rules(tmp_path, {"engine": {"horizon_days": 30}})
        monkeypatch.setenv(RULES_PATH_ENV, str(path))

        assert resolve_rules_path() == path
        assert load_rules().engine.horizon_days == 30


class TestRulesSchemaValidation:
    """Schema errors surface as ValueError."""

    @pytest.mark.parametrize(
        "rules",
        [
            {"engine": {"unknown_key": 1}},
            {"unknown_section": {}},
            {"engine": {"default_state": "invisible"}},
            {"engine": {"horizon_days": 0}},
            {"priority": {"min": 5}},
            {"bulk": {"max_workers": 0}},
            {"priority": {"tie_break": ["priority", "id"]}},
            {"migration": {"hidden_priority": 1001}},
            {"priority": {"max": 50}, "migration": {"hidden_priority": 100}},
        ],
    )
    def test_invalid_rules_rejected(self, tmp_path: Path, rules: dict[str, Any]) -> None:
        path = write_rules(tmp_path, rules)
        with pytest.raises(ValueError, match="Rules validation failed"):
            load_rules(path)

    def test_hidden_priority_bounded_by_max(self) -> None:
        with pytest.raises(ValueError, match="exceeds priority.max"):
            AvailabilityRulesConfig.model_validate({"migration": {"hidden_priority": 2000}})

        config = AvailabilityRulesConfig.model_validate(
            {"priority": {"max": 2000}, "migration": {"hidden_priority": 2000}}
        )
        assert config.migration.hidden_priority == 2000


class TestRulesConfigAdapter:
    """RulesPort accessors."""

    def test_accessors_match_file(self, valid_rules_path: Path) -> None:
        adapter = RulesConfigAdapter.from_file(valid_rules_path)

        assert adapter.get_default_state() == "available"
        assert adapter.get_horizon_days() == 366
        assert adapter.get_max_bulk_products() == 100
        assert adapter.get_cache_ttl_seconds() == 300

    def test_engine_config_from_adapter(self, tmp_path: Path) -> None:
        path = write_rules(
            tmp_path,
            {
                "engine": {"default_state": "coming_soon", "horizon_days": 90},
                "validation": {"max_past_years": 1},
                "migration": {"hidden_priority": 500},
            },
        )

        config = build_config(RulesConfigAdapter.from_file(path))

        assert config.default_state == AvailabilityState.COMING_SOON
        assert config.horizon_days == 90
        assert config.max_past_years == 1
        assert config.hidden_priority == 500

    def test_no_rules_port_gives_defaults(self) -> None:
        config = build_config(None)
        assert config.max_priority == 1000
        assert config.bulk_max_workers == 1
