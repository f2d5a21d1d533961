import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from src.rules.models import AvailabilityRulesConfig

# Default rules file (relative to project root)
DEFAULT_RULES_PATH = "availability_rules.yaml"
RULES_PATH_ENV = "AVAILABILITY_RULES_PATH"


def find_project_root() -> Path:
    """Find project root by looking for marker files."""
    current = Path.cwd()

    for parent in [current, *current.parents]:
        if (parent / "pyproject.toml").exists() or (parent / ".git").exists():
            return parent

    return current


def resolve_rules_path(path: Path | None = None) -> Path:
    """Explicit path, else $AVAILABILITY_RULES_PATH, else the project default."""
    if path is not None:
        return path
    env_path = os.environ.get(RULES_PATH_ENV)
    if env_path:
        return Path(env_path)
    return find_project_root() / DEFAULT_RULES_PATH


def load_rules(path: Path | None = None) -> AvailabilityRulesConfig:
    """
    Load and validate the availability rules file.
    Raises FileNotFoundError if file missing.
    Raises ValueError if YAML or schema invalid.
    """
    rules_path = resolve_rules_path(path)
    if not rules_path.exists():
        raise FileNotFoundError(f"Rules file not found at: {rules_path}")

    with open(rules_path) as f:
        content = f.read()

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in rules file: {e}") from e

    # An empty file means all defaults
    if data is None:
        data = {}

    try:
        return AvailabilityRulesConfig.model_validate(data)
    except ValidationError as e:
        # Re-raise with a clear message for the caller/logs
        raise ValueError(f"Rules validation failed:\n{e}") from e
