"""History configuration helpers.

Configuration lives in ``.local-history/config.yaml`` inside the workspace.
A broken file or a bad value never stops capture: the offending fields are
reported and replaced by their defaults.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import platformdirs
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import (
    CONFIG_FILE,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_EXCLUDED_PATTERNS,
    DEFAULT_MAX_AGE_DAYS,
    DEFAULT_MAX_HISTORY_ENTRIES,
    LOCAL_HISTORY_DIR,
    STORE_ENV_VAR,
)
from .errors import ConfigInvalidError

logger = logging.getLogger(__name__)


def default_store_root() -> Path:
    """Platform-appropriate store location, e.g. ~/.local/share/local-history/history."""
    return Path(platformdirs.user_data_dir("local-history", "local-history")) / "history"


class HistoryConfig(BaseModel):
    """History configuration (stored in .local-history/config.yaml)."""

    enabled: bool = True
    max_history_entries: int = DEFAULT_MAX_HISTORY_ENTRIES  # <= 0 disables the count limit
    max_age_days: int = DEFAULT_MAX_AGE_DAYS                # <= 0 disables the age limit
    excluded_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_PATTERNS)
    )
    store_root: Optional[Path] = None
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS

    @field_validator("excluded_patterns", mode="before")
    @classmethod
    def _coerce_patterns(cls, value: Any) -> Any:
        """Accept a single pattern string; drop blank entries."""
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            return [p for p in value if not (isinstance(p, str) and not p.strip())]
        return value

    @field_validator("debounce_seconds")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("debounce_seconds must be >= 0")
        return value

    @property
    def resolved_store_root(self) -> Path:
        """Store root with environment override and platform default applied."""
        env_root = os.environ.get(STORE_ENV_VAR)
        if env_root:
            return Path(env_root).expanduser()
        if self.store_root:
            return Path(self.store_root).expanduser()
        return default_store_root()


def config_path_for(workspace: Path) -> Path:
    """Location of the config file for a workspace."""
    return workspace / LOCAL_HISTORY_DIR / CONFIG_FILE


def parse_history_config(data: Dict[str, Any]) -> HistoryConfig:
    """Build a config from raw mapping, replacing invalid fields with defaults.

    Args:
        data: Raw mapping (typically parsed YAML)

    Returns:
        A valid HistoryConfig. Unknown keys are ignored.
    """
    known = {k: v for k, v in data.items() if k in HistoryConfig.model_fields}
    for key in sorted(set(data) - set(known)):
        logger.warning("Ignoring unknown config key %r", key)

    while True:
        try:
            return HistoryConfig(**known)
        except ValidationError as e:
            bad = {err["loc"][0] for err in e.errors() if err["loc"]}
            bad &= set(known)
            if not bad:
                logger.warning("Invalid history config, using defaults: %s", e)
                return HistoryConfig()
            for key in sorted(bad):
                logger.warning(
                    "Invalid value for %r (%r), falling back to default", key, known[key]
                )
                known.pop(key)


def read_config_file(cfg_path: Path) -> Dict[str, Any]:
    """Read the raw settings mapping from a config file.

    Raises:
        ConfigInvalidError: If the file cannot be read or decoded, is not
            valid YAML, or does not hold a mapping
    """
    try:
        data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise ConfigInvalidError(f"Could not read {cfg_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigInvalidError(f"Config {cfg_path} is not a mapping")
    return data


def load_history_config(workspace: Path) -> HistoryConfig:
    """Load history configuration from .local-history/config.yaml if present."""

    cfg_path = config_path_for(workspace)
    if not cfg_path.exists():
        return HistoryConfig()

    try:
        data = read_config_file(cfg_path)
    except ConfigInvalidError as e:
        logger.warning("%s, using defaults", e)
        return HistoryConfig()

    # Allow the settings to be nested under a "history" section
    section = data.get("history", data)
    if not isinstance(section, dict):
        return HistoryConfig()
    return parse_history_config(section)


def config_to_yaml(config: HistoryConfig) -> str:
    """Serialize config to YAML (store_root omitted when unset)."""
    data = config.model_dump(mode="json", exclude_none=True)
    return yaml.safe_dump(data, sort_keys=False)
