"""Configuration loading, merging, and validation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from helman.config.schema import HelmanConfig

logger = logging.getLogger(__name__)


def resolve_config(raw: dict[str, Any] | None = None) -> HelmanConfig:
    """Validate a raw mapping into one fully populated, frozen config.

    Defaults (bucket count, bucket duration, titles) are applied here, before
    any engine call, never patched onto the model afterwards.
    """
    try:
        return HelmanConfig.model_validate(raw or {})
    except ValidationError as e:
        logger.error("Invalid configuration: %s", e)
        raise


class ConfigManager:
    """Loads config from a defaults YAML plus optional user overrides."""

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("helman.defaults.yaml")
        self._user_path = user_path or Path("helman.yaml")
        self._config: HelmanConfig | None = None
        self._raw: dict[str, Any] = {}

    @property
    def config(self) -> HelmanConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self) -> HelmanConfig:
        """Load configuration from defaults + user overrides."""
        defaults = self._load_yaml(self._defaults_path)
        overrides = self._load_yaml(self._user_path) if self._user_path.exists() else {}
        merged = self._deep_merge(defaults, overrides)
        self._raw = merged
        self._config = resolve_config(merged)
        logger.info(
            "Configuration loaded (%d buckets x %ds)",
            self._config.history_buckets, self._config.history_bucket_duration,
        )
        return self._config

    def get_raw(self) -> dict[str, Any]:
        return dict(self._raw)

    def to_json(self) -> str:
        return self.config.model_dump_json(indent=2)

    def save_user_config(self, updates: dict[str, Any]) -> HelmanConfig:
        """Apply updates to the user config file and reload."""
        current = self._load_yaml(self._user_path) if self._user_path.exists() else {}
        merged = self._deep_merge(current, updates)
        with open(self._user_path, "w") as f:
            yaml.dump(merged, f, default_flow_style=False, sort_keys=False)
        return self.load()

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with open(path) as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict."""
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
