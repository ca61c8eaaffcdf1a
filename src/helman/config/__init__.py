"""Configuration management for Helman."""

from helman.config.schema import HelmanConfig
from helman.config.manager import ConfigManager, resolve_config

__all__ = ["HelmanConfig", "ConfigManager", "resolve_config"]
