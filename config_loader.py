#!/usr/bin/env python3
"""
Gaslighter - Configuration Loader

Reads config.yaml, layers GASLIGHTER_* environment variables on top and hands
out one dataclass per section. Fields missing from both fall back to the
dataclass defaults.
"""

import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from pipeline_robustness import RetryPolicy

logger = logging.getLogger("gaslighter")

_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")


@dataclass
class FetchConfig:
    """Upstream listing requests and page sizes."""
    base_url: str = "https://www.reddit.com"
    user_agent: str = "python:gaslighter:v1.0.0 (media swap feed)"
    initial_limit: int = 25
    load_more_limit: int = 15
    source_limit: int = 75
    replenish_limit: int = 50
    source_top_time_filter: str = "month"

    def __post_init__(self):
        self.base_url = self.base_url.rstrip("/")


@dataclass
class RetryConfig:
    """Retries for rate-limited and unreachable requests."""
    max_retries: int = 2
    base_delay_sec: float = 1.0
    max_delay_sec: float = 5.0

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay_sec,
            max_delay=self.max_delay_sec,
        )


@dataclass
class TimeoutConfig:
    request_sec: float = 15.0
    suggestion_sec: float = 3.0


@dataclass
class SettingsConfig:
    """Where saved user preferences live."""
    path: Path = field(default_factory=lambda: Path("./gaslighter_settings.json"))


def _coerce(value: Any, default: Any) -> Any:
    """Convert a raw config value to the type of the field's default."""
    if isinstance(default, bool):
        return bool(value)
    if isinstance(default, (int, float)):
        return type(default)(value)
    if isinstance(default, Path):
        return Path(value)
    return str(value)


def _parse_env_value(raw: str) -> Any:
    """Read an environment value as a YAML scalar; anything else stays a string."""
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw
    if value is None or isinstance(value, (dict, list)):
        return raw
    return value


class ConfigLoader:
    """
    Section-based configuration with environment overrides.

    Any key can be overridden with GASLIGHTER_<SECTION>_<KEY>; the value is
    parsed as a YAML scalar, so numbers and booleans keep their type:
        GASLIGHTER_FETCH_INITIAL_LIMIT=50
        GASLIGHTER_RETRY_MAX_RETRIES=4
        GASLIGHTER_TIMEOUTS_REQUEST_SEC=10
    """

    ENV_PREFIX = "GASLIGHTER_"
    SECTIONS = {
        "fetch": FetchConfig,
        "retry": RetryConfig,
        "timeouts": TimeoutConfig,
        "settings": SettingsConfig,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Args:
            config_path: Path to the YAML file. Defaults to ./config.yaml
        """
        self.config_path = Path(config_path) if config_path else Path("./config.yaml")
        self.raw_config: dict[str, Any] = self._read_file()
        self._apply_env_overrides()
        self.raw_config = self._expand_env_vars(self.raw_config)

    def _read_file(self) -> dict[str, Any]:
        if not self.config_path.exists():
            logger.warning(f"Config file not found: {self.config_path}, using defaults")
            return {}
        with open(self.config_path) as f:
            loaded = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {self.config_path}")
        return loaded

    def _apply_env_overrides(self) -> None:
        for name, raw in os.environ.items():
            if not name.startswith(self.ENV_PREFIX):
                continue
            section, _, key = name[len(self.ENV_PREFIX):].lower().partition("_")
            if not key:
                continue

            target = self.raw_config.setdefault(section, {})
            if not isinstance(target, dict):
                logger.warning(f"Ignoring {name}: '{section}' is not a config section")
                continue
            target[key] = _parse_env_value(raw)
            logger.debug(f"Config override from {name}: {section}.{key} = {target[key]!r}")

    def _expand_env_vars(self, obj: Any) -> Any:
        """Replace ${VAR} references with environment values (empty if unset)."""
        if isinstance(obj, str):
            return _ENV_REFERENCE.sub(lambda m: os.environ.get(m.group(1), ""), obj)
        if isinstance(obj, dict):
            return {k: self._expand_env_vars(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [self._expand_env_vars(item) for item in obj]
        return obj

    def get(self, path: str, default: Any = None) -> Any:
        """
        Look up a value by dot-separated path, e.g. ``fetch.initial_limit``.

        Returns ``default`` if any part of the path is missing.
        """
        node: Any = self.raw_config
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def section(self, name: str) -> Any:
        """Build the dataclass for a section, coercing values to the field types."""
        cls = self.SECTIONS[name]
        raw = self.raw_config.get(name) or {}
        defaults = cls()

        values = {}
        for f in fields(cls):
            if raw.get(f.name) is not None:
                values[f.name] = _coerce(raw[f.name], getattr(defaults, f.name))
        return cls(**values)

    def get_fetch_config(self) -> FetchConfig:
        return self.section("fetch")

    def get_retry_config(self) -> RetryConfig:
        return self.section("retry")

    def get_timeout_config(self) -> TimeoutConfig:
        return self.section("timeouts")

    def get_settings_config(self) -> SettingsConfig:
        return self.section("settings")


# Lazily created on first use
_config: Optional[ConfigLoader] = None


def get_config() -> ConfigLoader:
    global _config
    if _config is None:
        _config = ConfigLoader()
    return _config


def reload_config(config_path: Optional[Path] = None) -> ConfigLoader:
    """Replace the shared configuration, e.g. after ``--config`` on the command line."""
    global _config
    _config = ConfigLoader(config_path)
    return _config
