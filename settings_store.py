#!/usr/bin/env python3
"""
Gaslighter - Settings Store

Persists user preferences as one JSON blob under a fixed key. Loaded once at
startup; rewritten on every change.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from pipeline_robustness import AtomicFileWriter

logger = logging.getLogger("gaslighter")

SETTINGS_KEY = "gaslighter_user_settings"


@dataclass
class UserSettings:
    """Everything the user can configure between sessions."""
    target_subreddit: str = ""
    source_subreddits: str = "pics"
    view_mode: str = "large"
    sort_mode: str = "hot"
    top_time_filter: str = "day"
    is_autoscroll_enabled: bool = False
    autoscroll_speed: int = 3

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserSettings":
        """Overlay stored values on the defaults, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class SettingsStore:
    """Manages the settings file."""

    def __init__(self, settings_file: Path = Path("./gaslighter_settings.json")):
        self.settings_file = Path(settings_file)
        self.settings = UserSettings()
        self._writer = AtomicFileWriter()

    def load(self) -> UserSettings:
        """Load saved settings, falling back to defaults when missing or unreadable."""
        if not self.settings_file.exists():
            self.settings = UserSettings()
            return self.settings

        try:
            with open(self.settings_file, "r") as f:
                blob = json.load(f)
            stored = blob.get(SETTINGS_KEY) or {}
            if not isinstance(stored, dict):
                raise ValueError(f"{SETTINGS_KEY} is not an object")
            self.settings = UserSettings.from_dict(stored)
            logger.debug(f"Loaded settings from {self.settings_file}")
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to load settings: {e}")
            self.settings = UserSettings()
        return self.settings

    def save(self) -> None:
        """Save settings to file."""
        try:
            self._writer.atomic_json_write(self.settings_file, {SETTINGS_KEY: asdict(self.settings)})
            logger.debug(f"Saved settings to {self.settings_file}")
        except OSError as e:
            logger.error(f"Failed to save settings: {e}")

    def update(self, **changes: Any) -> UserSettings:
        """Apply changes and persist them immediately."""
        merged = {**asdict(self.settings), **changes}
        self.settings = UserSettings.from_dict(merged)
        self.save()
        return self.settings
