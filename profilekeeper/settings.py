"""Settings for profilekeeper.

Settings live in a single YAML file (``<home>/settings.yaml``). The home
directory defaults to ``~/.profilekeeper`` and can be moved with the
``PROFILEKEEPER_HOME`` environment variable.

Example settings.yaml:

    accept_directory_changes: false
    log_level: DEBUG
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel
from pydantic import Field
from pydantic import ValidationError

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "PROFILEKEEPER_HOME"


@dataclass
class SettingsPaths:
    """Standard paths for settings files."""

    home: Path
    settings_file: Path

    @classmethod
    def default(cls, home: Path | None = None) -> SettingsPaths:
        if home is None:
            env_home = os.environ.get(HOME_ENV_VAR)
            home = Path(env_home).expanduser() if env_home else Path.home() / ".profilekeeper"
        return cls(home=home, settings_file=home / "settings.yaml")


class KeeperSettings(BaseModel):
    """Validated settings with every path resolved."""

    home: Path = Field(..., description="Base application data directory")
    profiles_dir: Path | None = Field(None, description="Profiles root holding profiles.ini")
    guest_dir: Path | None = Field(None, description="Guest profile directory, outside the registry")
    accept_directory_changes: bool = Field(
        default=False, description="Allow redirecting a resolved profile to another existing directory"
    )
    log_path: Path | None = Field(None, description="JSONL log file")
    log_level: str | None = Field(None, description="Root log level (default: $PROFILEKEEPER_LOG_LEVEL or INFO)")

    model_config = {"extra": "ignore"}

    @property
    def profiles_root(self) -> Path:
        return self.profiles_dir or self.home / "profiles"

    @property
    def guest_root(self) -> Path:
        return self.guest_dir or self.home / "guest"


def _read_settings_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable settings file {path}: {e}")
        return {}
    if not isinstance(content, dict):
        logger.warning(f"Ignoring settings file {path}: expected a mapping")
        return {}
    return content


def load_settings(home: Path | None = None, **overrides: Any) -> KeeperSettings:
    """Load settings from ``<home>/settings.yaml``, applying keyword overrides.

    Malformed files and invalid values fall back to defaults.
    """
    paths = SettingsPaths.default(home)
    data = _read_settings_file(paths.settings_file)
    data.update({k: v for k, v in overrides.items() if v is not None})
    data["home"] = paths.home

    try:
        return KeeperSettings.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Invalid settings in {paths.settings_file}, using defaults: {e.error_count()} errors")
        return KeeperSettings(home=paths.home)


__all__ = ["HOME_ENV_VAR", "KeeperSettings", "SettingsPaths", "load_settings"]
