"""
Configuration file parsing and management.

Reads an optional YAML (or JSON) file with chef preferences. Runtime settings
that the user edits through chef itself (editor, terminal, ...) live in the
store instead, see settings.py.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .common import get_chef_base_path, vlog


# Configuration file locations (in priority order)
CONFIG_LOCATIONS = [
    os.path.expanduser("~/.config/chef/config.yml"),
    os.path.expanduser("~/.config/chef/config.yaml"),
]


@dataclass(frozen=True)
class Preferences:
    """
    User preferences for update behavior.

    Attributes:
        max_concurrent_checks: Simultaneous in-flight version lookups
        provider_shutdown_timeout: Seconds to wait for a provider to exit on cleanup
        log_file: Optional log file path
        verbose: Enable verbose logging
    """
    max_concurrent_checks: int = 5
    provider_shutdown_timeout: int = 5
    log_file: str | None = None
    verbose: bool = False

    def __post_init__(self):
        """Validate preferences after initialization."""
        if self.max_concurrent_checks < 1 or self.max_concurrent_checks > 32:
            raise ValueError(
                f"Invalid max_concurrent_checks: {self.max_concurrent_checks}. "
                "Must be between 1 and 32"
            )

        if self.provider_shutdown_timeout < 1 or self.provider_shutdown_timeout > 60:
            raise ValueError(
                f"Invalid provider_shutdown_timeout: {self.provider_shutdown_timeout}. "
                "Must be between 1 and 60"
            )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Preferences:
        """Create Preferences from dictionary."""
        return Preferences(
            max_concurrent_checks=data.get("max_concurrent_checks", 5),
            provider_shutdown_timeout=data.get("provider_shutdown_timeout", 5),
            log_file=data.get("log_file"),
            verbose=data.get("verbose", False),
        )


@dataclass(frozen=True)
class ChefConfig:
    """
    Complete configuration for chef.

    Attributes:
        version: Config schema version
        base_path: Root directory for chef data (empty means the default)
        preferences: Global preferences
        source: Path to the configuration file that was loaded
    """
    version: int = 1
    base_path: str = ""
    preferences: Preferences = field(default_factory=Preferences)
    source: str = ""

    def __post_init__(self):
        """Validate config after initialization."""
        if self.version != 1:
            raise ValueError(f"Unsupported config version: {self.version}. Expected version 1")

    @staticmethod
    def from_dict(data: dict[str, Any], source: str = "") -> ChefConfig:
        """Create ChefConfig from dictionary."""
        return ChefConfig(
            version=data.get("version", 1),
            base_path=data.get("base_path", "") or "",
            preferences=Preferences.from_dict(data.get("preferences", {}) or {}),
            source=source,
        )

    def resolve_base_path(self) -> Path:
        """Base path from config, falling back to the environment default."""
        if self.base_path:
            return Path(self.base_path).expanduser()
        return get_chef_base_path()


def _load_yaml(file_path: str) -> dict[str, Any] | None:
    """
    Load YAML configuration file.

    Returns:
        Parsed configuration dictionary, or None if the file is unreadable or invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return None


def _load_json(file_path: str) -> dict[str, Any] | None:
    """
    Load JSON configuration file.

    Returns:
        Parsed configuration dictionary, or None if file invalid
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
            return data if isinstance(data, dict) else {}
    except (OSError, json.JSONDecodeError):
        return None


def load_config_file(file_path: str, verbose: bool = False) -> ChefConfig | None:
    """
    Load configuration from a single file.

    Files ending in .json are parsed as JSON, everything else as YAML.

    Returns:
        ChefConfig object, or None if file cannot be loaded
    """
    if not os.path.exists(file_path):
        return None

    vlog(f"Loading config from: {file_path}", verbose)

    if file_path.endswith(".json"):
        data = _load_json(file_path)
    else:
        data = _load_yaml(file_path)

    if data is None:
        vlog(f"Invalid config file: {file_path}", verbose)
        return None

    try:
        config = ChefConfig.from_dict(data, source=file_path)
        vlog(f"Loaded config successfully: {file_path}", verbose)
        return config
    except (ValueError, TypeError) as e:
        vlog(f"Config validation failed for {file_path}: {e}", verbose)
        return None


def load_config(custom_path: str | None = None, verbose: bool = False) -> ChefConfig:
    """
    Load configuration from the first available source.

    Precedence (highest to lowest):
    1. Custom path (if provided), else CHEF_CONFIG
    2. ~/.config/chef/config.yml
    3. ~/.config/chef/config.yaml
    4. Default configuration

    Raises:
        ValueError: If an explicitly requested file cannot be loaded
    """
    explicit = custom_path or os.environ.get("CHEF_CONFIG")
    if explicit:
        config = load_config_file(explicit, verbose)
        if config is None:
            raise ValueError(f"Could not load config from specified path: {explicit}")
        vlog(f"Using custom config: {explicit}", verbose)
        return config

    for location in CONFIG_LOCATIONS:
        config = load_config_file(location, verbose)
        if config is not None:
            vlog(f"Found config at: {location}", verbose)
            return config

    vlog("No config files found, using defaults", verbose)
    return ChefConfig()
