"""
settings.py

Persistent settings management for the maptext engine.

Handles cross-platform settings storage using TOML format with platformdirs
for proper user config directory detection.

Settings file location:
    - Windows: %APPDATA%/maptext/settings.toml
    - macOS: ~/Library/Application Support/maptext/settings.toml
    - Linux: ~/.config/maptext/settings.toml

Default values are documented in comments throughout this file.
If settings.toml is corrupted, these defaults will be used.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs

# TOML reading - use tomllib for Python 3.11+, tomli for earlier versions
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

APP_NAME = "maptext"

# Global settings manager instance (singleton)
_settings_manager: Optional["SettingsManager"] = None


def get_settings() -> "SettingsManager":
    """Get the global settings manager instance.

    Returns:
        The singleton SettingsManager instance.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager


def reset_settings(manager: Optional["SettingsManager"] = None) -> None:
    """Replace (or drop) the global settings manager instance.

    Args:
        manager: New manager to install, or None to reload lazily on the
            next ``get_settings()`` call.
    """
    global _settings_manager
    _settings_manager = manager


# Per-action debounce delays in milliseconds
DEFAULT_ACTION_DEBOUNCE_MS: Dict[str, int] = {
    "toolbar-component": 100,
    "toolbar-link": 100,
    "toolbar-pst": 200,
    "toolbar-method": 100,
    "canvas-move": 500,
    "canvas-rename": 200,
    "canvas-delete": 100,
    "editor-text": 1000,
    "unknown": 300,
}


# =============================================================================
# History Settings
# =============================================================================

@dataclass
class HistorySettings:
    """Undo/redo history settings.

    Defaults:
        max_size: 50
        debounce_ms: 300
        max_group_interval_ms: 2000
    """
    max_size: int = 50                  # Default: 50 snapshots per stack
    debounce_ms: int = 300              # Default: 300 ms for unlisted actions
    max_group_interval_ms: int = 2000   # Default: 2000 ms between groupable edits
    action_debounce_ms: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_ACTION_DEBOUNCE_MS))

    def debounce_for(self, action_type: str) -> int:
        """Return the debounce delay for an action type."""
        return int(self.action_debounce_ms.get(action_type, self.debounce_ms))


# =============================================================================
# Recovery Settings
# =============================================================================

@dataclass
class RecoverySettings:
    """Name recovery settings used while parsing.

    Defaults:
        max_name_length: 500
        syntax_breaking_chars: '[]{}()"'
        log_events: True
    """
    max_name_length: int = 500              # Default: 500 characters
    syntax_breaking_chars: str = '[]{}()"'  # Default: brackets, parens, braces, quote
    log_events: bool = True                 # Default: emit events to the logger


# =============================================================================
# Formatting Settings
# =============================================================================

LINE_ENDING_CHOICES = ("preserve", "lf", "crlf")


@dataclass
class FormattingSettings:
    """Text serialization settings.

    Coordinates are always written with two decimals; only the line
    ending convention is configurable.

    Defaults:
        line_ending: "preserve"
    """
    line_ending: str = "preserve"    # Default: keep the document's own convention


# =============================================================================
# Pipeline Settings
# =============================================================================

@dataclass
class PipelineSettings:
    """Pipeline detection and generation settings.

    Defaults:
        snap_tolerance: 0.2
        above_tolerance_factor: 0.3
        component_spacing: 0.3
    """
    snap_tolerance: float = 0.2           # Default: 0.2 visibility units below
    above_tolerance_factor: float = 0.3   # Default: 30% of tolerance above
    component_spacing: float = 0.3        # Default: 0.3 maturity between children


# =============================================================================
# Main App Settings
# =============================================================================

@dataclass
class AppSettings:
    """Engine settings with default values.

    Attributes:
        history: Undo/redo history settings.
        recovery: Parse recovery settings.
        formatting: Serialization settings.
        pipelines: Pipeline detection and generation settings.
    """
    history: HistorySettings = field(default_factory=HistorySettings)
    recovery: RecoverySettings = field(default_factory=RecoverySettings)
    formatting: FormattingSettings = field(default_factory=FormattingSettings)
    pipelines: PipelineSettings = field(default_factory=PipelineSettings)


# =============================================================================
# Settings Manager
# =============================================================================

class SettingsManager:
    """Manages loading, saving, and accessing engine settings.

    Settings are stored in a TOML file at the platform-appropriate location.
    If the settings file doesn't exist, defaults are used and the file is
    created on first save.

    Args:
        app_name: Application name used for the config directory.
        settings_dir: Explicit directory, overriding the platform location.
    """

    def __init__(self, app_name: str = APP_NAME, settings_dir: Optional[Path] = None):
        if settings_dir is None:
            settings_dir = Path(platformdirs.user_config_dir(app_name))
        self.settings_dir = Path(settings_dir)
        self.settings_file = self.settings_dir / "settings.toml"
        self.settings = self.load()

    def load(self) -> AppSettings:
        """Load settings from the TOML file.

        Returns:
            AppSettings instance with values from file or defaults if file
            doesn't exist or is invalid.
        """
        if not self.settings_file.exists():
            return AppSettings()

        try:
            with open(self.settings_file, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError):
            # If file is corrupted or unreadable, return defaults
            return AppSettings()

        return self._parse_toml(data)

    def _parse_toml(self, data: Dict[str, Any]) -> AppSettings:
        """Parse TOML data into AppSettings.

        Args:
            data: Parsed TOML dictionary.

        Returns:
            AppSettings instance populated from TOML data.
        """
        settings = AppSettings()

        # History section
        h = data.get("history", {})
        settings.history.max_size = max(1, int(h.get("max_size", settings.history.max_size)))
        settings.history.debounce_ms = max(0, int(h.get("debounce_ms", settings.history.debounce_ms)))
        settings.history.max_group_interval_ms = int(
            h.get("max_group_interval_ms", settings.history.max_group_interval_ms))
        if isinstance(h.get("actions"), dict):
            for action, delay in h["actions"].items():
                settings.history.action_debounce_ms[str(action)] = max(0, int(delay))

        # Recovery section
        r = data.get("recovery", {})
        settings.recovery.max_name_length = int(r.get("max_name_length", settings.recovery.max_name_length))
        settings.recovery.syntax_breaking_chars = str(
            r.get("syntax_breaking_chars", settings.recovery.syntax_breaking_chars))
        settings.recovery.log_events = bool(r.get("log_events", settings.recovery.log_events))

        # Formatting section
        fmt = data.get("formatting", {})
        line_ending = fmt.get("line_ending", settings.formatting.line_ending)
        if line_ending in LINE_ENDING_CHOICES:
            settings.formatting.line_ending = line_ending

        # Pipelines section
        p = data.get("pipelines", {})
        settings.pipelines.snap_tolerance = float(p.get("snap_tolerance", settings.pipelines.snap_tolerance))
        settings.pipelines.above_tolerance_factor = float(
            p.get("above_tolerance_factor", settings.pipelines.above_tolerance_factor))
        settings.pipelines.component_spacing = float(
            p.get("component_spacing", settings.pipelines.component_spacing))

        return settings

    def save(self) -> None:
        """Save current settings to the TOML file.

        Creates the settings directory if it doesn't exist.
        """
        self.settings_dir.mkdir(parents=True, exist_ok=True)

        data = self._to_toml_dict()

        with open(self.settings_file, "wb") as f:
            tomli_w.dump(data, f)

    def _to_toml_dict(self) -> Dict[str, Any]:
        """Convert settings to a TOML-compatible dictionary structure.

        Returns:
            Dictionary organized by TOML sections.
        """
        s = self.settings
        return {
            "history": {
                "max_size": s.history.max_size,
                "debounce_ms": s.history.debounce_ms,
                "max_group_interval_ms": s.history.max_group_interval_ms,
                "actions": dict(s.history.action_debounce_ms),
            },
            "recovery": {
                "max_name_length": s.recovery.max_name_length,
                "syntax_breaking_chars": s.recovery.syntax_breaking_chars,
                "log_events": s.recovery.log_events,
            },
            "formatting": {
                "line_ending": s.formatting.line_ending,
            },
            "pipelines": {
                "snap_tolerance": s.pipelines.snap_tolerance,
                "above_tolerance_factor": s.pipelines.above_tolerance_factor,
                "component_spacing": s.pipelines.component_spacing,
            },
        }

    def to_toml(self) -> str:
        """Convert current settings to a TOML-formatted string.

        Returns:
            TOML representation of the current settings.
        """
        return tomli_w.dumps(self._to_toml_dict())

    def get_settings_path(self) -> Path:
        """Get the path to the settings file.

        Returns:
            Path object pointing to the settings file location.
        """
        return self.settings_file
