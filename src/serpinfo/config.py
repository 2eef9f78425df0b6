"""
Configuration and path management for serpinfo.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

# Background colours for highlight markers 1..n
DEFAULT_HIGHLIGHT_COLORS = [
    "rgba(255, 192, 192, 0.5)",
    "rgba(192, 255, 192, 0.5)",
    "rgba(192, 192, 255, 0.5)",
]


@dataclass
class SerpInfoConfig:
    """Main configuration."""

    # Settings store
    settings_path: str | None = None  # None = <data dir>/settings.json
    enabled_on_startup: bool = False

    # Remote rule sources
    download_timeout: int = 60

    # Rendering
    hide_blocked_results: bool = True
    highlight_colors: list[str] = field(default_factory=lambda: list(DEFAULT_HIGHLIGHT_COLORS))
    icon_size: int = 24

    # Device class used to select pages by userAgent
    mobile: bool = False

    @classmethod
    def load(cls, path: Path | None = None) -> "SerpInfoConfig":
        """Load configuration from file."""
        if path is None:
            path = get_config_dir() / "config.json"

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        return cls(
            settings_path=data.get("settings_path"),
            enabled_on_startup=data.get("enabled_on_startup", False),
            download_timeout=data.get("download_timeout", 60),
            hide_blocked_results=data.get("hide_blocked_results", True),
            highlight_colors=data.get("highlight_colors", list(DEFAULT_HIGHLIGHT_COLORS)),
            icon_size=data.get("icon_size", 24),
            mobile=data.get("mobile", False),
        )

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = get_config_dir() / "config.json"

        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "settings_path": self.settings_path,
            "enabled_on_startup": self.enabled_on_startup,
            "download_timeout": self.download_timeout,
            "hide_blocked_results": self.hide_blocked_results,
            "highlight_colors": self.highlight_colors,
            "icon_size": self.icon_size,
            "mobile": self.mobile,
        }

        with open(path, "w") as f:
            json.dump(data, f, indent=2)


def get_config_dir() -> Path:
    """Get config directory following platform conventions."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))

    return base / "serpinfo"


def get_data_dir() -> Path:
    """Get data directory for persisted settings."""
    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "serpinfo"


def resolve_settings_path(config: SerpInfoConfig | None = None) -> Path:
    """Resolve where the settings store lives.

    Priority:
    1. SERPINFO_SETTINGS_PATH environment variable
    2. settings_path from config
    3. <data dir>/settings.json
    """
    if config is None:
        config = SerpInfoConfig.load()

    env_path = os.environ.get("SERPINFO_SETTINGS_PATH")
    if env_path:
        return Path(env_path).expanduser()

    if config.settings_path:
        return Path(config.settings_path).expanduser()

    return get_data_dir() / "settings.json"
