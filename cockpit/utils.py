"""Utility functions for cockpit: data directory resolution and formatting."""

import os
import sys
from pathlib import Path

APP_DIR_NAME = "EfficiencyCockpit"
DB_FILE_NAME = "default.store"


def get_data_dir() -> Path:
    """Per-user application data directory for the tracker.

    macOS: ~/Library/Application Support/EfficiencyCockpit
    Windows: %APPDATA%/EfficiencyCockpit
    Otherwise: $XDG_DATA_HOME/EfficiencyCockpit (default ~/.local/share)
    """
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    elif sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    else:
        xdg = os.environ.get("XDG_DATA_HOME")
        base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


def default_db_path() -> Path:
    """Path of the shared tracker database."""
    return get_data_dir() / DB_FILE_NAME


def format_duration(seconds: float) -> str:
    """Format a duration as ``"Hh Mm"`` (or ``"Mm"`` under an hour)."""
    total = int(seconds or 0)
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
