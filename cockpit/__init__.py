"""
Efficiency Cockpit - storage and search for a developer-productivity tracker.

Reads and writes the tracker's shared SQLite database and serves it to
AI tools over MCP.
"""

from .storage import CockpitStore

try:
    from importlib.metadata import version

    __version__ = version("efficiency-cockpit")
except Exception:
    __version__ = "0.0.0"

__all__ = ["CockpitStore"]
