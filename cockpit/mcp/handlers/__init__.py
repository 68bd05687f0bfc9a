"""Handler registry for MCP tools.

Merges HANDLERS and VALIDATORS from all sub-modules into unified dicts.
"""

from typing import Callable, Dict

from cockpit.mcp.handlers.records import HANDLERS as _RECORDS_H
from cockpit.mcp.handlers.records import VALIDATORS as _RECORDS_V
from cockpit.mcp.handlers.search import HANDLERS as _SEARCH_H
from cockpit.mcp.handlers.search import VALIDATORS as _SEARCH_V
from cockpit.mcp.handlers.stats import HANDLERS as _STATS_H
from cockpit.mcp.handlers.stats import VALIDATORS as _STATS_V

HANDLERS: Dict[str, Callable] = {
    **_RECORDS_H,
    **_SEARCH_H,
    **_STATS_H,
}

VALIDATORS: Dict[str, Callable] = {
    **_RECORDS_V,
    **_SEARCH_V,
    **_STATS_V,
}
