"""Handlers for statistics tools: time on project, scores, projects, digests."""

import json
from typing import Any, Dict

from cockpit.mcp.sanitize import sanitize_string, validate_enum, validate_number
from cockpit.mcp.tool_definitions import DIGEST_PERIODS, SCORE_PERIODS
from cockpit.storage import CockpitStore

# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def validate_get_time_on_project(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {"project": sanitize_string(arguments.get("project"), "project", 1000)}


def validate_get_productivity_score(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {"period": validate_enum(arguments.get("period"), "period", SCORE_PERIODS, "today")}


def validate_get_digest(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {"period": validate_enum(arguments.get("period"), "period", DIGEST_PERIODS, "today")}


def validate_get_smart_digest(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "stale_days": int(validate_number(arguments.get("stale_days"), "stale_days", 1, 365, 7)),
        "unresolved_days": int(
            validate_number(arguments.get("unresolved_days"), "unresolved_days", 1, 365, 7)
        ),
    }


def validate_no_args(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def handle_get_time_on_project(args: Dict[str, Any], store: CockpitStore) -> str:
    return json.dumps(store.get_time_on_project(args["project"]), indent=2)


def handle_get_productivity_score(args: Dict[str, Any], store: CockpitStore) -> str:
    return json.dumps(store.get_productivity_score(args["period"]), indent=2)


def handle_get_daily_stats(args: Dict[str, Any], store: CockpitStore) -> str:
    return json.dumps(store.get_daily_stats(), indent=2)


def handle_get_projects(args: Dict[str, Any], store: CockpitStore) -> str:
    return json.dumps(store.get_projects(), indent=2)


def handle_get_digest(args: Dict[str, Any], store: CockpitStore) -> str:
    return json.dumps(store.get_digest(args["period"]), indent=2, default=str)


def handle_get_smart_digest(args: Dict[str, Any], store: CockpitStore) -> str:
    digest = store.get_smart_digest(args["stale_days"], args["unresolved_days"])
    return json.dumps(digest, indent=2, default=str)


HANDLERS = {
    "get_time_on_project": handle_get_time_on_project,
    "get_productivity_score": handle_get_productivity_score,
    "get_daily_stats": handle_get_daily_stats,
    "get_projects": handle_get_projects,
    "get_digest": handle_get_digest,
    "get_smart_digest": handle_get_smart_digest,
}

VALIDATORS = {
    "get_time_on_project": validate_get_time_on_project,
    "get_productivity_score": validate_get_productivity_score,
    "get_daily_stats": validate_no_args,
    "get_projects": validate_no_args,
    "get_digest": validate_get_digest,
    "get_smart_digest": validate_get_smart_digest,
}
