"""Handlers for search tools: search_activities, unified_search, ranked_search, index upkeep."""

import json
from typing import Any, Dict

from cockpit.mcp.sanitize import (
    sanitize_optional_string,
    sanitize_string,
    validate_enum,
    validate_number,
    validate_timestamp,
)
from cockpit.mcp.tool_definitions import RANKED_KINDS, SUBSTRING_KINDS
from cockpit.storage import CockpitStore

# Search queries may legitimately be empty; the store returns no results for them.


def _query(arguments: Dict[str, Any]) -> str:
    return sanitize_string(arguments.get("query"), "query", 500, required=False)


def _types(arguments: Dict[str, Any], valid: list) -> list:
    value = arguments.get("types")
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError("types must be an array")
    return [validate_enum(t, "types[]", valid) for t in value]


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def validate_search_activities(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "query": _query(arguments),
        "from": validate_timestamp(arguments.get("from"), "from"),
        "to": validate_timestamp(arguments.get("to"), "to"),
        "limit": int(validate_number(arguments.get("limit"), "limit", 1, 100, 100)),
    }


def validate_unified_search(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "query": _query(arguments),
        "types": _types(arguments, SUBSTRING_KINDS),
        "from": validate_timestamp(arguments.get("from"), "from"),
        "to": validate_timestamp(arguments.get("to"), "to"),
        "limit": int(validate_number(arguments.get("limit"), "limit", 1, 100, 10)),
    }


def validate_ranked_search(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "query": _query(arguments),
        "types": _types(arguments, RANKED_KINDS),
        "project": sanitize_optional_string(arguments.get("project"), "project", 1000),
        "limit": int(validate_number(arguments.get("limit"), "limit", 1, 200, 50)),
    }


def validate_no_args(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def handle_search_activities(args: Dict[str, Any], store: CockpitStore) -> str:
    results = store.search("activity", args["query"], args.get("from"), args.get("to"), args["limit"])
    return json.dumps(results, indent=2, default=str)


def handle_unified_search(args: Dict[str, Any], store: CockpitStore) -> str:
    grouped = store.unified_search(
        args["query"],
        kinds=args.get("types") or None,
        since=args.get("from"),
        until=args.get("to"),
        limit=args["limit"],
    )
    result = {
        "query": args["query"],
        "totalResults": sum(len(items) for items in grouped.values()),
        "results": grouped,
    }
    return json.dumps(result, indent=2, default=str)


def handle_ranked_search(args: Dict[str, Any], store: CockpitStore) -> str:
    hits = store.ranked_search(
        args["query"],
        kinds=args.get("types") or None,
        limit=args["limit"],
        project=args.get("project"),
    )
    result = {
        "query": args["query"],
        "totalResults": len(hits),
        "results": [hit.to_dict() for hit in hits],
    }
    return json.dumps(result, indent=2, default=str)


def handle_rebuild_search_index(args: Dict[str, Any], store: CockpitStore) -> str:
    rebuilt = store.rebuild_search_index()
    result = {"rebuilt": rebuilt, "total": len(RANKED_KINDS), "counts": store.index_counts()}
    return json.dumps(result, indent=2)


def handle_reconcile_search_index(args: Dict[str, Any], store: CockpitStore) -> str:
    return json.dumps({"reconciled": store.reconcile_search_index()}, indent=2)


HANDLERS = {
    "search_activities": handle_search_activities,
    "unified_search": handle_unified_search,
    "ranked_search": handle_ranked_search,
    "rebuild_search_index": handle_rebuild_search_index,
    "reconcile_search_index": handle_reconcile_search_index,
}

VALIDATORS = {
    "search_activities": validate_search_activities,
    "unified_search": validate_unified_search,
    "ranked_search": validate_ranked_search,
    "rebuild_search_index": validate_no_args,
    "reconcile_search_index": validate_no_args,
}
