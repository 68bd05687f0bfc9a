"""Handlers for record tools: activities, snapshots, decisions, insights, AI interactions."""

import json
from typing import Any, Dict, Optional

from cockpit.mcp.sanitize import (
    sanitize_array,
    sanitize_optional_string,
    sanitize_string,
    validate_bool,
    validate_enum,
    validate_number,
)
from cockpit.mcp.tool_definitions import (
    DECISION_FREQUENCIES,
    DECISION_OUTCOMES,
    DECISION_TYPES,
    INSIGHT_TYPES,
)
from cockpit.storage import CockpitStore


def _dump(result: Any) -> str:
    return json.dumps(result, indent=2, default=str)


def _saved(kind: str, record_id: Optional[str]) -> str:
    if record_id is None:
        return _dump({"saved": False, "message": f"Could not save {kind}"})
    return _dump({"saved": True, "id": record_id})


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def validate_no_args(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {}


def validate_get_today_activities(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "limit": int(validate_number(arguments.get("limit"), "limit", 1, 500, 50)),
        "app_filter": sanitize_optional_string(arguments.get("app_filter"), "app_filter", 200),
    }


def validate_store_insight(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": sanitize_string(arguments.get("title"), "title", 200),
        "content": sanitize_string(arguments.get("content"), "content", 10000),
        "type": validate_enum(arguments.get("type"), "type", INSIGHT_TYPES, "recommendation"),
    }


def validate_limit_only(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {"limit": int(validate_number(arguments.get("limit"), "limit", 1, 100, 10))}


def validate_save_context_snapshot(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": sanitize_string(arguments.get("title"), "title", 200),
        "what_i_was_doing": sanitize_string(
            arguments.get("what_i_was_doing"), "what_i_was_doing", 5000
        ),
        "why_i_was_doing_it": sanitize_optional_string(
            arguments.get("why_i_was_doing_it"), "why_i_was_doing_it", 5000
        ),
        "next_steps": sanitize_optional_string(arguments.get("next_steps"), "next_steps", 5000),
        "project_path": sanitize_optional_string(arguments.get("project_path"), "project_path", 1000),
        "git_branch": sanitize_optional_string(arguments.get("git_branch"), "git_branch", 200),
        "active_files": sanitize_array(arguments.get("active_files"), "active_files", 1000, 200),
        "tags": sanitize_array(arguments.get("tags"), "tags", 100, 20),
    }


def validate_get_by_id(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {"id": sanitize_string(arguments.get("id"), "id", 100)}


def validate_list_context_snapshots(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "limit": int(validate_number(arguments.get("limit"), "limit", 1, 100, 10)),
        "project_filter": sanitize_optional_string(
            arguments.get("project_filter"), "project_filter", 1000
        ),
    }


def validate_record_decision(arguments: Dict[str, Any]) -> Dict[str, Any]:
    time_estimate = arguments.get("time_estimate")
    return {
        "title": sanitize_string(arguments.get("title"), "title", 200),
        "problem": sanitize_string(arguments.get("problem"), "problem", 5000),
        "decision_type": validate_enum(
            arguments.get("decision_type"), "decision_type", DECISION_TYPES, "other"
        ),
        "options": sanitize_array(arguments.get("options"), "options", 1000, 20),
        "chosen_option": sanitize_optional_string(arguments.get("chosen_option"), "chosen_option", 1000),
        "rationale": sanitize_optional_string(arguments.get("rationale"), "rationale", 5000),
        "project_path": sanitize_optional_string(arguments.get("project_path"), "project_path", 1000),
        "frequency": validate_enum(
            arguments.get("frequency"), "frequency", DECISION_FREQUENCIES, "oneTime"
        ),
        "minimal_proof": sanitize_optional_string(arguments.get("minimal_proof"), "minimal_proof", 5000),
        "time_estimate": (
            None
            if time_estimate is None
            else validate_number(time_estimate, "time_estimate", 0, 10**7)
        ),
        "critique_requested": validate_bool(
            arguments.get("critique_requested"), "critique_requested", False
        ),
        "tags": sanitize_array(arguments.get("tags"), "tags", 100, 20),
    }


def validate_update_decision(arguments: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {"id": sanitize_string(arguments.get("id"), "id", 100)}
    if arguments.get("ai_critique") is not None:
        sanitized["ai_critique"] = sanitize_string(arguments["ai_critique"], "ai_critique", 10000)
    if arguments.get("outcome") is not None:
        sanitized["outcome"] = validate_enum(arguments["outcome"], "outcome", DECISION_OUTCOMES)
    for key, max_length in (("outcome_notes", 5000), ("chosen_option", 1000), ("rationale", 5000)):
        if arguments.get(key) is not None:
            sanitized[key] = sanitize_string(arguments[key], key, max_length, required=False)
    if len(sanitized) == 1:
        raise ValueError("at least one field to update is required")
    return sanitized


def validate_list_decisions(arguments: Dict[str, Any]) -> Dict[str, Any]:
    type_filter = arguments.get("type_filter")
    return {
        "limit": int(validate_number(arguments.get("limit"), "limit", 1, 100, 10)),
        "type_filter": (
            None
            if type_filter is None
            else validate_enum(type_filter, "type_filter", DECISION_TYPES)
        ),
        "pending_only": validate_bool(arguments.get("pending_only"), "pending_only", False),
    }


def validate_record_ai_interaction(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "prompt_summary": sanitize_string(arguments.get("prompt_summary"), "prompt_summary", 500),
        "full_prompt": sanitize_optional_string(arguments.get("full_prompt"), "full_prompt", 50000),
        "action_type": sanitize_string(arguments.get("action_type"), "action_type", 100, required=False),
        "response": sanitize_string(arguments.get("response"), "response", 50000),
        "was_successful": validate_bool(arguments.get("was_successful"), "was_successful", True),
        "context_type": sanitize_string(
            arguments.get("context_type") or "freeform", "context_type", 100
        ),
        "project_path": sanitize_optional_string(arguments.get("project_path"), "project_path", 1000),
        "related_snapshot_id": sanitize_optional_string(
            arguments.get("related_snapshot_id"), "related_snapshot_id", 100
        ),
        "related_decision_id": sanitize_optional_string(
            arguments.get("related_decision_id"), "related_decision_id", 100
        ),
    }


def validate_list_ai_interactions(arguments: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "limit": int(validate_number(arguments.get("limit"), "limit", 1, 100, 10)),
        "action_type": sanitize_optional_string(arguments.get("action_type"), "action_type", 100),
    }


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def handle_get_current_activity(args: Dict[str, Any], store: CockpitStore) -> str:
    activity = store.get_current_activity()
    if activity is None:
        return _dump({"activity": None, "message": "No activity tracked yet"})
    return _dump(activity)


def handle_get_today_activities(args: Dict[str, Any], store: CockpitStore) -> str:
    activities = store.get_today_activities(limit=args["limit"], app_filter=args.get("app_filter"))
    return _dump(activities)


def handle_store_insight(args: Dict[str, Any], store: CockpitStore) -> str:
    return _saved("insight", store.store_insight(args["title"], args["content"], args["type"]))


def handle_get_recent_insights(args: Dict[str, Any], store: CockpitStore) -> str:
    return _dump(store.get_recent_insights(limit=args["limit"]))


def handle_save_context_snapshot(args: Dict[str, Any], store: CockpitStore) -> str:
    fields = {
        "title": args["title"],
        "whatIWasDoing": args["what_i_was_doing"],
        "whyIWasDoingIt": args.get("why_i_was_doing_it"),
        "nextSteps": args.get("next_steps"),
        "projectPath": args.get("project_path"),
        "gitBranch": args.get("git_branch"),
        "activeFiles": args.get("active_files") or [],
        "tags": args.get("tags") or [],
        "source": "manual",
    }
    return _saved("snapshot", store.save_snapshot(fields))


def handle_get_context_snapshot(args: Dict[str, Any], store: CockpitStore) -> str:
    snapshot = store.get_snapshot(args["id"])
    if snapshot is None:
        return _dump({"found": False, "message": f"Snapshot {args['id']} not found"})
    return _dump(snapshot)


def handle_list_context_snapshots(args: Dict[str, Any], store: CockpitStore) -> str:
    return _dump(store.list_snapshots(limit=args["limit"], project_filter=args.get("project_filter")))


def handle_record_decision(args: Dict[str, Any], store: CockpitStore) -> str:
    fields = {
        "title": args["title"],
        "problem": args["problem"],
        "decisionType": args["decision_type"],
        "options": args.get("options") or [],
        "chosenOption": args.get("chosen_option"),
        "rationale": args.get("rationale"),
        "projectPath": args.get("project_path"),
        "frequency": args["frequency"],
        "minimalProof": args.get("minimal_proof"),
        "timeEstimate": args.get("time_estimate"),
        "critiqueRequested": args.get("critique_requested", False),
        "tags": args.get("tags") or [],
    }
    return _saved("decision", store.record_decision(fields))


def handle_update_decision(args: Dict[str, Any], store: CockpitStore) -> str:
    keys = {
        "ai_critique": "aiCritique",
        "outcome": "outcome",
        "outcome_notes": "outcomeNotes",
        "chosen_option": "chosenOption",
        "rationale": "rationale",
    }
    fields = {field: args[arg] for arg, field in keys.items() if arg in args}
    updated = store.update_decision(args["id"], fields)
    return _dump({"updated": updated, "id": args["id"]})


def handle_list_decisions(args: Dict[str, Any], store: CockpitStore) -> str:
    decisions = store.list_decisions(
        limit=args["limit"],
        type_filter=args.get("type_filter"),
        pending_only=args.get("pending_only", False),
    )
    return _dump(decisions)


def handle_record_ai_interaction(args: Dict[str, Any], store: CockpitStore) -> str:
    fields = {
        "promptSummary": args["prompt_summary"],
        "fullPrompt": args.get("full_prompt"),
        "actionType": args.get("action_type") or "",
        "response": args["response"],
        "wasSuccessful": args.get("was_successful", True),
        "contextType": args.get("context_type", "freeform"),
        "projectPath": args.get("project_path"),
        "relatedSnapshotId": args.get("related_snapshot_id"),
        "relatedDecisionId": args.get("related_decision_id"),
    }
    return _saved("AI interaction", store.record_ai_interaction(fields))


def handle_list_ai_interactions(args: Dict[str, Any], store: CockpitStore) -> str:
    return _dump(store.list_ai_interactions(limit=args["limit"], action_type=args.get("action_type")))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

HANDLERS = {
    "get_current_activity": handle_get_current_activity,
    "get_today_activities": handle_get_today_activities,
    "store_insight": handle_store_insight,
    "get_recent_insights": handle_get_recent_insights,
    "save_context_snapshot": handle_save_context_snapshot,
    "get_context_snapshot": handle_get_context_snapshot,
    "list_context_snapshots": handle_list_context_snapshots,
    "record_decision": handle_record_decision,
    "update_decision": handle_update_decision,
    "list_decisions": handle_list_decisions,
    "record_ai_interaction": handle_record_ai_interaction,
    "list_ai_interactions": handle_list_ai_interactions,
}

VALIDATORS = {
    "get_current_activity": validate_no_args,
    "get_today_activities": validate_get_today_activities,
    "store_insight": validate_store_insight,
    "get_recent_insights": validate_limit_only,
    "save_context_snapshot": validate_save_context_snapshot,
    "get_context_snapshot": validate_get_by_id,
    "list_context_snapshots": validate_list_context_snapshots,
    "record_decision": validate_record_decision,
    "update_decision": validate_update_decision,
    "list_decisions": validate_list_decisions,
    "record_ai_interaction": validate_record_ai_interaction,
    "list_ai_interactions": validate_list_ai_interactions,
}
