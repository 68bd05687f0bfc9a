"""MCP tool schema definitions for the cockpit data gateway.

Each Tool() defines the name, description, and JSON Schema for one MCP tool.
Validators and handlers live in cockpit.mcp.handlers.
"""

from mcp.types import Tool

from cockpit.storage import schema

SUBSTRING_KINDS = list(schema.SUBSTRING_KINDS)
RANKED_KINDS = list(schema.FTS_KINDS)
SCORE_PERIODS = ["today", "week", "month"]
DIGEST_PERIODS = ["today", "yesterday", "week"]
DECISION_TYPES = [
    "buildVsBuy",
    "technicalApproach",
    "toolChoice",
    "prioritization",
    "architecture",
    "other",
]
DECISION_FREQUENCIES = ["oneTime", "rare", "monthly", "weekly", "daily"]
DECISION_OUTCOMES = ["successful", "partialSuccess", "failed", "abandoned", "pending"]
INSIGHT_TYPES = [
    "focusPattern",
    "contextSwitchWarning",
    "productivityTrend",
    "projectProgress",
    "aiUsagePattern",
    "recommendation",
]


def _limit(default: int, maximum: int) -> dict:
    return {
        "type": "integer",
        "description": f"Maximum results (default: {default})",
        "default": default,
        "minimum": 1,
        "maximum": maximum,
    }


_STRING_ARRAY = {"type": "array", "items": {"type": "string"}}

TOOLS = [
    Tool(
        name="get_current_activity",
        description="Get the most recently tracked activity (app, window, project).",
        inputSchema={"type": "object", "properties": {}, "additionalProperties": False},
    ),
    Tool(
        name="get_today_activities",
        description="List activities tracked since local midnight, newest first.",
        inputSchema={
            "type": "object",
            "properties": {
                "limit": _limit(50, 500),
                "app_filter": {
                    "type": "string",
                    "description": "Only activities whose app name contains this text",
                },
            },
            "additionalProperties": False,
        },
    ),
    Tool(
        name="get_time_on_project",
        description="Total tracked time and session count for a project (matched by path substring).",
        inputSchema={
            "type": "object",
            "properties": {
                "project": {"type": "string", "description": "Project name or path fragment"},
            },
            "required": ["project"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="search_activities",
        description="Case-insensitive substring search over activities (app, window title, project).",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Text to look for"},
                "from": {"type": "string", "description": "ISO-8601 start (inclusive)"},
                "to": {"type": "string", "description": "ISO-8601 end (inclusive)"},
                "limit": _limit(100, 100),
            },
            "required": ["query"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="get_productivity_score",
        description="Share of tracked time spent in productive apps for a period.",
        inputSchema={
            "type": "object",
            "properties": {
                "period": {
                    "type": "string",
                    "enum": SCORE_PERIODS,
                    "description": "Period (default: today)",
                    "default": "today",
                },
            },
            "additionalProperties": False,
        },
    ),
    Tool(
        name="get_daily_stats",
        description="Today's active time, activity count, context switches, top apps and projects.",
        inputSchema={"type": "object", "properties": {}, "additionalProperties": False},
    ),
    Tool(
        name="get_projects",
        description="All projects seen in tracked activity with activity counts and total time.",
        inputSchema={"type": "object", "properties": {}, "additionalProperties": False},
    ),
    Tool(
        name="store_insight",
        description="Store a productivity insight.",
        inputSchema={
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "content": {"type": "string"},
                "type": {
                    "type": "string",
                    "enum": INSIGHT_TYPES,
                    "default": "recommendation",
                },
            },
            "required": ["title", "content"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="get_recent_insights",
        description="Most recently generated insights.",
        inputSchema={
            "type": "object",
            "properties": {"limit": _limit(10, 100)},
            "additionalProperties": False,
        },
    ),
    Tool(
        name="save_context_snapshot",
        description="Save a context snapshot: what you were doing, why, and what comes next.",
        inputSchema={
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "what_i_was_doing": {"type": "string"},
                "why_i_was_doing_it": {"type": "string"},
                "next_steps": {"type": "string"},
                "project_path": {"type": "string"},
                "git_branch": {"type": "string"},
                "active_files": _STRING_ARRAY,
                "tags": _STRING_ARRAY,
            },
            "required": ["title", "what_i_was_doing"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="get_context_snapshot",
        description="Fetch one context snapshot by id.",
        inputSchema={
            "type": "object",
            "properties": {"id": {"type": "string"}},
            "required": ["id"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="list_context_snapshots",
        description="List recent context snapshots, optionally filtered by project path.",
        inputSchema={
            "type": "object",
            "properties": {
                "limit": _limit(10, 100),
                "project_filter": {"type": "string"},
            },
            "additionalProperties": False,
        },
    ),
    Tool(
        name="record_decision",
        description="Record a decision with its problem, options and rationale.",
        inputSchema={
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "problem": {"type": "string"},
                "decision_type": {"type": "string", "enum": DECISION_TYPES, "default": "other"},
                "options": _STRING_ARRAY,
                "chosen_option": {"type": "string"},
                "rationale": {"type": "string"},
                "project_path": {"type": "string"},
                "frequency": {"type": "string", "enum": DECISION_FREQUENCIES, "default": "oneTime"},
                "minimal_proof": {"type": "string"},
                "time_estimate": {"type": "number", "minimum": 0},
                "critique_requested": {"type": "boolean", "default": False},
                "tags": _STRING_ARRAY,
            },
            "required": ["title", "problem"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="update_decision",
        description="Update a decision's critique, outcome, chosen option or rationale.",
        inputSchema={
            "type": "object",
            "properties": {
                "id": {"type": "string"},
                "ai_critique": {"type": "string"},
                "outcome": {"type": "string", "enum": DECISION_OUTCOMES},
                "outcome_notes": {"type": "string"},
                "chosen_option": {"type": "string"},
                "rationale": {"type": "string"},
            },
            "required": ["id"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="list_decisions",
        description="List recent decisions, optionally only pending ones or one decision type.",
        inputSchema={
            "type": "object",
            "properties": {
                "limit": _limit(10, 100),
                "type_filter": {"type": "string", "enum": DECISION_TYPES},
                "pending_only": {"type": "boolean", "default": False},
            },
            "additionalProperties": False,
        },
    ),
    Tool(
        name="record_ai_interaction",
        description="Record an AI assistant interaction (prompt summary and response).",
        inputSchema={
            "type": "object",
            "properties": {
                "prompt_summary": {"type": "string"},
                "full_prompt": {"type": "string"},
                "action_type": {"type": "string"},
                "response": {"type": "string"},
                "was_successful": {"type": "boolean", "default": True},
                "context_type": {"type": "string", "default": "freeform"},
                "project_path": {"type": "string"},
                "related_snapshot_id": {"type": "string"},
                "related_decision_id": {"type": "string"},
            },
            "required": ["prompt_summary", "response"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="list_ai_interactions",
        description="List recent AI interactions, optionally for one action type.",
        inputSchema={
            "type": "object",
            "properties": {
                "limit": _limit(10, 100),
                "action_type": {"type": "string"},
            },
            "additionalProperties": False,
        },
    ),
    Tool(
        name="unified_search",
        description="Substring search across activities, snapshots, decisions, insights and AI interactions, grouped by kind.",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string"},
                "types": {"type": "array", "items": {"type": "string", "enum": SUBSTRING_KINDS}},
                "from": {"type": "string", "description": "ISO-8601 start (inclusive)"},
                "to": {"type": "string", "description": "ISO-8601 end (inclusive)"},
                "limit": _limit(10, 100),
            },
            "required": ["query"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="ranked_search",
        description="Relevance-ranked full-text search with highlighted snippets. Words are prefix-matched and ANDed; use double quotes for an exact phrase.",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string"},
                "types": {"type": "array", "items": {"type": "string", "enum": RANKED_KINDS}},
                "project": {"type": "string", "description": "Only results whose project path contains this text"},
                "limit": _limit(50, 200),
            },
            "required": ["query"],
            "additionalProperties": False,
        },
    ),
    Tool(
        name="rebuild_search_index",
        description="Rebuild all full-text search indexes from the primary tables.",
        inputSchema={"type": "object", "properties": {}, "additionalProperties": False},
    ),
    Tool(
        name="reconcile_search_index",
        description="Repair full-text index drift: drop entries for deleted records, add missing ones.",
        inputSchema={"type": "object", "properties": {}, "additionalProperties": False},
    ),
    Tool(
        name="get_digest",
        description="Digest of recent work: stats, snapshots, pending decisions and insights.",
        inputSchema={
            "type": "object",
            "properties": {
                "period": {"type": "string", "enum": DIGEST_PERIODS, "default": "today"},
            },
            "additionalProperties": False,
        },
    ),
    Tool(
        name="get_smart_digest",
        description="Action items: stale projects, snapshots missing next steps, unresolved decisions, decisions awaiting critique.",
        inputSchema={
            "type": "object",
            "properties": {
                "stale_days": {"type": "integer", "minimum": 1, "maximum": 365, "default": 7},
                "unresolved_days": {"type": "integer", "minimum": 1, "maximum": 365, "default": 7},
            },
            "additionalProperties": False,
        },
    ),
]
