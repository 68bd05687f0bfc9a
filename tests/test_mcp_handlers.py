"""
Tests for the MCP data gateway.

Covers tool definitions, input validation, the call_tool dispatcher,
secure error handling, and real data flow through a producer-shaped
database.
"""

import json
from unittest.mock import MagicMock

import pytest

from cockpit.mcp.handlers import HANDLERS, VALIDATORS
from cockpit.mcp.sanitize import (
    sanitize_array,
    sanitize_string,
    validate_bool,
    validate_enum,
    validate_number,
    validate_timestamp,
)
from cockpit.mcp.server import (
    call_tool,
    get_store,
    handle_tool_error,
    list_tools,
    set_db_path,
    validate_tool_input,
)
from cockpit.mcp.tool_definitions import TOOLS
from cockpit.storage.schema import FTS_KINDS, SUBSTRING_KINDS


@pytest.fixture
def mcp_store(store, monkeypatch):
    """Route the server's store lookup to the test database."""
    monkeypatch.setattr("cockpit.mcp.server.get_store", lambda: store)
    return store


def _json(result):
    assert len(result) == 1
    return json.loads(result[0].text)


class TestToolDefinitions:
    """Registry consistency."""

    def test_every_tool_has_handler_and_validator(self):
        """Every tool is registered with a handler and a validator."""
        names = {tool.name for tool in TOOLS}
        assert names == set(HANDLERS) == set(VALIDATORS)

    def test_schemas_reject_unknown_properties(self):
        """Every tool schema forbids extra properties."""
        for tool in TOOLS:
            assert tool.inputSchema["additionalProperties"] is False

    def test_search_kind_enums_follow_catalog(self):
        """Search tool type enums are the catalog's searchable kinds."""
        schemas = {tool.name: tool.inputSchema for tool in TOOLS}
        unified = schemas["unified_search"]["properties"]["types"]["items"]["enum"]
        ranked = schemas["ranked_search"]["properties"]["types"]["items"]["enum"]
        assert unified == list(SUBSTRING_KINDS)
        assert ranked == list(FTS_KINDS)

    @pytest.mark.asyncio
    async def test_rebuild_total_counts_ranked_kinds(self, mcp_store):
        """rebuild_search_index reports the number of ranked kinds as its total."""
        result = _json(await call_tool("rebuild_search_index", {}))
        assert result["total"] == len(FTS_KINDS)

    @pytest.mark.asyncio
    async def test_list_tools(self):
        """list_tools returns every defined tool."""
        tools = await list_tools()
        assert len(tools) == len(TOOLS)
        assert "ranked_search" in {t.name for t in tools}


class TestSanitize:
    """Field-level sanitization helpers."""

    def test_sanitize_string_strips_control_characters(self):
        """Control characters are removed but newlines kept."""
        assert sanitize_string("a\x00b\nc", "f") == "ab\nc"

    def test_sanitize_string_rejects_empty_and_long(self):
        """Blank or oversized strings raise ValueError."""
        with pytest.raises(ValueError, match="cannot be empty"):
            sanitize_string("  ", "f")
        with pytest.raises(ValueError, match="too long"):
            sanitize_string("abcd", "f", max_length=3)

    def test_sanitize_array(self):
        """Empty items are dropped and non-lists rejected."""
        assert sanitize_array(["", "x"], "tags") == ["x"]
        with pytest.raises(ValueError, match="must be an array"):
            sanitize_array("x", "tags")

    def test_validate_number(self):
        """Numbers get defaults, and bools, NaN and out-of-range values are rejected."""
        assert validate_number(None, "limit", 1, 10, 5) == 5
        with pytest.raises(ValueError, match="must be a number"):
            validate_number(True, "limit")
        with pytest.raises(ValueError, match="finite"):
            validate_number(float("nan"), "limit")
        with pytest.raises(ValueError, match="<="):
            validate_number(11, "limit", 1, 10)

    def test_validate_enum(self):
        """Enum values default when missing and must be allowed."""
        assert validate_enum(None, "period", ["today"], "today") == "today"
        with pytest.raises(ValueError, match="must be one of"):
            validate_enum("decade", "period", ["today"])

    def test_validate_timestamp(self):
        """Timestamps must be ISO-8601."""
        assert validate_timestamp("2024-03-01T10:00:00Z", "from") == "2024-03-01T10:00:00Z"
        assert validate_timestamp(None, "from") is None
        with pytest.raises(ValueError, match="ISO-8601"):
            validate_timestamp("last tuesday", "from")

    def test_validate_bool(self):
        """Bools default when missing and reject strings."""
        assert validate_bool(None, "flag", False) is False
        with pytest.raises(ValueError):
            validate_bool("yes", "flag")


class TestValidateToolInput:
    """Schema validation then per-tool sanitization."""

    def test_unknown_tool(self):
        """Validating an unknown tool raises ValueError."""
        with pytest.raises(ValueError, match="Unknown tool"):
            validate_tool_input("memory_load", {})

    def test_schema_violation(self):
        """Schema errors are reported as invalid input."""
        with pytest.raises(ValueError, match="Invalid input: Schema validation failed"):
            validate_tool_input("ranked_search", {"query": "x", "types": ["insight"]})

    def test_unexpected_property(self):
        """Extra properties are rejected."""
        with pytest.raises(ValueError, match="Invalid input"):
            validate_tool_input("get_daily_stats", {"verbose": True})

    def test_defaults_applied(self):
        """Missing optional arguments get their defaults."""
        args = validate_tool_input("get_today_activities", {})
        assert args == {"limit": 50, "app_filter": None}

    def test_update_decision_requires_a_field(self):
        """update_decision needs at least one field to change."""
        with pytest.raises(ValueError, match="at least one field"):
            validate_tool_input("update_decision", {"id": "X"})


class TestErrorHandling:
    """Errors are reported without leaking internals."""

    def test_value_error_is_prefixed_once(self):
        """The invalid-input prefix is not doubled."""
        result = handle_tool_error(ValueError("Invalid input: bad"), "t", {})
        assert result[0].text == "Invalid input: bad"

    def test_connection_error(self):
        """Connection errors report the service as unavailable."""
        result = handle_tool_error(ConnectionError("db gone"), "t", {})
        assert result[0].text == "Service temporarily unavailable"

    def test_unknown_error_is_generic(self, caplog):
        """Unexpected errors are logged and reported generically."""
        result = handle_tool_error(RuntimeError("secret path /x"), "t", {"a": 1})
        assert result[0].text == "Internal server error"
        assert "Internal error in tool t" in caplog.text
        assert "secret" not in result[0].text

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_internal_error(self, monkeypatch):
        """Handler exceptions surface as an internal error."""
        broken = MagicMock()
        broken.get_daily_stats.side_effect = RuntimeError("boom")
        monkeypatch.setattr("cockpit.mcp.server.get_store", lambda: broken)
        result = await call_tool("get_daily_stats", {})
        assert result[0].text == "Internal server error"

    @pytest.mark.asyncio
    async def test_invalid_input_through_dispatcher(self, mcp_store):
        """call_tool reports validation failures as invalid input."""
        result = await call_tool("get_productivity_score", {"period": "decade"})
        assert result[0].text.startswith("Invalid input:")


class TestRecordTools:
    """Record tools against a real database."""

    @pytest.mark.asyncio
    async def test_snapshot_save_get_list(self, mcp_store):
        """Snapshots can be saved, fetched and listed."""
        saved = _json(
            await call_tool(
                "save_context_snapshot",
                {
                    "title": "Auth flow",
                    "what_i_was_doing": "Implementing JWT middleware",
                    "project_path": "/Users/x/app",
                    "tags": ["auth"],
                },
            )
        )
        assert saved["saved"] is True

        snapshot = _json(await call_tool("get_context_snapshot", {"id": saved["id"]}))
        assert snapshot["whatIWasDoing"] == "Implementing JWT middleware"
        assert snapshot["source"] == "manual"

        listed = _json(await call_tool("list_context_snapshots", {"project_filter": "app"}))
        assert [s["id"] for s in listed] == [saved["id"]]

    @pytest.mark.asyncio
    async def test_snapshot_not_found(self, mcp_store):
        """A missing snapshot reports found false."""
        result = _json(await call_tool("get_context_snapshot", {"id": "MISSING"}))
        assert result["found"] is False

    @pytest.mark.asyncio
    async def test_decision_lifecycle(self, mcp_store):
        """A decision moves from pending to resolved."""
        saved = _json(
            await call_tool(
                "record_decision",
                {
                    "title": "Queue",
                    "problem": "Which broker?",
                    "decision_type": "toolChoice",
                    "options": ["redis", "rabbitmq"],
                    "critique_requested": True,
                },
            )
        )
        pending = _json(await call_tool("list_decisions", {"pending_only": True}))
        assert [d["id"] for d in pending] == [saved["id"]]
        assert pending[0]["options"] == ["redis", "rabbitmq"]

        updated = _json(
            await call_tool(
                "update_decision",
                {"id": saved["id"], "outcome": "successful", "ai_critique": "Sound choice"},
            )
        )
        assert updated == {"updated": True, "id": saved["id"]}
        assert _json(await call_tool("list_decisions", {"pending_only": True})) == []

    @pytest.mark.asyncio
    async def test_ai_interaction(self, mcp_store):
        """AI interactions are recorded and listed by action type."""
        saved = _json(
            await call_tool(
                "record_ai_interaction",
                {"prompt_summary": "Explain WAL", "response": "Write-ahead log", "action_type": "explain"},
            )
        )
        assert saved["saved"] is True
        listed = _json(await call_tool("list_ai_interactions", {"action_type": "explain"}))
        assert listed[0]["responseLength"] == len("Write-ahead log")

    @pytest.mark.asyncio
    async def test_insights(self, mcp_store):
        """Stored insights are returned by get_recent_insights."""
        await call_tool("store_insight", {"title": "Focus", "content": "Mornings", "type": "focusPattern"})
        insights = _json(await call_tool("get_recent_insights", {}))
        assert insights[0]["type"] == "focusPattern"

    @pytest.mark.asyncio
    async def test_current_activity_empty(self, mcp_store):
        """No activity yields a null current activity."""
        result = _json(await call_tool("get_current_activity", {}))
        assert result["activity"] is None

    @pytest.mark.asyncio
    async def test_today_activities(self, mcp_store):
        """Today's activities filter by app name."""
        mcp_store.insert_activity({"appName": "Xcode"})
        mcp_store.insert_activity({"appName": "Safari"})
        result = _json(await call_tool("get_today_activities", {"app_filter": "xco"}))
        assert [a["appName"] for a in result] == ["Xcode"]

    @pytest.mark.asyncio
    async def test_save_failure_reports_not_saved(self, mcp_store, monkeypatch):
        """A failed save reports saved false."""
        monkeypatch.setattr(mcp_store, "save_snapshot", lambda fields: None)
        result = _json(
            await call_tool("save_context_snapshot", {"title": "t", "what_i_was_doing": "w"})
        )
        assert result["saved"] is False


class TestSearchTools:
    """Search tools end to end."""

    @pytest.mark.asyncio
    async def test_unified_search(self, mcp_store):
        """unified_search groups and totals its results."""
        mcp_store.save_snapshot({"title": "Auth flow", "whatIWasDoing": "JWT"})
        result = _json(await call_tool("unified_search", {"query": "auth"}))
        assert result["totalResults"] == 1
        assert len(result["results"]["snapshots"]) == 1

    @pytest.mark.asyncio
    async def test_unified_search_empty_query(self, mcp_store):
        """An empty query has no results."""
        mcp_store.save_snapshot({"title": "Auth flow"})
        result = _json(await call_tool("unified_search", {"query": ""}))
        assert result["totalResults"] == 0

    @pytest.mark.asyncio
    async def test_ranked_search(self, mcp_store):
        """ranked_search returns highlighted hits."""
        snapshot_id = mcp_store.save_snapshot(
            {"title": "Auth flow", "whatIWasDoing": "Implementing JWT middleware"}
        )
        result = _json(await call_tool("ranked_search", {"query": "jwt", "types": ["snapshot"]}))
        assert result["results"][0]["id"] == snapshot_id
        assert "<mark>JWT</mark>" in result["results"][0]["snippet"]

    @pytest.mark.asyncio
    async def test_search_activities_with_range(self, mcp_store):
        """search_activities accepts an ISO start bound."""
        mcp_store.insert_activity({"appName": "Xcode"})
        result = _json(
            await call_tool("search_activities", {"query": "xcode", "from": "2001-01-02T00:00:00Z"})
        )
        assert len(result) == 1

    @pytest.mark.asyncio
    async def test_index_maintenance(self, mcp_store, producer_row):
        """Index tools rebuild and reconcile the shadow tables."""
        producer_row("activity", appName="Xcode")
        rebuilt = _json(await call_tool("rebuild_search_index", {}))
        assert rebuilt["rebuilt"] == 5
        assert rebuilt["counts"]["fts_activities"] == 1
        reconciled = _json(await call_tool("reconcile_search_index", {}))
        assert reconciled["reconciled"]["activity"] == {"removed": 0, "added": 0}


class TestStatsTools:
    """Statistics tools."""

    @pytest.mark.asyncio
    async def test_daily_stats_and_score(self, mcp_store):
        """Daily stats and productivity score reflect today's activity."""
        mcp_store.insert_activity({"appName": "Xcode", "duration": 60})
        stats = _json(await call_tool("get_daily_stats", {}))
        assert stats["activityCount"] == 1
        score = _json(await call_tool("get_productivity_score", {"period": "today"}))
        assert score["score"] == 1.0

    @pytest.mark.asyncio
    async def test_time_on_project_and_projects(self, mcp_store):
        """Project tools aggregate activity by project."""
        mcp_store.insert_activity({"appName": "Xcode", "projectPath": "/p/app", "duration": 120})
        assert _json(await call_tool("get_time_on_project", {"project": "app"}))["sessionCount"] == 1
        assert _json(await call_tool("get_projects", {}))[0]["name"] == "app"

    @pytest.mark.asyncio
    async def test_digests(self, mcp_store):
        """Both digest tools return their period and urgency."""
        digest = _json(await call_tool("get_digest", {"period": "week"}))
        assert digest["period"] == "Past Week"
        smart = _json(await call_tool("get_smart_digest", {"stale_days": 3}))
        assert smart["urgency"] == "clear"


class TestStoreLifecycle:
    """Session database path handling."""

    def test_set_db_path_replaces_cached_store(self, tmp_db, tmp_path):
        """Changing the database path replaces the cached store."""
        set_db_path(tmp_db)
        try:
            first = get_store()
            assert first.db_path == tmp_db
            assert get_store() is first
            other = tmp_path / "other.store"
            set_db_path(other)
            assert get_store().db_path == other
        finally:
            set_db_path(None)
            if hasattr(get_store, "_instance"):
                get_store._instance.close()
                delattr(get_store, "_instance")
