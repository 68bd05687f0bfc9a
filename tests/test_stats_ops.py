"""Tests for statistics and digests."""

import pytest

from cockpit.storage import CockpitStore
from cockpit.storage.stats_ops import kind_counts, period_start, start_of_today
from cockpit.types import now_reference_seconds
from cockpit.utils import format_duration

from conftest import create_producer_schema

DAY = 86400.0


class TestFormatDuration:
    def test_minutes_only(self):
        """Durations under an hour render as minutes."""
        assert format_duration(0) == "0m"
        assert format_duration(59 * 60) == "59m"

    def test_hours_and_minutes(self):
        """Longer durations render as hours and minutes."""
        assert format_duration(3600 + 5 * 60) == "1h 5m"


class TestDailyStats:
    """Today's aggregates."""

    def test_totals_and_top_lists(self, store):
        """Daily stats total time, count switches and rank apps and projects."""
        store.insert_activity({"appName": "Xcode", "projectPath": "/Users/x/app", "duration": 3600})
        store.insert_activity({"appName": "Safari", "duration": 600})
        store.insert_activity({"appName": "Xcode", "projectPath": "/Users/x/app", "duration": 1200})

        stats = store.get_daily_stats()
        assert stats["totalActiveTime"] == 5400
        assert stats["totalActiveTimeFormatted"] == "1h 30m"
        assert stats["activityCount"] == 3
        assert stats["contextSwitches"] == 2
        assert stats["topApps"][0] == {"app": "Xcode", "time": 4800.0}
        assert stats["topProjects"] == [{"project": "app", "path": "/Users/x/app", "time": 4800.0}]

    def test_excludes_earlier_days(self, store, producer_row):
        """Activities before local midnight are excluded."""
        producer_row("activity", appName="Xcode", duration=100.0, timestamp=start_of_today() - DAY)
        assert store.get_daily_stats()["activityCount"] == 0

    def test_missing_table_gives_zeros(self, tmp_path):
        """A missing activity table yields zeroed stats."""
        db = create_producer_schema(tmp_path / "empty.store", kinds=["snapshot"])
        with CockpitStore(db) as store:
            stats = store.get_daily_stats()
        assert stats["activityCount"] == 0
        assert stats["topApps"] == []


class TestProductivityScore:
    """Share of time in productive apps."""

    def test_score(self, store):
        """Score is the productive share of total time."""
        store.insert_activity({"appName": "Xcode", "duration": 300})
        store.insert_activity({"appName": "Slack", "duration": 100})
        result = store.get_productivity_score("today")
        assert result["score"] == pytest.approx(0.75)
        assert result["scorePercentage"] == pytest.approx(75.0)
        assert result["productiveTime"] == 300

    def test_productive_activity_type_counts(self, store):
        """Productive activity types count regardless of app."""
        store.insert_activity({"appName": "Preview", "type": "fileOpen", "duration": 50})
        assert store.get_productivity_score("week")["score"] == pytest.approx(1.0)

    def test_no_activity_scores_zero(self, store):
        """No activity scores zero."""
        assert store.get_productivity_score("month")["score"] == 0.0

    def test_bad_period_raises(self, store):
        """An unknown period raises ValueError."""
        with pytest.raises(ValueError, match="period must be one of"):
            store.get_productivity_score("decade")

    def test_period_start_ordering(self):
        """Longer periods start earlier."""
        assert period_start("month") < period_start("week") < now_reference_seconds()


class TestProjects:
    """Project aggregates."""

    def test_time_on_project(self, store):
        """Time on project sums duration and sessions."""
        store.insert_activity({"appName": "Xcode", "projectPath": "/Users/x/app", "duration": 120})
        store.insert_activity({"appName": "Xcode", "projectPath": "/Users/x/app", "duration": 60})
        result = store.get_time_on_project("app")
        assert result["totalTime"] == 180
        assert result["totalTimeFormatted"] == "3m"
        assert result["sessionCount"] == 2

    def test_get_projects(self, store):
        """Projects are ordered by total time."""
        store.insert_activity({"appName": "Xcode", "projectPath": "/p/big", "duration": 500})
        store.insert_activity({"appName": "Xcode", "projectPath": "/p/small", "duration": 5})
        projects = store.get_projects()
        assert [p["name"] for p in projects] == ["big", "small"]
        assert projects[0]["activityCount"] == 1


class TestDigest:
    """Daily and smart digests."""

    def test_digest_sections(self, store):
        """The digest includes recent snapshots, pending decisions and insights."""
        store.insert_activity({"appName": "Xcode", "duration": 60})
        store.save_snapshot({"title": "s"})
        store.record_decision({"title": "d", "problem": "p"})
        store.store_insight("i", "c")
        digest = store.get_digest("today")
        assert digest["period"] == "Today"
        assert len(digest["recentSnapshots"]) == 1
        assert len(digest["pendingDecisions"]) == 1
        assert len(digest["recentInsights"]) == 1
        assert "Pending decisions to review: 1" in digest["summary"]

    def test_smart_digest_all_clear(self, store):
        """An empty database produces an all-clear smart digest."""
        digest = store.get_smart_digest()
        assert digest["urgency"] == "clear"
        assert digest["totalActionItems"] == 0
        assert digest["summary"] == "All clear! No pending items."

    def test_smart_digest_action_items(self, store, producer_row):
        """Stale work, missing next steps and old decisions are all reported."""
        now = now_reference_seconds()
        producer_row("snapshot", title="Old work", projectPath="/p/legacy", timestamp=now - 20 * DAY)
        producer_row("snapshot", title="Fresh", projectPath="/p/live", timestamp=now - 60)
        producer_row("activity", appName="Xcode", projectPath="/p/live", timestamp=now)
        producer_row("decision", title="Old", problem="p", timestamp=now - 10 * DAY)
        producer_row("decision", title="Critique me", problem="p", critiqueRequested=True)

        digest = store.get_smart_digest(stale_days=7, unresolved_days=7)
        assert [s["projectName"] for s in digest["staleWork"]] == ["legacy"]
        assert digest["staleWork"][0]["daysSinceActivity"] >= 19
        assert [s["title"] for s in digest["snapshotsMissingNext"]] == ["Fresh"]
        assert [d["title"] for d in digest["unresolvedDecisions"]] == ["Old"]
        assert [d["title"] for d in digest["decisionsAwaitingCritique"]] == ["Critique me"]
        assert digest["totalActionItems"] == 4
        assert digest["urgency"] == "medium"

    def test_kind_counts(self, store):
        """kind_counts reports rows per kind."""
        store.insert_activity({"appName": "Xcode"})
        counts = kind_counts(store.records)
        assert counts["activity"] == 1
        assert counts["decision"] == 0

    def test_status_uses_kind_counts(self, store):
        """status() reports the same per-kind counts."""
        store.save_snapshot({"title": "s"})
        counts = kind_counts(store.records)
        status = store.status()
        assert {kind: info["records"] for kind, info in status["kinds"].items()} == counts
