"""Statistics and digest operations.

Read-only aggregates over the primary tables. Every function degrades to
neutral values (zeros, empty lists) when the database or a table is
unavailable.
"""

import logging
from datetime import datetime, timedelta
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

from cockpit.types import format_timestamp, now_reference_seconds, to_reference_seconds
from cockpit.utils import format_duration

from .connection import ConnectionManager
from .errors import CockpitStorageError
from .records import RecordStore, escape_like_pattern
from .schema import ENTITIES, validate_table_name

logger = logging.getLogger(__name__)

PRODUCTIVE_APPS = ("Xcode", "Visual Studio Code", "Cursor", "Terminal", "iTerm")
PRODUCTIVE_ACTIVITY_TYPES = ("aiToolUse", "fileOpen")
SCORE_PERIODS = ("today", "week", "month")
DIGEST_PERIODS = {"today": "Today", "yesterday": "Yesterday", "week": "Past Week"}

_DAY = 86400.0
_ACTIVITY = ENTITIES["activity"]


def start_of_today() -> float:
    """Local midnight as reference seconds."""
    midnight = datetime.now().astimezone().replace(hour=0, minute=0, second=0, microsecond=0)
    return to_reference_seconds(midnight)


def period_start(period: str) -> float:
    """Start of a scoring period: today (local midnight), week (7 days), month (30 days)."""
    if period == "week":
        return now_reference_seconds() - 7 * _DAY
    if period == "month":
        return to_reference_seconds(datetime.now().astimezone() - timedelta(days=30))
    return start_of_today()


def _project_name(path: str) -> str:
    return PurePosixPath(path.rstrip("/")).name or path


def _scalar(connection: ConnectionManager, sql: str, params: List[Any]) -> Any:
    row = connection.query_one(sql, params)
    return row[0] if row is not None else None


def get_time_on_project(connection: ConnectionManager, project: str) -> Dict[str, Any]:
    """Total tracked time and session count for activities in a project."""
    result: Dict[str, Any] = {
        "project": project,
        "totalTime": 0.0,
        "totalTimeFormatted": format_duration(0),
        "sessionCount": 0,
    }
    if not connection.ensure_connection():
        return result
    table = validate_table_name(_ACTIVITY.table)
    try:
        row = connection.query_one(
            f"SELECT COALESCE(SUM(ZDURATION), 0), COUNT(*) FROM {table} "
            "WHERE ZPROJECTPATH LIKE ? ESCAPE '\\'",
            (f"%{escape_like_pattern(project)}%",),
        )
    except CockpitStorageError as e:
        logger.warning(f"Time on project {project!r} unavailable: {e}")
        return result
    if row is not None:
        result["totalTime"] = float(row[0] or 0)
        result["totalTimeFormatted"] = format_duration(result["totalTime"])
        result["sessionCount"] = int(row[1] or 0)
    return result


def get_daily_stats(connection: ConnectionManager, since: Optional[float] = None) -> Dict[str, Any]:
    """Today's totals: active time, activity count, context switches, top apps/projects."""
    stats: Dict[str, Any] = {
        "totalActiveTime": 0.0,
        "totalActiveTimeFormatted": format_duration(0),
        "activityCount": 0,
        "contextSwitches": 0,
        "topApps": [],
        "topProjects": [],
    }
    if not connection.ensure_connection():
        return stats

    since = start_of_today() if since is None else since
    table = validate_table_name(_ACTIVITY.table)
    try:
        total = _scalar(
            connection, f"SELECT COALESCE(SUM(ZDURATION), 0) FROM {table} WHERE ZTIMESTAMP >= ?", [since]
        )
        count = _scalar(connection, f"SELECT COUNT(*) FROM {table} WHERE ZTIMESTAMP >= ?", [since])
        apps = connection.query(
            f"SELECT ZAPPNAME, COALESCE(SUM(ZDURATION), 0) AS total FROM {table} "
            "WHERE ZTIMESTAMP >= ? AND ZAPPNAME IS NOT NULL "
            "GROUP BY ZAPPNAME ORDER BY total DESC, ZAPPNAME LIMIT 5",
            [since],
        )
        projects = connection.query(
            f"SELECT ZPROJECTPATH, COALESCE(SUM(ZDURATION), 0) AS total FROM {table} "
            "WHERE ZTIMESTAMP >= ? AND ZPROJECTPATH IS NOT NULL "
            "GROUP BY ZPROJECTPATH ORDER BY total DESC, ZPROJECTPATH LIMIT 5",
            [since],
        )
    except CockpitStorageError as e:
        logger.warning(f"Daily stats unavailable: {e}")
        return stats

    stats["totalActiveTime"] = float(total or 0)
    stats["totalActiveTimeFormatted"] = format_duration(stats["totalActiveTime"])
    stats["activityCount"] = int(count or 0)
    stats["contextSwitches"] = max(stats["activityCount"] - 1, 0)
    stats["topApps"] = [{"app": row[0], "time": float(row[1])} for row in apps]
    stats["topProjects"] = [
        {"project": _project_name(row[0]), "path": row[0], "time": float(row[1])}
        for row in projects
    ]
    return stats


def get_productivity_score(connection: ConnectionManager, period: str = "today") -> Dict[str, Any]:
    """Fraction of tracked time spent in productive apps or activity types.

    Raises:
        ValueError: If period is not one of today/week/month.
    """
    if period not in SCORE_PERIODS:
        raise ValueError(f"period must be one of {list(SCORE_PERIODS)}, got '{period}'")
    result: Dict[str, Any] = {
        "period": period,
        "score": 0.0,
        "scorePercentage": 0.0,
        "totalTime": 0.0,
        "productiveTime": 0.0,
    }
    if not connection.ensure_connection():
        return result

    since = period_start(period)
    table = validate_table_name(_ACTIVITY.table)
    app_placeholders = ", ".join("?" for _ in PRODUCTIVE_APPS)
    type_placeholders = ", ".join("?" for _ in PRODUCTIVE_ACTIVITY_TYPES)
    try:
        total = _scalar(
            connection, f"SELECT COALESCE(SUM(ZDURATION), 0) FROM {table} WHERE ZTIMESTAMP >= ?", [since]
        )
        productive = _scalar(
            connection,
            f"SELECT COALESCE(SUM(ZDURATION), 0) FROM {table} WHERE ZTIMESTAMP >= ? "
            f"AND (ZAPPNAME IN ({app_placeholders}) OR ZTYPE IN ({type_placeholders}))",
            [since, *PRODUCTIVE_APPS, *PRODUCTIVE_ACTIVITY_TYPES],
        )
    except CockpitStorageError as e:
        logger.warning(f"Productivity score unavailable: {e}")
        return result

    total = float(total or 0)
    productive = float(productive or 0)
    score = productive / total if total > 0 else 0.0
    result.update(
        {
            "score": score,
            "scorePercentage": score * 100,
            "totalTime": total,
            "productiveTime": productive,
        }
    )
    return result


def get_projects(connection: ConnectionManager) -> List[Dict[str, Any]]:
    """Every project seen in activities with its activity count and total time."""
    if not connection.ensure_connection():
        return []
    table = validate_table_name(_ACTIVITY.table)
    try:
        rows = connection.query(
            f"SELECT ZPROJECTPATH, COUNT(*), COALESCE(SUM(ZDURATION), 0) AS total FROM {table} "
            "WHERE ZPROJECTPATH IS NOT NULL GROUP BY ZPROJECTPATH ORDER BY total DESC, ZPROJECTPATH"
        )
    except CockpitStorageError as e:
        logger.warning(f"Project list unavailable: {e}")
        return []
    return [
        {
            "path": row[0],
            "name": _project_name(row[0]),
            "activityCount": int(row[1]),
            "totalTime": float(row[2]),
        }
        for row in rows
    ]


def _digest_summary(
    stats: Dict[str, Any], snapshots: List[Dict[str, Any]], pending: List[Dict[str, Any]]
) -> str:
    lines = [
        f"Total active time: {stats['totalActiveTimeFormatted']}",
        f"Activities tracked: {stats['activityCount']}",
    ]
    if stats["topApps"]:
        lines.append("Top apps: " + ", ".join(app["app"] for app in stats["topApps"][:3]))
    if snapshots:
        lines.append(f"Context snapshots saved: {len(snapshots)}")
    if pending:
        lines.append(f"Pending decisions to review: {len(pending)}")
    return "\n".join(lines)


def get_digest(
    connection: ConnectionManager, records: RecordStore, period: str = "today"
) -> Dict[str, Any]:
    """Daily digest: stats, recent snapshots, pending decisions, recent insights."""
    stats = get_daily_stats(connection)
    snapshots = records.list("snapshot", limit=5)
    pending = records.list("decision", limit=5, predicates=("pending",))
    insights = records.list("insight", limit=3)
    return {
        "period": DIGEST_PERIODS.get(period, "Today"),
        "generatedAt": format_timestamp(now_reference_seconds()),
        "stats": stats,
        "recentSnapshots": snapshots,
        "pendingDecisions": pending,
        "recentInsights": insights,
        "summary": _digest_summary(stats, snapshots, pending),
    }


def detect_stale_work(connection: ConnectionManager, threshold: float) -> List[Dict[str, Any]]:
    """Projects whose latest snapshot has had no activity since ``threshold``."""
    snapshots = validate_table_name(ENTITIES["snapshot"].table)
    activities = validate_table_name(_ACTIVITY.table)
    try:
        rows = connection.query(
            f"""
            SELECT s.ZPROJECTPATH, s.ZTITLE, s.ZTIMESTAMP, s.ZID
            FROM {snapshots} s
            WHERE s.ZPROJECTPATH IS NOT NULL
            AND NOT EXISTS (
                SELECT 1 FROM {activities} a
                WHERE a.ZPROJECTPATH = s.ZPROJECTPATH AND a.ZTIMESTAMP >= ?
            )
            AND s.ZTIMESTAMP = (
                SELECT MAX(s2.ZTIMESTAMP) FROM {snapshots} s2
                WHERE s2.ZPROJECTPATH = s.ZPROJECTPATH
            )
            ORDER BY s.ZTIMESTAMP DESC
            LIMIT 10
            """,
            [threshold],
        )
    except CockpitStorageError as e:
        logger.warning(f"Stale work detection unavailable: {e}")
        return []

    now = now_reference_seconds()
    return [
        {
            "projectPath": row[0],
            "projectName": _project_name(row[0]),
            "lastSnapshotTitle": row[1],
            "lastSnapshotDate": format_timestamp(row[2]),
            "lastSnapshotId": row[3],
            "daysSinceActivity": int((now - row[2]) // _DAY),
        }
        for row in rows
    ]


def _summarize(kind: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    keys = ("id", "title", "problem", "projectPath", ENTITIES[kind].timestamp_key)
    return {key: fields[key] for key in keys if key in fields}


def get_smart_digest(
    connection: ConnectionManager,
    records: RecordStore,
    stale_days: int = 7,
    unresolved_days: int = 7,
) -> Dict[str, Any]:
    """Action items: stale projects, missing next steps, unresolved and uncritiqued decisions."""
    now = now_reference_seconds()
    if connection.ensure_connection():
        stale = detect_stale_work(connection, now - stale_days * _DAY)
    else:
        stale = []
    missing_next = [
        _summarize("snapshot", s)
        for s in records.list(
            "snapshot", limit=10, predicates=("missing_next_steps",), since=now - 3 * _DAY
        )
    ]
    unresolved = [
        _summarize("decision", d)
        for d in records.list(
            "decision",
            limit=10,
            predicates=("pending",),
            until=now - unresolved_days * _DAY,
            oldest_first=True,
        )
    ]
    awaiting = [
        _summarize("decision", d)
        for d in records.list(
            "decision", limit=10, predicates=("awaiting_critique",), oldest_first=True
        )
    ]

    total = len(stale) + len(missing_next) + len(unresolved) + len(awaiting)
    if total == 0:
        urgency = "clear"
    elif total <= 2:
        urgency = "low"
    elif total <= 5:
        urgency = "medium"
    else:
        urgency = "high"

    lines = []
    if stale:
        names = ", ".join(item["projectName"] for item in stale[:3])
        lines.append(f"{len(stale)} stale project(s): {names}")
    if missing_next:
        lines.append(f"{len(missing_next)} snapshot(s) missing next steps")
    if unresolved:
        lines.append(f"{len(unresolved)} decision(s) awaiting resolution")
    if awaiting:
        lines.append(f"{len(awaiting)} decision(s) awaiting critique")
    if not lines:
        lines.append("All clear! No pending items.")

    return {
        "generatedAt": format_timestamp(now),
        "urgency": urgency,
        "totalActionItems": total,
        "staleWork": stale,
        "snapshotsMissingNext": missing_next,
        "unresolvedDecisions": unresolved,
        "decisionsAwaitingCritique": awaiting,
        "summary": "\n".join(lines),
    }


def kind_counts(records: RecordStore) -> Dict[str, int]:
    return {kind: records.count(kind) for kind in ENTITIES}

