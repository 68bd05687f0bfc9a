"""SQLite-backed store for the tracker database.

CockpitStore is the facade the MCP server and CLI talk to. It wires one
connection to its schema introspector, record store and search index,
and delegates to the per-concern modules:
- records.py: typed CRUD and row decoding
- fts.py: shadow-table maintenance
- search_impl.py: substring and ranked search
- stats_ops.py: aggregates and digests
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from cockpit.types import FieldMap, SearchHit

from . import stats_ops
from .connection import ConnectionManager
from .fts import SearchIndex
from .introspection import SchemaIntrospector
from .records import RecordStore
from .schema import ENTITIES, KINDS
from .search_impl import (
    DEFAULT_RANKED_LIMIT,
    ranked_search,
    searchable_kinds,
    substring_search,
    unified_search,
)

logger = logging.getLogger(__name__)


class CockpitStore:
    """Storage and search over the shared tracker database.

    One instance holds one connection and is not safe for concurrent use
    from multiple threads.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        if db_path is None:
            from cockpit.utils import default_db_path

            db_path = default_db_path()
        self.db_path = Path(db_path)

        self._connection = ConnectionManager(self.db_path)
        self._introspector = SchemaIntrospector(self._connection)
        self._index = SearchIndex(self._connection, self._introspector)
        self._records = RecordStore(self._connection, self._introspector, self._index)
        self._connection.add_reconnect_listener(self._introspector.invalidate)
        self._connection.add_reconnect_listener(self._index.invalidate)

        if self._connection.ensure_connection():
            self._introspector.validate_catalog()
            self._index.ensure_tables()
        else:
            logger.warning(f"Database at {self.db_path} is not available yet")

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "CockpitStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def records(self) -> RecordStore:
        return self._records

    @property
    def search_index(self) -> SearchIndex:
        return self._index

    @property
    def introspector(self) -> SchemaIntrospector:
        return self._introspector

    def ensure_connection(self) -> bool:
        return self._connection.ensure_connection()

    def get_entity_type(self, entity_name: str) -> Optional[int]:
        if not self._connection.ensure_connection():
            return None
        return self._introspector.get_entity_type(entity_name)

    # === Generic CRUD ===

    def insert(self, kind: str, fields: FieldMap) -> Optional[str]:
        return self._records.insert(kind, fields)

    def get(self, kind: str, record_id: str) -> Optional[FieldMap]:
        return self._records.get(kind, record_id)

    def list(self, kind: str, limit: Optional[int] = 20, **filters: Any) -> List[FieldMap]:
        return self._records.list(kind, limit, **filters)

    def update(self, kind: str, record_id: str, fields: FieldMap) -> bool:
        return self._records.update(kind, record_id, fields)

    # === Activities ===

    def insert_activity(self, fields: FieldMap) -> Optional[str]:
        return self._records.insert("activity", fields)

    def get_current_activity(self) -> Optional[FieldMap]:
        """Most recent activity, or None."""
        latest = self._records.list("activity", limit=1)
        return latest[0] if latest else None

    def get_today_activities(self, limit: int = 50, app_filter: Optional[str] = None) -> List[FieldMap]:
        contains = {"appName": app_filter} if app_filter else None
        return self._records.list(
            "activity", limit=limit, contains=contains, since=stats_ops.start_of_today()
        )

    # === Snapshots ===

    def save_snapshot(self, fields: FieldMap) -> Optional[str]:
        return self._records.insert("snapshot", fields)

    def get_snapshot(self, snapshot_id: str) -> Optional[FieldMap]:
        return self._records.get("snapshot", snapshot_id)

    def list_snapshots(self, limit: int = 10, project_filter: Optional[str] = None) -> List[FieldMap]:
        contains = {"projectPath": project_filter} if project_filter else None
        return self._records.list("snapshot", limit=limit, contains=contains)

    # === Decisions ===

    def record_decision(self, fields: FieldMap) -> Optional[str]:
        return self._records.insert("decision", fields)

    def update_decision(self, decision_id: str, fields: FieldMap) -> bool:
        return self._records.update("decision", decision_id, fields)

    def list_decisions(
        self, limit: int = 10, type_filter: Optional[str] = None, pending_only: bool = False
    ) -> List[FieldMap]:
        equals = {"decisionType": type_filter} if type_filter else None
        predicates = ("pending",) if pending_only else ()
        return self._records.list("decision", limit=limit, equals=equals, predicates=predicates)

    # === Insights ===

    def store_insight(self, title: str, content: str, insight_type: str = "recommendation") -> Optional[str]:
        return self._records.insert(
            "insight", {"title": title, "content": content, "type": insight_type}
        )

    def get_recent_insights(self, limit: int = 10) -> List[FieldMap]:
        return self._records.list("insight", limit=limit)

    # === AI interactions ===

    def record_ai_interaction(self, fields: FieldMap) -> Optional[str]:
        return self._records.insert("ai", fields)

    def list_ai_interactions(self, limit: int = 10, action_type: Optional[str] = None) -> List[FieldMap]:
        equals = {"actionType": action_type} if action_type else None
        return self._records.list("ai", limit=limit, equals=equals)

    # === Content index ===

    def index_content(self, fields: FieldMap) -> Optional[str]:
        return self._records.insert("content", fields)

    # === Search ===

    def search(
        self,
        kind: str,
        query: str,
        since: Any = None,
        until: Any = None,
        limit: Optional[int] = None,
    ) -> List[FieldMap]:
        """Case-insensitive literal substring search over one kind."""
        return substring_search(self._records, kind, query, since, until, limit)

    def unified_search(
        self,
        query: str,
        kinds: Optional[Sequence[str]] = None,
        since: Any = None,
        until: Any = None,
        limit: int = 10,
    ) -> Dict[str, List[FieldMap]]:
        return unified_search(self._records, query, kinds, since, until, limit)

    def ranked_search(
        self,
        query: str,
        kinds: Optional[Sequence[str]] = None,
        limit: int = DEFAULT_RANKED_LIMIT,
        project: Optional[str] = None,
    ) -> List[SearchHit]:
        self._index.ensure_tables()
        return ranked_search(self._connection, query, kinds, limit, project)

    # === Index maintenance ===

    def rebuild_search_index(self) -> int:
        return self._index.rebuild()

    def reconcile_search_index(self) -> Dict[str, Dict[str, int]]:
        return self._index.reconcile()

    def index_counts(self) -> Dict[str, int]:
        return self._index.index_counts()

    # === Stats ===

    def get_time_on_project(self, project: str) -> Dict[str, Any]:
        return stats_ops.get_time_on_project(self._connection, project)

    def get_daily_stats(self) -> Dict[str, Any]:
        return stats_ops.get_daily_stats(self._connection)

    def get_productivity_score(self, period: str = "today") -> Dict[str, Any]:
        return stats_ops.get_productivity_score(self._connection, period)

    def get_projects(self) -> List[Dict[str, Any]]:
        return stats_ops.get_projects(self._connection)

    def get_digest(self, period: str = "today") -> Dict[str, Any]:
        return stats_ops.get_digest(self._connection, self._records, period)

    def get_smart_digest(self, stale_days: int = 7, unresolved_days: int = 7) -> Dict[str, Any]:
        return stats_ops.get_smart_digest(self._connection, self._records, stale_days, unresolved_days)

    def status(self) -> Dict[str, Any]:
        """Database path, per-kind availability, record counts and search strategies, shadow row counts."""
        available = self._connection.ensure_connection()
        kinds: Dict[str, Any] = {}
        if available:
            counts = stats_ops.kind_counts(self._records)
            strategies = searchable_kinds()
            for kind in KINDS:
                kinds[kind] = {
                    "available": self._introspector.table_columns(ENTITIES[kind]) is not None,
                    "records": counts[kind],
                    "substring": kind in strategies["substring"],
                    "ranked": kind in strategies["ranked"],
                }
        return {
            "database": str(self.db_path),
            "connected": available,
            "kinds": kinds,
            "searchIndex": self._index.index_counts() if available else {},
        }
