"""Full-text shadow tables.

Each searchable kind has an FTS5 table mirroring a fixed subset of its
text fields; ``id`` is UNINDEXED and joins back to the primary row's
``ZID``. The primary tables are written by another process too, so the
shadows are only approximately in sync:

- our own insert/update paths re-sync the affected shadow row;
- ``rebuild()`` repopulates every shadow from scratch;
- ``reconcile()`` fixes drift (orphans and missing rows) incrementally.

Shadow failures never undo a committed primary write.
"""

import logging
from typing import Dict, List

from cockpit.types import Record

from .connection import ConnectionManager
from .errors import CockpitStorageError
from .introspection import SchemaIntrospector
from .schema import ENTITIES, EntitySpec, fts_table_ddl, validate_table_name

logger = logging.getLogger(__name__)


def _shadow_specs() -> List[EntitySpec]:
    return [spec for spec in ENTITIES.values() if spec.fts_table]


class SearchIndex:
    """Maintains the FTS5 shadow tables."""

    def __init__(self, connection: ConnectionManager, introspector: SchemaIntrospector):
        self._connection = connection
        self._introspector = introspector
        self._tables_ready = False

    def invalidate(self) -> None:
        self._tables_ready = False

    def ensure_tables(self) -> bool:
        """Create any missing shadow tables.

        Returns:
            True if all shadow tables exist.
        """
        if not self._connection.ensure_connection():
            return False
        if self._tables_ready:
            return True

        ok = True
        for spec in _shadow_specs():
            try:
                self._connection.execute(fts_table_ddl(spec))
            except CockpitStorageError as e:
                ok = False
                if "no such module: fts5" in str(e).lower():
                    logger.warning("FTS5 not available in this SQLite build - ranked search disabled")
                    break
                logger.warning(f"Could not create {spec.fts_table}: {e}")
        self._tables_ready = ok
        return ok

    def _source_select(self, spec: EntitySpec) -> str:
        """SELECT producing (id, shadow columns...) from the primary table."""
        columns = self._introspector.table_columns(spec) or frozenset()
        selected = ["ZID"]
        for key in spec.fts_keys:
            column = spec.column(key)
            selected.append(column if column in columns else "NULL")
        sql = f"SELECT {', '.join(selected)} FROM {validate_table_name(spec.table)}"
        return sql

    def _insert_prefix(self, spec: EntitySpec) -> str:
        table = validate_table_name(spec.fts_table)
        return f"INSERT INTO {table} (id, {', '.join(spec.fts_columns)})"

    def sync_record(self, spec: EntitySpec, record: Record) -> bool:
        """Replace the shadow row for one record. Failures are logged, not raised."""
        if not spec.fts_table:
            return False
        if not self.ensure_tables():
            logger.warning(f"Shadow sync skipped for {spec.kind} {record.id}: tables unavailable")
            return False

        values = [record.id]
        for key in spec.fts_keys:
            value = getattr(record, spec.field(key).attr)
            values.append(None if value is None else str(value))

        table = validate_table_name(spec.fts_table)
        placeholders = ", ".join("?" for _ in values)
        try:
            with self._connection.transaction():
                self._connection.execute(f"DELETE FROM {table} WHERE id = ?", (record.id,))
                self._connection.execute(
                    f"{self._insert_prefix(spec)} VALUES ({placeholders})", values
                )
        except CockpitStorageError as e:
            logger.warning(f"Shadow sync for {spec.kind} {record.id} failed: {e}")
            return False
        return True

    def rebuild(self) -> int:
        """Clear all shadow tables and repopulate them from the primary tables.

        Returns:
            Number of kinds (0-5) rebuilt successfully.
        """
        if not self.ensure_tables():
            logger.warning("Rebuild skipped: shadow tables unavailable")
            return 0

        specs = _shadow_specs()
        for spec in specs:
            try:
                self._connection.execute(f"DELETE FROM {validate_table_name(spec.fts_table)}")
            except CockpitStorageError as e:
                logger.warning(f"Could not clear {spec.fts_table}: {e}")

        succeeded = 0
        for spec in specs:
            if self._introspector.table_columns(spec) is None:
                logger.warning(f"Rebuild of {spec.fts_table} skipped: {spec.table} missing")
                continue
            sql = f"{self._insert_prefix(spec)} {self._source_select(spec)}"
            if spec.rebuild_predicate:
                sql += f" WHERE {spec.rebuild_predicate}"
            try:
                with self._connection.transaction():
                    count = self._connection.execute(sql)
            except CockpitStorageError as e:
                logger.warning(f"Rebuild of {spec.fts_table} failed: {e}")
                continue
            logger.info(f"Rebuilt {spec.fts_table} with {count} rows")
            succeeded += 1
        return succeeded

    def reconcile(self) -> Dict[str, Dict[str, int]]:
        """Remove orphaned shadow rows and add missing ones.

        Returns:
            kind -> {"removed": n, "added": n} for each kind reconciled.
        """
        results: Dict[str, Dict[str, int]] = {}
        if not self.ensure_tables():
            return results

        for spec in _shadow_specs():
            if self._introspector.table_columns(spec) is None:
                continue
            fts = validate_table_name(spec.fts_table)
            table = validate_table_name(spec.table)
            live = f"SELECT ZID FROM {table} WHERE ZID IS NOT NULL"
            if spec.rebuild_predicate:
                live += f" AND ({spec.rebuild_predicate})"
            missing = f"{self._source_select(spec)} WHERE ZID IS NOT NULL AND ZID NOT IN (SELECT id FROM {fts})"
            if spec.rebuild_predicate:
                missing += f" AND ({spec.rebuild_predicate})"
            try:
                with self._connection.transaction():
                    removed = self._connection.execute(
                        f"DELETE FROM {fts} WHERE id NOT IN ({live})"
                    )
                    added = self._connection.execute(f"{self._insert_prefix(spec)} {missing}")
            except CockpitStorageError as e:
                logger.warning(f"Reconcile of {fts} failed: {e}")
                continue
            results[spec.kind] = {"removed": max(removed, 0), "added": max(added, 0)}
            if removed or added:
                logger.info(f"Reconciled {fts}: removed {removed}, added {added}")
        return results

    def index_counts(self) -> Dict[str, int]:
        """Row count per shadow table; missing tables are omitted."""
        counts: Dict[str, int] = {}
        if not self._connection.ensure_connection():
            return counts
        for spec in _shadow_specs():
            try:
                row = self._connection.query_one(
                    f"SELECT COUNT(*) FROM {validate_table_name(spec.fts_table)}"
                )
            except CockpitStorageError as e:
                logger.debug(f"Count of {spec.fts_table} failed: {e}")
                continue
            counts[spec.fts_table] = int(row[0]) if row else 0
        return counts
