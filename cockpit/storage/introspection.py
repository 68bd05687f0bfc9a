"""Runtime schema discovery.

Every row the producer writes into a primary table carries an integer
entity type tag (``Z_ENT``) whose value is assigned by the producer's
framework, not known at build time. SchemaIntrospector resolves those
tags and the live column sets of the catalog tables.

Only successful lookups are cached. A table or tag the producer creates
after we first looked becomes visible on the next call.
"""

import logging
from typing import Dict, FrozenSet, Optional

from .connection import ConnectionManager
from .errors import CockpitStorageError, SchemaResolutionFailure
from .schema import ENTITIES, METADATA_TABLE, EntitySpec, entity_by_name, validate_table_name

logger = logging.getLogger(__name__)


class SchemaIntrospector:
    """Entity-tag and column discovery scoped to one connection."""

    def __init__(self, connection: ConnectionManager):
        self._connection = connection
        self._entity_types: Dict[str, int] = {}
        self._columns: Dict[str, FrozenSet[str]] = {}

    def invalidate(self) -> None:
        """Drop all cached tags and column sets (called on reconnect)."""
        if self._entity_types or self._columns:
            logger.debug("Invalidating schema caches")
        self._entity_types.clear()
        self._columns.clear()

    def get_entity_type(self, entity_name: str) -> Optional[int]:
        """Resolve the type tag for an entity name.

        Tries the metadata table first, then reads the tag off one existing
        row of the entity's own table.

        Returns:
            The tag, or None if it cannot be discovered.
        """
        cached = self._entity_types.get(entity_name)
        if cached is not None:
            return cached

        tag = self._lookup_metadata_tag(entity_name)
        if tag is None:
            tag = self._lookup_row_tag(entity_name)

        if tag is None:
            logger.warning(f"Could not resolve entity type for {entity_name}")
            return None

        self._entity_types[entity_name] = tag
        return tag

    def require_entity_type(self, entity_name: str) -> int:
        """Like get_entity_type, but raises when the tag is undiscoverable.

        Raises:
            SchemaResolutionFailure: If no tag can be found.
        """
        tag = self.get_entity_type(entity_name)
        if tag is None:
            raise SchemaResolutionFailure(f"No entity type tag for {entity_name}")
        return tag

    def _lookup_metadata_tag(self, entity_name: str) -> Optional[int]:
        try:
            row = self._connection.query_one(
                f"SELECT Z_ENT FROM {METADATA_TABLE} WHERE Z_NAME = ?", (entity_name,)
            )
        except CockpitStorageError as e:
            logger.debug(f"Metadata lookup for {entity_name} failed: {e}")
            return None
        if row is None or row[0] is None:
            return None
        return int(row[0])

    def _lookup_row_tag(self, entity_name: str) -> Optional[int]:
        spec = entity_by_name(entity_name)
        if spec is None:
            return None
        table = validate_table_name(spec.table)
        try:
            row = self._connection.query_one(f"SELECT Z_ENT FROM {table} LIMIT 1")
        except CockpitStorageError as e:
            logger.debug(f"Row tag lookup for {entity_name} failed: {e}")
            return None
        if row is None or row[0] is None:
            return None
        return int(row[0])

    def table_columns(self, spec: EntitySpec) -> Optional[FrozenSet[str]]:
        """Live column names of an entity's primary table, or None if absent."""
        cached = self._columns.get(spec.table)
        if cached is not None:
            return cached

        table = validate_table_name(spec.table)
        try:
            rows = self._connection.query(f"PRAGMA table_info({table})")
        except CockpitStorageError as e:
            logger.debug(f"table_info({table}) failed: {e}")
            return None
        if not rows:
            return None

        columns = frozenset(str(row["name"]).upper() for row in rows)
        missing = [f.column for f in spec.fields if f.column not in columns]
        if missing:
            logger.info(f"{table} lacks catalog columns {missing}; they will be skipped")
        self._columns[spec.table] = columns
        return columns

    def metadata_available(self) -> bool:
        try:
            row = self._connection.query_one(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                (METADATA_TABLE,),
            )
        except CockpitStorageError:
            return False
        return row is not None

    def validate_catalog(self) -> Dict[str, bool]:
        """Check every catalog table against the live schema.

        Returns:
            Mapping of kind -> whether its primary table is present.
        """
        available = {}
        for kind, spec in ENTITIES.items():
            available[kind] = self.table_columns(spec) is not None
        absent = [kind for kind, ok in available.items() if not ok]
        if absent:
            logger.info(f"Primary tables not present yet for kinds: {absent}")
        return available
