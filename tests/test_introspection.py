"""Tests for runtime entity-tag and column discovery."""

import sqlite3

import pytest

from cockpit.storage import CockpitStore
from cockpit.storage.connection import ConnectionManager
from cockpit.storage.errors import SchemaResolutionFailure
from cockpit.storage.introspection import SchemaIntrospector
from cockpit.storage.schema import ENTITIES

from conftest import ENTITY_TAGS, create_producer_schema, insert_producer_row


@pytest.fixture
def introspector(tmp_db):
    conn = ConnectionManager(tmp_db)
    conn.open()
    yield SchemaIntrospector(conn)
    conn.close()


class TestEntityType:
    """Tag resolution through the metadata table and the row fallback."""

    def test_resolves_from_metadata_table(self, introspector):
        """Tags come from Z_PRIMARYKEY when it lists the entity."""
        assert introspector.get_entity_type("ContextSnapshot") == ENTITY_TAGS["snapshot"]
        assert introspector.get_entity_type("Decision") == ENTITY_TAGS["decision"]

    def test_falls_back_to_existing_row(self, tmp_path):
        """Without metadata, the tag is read from an existing row."""
        db = create_producer_schema(tmp_path / "nometa.store", metadata=False)
        insert_producer_row(db, "activity", appName="Xcode")
        conn = ConnectionManager(db)
        conn.open()
        try:
            introspector = SchemaIntrospector(conn)
            assert introspector.get_entity_type("Activity") == ENTITY_TAGS["activity"]
        finally:
            conn.close()

    def test_absent_everywhere_returns_none(self, tmp_path):
        """No metadata and no rows gives None, and require raises."""
        db = create_producer_schema(tmp_path / "nometa.store", metadata=False)
        conn = ConnectionManager(db)
        conn.open()
        try:
            introspector = SchemaIntrospector(conn)
            assert introspector.get_entity_type("ContextSnapshot") is None
            with pytest.raises(SchemaResolutionFailure):
                introspector.require_entity_type("ContextSnapshot")
        finally:
            conn.close()

    def test_unknown_entity_name_returns_none(self, introspector):
        """Entities the producer never declared resolve to None."""
        assert introspector.get_entity_type("NoSuchEntity") is None

    def test_failures_are_not_cached(self, tmp_path):
        """A failed lookup is retried on the next call."""
        db = create_producer_schema(tmp_path / "late.store", metadata=False)
        conn = ConnectionManager(db)
        conn.open()
        try:
            introspector = SchemaIntrospector(conn)
            assert introspector.get_entity_type("Decision") is None
            insert_producer_row(db, "decision", title="t", problem="p")
            assert introspector.get_entity_type("Decision") == ENTITY_TAGS["decision"]
        finally:
            conn.close()

    def test_successes_are_cached_until_invalidated(self, introspector, tmp_db):
        """Resolved tags stay cached until invalidate()."""
        assert introspector.get_entity_type("Activity") == ENTITY_TAGS["activity"]
        raw = sqlite3.connect(str(tmp_db))
        raw.execute("UPDATE Z_PRIMARYKEY SET Z_ENT = 99 WHERE Z_NAME = 'Activity'")
        raw.commit()
        raw.close()
        assert introspector.get_entity_type("Activity") == ENTITY_TAGS["activity"]
        introspector.invalidate()
        assert introspector.get_entity_type("Activity") == 99


class TestInsertWithoutTag:
    """Insert of an entity whose tag cannot be discovered."""

    def test_insert_returns_none_without_raising(self, tmp_path):
        """Insert without a discoverable tag returns None."""
        db = create_producer_schema(tmp_path / "nometa.store", metadata=False)
        with CockpitStore(db) as store:
            assert store.get_entity_type("ContextSnapshot") is None
            assert store.save_snapshot({"title": "Orphan", "whatIWasDoing": "x"}) is None
            assert store.list_snapshots() == []


class TestColumns:
    """Live column discovery and catalog validation."""

    def test_table_columns_uppercase(self, introspector):
        """Column names are reported in uppercase."""
        columns = introspector.table_columns(ENTITIES["activity"])
        assert "ZAPPNAME" in columns
        assert "Z_PK" in columns

    def test_missing_table_returns_none(self, tmp_path):
        """A missing table reports no columns and is unavailable."""
        db = create_producer_schema(tmp_path / "partial.store", kinds=["activity"])
        conn = ConnectionManager(db)
        conn.open()
        try:
            introspector = SchemaIntrospector(conn)
            assert introspector.table_columns(ENTITIES["decision"]) is None
            available = introspector.validate_catalog()
            assert available["activity"] is True
            assert available["decision"] is False
        finally:
            conn.close()

    def test_table_created_later_becomes_visible(self, tmp_path):
        """Tables created after startup are picked up."""
        db = create_producer_schema(tmp_path / "grow.store", kinds=["activity"], metadata=False)
        conn = ConnectionManager(db)
        conn.open()
        try:
            introspector = SchemaIntrospector(conn)
            assert introspector.table_columns(ENTITIES["insight"]) is None
            create_producer_schema(db, kinds=["insight"], metadata=False)
            assert introspector.table_columns(ENTITIES["insight"]) is not None
        finally:
            conn.close()

    def test_metadata_available(self, introspector, tmp_path):
        """Reports whether the Z_PRIMARYKEY table exists."""
        assert introspector.metadata_available() is True
        db = create_producer_schema(tmp_path / "nometa.store", metadata=False)
        conn = ConnectionManager(db)
        conn.open()
        try:
            assert SchemaIntrospector(conn).metadata_available() is False
        finally:
            conn.close()


class TestReconnect:
    """Caches are dropped when the store replaces a stale connection."""

    def test_reconnect_invalidates_tag_cache(self, store, tmp_db):
        """Reopening a stale connection drops cached tags."""
        assert store.get_entity_type("Activity") == ENTITY_TAGS["activity"]
        raw = sqlite3.connect(str(tmp_db))
        raw.execute("UPDATE Z_PRIMARYKEY SET Z_ENT = 77 WHERE Z_NAME = 'Activity'")
        raw.commit()
        raw.close()
        store._connection._conn.close()
        assert store.ensure_connection() is True
        assert store.get_entity_type("Activity") == 77
