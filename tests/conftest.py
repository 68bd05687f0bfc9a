"""
Pytest fixtures and test configuration for cockpit tests.

The tracker database is normally created by the producer application.
These fixtures build an equivalent file by hand: one Z-table per entity
with a column per catalog attribute plus the bookkeeping columns, and a
Z_PRIMARYKEY metadata table mapping entity names to type tags.
"""

import json
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import pytest

from cockpit.storage import CockpitStore
from cockpit.storage.schema import BLOB_TEXT, BOOL, ENTITIES, FLOAT, INT, JSON, LIST, TIMESTAMP
from cockpit.types import now_reference_seconds

# Deliberately not 1..6: tags are assigned by the producer and must be discovered.
ENTITY_TAGS = {
    "activity": 11,
    "snapshot": 12,
    "decision": 13,
    "insight": 14,
    "ai": 15,
    "content": 16,
}

_SQL_TYPES = {
    TIMESTAMP: "TIMESTAMP",
    FLOAT: "FLOAT",
    INT: "INTEGER",
    BOOL: "INTEGER",
    LIST: "BLOB",
    JSON: "BLOB",
    BLOB_TEXT: "BLOB",
}


def create_producer_schema(
    db_path: Path,
    kinds: Optional[Iterable[str]] = None,
    metadata: bool = True,
    drop_columns: Optional[Dict[str, Iterable[str]]] = None,
) -> Path:
    """Create a database laid out the way the producer's framework lays it out."""
    kinds = list(ENTITIES) if kinds is None else list(kinds)
    drop_columns = drop_columns or {}
    conn = sqlite3.connect(str(db_path))
    try:
        if metadata:
            conn.execute(
                "CREATE TABLE Z_PRIMARYKEY (Z_ENT INTEGER PRIMARY KEY, Z_NAME VARCHAR, "
                "Z_SUPER INTEGER, Z_MAX INTEGER)"
            )
        for kind in kinds:
            spec = ENTITIES[kind]
            dropped = set(drop_columns.get(kind, ()))
            columns = ["Z_PK INTEGER PRIMARY KEY", "Z_ENT INTEGER", "Z_OPT INTEGER"]
            for fs in spec.fields:
                if fs.key in dropped:
                    continue
                columns.append(f"{fs.column} {_SQL_TYPES.get(fs.kind, 'VARCHAR')}")
            conn.execute(f"CREATE TABLE {spec.table} ({', '.join(columns)})")
            if metadata:
                conn.execute(
                    "INSERT INTO Z_PRIMARYKEY (Z_ENT, Z_NAME, Z_SUPER, Z_MAX) VALUES (?, ?, 0, 0)",
                    (ENTITY_TAGS[kind], spec.entity_name),
                )
        conn.commit()
    finally:
        conn.close()
    return db_path


def insert_producer_row(db_path: Path, kind: str, **fields: Any) -> str:
    """Write a row directly, as the producer process would. Returns its id."""
    spec = ENTITIES[kind]
    record_id = fields.pop("id", None) or str(uuid.uuid4()).upper()
    fields.setdefault(spec.timestamp_key, now_reference_seconds())
    names = ["Z_ENT", "Z_OPT", "ZID"]
    values: list = [ENTITY_TAGS[kind], 1, record_id]
    for key, value in fields.items():
        fs = spec.field(key)
        names.append(fs.column)
        if fs.kind in (LIST, JSON) and not isinstance(value, (bytes, str)):
            value = json.dumps(value).encode("utf-8")
        elif fs.kind == BOOL and value is not None:
            value = 1 if value else 0
        values.append(value)
    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute(
            f"INSERT INTO {spec.table} ({', '.join(names)}) VALUES ({', '.join('?' for _ in names)})",
            values,
        )
        conn.commit()
    finally:
        conn.close()
    return record_id


@pytest.fixture
def tmp_db(tmp_path):
    """Path of a producer-shaped database with every entity table."""
    return create_producer_schema(tmp_path / "default.store")


@pytest.fixture
def store(tmp_db):
    """CockpitStore over the producer-shaped database."""
    s = CockpitStore(tmp_db)
    yield s
    s.close()


@pytest.fixture
def producer_row(tmp_db):
    """Insert a row behind the store's back, as the producer would."""

    def _insert(kind: str, **fields: Any) -> str:
        return insert_producer_row(tmp_db, kind, **fields)

    return _insert


@pytest.fixture
def raw_conn(tmp_db):
    """A second, independent connection for inspecting the file."""
    conn = sqlite3.connect(str(tmp_db))
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()
