"""Record access layer: typed CRUD over the producer-owned primary tables.

Field maps (camelCase keys, JSON-compatible values) go in and come out.
Internally every row is bound into the kind's dataclass through the
static catalog in ``schema``. Columns the catalog does not know are
decoded generically (strip the ``Z`` prefix, lower-case, classify by
storage type) and carried along in the record's ``extra`` dict.

Inserts stamp the bookkeeping columns the producer's framework expects
(``Z_PK``, ``Z_ENT``, ``Z_OPT``). Reads absorb storage errors and return
empty/not-found results; insert/update report success to the caller.
"""

import hashlib
import json
import logging
import sqlite3
import uuid
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from cockpit.types import (
    FieldMap,
    Record,
    format_timestamp,
    now_reference_seconds,
    parse_timestamp,
)

from .connection import ConnectionManager
from .errors import CockpitStorageError, DecodeFailure, SchemaResolutionFailure
from .introspection import SchemaIntrospector
from .schema import (
    BLOB_TEXT,
    BOOKKEEPING_COLUMNS,
    BOOL,
    ENTITIES,
    FLOAT,
    INT,
    JSON,
    LIST,
    METADATA_TABLE,
    TIMESTAMP,
    EntitySpec,
    FieldSpec,
    get_entity,
    validate_table_name,
)

if TYPE_CHECKING:
    from .fts import SearchIndex

logger = logging.getLogger(__name__)

_GENERIC_TIMESTAMP_KEYS = frozenset(
    {"timestamp"}
    | {f.key.lower() for spec in ENTITIES.values() for f in spec.fields if f.kind == TIMESTAMP}
)


def escape_like_pattern(pattern: str) -> str:
    """Escape LIKE pattern special characters to prevent pattern injection."""
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# === Value conversion ===


def decode_json_blob(raw: Any) -> Any:
    """Decode a JSON value stored as a blob (or text).

    Raises:
        DecodeFailure: If the stored bytes are not valid UTF-8 JSON.
    """
    if isinstance(raw, (bytes, bytearray, memoryview)):
        raw = bytes(raw)
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeFailure(f"Blob is not UTF-8: {e}") from e
    if not isinstance(raw, str):
        raise DecodeFailure(f"Cannot decode JSON from {type(raw).__name__}")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise DecodeFailure(f"Malformed JSON blob: {e}") from e


def _decode_list(raw: Any, strings_only: bool) -> List[Any]:
    try:
        value = decode_json_blob(raw)
    except DecodeFailure as e:
        logger.debug(f"List decode failed, using empty list: {e}")
        return []
    if not isinstance(value, list):
        logger.debug(f"Stored JSON is not a list ({type(value).__name__}), using empty list")
        return []
    if strings_only:
        return [str(item) for item in value if item is not None]
    return value


def coerce_value(fs: FieldSpec, value: Any) -> Any:
    """Convert a field-map input value to the dataclass attribute value.

    Raises:
        ValueError: If the value does not fit the field's storage kind.
    """
    if value is None:
        return None
    try:
        if fs.kind == TIMESTAMP:
            return parse_timestamp(value)
        if fs.kind == BOOL:
            return bool(value)
        if fs.kind == INT:
            return int(value)
        if fs.kind == FLOAT:
            return float(value)
        if fs.kind == LIST:
            if isinstance(value, str):
                value = json.loads(value)
            if not isinstance(value, (list, tuple)):
                raise ValueError("expected a list")
            return [str(item) for item in value if item is not None]
        if fs.kind == JSON:
            json.dumps(value)
            return value
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {fs.key}: {e}") from e
    return value if isinstance(value, str) else str(value)


def encode_value(fs: FieldSpec, value: Any) -> Any:
    """Convert a dataclass attribute value to a SQLite parameter."""
    if value is None:
        return None
    if fs.kind == BOOL:
        return 1 if value else 0
    if fs.kind in (LIST, JSON):
        return json.dumps(value).encode("utf-8")
    if fs.kind == BLOB_TEXT:
        return value.encode("utf-8")
    return value


def decode_value(fs: FieldSpec, raw: Any) -> Any:
    """Convert a stored column value to the dataclass attribute value."""
    if fs.kind == LIST:
        return [] if raw is None else _decode_list(raw, strings_only=True)
    if fs.kind == JSON:
        return [] if raw is None else _decode_list(raw, strings_only=False)
    if raw is None:
        return None
    try:
        if fs.kind == TIMESTAMP:
            return parse_timestamp(raw)
        if fs.kind == BOOL:
            return bool(raw)
        if fs.kind == INT:
            return int(raw)
        if fs.kind == FLOAT:
            return float(raw)
    except (TypeError, ValueError) as e:
        logger.debug(f"Could not decode {fs.column}={raw!r}: {e}")
        return None
    if isinstance(raw, (bytes, bytearray, memoryview)):
        return bytes(raw).decode("utf-8", errors="replace")
    return raw if isinstance(raw, str) else str(raw)


def render_value(fs: FieldSpec, value: Any) -> Any:
    """Convert a dataclass attribute value to its field-map form."""
    if fs.kind == TIMESTAMP:
        return format_timestamp(value)
    if isinstance(value, list):
        return list(value)
    return value


# === Row decoding ===


def generic_key(column: str) -> str:
    """Field key for an uncatalogued column: lower-cased, storage prefix stripped."""
    key = column.lower()
    return key[1:] if key.startswith("z") else key


def decode_column_generic(column: str, raw: Any) -> Tuple[str, Any]:
    """Classify one column by storage type. Returns (key, value); value None means skip."""
    key = generic_key(column)
    if raw is None:
        return key, None
    if isinstance(raw, float) and key in _GENERIC_TIMESTAMP_KEYS:
        return key, format_timestamp(raw)
    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            value = decode_json_blob(raw)
        except DecodeFailure as e:
            logger.debug(f"Skipping undecodable blob column {column}: {e}")
            return key, None
        return key, value
    return key, raw


def decode_row_generic(row: sqlite3.Row) -> FieldMap:
    """Column-driven decode with no catalog knowledge. Diagnostic/fallback path."""
    result: FieldMap = {}
    for column in row.keys():
        if column.upper() in BOOKKEEPING_COLUMNS:
            continue
        key, value = decode_column_generic(column, row[column])
        if value is not None:
            result[key] = value
    return result


def record_from_row(spec: EntitySpec, row: sqlite3.Row) -> Record:
    """Bind a primary-table row into the kind's dataclass."""
    by_upper = {column.upper(): column for column in row.keys()}
    known = {fs.column for fs in spec.fields} | BOOKKEEPING_COLUMNS
    kwargs: Dict[str, Any] = {}
    for fs in spec.fields:
        column = by_upper.get(fs.column)
        if column is None:
            continue
        value = decode_value(fs, row[column])
        if value is not None:
            kwargs[fs.attr] = value

    kwargs.setdefault("id", "")
    kwargs.setdefault(spec.field(spec.timestamp_key).attr, 0.0)

    extra: FieldMap = {}
    for upper, column in by_upper.items():
        if upper in known:
            continue
        key, value = decode_column_generic(column, row[column])
        if value is not None:
            extra[key] = value
    kwargs["extra"] = extra
    return spec.record_type(**kwargs)


def record_to_fields(spec: EntitySpec, record: Record) -> FieldMap:
    """Render a record as a camelCase field map. None values are omitted."""
    fields: FieldMap = {}
    for fs in spec.fields:
        value = getattr(record, fs.attr)
        if value is None:
            continue
        fields[fs.key] = render_value(fs, value)
    for key, value in record.extra.items():
        fields.setdefault(key, value)
    return fields


def _derive_content_fields(fields: FieldMap, now: float) -> FieldMap:
    derived = dict(fields)
    file_path = str(derived.get("filePath") or "")
    project_path = str(derived.get("projectPath") or "")
    content = str(derived.get("content") or "")
    path = PurePosixPath(file_path)
    if not derived.get("fileName"):
        derived["fileName"] = path.name
    if not derived.get("fileExtension"):
        derived["fileExtension"] = path.suffix.lstrip(".").lower()
    if not derived.get("relativePath"):
        if project_path and file_path.startswith(project_path.rstrip("/") + "/"):
            derived["relativePath"] = file_path[len(project_path.rstrip("/")) + 1 :]
        else:
            derived["relativePath"] = file_path
    if not derived.get("contentHash"):
        derived["contentHash"] = hashlib.sha256(content.encode("utf-8")).hexdigest()
    if derived.get("lineCount") is None:
        derived["lineCount"] = content.count("\n") + 1 if content else 0
    if derived.get("lastModified") is None:
        derived["lastModified"] = now
    return derived


def record_from_fields(spec: EntitySpec, fields: FieldMap, now: float) -> Record:
    """Build a new record from caller fields, stamping id, timestamp and derived values.

    Raises:
        ValueError: If a required field is missing or a value has the wrong shape.
    """
    fields = dict(fields)
    if spec.kind == "content":
        fields = _derive_content_fields(fields, now)
    elif spec.kind == "ai":
        fields["responseLength"] = len(str(fields.get("response") or ""))

    missing = [key for key in spec.required if not str(fields.get(key) or "").strip()]
    if missing:
        raise ValueError(f"Missing required fields for {spec.kind}: {missing}")

    unknown = [key for key in fields if not spec.has_field(key)]
    if unknown:
        logger.debug(f"Ignoring unknown {spec.kind} fields: {unknown}")

    kwargs: Dict[str, Any] = {}
    for fs in spec.fields:
        if fs.key not in fields:
            continue
        value = coerce_value(fs, fields[fs.key])
        if value is not None:
            kwargs[fs.attr] = value

    kwargs["id"] = str(uuid.uuid4()).upper()
    ts_attr = spec.field(spec.timestamp_key).attr
    if kwargs.get(ts_attr) is None:
        kwargs[ts_attr] = now
    return spec.record_type(**kwargs)


# === Record store ===


class RecordStore:
    """Generic per-kind CRUD against the primary tables."""

    def __init__(
        self,
        connection: ConnectionManager,
        introspector: SchemaIntrospector,
        index: Optional["SearchIndex"] = None,
        clock: Callable[[], float] = now_reference_seconds,
    ):
        self._connection = connection
        self._introspector = introspector
        self._index = index
        self._clock = clock

    def _live_columns(self, spec: EntitySpec) -> Optional[FrozenSet[str]]:
        if not self._connection.ensure_connection():
            return None
        columns = self._introspector.table_columns(spec)
        if columns is None:
            logger.warning(f"Table {spec.table} is not available")
        return columns

    # --- insert ---

    def insert(self, kind: str, fields: FieldMap) -> Optional[str]:
        """Insert a new record.

        Returns:
            The new record's id, or None if it could not be saved.
        """
        spec = get_entity(kind)
        columns = self._live_columns(spec)
        if columns is None:
            return None

        try:
            tag = self._introspector.require_entity_type(spec.entity_name)
        except SchemaResolutionFailure as e:
            logger.warning(f"Cannot insert {kind}: {e}")
            return None

        try:
            record = record_from_fields(spec, fields, self._clock())
        except ValueError as e:
            logger.warning(f"Cannot insert {kind}: {e}")
            return None

        names = ["Z_PK", "Z_ENT"]
        values: List[Any] = [None, tag]
        if "Z_OPT" in columns:
            names.append("Z_OPT")
            values.append(1)
        for fs in spec.fields:
            if fs.column in columns:
                names.append(fs.column)
                values.append(encode_value(fs, getattr(record, fs.attr)))

        table = validate_table_name(spec.table)
        placeholders = ", ".join("?" for _ in names)
        try:
            with self._connection.transaction():
                values[0] = self._next_primary_key(table, tag)
                self._connection.execute(
                    f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})", values
                )
                self._advance_metadata_max(tag, values[0])
        except CockpitStorageError as e:
            logger.warning(f"Insert into {table} failed: {e}")
            return None

        logger.debug(f"Inserted {kind} {record.id}")
        if self._index is not None and spec.fts_table:
            self._index.sync_record(spec, record)
        return record.id

    def _next_primary_key(self, table: str, tag: int) -> int:
        row = self._connection.query_one(f"SELECT COALESCE(MAX(Z_PK), 0) FROM {table}")
        current = int(row[0]) if row else 0
        if self._introspector.metadata_available():
            meta = self._connection.query_one(
                f"SELECT Z_MAX FROM {METADATA_TABLE} WHERE Z_ENT = ?", (tag,)
            )
            if meta is not None and meta[0] is not None:
                current = max(current, int(meta[0]))
        return current + 1

    def _advance_metadata_max(self, tag: int, pk: int) -> None:
        if not self._introspector.metadata_available():
            return
        self._connection.execute(
            f"UPDATE {METADATA_TABLE} SET Z_MAX = ? "
            "WHERE Z_ENT = ? AND (Z_MAX IS NULL OR Z_MAX < ?)",
            (pk, tag, pk),
        )

    # --- get ---

    def get_record(self, kind: str, record_id: str) -> Optional[Record]:
        spec = get_entity(kind)
        if self._live_columns(spec) is None:
            return None
        table = validate_table_name(spec.table)
        try:
            row = self._connection.query_one(
                f"SELECT * FROM {table} WHERE ZID = ? LIMIT 1", (record_id,)
            )
        except CockpitStorageError as e:
            logger.warning(f"Fetch {kind} {record_id} failed: {e}")
            return None
        if row is None:
            return None
        return record_from_row(spec, row)

    def get(self, kind: str, record_id: str) -> Optional[FieldMap]:
        """Fetch one record by id as a field map, or None."""
        record = self.get_record(kind, record_id)
        if record is None:
            return None
        return record_to_fields(get_entity(kind), record)

    # --- list ---

    def _where(
        self,
        spec: EntitySpec,
        columns: FrozenSet[str],
        equals: Optional[Dict[str, Any]],
        contains: Optional[Dict[str, str]],
        match_any: Optional[Tuple[Sequence[str], str]],
        predicates: Sequence[str],
        since: Any,
        until: Any,
    ) -> Optional[Tuple[List[str], List[Any]]]:
        """Build WHERE clauses. Returns None when no row can match."""
        clauses: List[str] = []
        params: List[Any] = []

        for key, value in (equals or {}).items():
            fs = spec.field(key)
            if fs.column not in columns:
                return None
            if value is None:
                clauses.append(f"{fs.column} IS NULL")
            else:
                clauses.append(f"{fs.column} = ?")
                params.append(encode_value(fs, coerce_value(fs, value)))

        for key, needle in (contains or {}).items():
            fs = spec.field(key)
            if fs.column not in columns:
                return None
            clauses.append(f"{fs.column} LIKE ? ESCAPE '\\'")
            params.append(f"%{escape_like_pattern(needle)}%")

        if match_any is not None:
            keys, needle = match_any
            alternatives = []
            pattern = f"%{escape_like_pattern(needle)}%"
            for key in keys:
                column = spec.column(key)
                if column in columns:
                    alternatives.append(f"{column} LIKE ? ESCAPE '\\'")
                    params.append(pattern)
            if not alternatives:
                return None
            clauses.append("(" + " OR ".join(alternatives) + ")")

        for name in predicates:
            clauses.append(spec.predicate(name))

        ts_column = spec.timestamp_column
        if since is not None:
            clauses.append(f"{ts_column} >= ?")
            params.append(parse_timestamp(since))
        if until is not None:
            clauses.append(f"{ts_column} <= ?")
            params.append(parse_timestamp(until))
        return clauses, params

    def list_records(
        self,
        kind: str,
        limit: Optional[int] = 20,
        equals: Optional[Dict[str, Any]] = None,
        contains: Optional[Dict[str, str]] = None,
        match_any: Optional[Tuple[Sequence[str], str]] = None,
        predicates: Sequence[str] = (),
        since: Any = None,
        until: Any = None,
        oldest_first: bool = False,
    ) -> List[Record]:
        """List records of one kind, newest first unless ``oldest_first``.

        Args:
            equals: field key -> exact value.
            contains: field key -> literal substring (wildcards escaped).
            match_any: (field keys, substring) matched if any field contains it.
            predicates: names of catalog predicates (e.g. "pending").
            since/until: inclusive timestamp bounds.
            limit: maximum rows, or None for no limit.
        """
        spec = get_entity(kind)
        columns = self._live_columns(spec)
        if columns is None:
            return []

        where = self._where(spec, columns, equals, contains, match_any, predicates, since, until)
        if where is None:
            return []
        clauses, params = where

        table = validate_table_name(spec.table)
        sql = f"SELECT * FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        direction = "ASC" if oldest_first else "DESC"
        sql += f" ORDER BY {spec.timestamp_column} {direction}, Z_PK {direction}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        try:
            rows = self._connection.query(sql, params)
        except CockpitStorageError as e:
            logger.warning(f"List {kind} failed: {e}")
            return []
        return [record_from_row(spec, row) for row in rows]

    def list(self, kind: str, limit: Optional[int] = 20, **filters: Any) -> List[FieldMap]:
        """List records as field maps. Accepts the same filters as list_records."""
        spec = get_entity(kind)
        return [record_to_fields(spec, r) for r in self.list_records(kind, limit, **filters)]

    def count(self, kind: str, **filters: Any) -> int:
        spec = get_entity(kind)
        columns = self._live_columns(spec)
        if columns is None:
            return 0
        where = self._where(
            spec,
            columns,
            filters.get("equals"),
            filters.get("contains"),
            filters.get("match_any"),
            filters.get("predicates", ()),
            filters.get("since"),
            filters.get("until"),
        )
        if where is None:
            return 0
        clauses, params = where
        sql = f"SELECT COUNT(*) FROM {validate_table_name(spec.table)}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        try:
            row = self._connection.query_one(sql, params)
        except CockpitStorageError as e:
            logger.warning(f"Count {kind} failed: {e}")
            return 0
        return int(row[0]) if row else 0

    # --- update ---

    def update(self, kind: str, record_id: str, fields: FieldMap) -> bool:
        """Partially update a record's updatable fields.

        Returns:
            True if a row was changed.
        """
        spec = get_entity(kind)
        columns = self._live_columns(spec)
        if columns is None:
            return False

        assignments: List[str] = []
        params: List[Any] = []
        for key, value in fields.items():
            if key not in spec.updatable:
                logger.debug(f"Ignoring non-updatable {kind} field {key}")
                continue
            fs = spec.field(key)
            if fs.column not in columns:
                continue
            try:
                params.append(encode_value(fs, coerce_value(fs, value)))
            except ValueError as e:
                logger.warning(f"Cannot update {kind} {record_id}: {e}")
                return False
            assignments.append(f"{fs.column} = ?")

        if not assignments:
            return False
        if "Z_OPT" in columns:
            assignments.append("Z_OPT = COALESCE(Z_OPT, 0) + 1")

        table = validate_table_name(spec.table)
        try:
            with self._connection.transaction():
                changed = self._connection.execute(
                    f"UPDATE {table} SET {', '.join(assignments)} WHERE ZID = ?",
                    params + [record_id],
                )
        except CockpitStorageError as e:
            logger.warning(f"Update of {kind} {record_id} failed: {e}")
            return False

        if changed <= 0:
            return False

        if self._index is not None and spec.fts_table:
            record = self.get_record(kind, record_id)
            if record is not None:
                self._index.sync_record(spec, record)
        return True
