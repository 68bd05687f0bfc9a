"""Storage layer for cockpit: connection, schema discovery, records, search."""

from cockpit.storage.connection import ConnectionManager
from cockpit.storage.errors import (
    CockpitStorageError,
    ConnectionFailure,
    DecodeFailure,
    SchemaResolutionFailure,
    StatementPrepareFailure,
    WriteFailure,
)
from cockpit.storage.fts import SearchIndex
from cockpit.storage.introspection import SchemaIntrospector
from cockpit.storage.records import RecordStore, escape_like_pattern
from cockpit.storage.schema import ENTITIES, KINDS, get_entity
from cockpit.storage.search_impl import sanitize_fts_query
from cockpit.storage.sqlite import CockpitStore

__all__ = [
    "CockpitStorageError",
    "CockpitStore",
    "ConnectionFailure",
    "ConnectionManager",
    "DecodeFailure",
    "ENTITIES",
    "KINDS",
    "RecordStore",
    "SchemaIntrospector",
    "SchemaResolutionFailure",
    "SearchIndex",
    "StatementPrepareFailure",
    "WriteFailure",
    "escape_like_pattern",
    "get_entity",
    "sanitize_fts_query",
]
