"""Storage error taxonomy.

Raised inside the storage package; read, search and stats operations
absorb these at their public boundary and return neutral results.
"""


class CockpitStorageError(Exception):
    """Base class for storage failures."""


class ConnectionFailure(CockpitStorageError):
    """The database could not be opened or reopened."""


class SchemaResolutionFailure(CockpitStorageError):
    """An entity type tag or table could not be discovered."""


class StatementPrepareFailure(CockpitStorageError):
    """A statement could not be prepared or run (malformed SQL, missing table, lock)."""


class WriteFailure(CockpitStorageError):
    """A write was rejected (constraint violation or busy timeout exceeded)."""


class DecodeFailure(CockpitStorageError):
    """A stored JSON/blob value could not be decoded."""
