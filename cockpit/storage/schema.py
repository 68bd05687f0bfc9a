"""Entity catalog and shadow-table DDL.

The primary tables belong to the producer's persistence framework:
table ``Z<ENTITY>``, one ``Z<ATTRIBUTE>`` column per attribute, plus the
bookkeeping columns ``Z_PK``, ``Z_ENT`` and ``Z_OPT``. This module maps
each entity kind onto those names statically. Identifiers interpolated
into SQL anywhere in the storage package come from this catalog and are
checked against ALLOWED_TABLES.

This module contains:
- Field/entity descriptors (FieldSpec, EntitySpec) and the ENTITIES catalog
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- FTS5 shadow-table DDL (fts_table_ddl)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional, Tuple

from cockpit.types import (
    Activity,
    AIInteraction,
    ContentIndex,
    ContextSnapshot,
    Decision,
    ProductivityInsight,
)

logger = logging.getLogger(__name__)

METADATA_TABLE = "Z_PRIMARYKEY"
BOOKKEEPING_COLUMNS = frozenset({"Z_PK", "Z_ENT", "Z_OPT"})

FTS_TOKENIZER = "porter unicode61"

# Field storage kinds
TEXT = "text"
INT = "int"
FLOAT = "float"
BOOL = "bool"
TIMESTAMP = "timestamp"
LIST = "list"  # JSON array of strings in a blob
JSON = "json"  # arbitrary JSON value in a blob
BLOB_TEXT = "blob_text"  # UTF-8 text in a blob


@dataclass(frozen=True)
class FieldSpec:
    """One attribute of an entity: field-map key, dataclass attribute, storage kind."""

    key: str
    attr: str
    kind: str = TEXT
    default: Any = None

    @property
    def column(self) -> str:
        return "Z" + self.key.upper()


@dataclass(frozen=True)
class EntitySpec:
    """Static description of one entity kind and its primary/shadow tables."""

    kind: str
    entity_name: str
    table: str
    record_type: type
    group: str
    fields: Tuple[FieldSpec, ...]
    timestamp_key: str
    required: Tuple[str, ...] = ()
    fts_table: Optional[str] = None
    fts_keys: Tuple[str, ...] = ()
    snippet_key: Optional[str] = None
    search_keys: Tuple[str, ...] = ()
    search_cap: int = 50
    updatable: FrozenSet[str] = frozenset()
    rebuild_predicate: Optional[str] = None
    predicates: Tuple[Tuple[str, str], ...] = ()

    def field(self, key: str) -> FieldSpec:
        for spec in self.fields:
            if spec.key == key:
                return spec
        raise ValueError(f"Unknown field for {self.kind}: {key}")

    def has_field(self, key: str) -> bool:
        return any(spec.key == key for spec in self.fields)

    def column(self, key: str) -> str:
        return self.field(key).column

    @property
    def timestamp_column(self) -> str:
        return self.column(self.timestamp_key)

    @property
    def fts_columns(self) -> Tuple[str, ...]:
        return tuple(key.lower() for key in self.fts_keys)

    @property
    def snippet_index(self) -> int:
        """Shadow column index used for snippets (column 0 is the id)."""
        if self.snippet_key is None:
            return 1
        return 1 + self.fts_keys.index(self.snippet_key)

    def predicate(self, name: str) -> str:
        for pname, sql in self.predicates:
            if pname == name:
                return sql
        raise ValueError(f"Unknown predicate for {self.kind}: {name}")


def _f(key: str, kind: str = TEXT, default: Any = None, attr: Optional[str] = None) -> FieldSpec:
    if attr is None:
        attr = "".join("_" + c.lower() if c.isupper() else c for c in key)
    return FieldSpec(key=key, attr=attr, kind=kind, default=default)


ENTITIES: Dict[str, EntitySpec] = {
    "activity": EntitySpec(
        kind="activity",
        entity_name="Activity",
        table="ZACTIVITY",
        record_type=Activity,
        group="activities",
        fields=(
            _f("id"),
            _f("timestamp", TIMESTAMP),
            _f("type", default="appSwitch"),
            _f("appBundleId"),
            _f("appName"),
            _f("windowTitle"),
            _f("url"),
            _f("filePath"),
            _f("projectPath"),
            _f("duration", FLOAT),
        ),
        timestamp_key="timestamp",
        fts_table="fts_activities",
        fts_keys=("appName", "windowTitle", "projectPath", "filePath"),
        snippet_key="windowTitle",
        search_keys=("appName", "windowTitle", "projectPath"),
        search_cap=100,
        rebuild_predicate="ZAPPNAME IS NOT NULL OR ZWINDOWTITLE IS NOT NULL",
    ),
    "snapshot": EntitySpec(
        kind="snapshot",
        entity_name="ContextSnapshot",
        table="ZCONTEXTSNAPSHOT",
        record_type=ContextSnapshot,
        group="snapshots",
        fields=(
            _f("id"),
            _f("timestamp", TIMESTAMP),
            _f("title", default=""),
            _f("projectPath"),
            _f("gitBranch"),
            _f("gitCommitHash"),
            _f("gitDirtyFiles", LIST),
            _f("whatIWasDoing", default="", attr="what_i_was_doing"),
            _f("whyIWasDoingIt", attr="why_i_was_doing_it"),
            _f("nextSteps"),
            _f("activeFiles", LIST),
            _f("activeApps", LIST),
            _f("recentActivityIds", LIST),
            _f("isAutomatic", BOOL, default=False),
            _f("source", default="manual"),
            _f("tags", LIST),
        ),
        timestamp_key="timestamp",
        required=("title",),
        fts_table="fts_snapshots",
        fts_keys=("title", "whatIWasDoing", "whyIWasDoingIt", "nextSteps", "projectPath"),
        snippet_key="whatIWasDoing",
        search_keys=("title", "whatIWasDoing", "projectPath", "nextSteps"),
        updatable=frozenset({"nextSteps", "whyIWasDoingIt", "tags"}),
        predicates=(("missing_next_steps", "(ZNEXTSTEPS IS NULL OR ZNEXTSTEPS = '')"),),
    ),
    "decision": EntitySpec(
        kind="decision",
        entity_name="Decision",
        table="ZDECISION",
        record_type=Decision,
        group="decisions",
        fields=(
            _f("id"),
            _f("timestamp", TIMESTAMP),
            _f("title", default=""),
            _f("problem", default=""),
            _f("decisionType", default="other"),
            _f("options", JSON),
            _f("chosenOption"),
            _f("rationale"),
            _f("projectPath"),
            _f("relatedSnapshotId"),
            _f("frequency", default="oneTime"),
            _f("minimalProof"),
            _f("timeEstimate", FLOAT),
            _f("actualTime", FLOAT),
            _f("aiCritique"),
            _f("critiqueRequested", BOOL, default=False),
            _f("critiqueTimestamp", TIMESTAMP),
            _f("outcome"),
            _f("outcomeNotes"),
            _f("reviewDate", TIMESTAMP),
            _f("tags", LIST),
        ),
        timestamp_key="timestamp",
        required=("title", "problem"),
        fts_table="fts_decisions",
        fts_keys=("title", "problem", "rationale", "chosenOption", "minimalProof", "projectPath"),
        snippet_key="problem",
        search_keys=("title", "problem", "rationale", "projectPath"),
        updatable=frozenset(
            {
                "aiCritique",
                "outcome",
                "outcomeNotes",
                "chosenOption",
                "rationale",
                "actualTime",
                "reviewDate",
                "tags",
            }
        ),
        predicates=(
            ("pending", "(ZOUTCOME IS NULL OR ZOUTCOME = 'pending')"),
            ("awaiting_critique", "(ZCRITIQUEREQUESTED = 1 AND ZAICRITIQUE IS NULL)"),
        ),
    ),
    "insight": EntitySpec(
        kind="insight",
        entity_name="ProductivityInsight",
        table="ZPRODUCTIVITYINSIGHT",
        record_type=ProductivityInsight,
        group="insights",
        fields=(
            _f("id"),
            _f("generatedAt", TIMESTAMP),
            _f("type", default="recommendation"),
            _f("title", default=""),
            _f("content", default=""),
            _f("periodStart", TIMESTAMP),
            _f("periodEnd", TIMESTAMP),
            _f("isRead", BOOL, default=False),
            _f("isDismissed", BOOL, default=False),
        ),
        timestamp_key="generatedAt",
        required=("title", "content"),
        search_keys=("title", "content"),
        updatable=frozenset({"isRead", "isDismissed"}),
    ),
    "ai": EntitySpec(
        kind="ai",
        entity_name="AIInteraction",
        table="ZAIINTERACTION",
        record_type=AIInteraction,
        group="aiInteractions",
        fields=(
            _f("id"),
            _f("timestamp", TIMESTAMP),
            _f("promptSummary", default=""),
            _f("fullPrompt", BLOB_TEXT),
            _f("actionType", default=""),
            _f("response", default=""),
            _f("responseLength", INT, default=0),
            _f("wasSuccessful", BOOL, default=True),
            _f("contextType", default="freeform"),
            _f("relatedSnapshotId"),
            _f("relatedDecisionId"),
            _f("projectPath"),
            _f("wasHelpful", BOOL),
            _f("userFeedback"),
        ),
        timestamp_key="timestamp",
        required=("promptSummary",),
        fts_table="fts_ai_interactions",
        fts_keys=("promptSummary", "response", "actionType", "projectPath"),
        snippet_key="response",
        search_keys=("promptSummary", "response", "actionType", "projectPath"),
        updatable=frozenset({"wasHelpful", "userFeedback"}),
    ),
    "content": EntitySpec(
        kind="content",
        entity_name="ContentIndex",
        table="ZCONTENTINDEX",
        record_type=ContentIndex,
        group="contents",
        fields=(
            _f("id"),
            _f("filePath", default=""),
            _f("projectPath", default=""),
            _f("relativePath", default=""),
            _f("fileName", default=""),
            _f("fileExtension", default=""),
            _f("content", default=""),
            _f("contentHash", default=""),
            _f("lineCount", INT, default=0),
            _f("fileType", default="other"),
            _f("language"),
            _f("lastModified", TIMESTAMP),
            _f("lastIndexed", TIMESTAMP),
            _f("isStale", BOOL, default=False),
            _f("indexingFailed", BOOL, default=False),
            _f("failureReason"),
        ),
        timestamp_key="lastIndexed",
        required=("filePath", "content"),
        fts_table="fts_content",
        fts_keys=("filePath", "fileName", "content", "language", "projectPath"),
        snippet_key="content",
        updatable=frozenset({"isStale", "indexingFailed", "failureReason"}),
        rebuild_predicate="ZINDEXINGFAILED = 0",
    ),
}

KINDS: Tuple[str, ...] = tuple(ENTITIES)
FTS_KINDS: Tuple[str, ...] = tuple(k for k, s in ENTITIES.items() if s.fts_table)
SUBSTRING_KINDS: Tuple[str, ...] = tuple(k for k, s in ENTITIES.items() if s.search_keys)

ALLOWED_TABLES = frozenset(
    {METADATA_TABLE}
    | {spec.table for spec in ENTITIES.values()}
    | {spec.fts_table for spec in ENTITIES.values() if spec.fts_table}
)


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


def get_entity(kind: str) -> EntitySpec:
    """Look up an entity kind.

    Raises:
        ValueError: If the kind is unknown.
    """
    spec = ENTITIES.get(kind)
    if spec is None:
        raise ValueError(f"Unknown entity kind: {kind} (expected one of {list(KINDS)})")
    return spec


def entity_by_name(entity_name: str) -> Optional[EntitySpec]:
    for spec in ENTITIES.values():
        if spec.entity_name == entity_name:
            return spec
    return None


def fts_table_ddl(spec: EntitySpec) -> str:
    """CREATE statement for an entity's FTS5 shadow table."""
    if spec.fts_table is None:
        raise ValueError(f"{spec.kind} has no shadow table")
    table = validate_table_name(spec.fts_table)
    columns = ", ".join(("id UNINDEXED",) + spec.fts_columns)
    return (
        f"CREATE VIRTUAL TABLE IF NOT EXISTS {table} USING fts5("
        f"{columns}, tokenize='{FTS_TOKENIZER}')"
    )
