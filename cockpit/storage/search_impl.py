"""Search over the tracker database.

Two strategies:
- substring_search: literal, case-insensitive substring match over a
  kind's text fields in the primary table; unranked, newest first.
- ranked_search: FTS5 MATCH against the shadow tables, scored with bm25
  (lower is better) and returning a highlighted snippet.

An empty or whitespace-only query always yields an empty result.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from cockpit.types import FieldMap, SearchHit

from .connection import ConnectionManager
from .errors import CockpitStorageError
from .records import RecordStore, escape_like_pattern, record_to_fields
from .schema import FTS_KINDS, KINDS, SUBSTRING_KINDS, get_entity, validate_table_name

logger = logging.getLogger(__name__)

FTS_METACHARACTERS = '"*-+:^()~'
SNIPPET_OPEN = "<mark>"
SNIPPET_CLOSE = "</mark>"
SNIPPET_ELLIPSIS = "..."
SNIPPET_TOKENS = 32
DEFAULT_RANKED_LIMIT = 50

_STRIP_TABLE = str.maketrans("", "", FTS_METACHARACTERS)


def sanitize_fts_query(query: str) -> str:
    """Turn free text into a safe FTS5 MATCH expression.

    Each whitespace-separated word has FTS metacharacters stripped and
    becomes a quoted prefix term (``"word"*``); terms are implicitly ANDed.
    A query containing balanced double quotes is passed through unchanged
    so callers can ask for exact phrases.
    """
    query = query.strip()
    if not query:
        return ""
    quotes = query.count('"')
    if quotes > 0 and quotes % 2 == 0:
        return query
    terms = []
    for word in query.split():
        cleaned = word.translate(_STRIP_TABLE)
        if cleaned:
            terms.append(f'"{cleaned}"*')
    return " ".join(terms)


def _matches(fields: FieldMap, keys: Sequence[str], needle: str) -> bool:
    for key in keys:
        value = fields.get(key)
        if isinstance(value, str) and needle in value.lower():
            return True
    return False


def substring_search(
    records: RecordStore,
    kind: str,
    query: str,
    since: Any = None,
    until: Any = None,
    limit: Optional[int] = None,
) -> List[FieldMap]:
    """Case-insensitive literal substring search over one kind.

    Args:
        records: Record store to read from.
        kind: Entity kind with substring-searchable fields.
        query: Literal text; ``%`` and ``_`` have no special meaning.
        since/until: Optional inclusive timestamp bounds.
        limit: Result cap (defaults to, and never exceeds, the kind's cap).

    Returns:
        Matching field maps, newest first.
    """
    if not query or not query.strip():
        return []
    spec = get_entity(kind)
    if not spec.search_keys:
        return []

    cap = spec.search_cap if limit is None else min(int(limit), spec.search_cap)
    needle = query.lower()

    if query.isascii():
        # SQLite LIKE folds ASCII case only, so it is an exact prefilter here.
        candidates = records.list_records(
            kind, limit=cap, match_any=(spec.search_keys, query), since=since, until=until
        )
    else:
        candidates = records.list_records(kind, limit=None, since=since, until=until)

    results: List[FieldMap] = []
    for record in candidates:
        fields = record_to_fields(spec, record)
        if _matches(fields, spec.search_keys, needle):
            results.append(fields)
            if len(results) >= cap:
                break
    return results


def unified_search(
    records: RecordStore,
    query: str,
    kinds: Optional[Sequence[str]] = None,
    since: Any = None,
    until: Any = None,
    limit: int = 10,
) -> Dict[str, List[FieldMap]]:
    """Substring search across several kinds, grouped by kind group name."""
    kinds = list(kinds) if kinds else list(SUBSTRING_KINDS)
    grouped: Dict[str, List[FieldMap]] = {}
    for kind in kinds:
        spec = get_entity(kind)
        if not spec.search_keys:
            continue
        grouped[spec.group] = substring_search(records, kind, query, since, until, limit)
    return grouped


def ranked_search(
    connection: ConnectionManager,
    query: str,
    kinds: Optional[Sequence[str]] = None,
    limit: int = DEFAULT_RANKED_LIMIT,
    project: Optional[str] = None,
) -> List[SearchHit]:
    """Relevance-ranked full-text search across shadow tables.

    Results from each kind are merged and sorted by score (ascending),
    then kind, then id, and truncated to ``limit``.
    """
    if not query or not query.strip():
        return []
    match = sanitize_fts_query(query)
    if not match:
        return []
    if not connection.ensure_connection():
        return []

    kinds = list(kinds) if kinds else list(FTS_KINDS)
    hits: List[SearchHit] = []
    for kind in kinds:
        spec = get_entity(kind)
        if not spec.fts_table:
            logger.debug(f"{kind} has no shadow table; skipped in ranked search")
            continue
        table = validate_table_name(spec.fts_table)
        sql = (
            f"SELECT id, snippet({table}, {spec.snippet_index}, '{SNIPPET_OPEN}', "
            f"'{SNIPPET_CLOSE}', '{SNIPPET_ELLIPSIS}', {SNIPPET_TOKENS}) AS snippet, "
            f"bm25({table}) AS rank FROM {table} WHERE {table} MATCH ?"
        )
        params: List[Any] = [match]
        if project:
            sql += " AND projectpath LIKE ? ESCAPE '\\'"
            params.append(f"%{escape_like_pattern(project)}%")
        sql += " ORDER BY rank, id LIMIT ?"
        params.append(int(limit))
        try:
            rows = connection.query(sql, params)
        except CockpitStorageError as e:
            logger.warning(f"Ranked search on {table} failed: {e}")
            continue
        for row in rows:
            hits.append(
                SearchHit(
                    id=row["id"],
                    type=kind,
                    snippet=row["snippet"] or "",
                    rank=float(row["rank"]),
                )
            )

    order = {kind: i for i, kind in enumerate(KINDS)}
    hits.sort(key=lambda h: (h.rank, order.get(h.type, len(order)), h.id))
    return hits[:limit]


def searchable_kinds() -> Dict[str, List[str]]:
    return {
        "substring": list(SUBSTRING_KINDS),
        "ranked": list(FTS_KINDS),
    }
