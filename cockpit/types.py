"""
Shared record types for cockpit.

One dataclass per entity kind stored in the tracker database, plus the
field-map vocabulary used at every read/write boundary. Field maps are
plain JSON-compatible dicts keyed by camelCase attribute names; the
dataclasses are the typed form used internally by the storage layer.

Timestamps are kept as float seconds since the reference date
(2001-01-01T00:00:00Z), the convention of the framework that owns the
primary schema, and rendered as ISO-8601 on the way out.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

# === Field map vocabulary ===

FieldMap = Dict[str, Any]

# === Timestamp helpers ===

REFERENCE_DATE = datetime(2001, 1, 1, tzinfo=timezone.utc)


def to_reference_seconds(dt: datetime) -> float:
    """Convert a datetime to seconds since the reference date."""
    if dt.tzinfo is None:
        dt = dt.astimezone()
    return (dt - REFERENCE_DATE).total_seconds()


def from_reference_seconds(seconds: float) -> datetime:
    """Convert seconds since the reference date to an aware UTC datetime."""
    return datetime.fromtimestamp(REFERENCE_DATE.timestamp() + seconds, tz=timezone.utc)


def now_reference_seconds() -> float:
    """Current time as seconds since the reference date."""
    return to_reference_seconds(datetime.now(timezone.utc))


def format_timestamp(seconds: float) -> str:
    """Render reference seconds as an ISO-8601 UTC string (second precision)."""
    return from_reference_seconds(seconds).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: Any) -> Optional[float]:
    """Coerce a timestamp-ish value to reference seconds.

    Accepts reference seconds (int/float), aware or naive datetimes, and
    ISO-8601 strings (a trailing ``Z`` is accepted). Returns None for None.

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        return to_reference_seconds(value)
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid ISO timestamp: {value!r}") from e
        return to_reference_seconds(dt)
    raise ValueError(f"Invalid timestamp type: {type(value).__name__}")


# === Entity records ===


@dataclass
class Activity:
    """A captured activity (app focus, file open, browser tab, ...)."""

    id: str
    timestamp: float
    type: str = "appSwitch"
    app_bundle_id: Optional[str] = None
    app_name: Optional[str] = None
    window_title: Optional[str] = None
    url: Optional[str] = None
    file_path: Optional[str] = None
    project_path: Optional[str] = None
    duration: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ContextSnapshot:
    """A saved working context: what, why, and what next."""

    id: str
    timestamp: float
    title: str = ""
    project_path: Optional[str] = None
    git_branch: Optional[str] = None
    git_commit_hash: Optional[str] = None
    git_dirty_files: List[str] = field(default_factory=list)
    what_i_was_doing: str = ""
    why_i_was_doing_it: Optional[str] = None
    next_steps: Optional[str] = None
    active_files: List[str] = field(default_factory=list)
    active_apps: List[str] = field(default_factory=list)
    recent_activity_ids: List[str] = field(default_factory=list)
    is_automatic: bool = False
    source: str = "manual"
    tags: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Decision:
    """A recorded decision with its options, rationale and outcome."""

    id: str
    timestamp: float
    title: str = ""
    problem: str = ""
    decision_type: str = "other"
    options: List[Any] = field(default_factory=list)
    chosen_option: Optional[str] = None
    rationale: Optional[str] = None
    project_path: Optional[str] = None
    related_snapshot_id: Optional[str] = None
    frequency: str = "oneTime"
    minimal_proof: Optional[str] = None
    time_estimate: Optional[float] = None
    actual_time: Optional[float] = None
    ai_critique: Optional[str] = None
    critique_requested: bool = False
    critique_timestamp: Optional[float] = None
    outcome: Optional[str] = None
    outcome_notes: Optional[str] = None
    review_date: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_pending(self) -> bool:
        return self.outcome is None or self.outcome == "pending"


@dataclass
class ProductivityInsight:
    """An AI-generated productivity insight."""

    id: str
    generated_at: float
    type: str = "recommendation"
    title: str = ""
    content: str = ""
    period_start: Optional[float] = None
    period_end: Optional[float] = None
    is_read: bool = False
    is_dismissed: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AIInteraction:
    """One prompt/response exchange with an AI assistant."""

    id: str
    timestamp: float
    prompt_summary: str = ""
    full_prompt: Optional[str] = None
    action_type: str = ""
    response: str = ""
    response_length: int = 0
    was_successful: bool = True
    context_type: str = "freeform"
    related_snapshot_id: Optional[str] = None
    related_decision_id: Optional[str] = None
    project_path: Optional[str] = None
    was_helpful: Optional[bool] = None
    user_feedback: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ContentIndex:
    """Indexed text of a code or documentation file."""

    id: str
    last_indexed: float
    file_path: str = ""
    project_path: str = ""
    relative_path: str = ""
    file_name: str = ""
    file_extension: str = ""
    content: str = ""
    content_hash: str = ""
    line_count: int = 0
    file_type: str = "other"
    language: Optional[str] = None
    last_modified: Optional[float] = None
    is_stale: bool = False
    indexing_failed: bool = False
    failure_reason: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


Record = Union[Activity, ContextSnapshot, Decision, ProductivityInsight, AIInteraction, ContentIndex]


@dataclass
class SearchHit:
    """A ranked full-text match."""

    id: str
    type: str
    snippet: str
    rank: float

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type, "snippet": self.snippet, "rank": self.rank}
