"""Pydantic value objects shared across the content organization pipeline."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    """Originating system of a record."""

    GMAIL = "gmail"
    CALENDAR = "calendar"
    DRIVE = "drive"
    SLACK = "slack"
    NOTION = "notion"
    LINK = "link"
    MANUAL = "manual"


# Sources whose full body lives behind a connector call
FETCHABLE_SOURCES: frozenset[SourceType] = frozenset(
    {SourceType.GMAIL, SourceType.DRIVE, SourceType.SLACK, SourceType.NOTION, SourceType.LINK}
)

# Metadata keys that identify people on a record
PEOPLE_METADATA_FIELDS: tuple[str, ...] = (
    "from",
    "to",
    "cc",
    "bcc",
    "attendees",
    "username",
    "creator",
)


def make_dedup_key(source: str | SourceType, external_id: str) -> str:
    """Natural dedup key for a record: ``source:external_id``."""
    source_value = source.value if isinstance(source, SourceType) else source
    return f"{source_value}:{external_id}"


class NormalizedRecord(BaseModel):
    """A single communication/document/message normalized across sources.

    ``metadata`` is an open bag. Well-known keys: from, to, cc, bcc, attendees,
    username, creator, channel_id, channel_name, thread_ts, mimeType, content, url.
    """

    id: str | None = Field(default=None, description="Persisted record id, if linked")
    topic_id: str | None = Field(default=None, description="Topic the record is linked to")
    external_id: str = Field(..., description="Id in the originating source")
    source: SourceType
    account_ref: str | None = Field(default=None, description="Source account id")
    title: str = ""
    snippet: str = ""
    body: str | None = None
    url: str | None = None
    occurred_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    triage_status: str | None = Field(
        default=None, description="relevant, low_relevance or noise once triaged"
    )

    @property
    def dedup_key(self) -> str:
        return make_dedup_key(self.source, self.external_id)


class SearchRecord(NormalizedRecord):
    """A search hit, flagged when it is already linked to the target topic."""

    already_linked: bool = False


class FetchedContent(BaseModel):
    """Full content returned by a connector."""

    body: str = ""
    attachments: list[str] = Field(default_factory=list)
    extra_metadata: dict[str, Any] = Field(default_factory=dict)


class EnrichmentOutcome(BaseModel):
    """Result of enriching a single record."""

    record_id: str | None
    body: str | None
    attachments: list[str] = Field(default_factory=list)
    extra_metadata: dict[str, Any] = Field(default_factory=dict)
    succeeded: bool
    cached: bool = False
    error: str | None = None


class EnrichManyResult(BaseModel):
    """Aggregate of enriching all records of a topic."""

    enriched_count: int = 0
    failed_count: int = 0
    records: list[EnrichmentOutcome] = Field(default_factory=list)


class NextStep(BaseModel):
    action: str
    priority: Literal["low", "medium", "high"] = "medium"
    rationale: str = ""


class Topic(BaseModel):
    """Topic row as read from persistence."""

    id: str
    title: str
    description: str | None = None
    goal: str | None = None
    area: str = "work"
    status: str = "active"
    tags: list[str] = Field(default_factory=list)
    due_date: str | None = None
    summary: str | None = None
    next_steps: list[NextStep] = Field(default_factory=list)
    notes: str | None = None
    parent_topic_id: str | None = None


class TopicTask(BaseModel):
    title: str
    description: str | None = None
    status: str = "pending"
    priority: Literal["low", "medium", "high"] = "medium"
    due_date: str | None = None
    assignee: str | None = None


class Contact(BaseModel):
    id: str
    name: str = ""
    email: str | None = None


class TopicContext(BaseModel):
    """Per-request view of a topic used as prompt material. Never cached."""

    topic: Topic
    ancestors: list[Topic] = Field(default_factory=list, description="Nearest first, max 2")
    tasks: list[TopicTask] = Field(default_factory=list)
    manual_notes: list[NormalizedRecord] = Field(default_factory=list)
    records: list[NormalizedRecord] = Field(default_factory=list)
    ancestor_records: dict[str, list[NormalizedRecord]] = Field(default_factory=dict)


# =======================
# Search
# =======================


class SearchRequest(BaseModel):
    query: str
    sources: list[SourceType]
    topic_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    max_results: int | None = None


class SourceSearchResult(BaseModel):
    source: SourceType
    items: list[SearchRecord] = Field(default_factory=list)
    error: str | None = None


class RankedCandidate(BaseModel):
    """A candidate with its relevance score; ``score`` is None when ranking degraded."""

    record: NormalizedRecord
    score: float | None = Field(default=None, ge=0, le=1)
    reason: str | None = None


# =======================
# Contact stats
# =======================


class ContactStats(BaseModel):
    count: int = 0
    last_interaction_at: datetime | None = None
    topic_ids: list[str] = Field(default_factory=list)


class EngagementLevel(BaseModel):
    level: Literal["new", "active", "recent", "idle", "cold"]
    label: str
    days_since: int


# =======================
# Batch progress events
# =======================

PipelineStage = Literal["enrich", "contacts", "deep_dive"]


class StartEvent(BaseModel):
    type: Literal["start"] = "start"
    total: int


class ProgressEvent(BaseModel):
    type: Literal["progress"] = "progress"
    stage: PipelineStage
    index: int
    total: int
    topic: str
    topic_id: str


class TopicDoneEvent(BaseModel):
    type: Literal["progress"] = "progress"
    stage: Literal["done"] = "done"
    index: int
    total: int
    topic: str
    topic_id: str
    enriched: int = 0
    failed: int = 0
    contacts_linked: int = 0


class TopicErrorEvent(BaseModel):
    type: Literal["progress"] = "progress"
    stage: Literal["error"] = "error"
    index: int
    total: int
    topic: str
    topic_id: str
    error: str


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    total: int


BatchProgressEvent = Union[StartEvent, ProgressEvent, TopicDoneEvent, TopicErrorEvent, CompleteEvent]


# =======================
# Review recent activity
# =======================

TimePeriod = Literal["15d", "1m", "3m"]

TIME_PERIOD_DAYS: dict[str, int] = {"15d": 15, "1m": 30, "3m": 90}
TIME_PERIOD_LABELS: dict[str, str] = {
    "15d": "last 15 days",
    "1m": "last month",
    "3m": "last 3 months",
}


class QueriesUsed(BaseModel):
    source: SourceType
    queries: list[str]


class TimeRange(BaseModel):
    date_from: datetime
    date_to: datetime


class ReviewActivityResult(BaseModel):
    """Ranked (or unranked, when ranking degraded) unlinked recent activity."""

    results: list[RankedCandidate] = Field(default_factory=list)
    queries_used: list[QueriesUsed] = Field(default_factory=list)
    time_range: TimeRange
    total_before_filter: int = 0
    entity_type: Literal["topic", "contact"]
    entity_name: str
    entity_id: str
