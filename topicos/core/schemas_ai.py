"""Pydantic output schemas for every structured completion call-site."""

from typing import Any, Literal

from pydantic import BaseModel, Field

Area = Literal["personal", "career", "work"]
Priority = Literal["low", "medium", "high"]
DeliverableKind = Literal[
    "email", "follow_up", "report", "project_plan", "meeting_agenda", "status_update"
]

# =======================
# classify_area
# =======================


class ClassifyAreaOutput(BaseModel):
    area: Area
    confidence: float = Field(..., ge=0, le=1)
    rationale: str


# =======================
# suggest_topics
# =======================


class TopicSuggestion(BaseModel):
    topic_id: str | None = Field(..., description="Existing topic id, or null for a new topic")
    proposed_title: str | None = Field(..., description="Title for a new topic, else null")
    confidence: float = Field(..., ge=0, le=1)
    reason: str
    evidence: str


class SuggestTopicsOutput(BaseModel):
    suggestions: list[TopicSuggestion]


# =======================
# extract_signals
# =======================


class SignalPerson(BaseModel):
    name: str
    role: str | None = None
    email: str | None = None


class SignalDate(BaseModel):
    date: str
    context: str


class SignalDeadline(BaseModel):
    date: str
    description: str
    urgency: Literal["low", "medium", "high", "critical"]


class SignalActionItem(BaseModel):
    title: str
    assignee: str | None = None
    due_date: str | None = None
    priority: Priority


class ExtractSignalsOutput(BaseModel):
    people: list[SignalPerson]
    orgs: list[str]
    dates: list[SignalDate]
    deadlines: list[SignalDeadline]
    action_items: list[SignalActionItem]


# =======================
# summarize_topic
# =======================


class SummaryNextStep(BaseModel):
    action: str
    priority: Priority
    rationale: str


class SummarizeTopicOutput(BaseModel):
    summary: str
    key_points: list[str]
    risks: list[str]
    next_steps: list[SummaryNextStep]


# =======================
# urgency_score
# =======================


class UrgencyDriver(BaseModel):
    signal: str
    weight: float
    detail: str


class TodayAction(BaseModel):
    action: str
    reason: str


class UrgencyScoreOutput(BaseModel):
    score: float = Field(..., ge=0, le=100)
    drivers: list[UrgencyDriver]
    explanation: str
    suggested_today_actions: list[TodayAction]


# =======================
# generate_deliverable
# =======================


class MissingInfo(BaseModel):
    what: str
    why: str


class GenerateDeliverableOutput(BaseModel):
    kind: DeliverableKind
    title: str
    content: str
    missing_info: list[MissingInfo]
    metadata: dict[str, Any] | None = None


# =======================
# analyze_paste
# =======================


class PasteTopicMatch(BaseModel):
    topic_id: str | None
    proposed_title: str | None
    confidence: float = Field(..., ge=0, le=1)
    reason: str


class PasteTask(BaseModel):
    title: str
    due_date: str | None
    priority: Priority


class PastePerson(BaseModel):
    name: str
    role: str | None = None


class PasteDeadline(BaseModel):
    date: str
    description: str


class SummaryUpdate(BaseModel):
    topic_id: str
    update: str


class SuggestedDeliverable(BaseModel):
    kind: DeliverableKind
    description: str


class PasteAnalysisOutput(BaseModel):
    detected_area: Area
    area_confidence: float = Field(..., ge=0, le=1)
    matched_topics: list[PasteTopicMatch]
    extracted_tasks: list[PasteTask]
    extracted_people: list[PastePerson]
    extracted_deadlines: list[PasteDeadline]
    suggested_summary_updates: list[SummaryUpdate]
    suggested_deliverables: list[SuggestedDeliverable]


# =======================
# triage
# =======================


class TriageItem(BaseModel):
    item_id: str
    triage_status: Literal["relevant", "low_relevance", "noise"]
    triage_score: float = Field(..., ge=0, le=1)
    triage_reason: str


class TriageBatchOutput(BaseModel):
    items: list[TriageItem]


# =======================
# auto-link
# =======================


class AutoLinkMatch(BaseModel):
    item_id: str
    relevance: float = Field(..., ge=0, le=1)
    reason: str


class AutoLinkOutput(BaseModel):
    matches: list[AutoLinkMatch]
    summary: str = ""


# =======================
# ranking
# =======================


class RankedIndex(BaseModel):
    index: int = Field(..., description="Position of the candidate in the prompt list")
    score: float = Field(..., ge=0, le=1)
    reason: str = ""


class RankResultsOutput(BaseModel):
    ranked: list[RankedIndex]


# =======================
# search query generation
# =======================


class SearchQueriesOutput(BaseModel):
    queries: list[str] = Field(..., min_length=1)


class ReviewQueriesOutput(BaseModel):
    gmail_queries: list[str] = Field(default_factory=list)
    calendar_queries: list[str] = Field(default_factory=list)
    drive_queries: list[str] = Field(default_factory=list)
    slack_queries: list[str] = Field(default_factory=list)
    notion_queries: list[str] = Field(default_factory=list)


# =======================
# contact extraction
# =======================


class ExtractedContact(BaseModel):
    name: str
    email: str | None = None
    role: str | None = None
    organization: str | None = None


class ExtractContactsOutput(BaseModel):
    contacts: list[ExtractedContact]


# =======================
# deep dive
# =======================


class TimelineEntry(BaseModel):
    date: str
    event: str
    participants: list[str] = Field(default_factory=list)


class Decision(BaseModel):
    decision: str
    made_by: str | None = None
    date: str | None = None
    trigger: str | None = None


class ActionItem(BaseModel):
    action: str
    owner: str | None = None
    deadline: str | None = None
    status: str | None = None
    source: str | None = None


class PersonRole(BaseModel):
    name: str
    title: str | None = None
    organization: str | None = None
    role_in_topic: str | None = None


class Recommendation(BaseModel):
    what: str
    why: str
    timeline: str | None = None
    lead: str | None = None


class DeepDiveOutput(BaseModel):
    executive_summary: str
    timeline: list[TimelineEntry] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)
    people: list[PersonRole] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
