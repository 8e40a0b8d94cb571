"""AI helper endpoints: query generation, activity review, classification, triage."""

from typing import get_args

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from topicos.api.deps import (
    get_completion,
    get_fast_completion,
    get_registry,
    get_store,
    raise_http_error,
    require_owner,
)
from topicos.chains.ai_functions import (
    analyze_paste,
    classify_area,
    extract_signals,
    summarize_topic,
    topic_urgency_state,
    urgency_score,
)
from topicos.chains.find_queries import generate_search_queries
from topicos.chains.review_activity import review_recent_activity
from topicos.chains.triage import triage_records
from topicos.connectors.base import ConnectorRegistry
from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.schemas_ai import (
    Area,
    ClassifyAreaOutput,
    ExtractSignalsOutput,
    PasteAnalysisOutput,
    SummarizeTopicOutput,
    TriageItem,
    UrgencyScoreOutput,
)
from topicos.core.schemas_records import ReviewActivityResult, SourceType, TimePeriod
from topicos.core.search_aggregator import CrossSourceSearchAggregator
from topicos.db.store import TopicStore

router = APIRouter()

SUMMARY_RECORD_LIMIT = 50
URGENCY_TASK_LIMIT = 50


class FindRequest(BaseModel):
    description: str = Field(..., min_length=1)
    topic_title: str | None = None


class FindResponse(BaseModel):
    queries: list[str]


class ReviewActivityRequest(BaseModel):
    topic_id: str | None = None
    contact_id: str | None = None
    time_period: TimePeriod
    sources: list[SourceType] | None = None


class TextRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=50_000)


class TopicRequest(BaseModel):
    topic_id: str = Field(..., min_length=1)


class TriageRequest(BaseModel):
    limit: int = Field(default=50, ge=1, le=200, description="Most recent records considered")


class TriageResponse(BaseModel):
    items: list[TriageItem]
    tokens_used: int
    failed_batches: int


@router.post("/find", response_model=FindResponse)
async def find(
    request: FindRequest,
    owner_id: str = Depends(require_owner),
    completion: SchemaValidatedCompletion = Depends(get_completion),
) -> FindResponse:
    """Generate 3-5 search queries for a description."""
    try:
        queries = await generate_search_queries(
            request.description, request.topic_title, completion=completion
        )
        return FindResponse(queries=queries)
    except Exception as e:
        raise_http_error(e, "AI find")


@router.post("/review-activity", response_model=ReviewActivityResult)
async def review_activity(
    request: ReviewActivityRequest,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
    completion: SchemaValidatedCompletion = Depends(get_completion),
    rank_completion: SchemaValidatedCompletion = Depends(get_fast_completion),
) -> ReviewActivityResult:
    """Find and rank recent items related to a topic or contact that are not linked yet."""
    if bool(request.topic_id) == bool(request.contact_id):
        raise HTTPException(status_code=400, detail="Provide exactly one of topic_id or contact_id")

    try:
        return await review_recent_activity(
            owner_id,
            time_period=request.time_period,
            topic_id=request.topic_id,
            contact_id=request.contact_id,
            sources=request.sources,
            store=store,
            aggregator=CrossSourceSearchAggregator(store, registry),
            completion=completion,
            rank_completion=rank_completion,
        )
    except Exception as e:
        raise_http_error(e, "Review activity")


@router.post("/classify", response_model=ClassifyAreaOutput)
async def classify(
    request: TextRequest,
    owner_id: str = Depends(require_owner),
    completion: SchemaValidatedCompletion = Depends(get_fast_completion),
) -> ClassifyAreaOutput:
    """Classify text into a life area."""
    try:
        return (await classify_area(request.text, completion=completion)).data
    except Exception as e:
        raise_http_error(e, "Area classification")


@router.post("/extract-signals", response_model=ExtractSignalsOutput)
async def signals(
    request: TextRequest,
    owner_id: str = Depends(require_owner),
    completion: SchemaValidatedCompletion = Depends(get_completion),
) -> ExtractSignalsOutput:
    """Extract people, orgs, dates, deadlines and action items from text."""
    try:
        return (await extract_signals(request.text, completion=completion)).data
    except Exception as e:
        raise_http_error(e, "Signal extraction")


@router.post("/paste", response_model=PasteAnalysisOutput)
async def paste(
    request: TextRequest,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
    completion: SchemaValidatedCompletion = Depends(get_completion),
) -> PasteAnalysisOutput:
    """Analyze pasted text against the owner's active topics."""
    try:
        topics = []
        for area in get_args(Area):
            topics.extend(await store.list_active_topics(owner_id, area))
        return (await analyze_paste(request.text, topics, completion=completion)).data
    except Exception as e:
        raise_http_error(e, "Paste analysis")


@router.post("/summarize", response_model=SummarizeTopicOutput)
async def summarize(
    request: TopicRequest,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
    completion: SchemaValidatedCompletion = Depends(get_completion),
) -> SummarizeTopicOutput:
    """Summarize a topic from its most recent records."""
    try:
        await store.get_topic(owner_id, request.topic_id)
        records = await store.list_records_for_topic(
            owner_id, request.topic_id, limit=SUMMARY_RECORD_LIMIT
        )
        return (await summarize_topic(records, completion=completion)).data
    except Exception as e:
        raise_http_error(e, "Topic summary")


@router.post("/urgency", response_model=UrgencyScoreOutput)
async def urgency(
    request: TopicRequest,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
    completion: SchemaValidatedCompletion = Depends(get_fast_completion),
) -> UrgencyScoreOutput:
    """Score how urgent a topic is right now."""
    try:
        topic = await store.get_topic(owner_id, request.topic_id)
        tasks = await store.list_tasks(owner_id, topic.id, limit=URGENCY_TASK_LIMIT)
        records = await store.list_records_for_topic(owner_id, topic.id, limit=SUMMARY_RECORD_LIMIT)
        state = topic_urgency_state(topic, tasks, records)
        return (await urgency_score(state, completion=completion)).data
    except Exception as e:
        raise_http_error(e, "Urgency scoring")


@router.post("/triage", response_model=TriageResponse)
async def triage(
    request: TriageRequest,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
    completion: SchemaValidatedCompletion = Depends(get_fast_completion),
) -> TriageResponse:
    """Triage the owner's most recent untriaged records and persist the verdicts."""
    try:
        recent = await store.list_recent_records(owner_id, request.limit)
        pending = [record for record in recent if record.id and not record.triage_status]
        result = await triage_records(pending, completion=completion)
        for item in result.items:
            await store.set_record_triage(
                owner_id, item.item_id, item.triage_status, item.triage_score, item.triage_reason
            )
        return TriageResponse(
            items=result.items,
            tokens_used=result.tokens_used,
            failed_batches=result.failed_batches,
        )
    except Exception as e:
        raise_http_error(e, "Triage")
