"""Topic endpoints: enrichment, batch enrichment stream, composed context, auto-link."""

from dataclasses import asdict
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from topicos.api.deps import (
    get_completion,
    get_fast_completion,
    get_registry,
    get_store,
    raise_http_error,
    require_owner,
)
from topicos.chains.auto_link import auto_link_topic
from topicos.connectors.base import ConnectorRegistry
from topicos.core.batch_pipeline import BatchEnrichmentPipeline, format_sse
from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.content_enricher import ContentEnricher
from topicos.core.context_composer import ContextComposer
from topicos.core.logging import get_logger
from topicos.core.schemas_records import Topic
from topicos.db.store import TopicStore

logger = get_logger(__name__)

router = APIRouter()


class EnrichTopicResponse(BaseModel):
    enriched: int
    failed: int
    total: int


class BatchEnrichRequest(BaseModel):
    area: str = Field(default="work", description="Life area whose active topics are processed")


class TopicContextResponse(BaseModel):
    topic_id: str
    context: str


class AutoLinkResponse(BaseModel):
    topic_id: str
    topic_title: str
    items_scanned: int
    items_linked: int
    failed_batches: int
    tokens_used: int


@router.post("/{topic_id}/enrich", response_model=EnrichTopicResponse)
async def enrich_topic(
    topic_id: str,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
) -> EnrichTopicResponse:
    """Fetch and cache full content for the topic's records that have none."""
    try:
        await store.get_topic(owner_id, topic_id)
        result = await ContentEnricher(store, registry).enrich_many(owner_id, topic_id)
        return EnrichTopicResponse(
            enriched=result.enriched_count, failed=result.failed_count, total=len(result.records)
        )
    except HTTPException:
        raise
    except Exception as e:
        raise_http_error(e, "Enrichment")


async def _sse_generator(
    pipeline: BatchEnrichmentPipeline, owner_id: str, area: str, topics: list[Topic]
) -> AsyncGenerator[str, None]:
    async for event in pipeline.run(owner_id, area, topics=topics):
        yield format_sse(event)


@router.post("/batch-enrich")
async def batch_enrich(
    request: BatchEnrichRequest,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
    completion: SchemaValidatedCompletion = Depends(get_completion),
) -> StreamingResponse:
    """
    Run enrich -> contacts -> deep dive over every active topic in an area.

    Streams BatchProgressEvents as server-sent events.
    """
    pipeline = BatchEnrichmentPipeline(store, ContentEnricher(store, registry), completion)
    try:
        topics = await pipeline.load_topics(owner_id, request.area)
    except Exception as e:
        raise_http_error(e, "Batch enrichment")

    if not topics:
        raise HTTPException(status_code=404, detail="No active topics found")

    return StreamingResponse(
        _sse_generator(pipeline, owner_id, request.area, topics),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{topic_id}/context", response_model=TopicContextResponse)
async def get_topic_context(
    topic_id: str,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
) -> TopicContextResponse:
    """Composed, budgeted prompt context for a topic."""
    try:
        context = await ContextComposer(store).compose(owner_id, topic_id)
        return TopicContextResponse(topic_id=topic_id, context=context)
    except HTTPException:
        raise
    except Exception as e:
        raise_http_error(e, "Context composition")


@router.post("/{topic_id}/auto-link", response_model=AutoLinkResponse)
async def auto_link(
    topic_id: str,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
    completion: SchemaValidatedCompletion = Depends(get_fast_completion),
) -> AutoLinkResponse:
    """Scan recent unlinked records and link those relevant to the topic."""
    try:
        result = await auto_link_topic(owner_id, topic_id, store=store, completion=completion)
        return AutoLinkResponse(**asdict(result))
    except Exception as e:
        raise_http_error(e, "Auto-link")
