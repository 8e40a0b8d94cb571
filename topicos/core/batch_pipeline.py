"""Batch enrichment pipeline: enrich -> contacts -> deep dive for every active topic.

Topics are processed strictly one at a time in fetched order, and progress is
produced as an async stream of typed events:

    start -> (progress enrich, progress contacts, progress deep_dive, done | error)* -> complete

Any failure inside one topic becomes that topic's ``error`` event; the run
always continues with the next topic.
"""

import asyncio
import logging
from typing import AsyncGenerator, Awaitable, Callable

from topicos.chains.deep_dive import run_deep_dive
from topicos.chains.extract_contacts import link_topic_contacts
from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.config import Settings, get_settings
from topicos.core.content_enricher import ContentEnricher
from topicos.core.context_composer import ContextComposer
from topicos.core.logging import get_logger, log_with_context
from topicos.core.schemas_records import (
    BatchProgressEvent,
    CompleteEvent,
    Contact,
    EnrichManyResult,
    ProgressEvent,
    StartEvent,
    Topic,
    TopicDoneEvent,
    TopicErrorEvent,
)
from topicos.db.store import TopicStore

logger = get_logger(__name__)


def format_sse(event: BatchProgressEvent) -> str:
    """Frame one event for a ``text/event-stream`` response."""
    return f"data: {event.model_dump_json()}\n\n"


class BatchEnrichmentPipeline:
    """Runs the three per-topic stages over all active topics of an area."""

    def __init__(
        self,
        store: TopicStore,
        enricher: ContentEnricher,
        completion: SchemaValidatedCompletion,
        composer: ContextComposer | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.enricher = enricher
        self.completion = completion
        self.settings = settings or get_settings()
        self.composer = composer or ContextComposer(store, self.settings)
        self._sleep = sleep

    async def load_topics(self, owner_id: str, area: str) -> list[Topic]:
        return await self.store.list_active_topics(owner_id, area)

    async def _enrich_stage(self, owner_id: str, topic: Topic) -> EnrichManyResult:
        # Enrichment problems never block the later stages
        try:
            return await self.enricher.enrich_many(owner_id, topic.id)
        except Exception as e:
            logger.warning(f"Enrich stage failed for topic '{topic.title}', continuing: {e}")
            return EnrichManyResult()

    async def _load_contacts(self, owner_id: str) -> list[Contact]:
        # Without the contact list every topic simply links zero contacts
        try:
            return await self.store.list_contacts(owner_id)
        except Exception as e:
            logger.warning(f"Could not load contacts, contact linking disabled for this run: {e}")
            return []

    async def _contacts_stage(self, owner_id: str, topic: Topic, contacts: list[Contact]) -> int:
        try:
            return await link_topic_contacts(
                owner_id,
                topic.id,
                store=self.store,
                completion=self.completion,
                contacts=contacts,
                settings=self.settings,
            )
        except Exception as e:
            logger.warning(f"Contact extraction skipped for topic '{topic.title}': {e}")
            return 0

    async def run(
        self,
        owner_id: str,
        area: str,
        topics: list[Topic] | None = None,
    ) -> AsyncGenerator[BatchProgressEvent, None]:
        """
        Process every active topic in ``area`` and stream progress.

        Args:
            owner_id: Owner of the topics
            area: Life area (work / personal / career)
            topics: Pre-loaded topics (loaded from the store when omitted)

        Yields:
            BatchProgressEvent in pipeline order
        """
        if topics is None:
            topics = await self.load_topics(owner_id, area)
        total = len(topics)
        contacts = await self._load_contacts(owner_id) if topics else []

        logger.info(f"Batch enrichment started for {total} '{area}' topics")
        yield StartEvent(total=total)

        for index, topic in enumerate(topics):
            position = {"index": index, "total": total, "topic": topic.title, "topic_id": topic.id}
            try:
                yield ProgressEvent(stage="enrich", **position)
                enrichment = await self._enrich_stage(owner_id, topic)

                yield ProgressEvent(stage="contacts", **position)
                contacts_linked = await self._contacts_stage(owner_id, topic, contacts)

                yield ProgressEvent(stage="deep_dive", **position)
                await run_deep_dive(
                    owner_id,
                    topic.id,
                    store=self.store,
                    composer=self.composer,
                    completion=self.completion,
                    enrichment=enrichment,
                    settings=self.settings,
                )

                done = TopicDoneEvent(
                    enriched=enrichment.enriched_count,
                    failed=enrichment.failed_count,
                    contacts_linked=contacts_linked,
                    **position,
                )
            except Exception as e:
                log_with_context(
                    logger,
                    logging.ERROR,
                    f"Batch enrichment failed for topic '{topic.title}': {e}",
                    owner_id=owner_id,
                    topic_id=topic.id,
                    index=index,
                )
                yield TopicErrorEvent(error=str(e) or type(e).__name__, **position)
            else:
                yield done

            if index < total - 1 and self.settings.BATCH_INTER_TOPIC_DELAY_SECONDS > 0:
                await self._sleep(self.settings.BATCH_INTER_TOPIC_DELAY_SECONDS)

        logger.info(f"Batch enrichment complete for {total} topics")
        yield CompleteEvent(total=total)
