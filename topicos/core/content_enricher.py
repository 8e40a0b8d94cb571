"""Content enrichment: fetch and cache full bodies for linked records.

Enrichment is idempotent on the persisted ``body`` field. A record that
already has a body is returned as-is without touching its connector, so
concurrent requests for the same record are safe (last write wins in the
store).
"""

import asyncio

from topicos.connectors.base import ConnectorRegistry
from topicos.core.config import Settings, get_settings
from topicos.core.logging import get_logger
from topicos.core.schemas_records import (
    FETCHABLE_SOURCES,
    EnrichManyResult,
    EnrichmentOutcome,
    NormalizedRecord,
    SourceType,
)
from topicos.db.store import TopicStore

logger = get_logger(__name__)

TRUNCATION_MARKER = "\n[Content truncated]"


def truncate_body(body: str, max_chars: int) -> str:
    """Bound fetched content so downstream prompt assembly stays bounded."""
    if len(body) <= max_chars:
        return body
    return body[:max_chars] + TRUNCATION_MARKER


class ContentEnricher:
    """Fetches full content for records through their source connectors."""

    def __init__(
        self,
        store: TopicStore,
        registry: ConnectorRegistry,
        settings: Settings | None = None,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings or get_settings()

    async def enrich_one(self, owner_id: str, record: NormalizedRecord) -> EnrichmentOutcome:
        """
        Fetch full content for one record.

        Args:
            owner_id: Owner of the record
            record: Record to enrich

        Returns:
            EnrichmentOutcome; fetch failures come back with ``succeeded=False``
        """
        if record.body:
            return EnrichmentOutcome(
                record_id=record.id, body=record.body, succeeded=True, cached=True
            )

        if record.source == SourceType.MANUAL:
            # Manual notes keep their text in metadata.content
            content = record.metadata.get("content") or ""
            return EnrichmentOutcome(record_id=record.id, body=content or None, succeeded=True)

        if record.source not in FETCHABLE_SOURCES:
            return EnrichmentOutcome(record_id=record.id, body=None, succeeded=True)

        connector = self.registry.get(record.source)
        if connector is None:
            logger.debug(f"No connector registered for {record.source.value}, skipping {record.id}")
            return EnrichmentOutcome(record_id=record.id, body=None, succeeded=True)

        try:
            fetched = await connector.fetch_full_content(owner_id, record)
        except Exception as e:
            logger.warning(
                f"Content fetch failed for {record.source.value}/{record.external_id}: {e}",
                extra={"record_id": record.id},
            )
            return EnrichmentOutcome(
                record_id=record.id, body=None, succeeded=False, error=str(e) or type(e).__name__
            )

        body = truncate_body(fetched.body, self.settings.ENRICH_MAX_BODY_CHARS) if fetched.body else None
        if not body:
            logger.warning(
                f"No content returned for {record.source.value} record {record.id} "
                f"(external_id: {record.external_id})"
            )

        return EnrichmentOutcome(
            record_id=record.id,
            body=body,
            attachments=fetched.attachments,
            extra_metadata=fetched.extra_metadata,
            succeeded=True,
        )

    async def enrich_and_cache(self, owner_id: str, record: NormalizedRecord) -> EnrichmentOutcome:
        """Enrich a record and persist a newly fetched body (and merged metadata)."""
        outcome = await self.enrich_one(owner_id, record)

        if outcome.succeeded and outcome.body and not outcome.cached and record.id:
            metadata = (
                {**record.metadata, **outcome.extra_metadata} if outcome.extra_metadata else None
            )
            await self.store.set_record_body(owner_id, record.id, outcome.body, metadata)
            logger.info(
                f"Saved {len(outcome.body)} chars for {record.source.value} record {record.id}"
            )

        return outcome

    async def _enrich_isolated(self, owner_id: str, record: NormalizedRecord) -> EnrichmentOutcome:
        try:
            return await self.enrich_and_cache(owner_id, record)
        except Exception as e:
            logger.error(f"Enrichment failed for record {record.id}: {e}")
            return EnrichmentOutcome(
                record_id=record.id, body=record.body, succeeded=False, error=str(e)
            )

    async def enrich_many(self, owner_id: str, topic_id: str) -> EnrichManyResult:
        """
        Enrich the most recent records of a topic.

        Records are processed in small concurrent groups; one record's failure
        only increments ``failed_count``.

        Args:
            owner_id: Owner of the topic
            topic_id: Topic whose records are enriched

        Returns:
            EnrichManyResult with counts and one outcome per record
        """
        records = await self.store.list_records_for_topic(
            owner_id, topic_id, limit=self.settings.ENRICH_MAX_RECORDS_PER_TOPIC
        )
        result = EnrichManyResult()
        if not records:
            return result

        batch_size = max(1, self.settings.ENRICH_BATCH_SIZE)
        for start in range(0, len(records), batch_size):
            batch = records[start : start + batch_size]
            outcomes = await asyncio.gather(
                *(self._enrich_isolated(owner_id, record) for record in batch)
            )
            for outcome in outcomes:
                if not outcome.succeeded:
                    result.failed_count += 1
                elif outcome.body:
                    result.enriched_count += 1
                result.records.append(outcome)

        logger.info(
            f"Enriched topic {topic_id}: {result.enriched_count} enriched, "
            f"{result.failed_count} failed of {len(records)}"
        )
        return result
