"""Cross-source search fan-out with per-source isolation and de-duplication."""

import asyncio
from datetime import datetime, timezone
from typing import Iterable

from topicos.connectors.base import ConnectorRegistry
from topicos.core.config import Settings, get_settings
from topicos.core.logging import get_logger
from topicos.core.schemas_records import (
    NormalizedRecord,
    SearchRecord,
    SearchRequest,
    SourceSearchResult,
    SourceType,
)
from topicos.db.store import TopicStore

logger = get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def dedupe_records(
    records: Iterable[NormalizedRecord],
    exclude: Iterable[str] = (),
    since: datetime | None = None,
) -> list[NormalizedRecord]:
    """
    Keep one record per ``source:external_id`` key, first seen wins.

    Args:
        records: Candidate records in arrival order
        exclude: Keys to drop entirely (e.g. records already linked to a topic)
        since: Drop records that occurred before this instant (undated records are kept)

    Returns:
        De-duplicated records, input order preserved
    """
    seen = set(exclude)
    cutoff = _as_utc(since) if since else None
    unique = []

    for record in records:
        key = record.dedup_key
        if key in seen:
            continue
        seen.add(key)
        # Post-filter by date for sources without native date filtering
        if cutoff and record.occurred_at and _as_utc(record.occurred_at) < cutoff:
            continue
        unique.append(record)

    return unique


class CrossSourceSearchAggregator:
    """Fans a query out to every requested source connector in parallel."""

    def __init__(
        self,
        store: TopicStore,
        registry: ConnectorRegistry,
        settings: Settings | None = None,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings or get_settings()

    async def _search_source(
        self,
        owner_id: str,
        source: SourceType,
        request: SearchRequest,
        max_results: int,
    ) -> SourceSearchResult:
        connector = self.registry.get(source)
        if connector is None:
            return SourceSearchResult(source=source, error="Source not connected")

        source_request = request.model_copy(update={"sources": [source], "max_results": max_results})
        try:
            records = await connector.search(owner_id, source_request)
        except Exception as e:
            logger.warning(f"Search failed for {source.value}: {e}", extra={"query": request.query})
            return SourceSearchResult(source=source, error=str(e) or "Search failed")

        items = [SearchRecord.model_validate(record.model_dump()) for record in records[:max_results]]
        return SourceSearchResult(source=source, items=items)

    async def search(self, owner_id: str, request: SearchRequest) -> list[SourceSearchResult]:
        """
        Search every requested source independently.

        A failing source yields an empty result with ``error`` set; the others
        are unaffected. When ``request.topic_id`` is set, items already linked
        to that topic are flagged ``already_linked``.

        Args:
            owner_id: Owner whose connected accounts are searched
            request: Query, sources and filters

        Returns:
            One SourceSearchResult per distinct requested source
        """
        max_results = request.max_results or self.settings.SEARCH_DEFAULT_MAX_RESULTS
        linked_keys: set[str] = set()
        if request.topic_id:
            linked_keys = await self.store.list_linked_keys(owner_id, request.topic_id)

        sources = list(dict.fromkeys(request.sources))
        results = await asyncio.gather(
            *(self._search_source(owner_id, source, request, max_results) for source in sources)
        )

        for result in results:
            for item in result.items:
                item.already_linked = item.dedup_key in linked_keys

        total = sum(len(result.items) for result in results)
        failed = [result.source.value for result in results if result.error]
        logger.info(
            f"Search '{request.query}' returned {total} items from {len(sources)} sources",
            extra={"failed_sources": failed},
        )
        return list(results)

    async def search_flat(
        self,
        owner_id: str,
        request: SearchRequest,
        exclude_linked: bool = True,
    ) -> list[SearchRecord]:
        """Union of all sources, de-duplicated, optionally without already-linked items."""
        results = await self.search(owner_id, request)
        items = [item for result in results for item in result.items]
        if exclude_linked:
            items = [item for item in items if not item.already_linked]
        return dedupe_records(items, since=request.date_from)

    async def multi_query_search(
        self,
        owner_id: str,
        queries_by_source: dict[SourceType, list[str]],
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        max_results_per_query: int = 15,
    ) -> list[SearchRecord]:
        """
        Run several queries per source concurrently and return the raw union.

        Duplicates are kept; callers de-duplicate with their own exclusions.
        """
        requests = [
            SearchRequest(
                query=query,
                sources=[source],
                date_from=date_from,
                date_to=date_to,
                max_results=max_results_per_query,
            )
            for source, queries in queries_by_source.items()
            for query in queries
        ]
        if not requests:
            return []

        batches = await asyncio.gather(
            *(self.search(owner_id, request) for request in requests), return_exceptions=True
        )

        records: list[SearchRecord] = []
        for request, batch in zip(requests, batches):
            if isinstance(batch, BaseException):
                logger.warning(f"Query '{request.query}' failed: {batch}")
                continue
            for result in batch:
                records.extend(result.items)
        return records
