"""Scan recent unlinked records and link the ones that belong to a topic."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.config import Settings, get_settings
from topicos.core.exceptions import BackendError, SchemaValidationFailure
from topicos.core.logging import get_logger
from topicos.core.schemas_ai import AutoLinkOutput
from topicos.core.schemas_records import NormalizedRecord, Topic
from topicos.db.store import TopicStore

logger = get_logger(__name__)

AUTO_LINK_BATCH_SIZE = 10
AUTO_LINK_MAX_CANDIDATES = 200
AUTO_LINK_MIN_RELEVANCE = 0.6

EXCLUDED_TRIAGE_STATUSES = frozenset({"noise", "deleted"})

# ruff: noqa: E501
SYSTEM_PROMPT = """You are an AI assistant that finds items related to a specific topic/project. Analyze each item and score how relevant it is to the topic.

TOPIC: "{title}"
AREA: {area}
{details}
RULES:
- Score each item from 0.0 to 1.0 for relevance to this topic
- Only include items with relevance >= {min_relevance} in the matches array
- Consider: subject keywords, people mentioned, dates, content overlap
- Be selective, only match items genuinely related to this topic

Return JSON: {{ "matches": [{{ "item_id": "the-exact-item-id-from-input", "relevance": 0.85, "reason": "why this item relates to the topic" }}], "summary": "Brief summary of what was found" }}

If no items match, return {{"matches": [], "summary": "No related items found in this batch."}}"""


@dataclass
class AutoLinkResult:
    topic_id: str
    topic_title: str
    items_scanned: int = 0
    items_linked: int = 0
    failed_batches: int = 0
    tokens_used: int = 0


def _record_key(record: NormalizedRecord) -> str:
    return record.id or record.dedup_key


def build_system_prompt(topic: Topic) -> str:
    details = []
    if topic.description:
        details.append(f"DESCRIPTION: {topic.description}")
    if topic.summary:
        details.append(f"SUMMARY: {topic.summary[:300]}")
    return SYSTEM_PROMPT.format(
        title=topic.title,
        area=topic.area,
        details="".join(f"{line}\n" for line in details),
        min_relevance=AUTO_LINK_MIN_RELEVANCE,
    )


def build_batch_prompt(batch: Sequence[NormalizedRecord]) -> str:
    blocks = []
    for record in batch:
        lines = [f'id="{_record_key(record)}" source={record.source.value}', f"  Title: {record.title}"]
        if record.snippet:
            lines.append(f"  Snippet: {record.snippet[:150]}")
        if record.body:
            lines.append(f"  Body: {record.body[:200]}")
        if record.metadata.get("from"):
            lines.append(f"  From: {record.metadata['from']}")
        if record.metadata.get("to"):
            lines.append(f"  To: {record.metadata['to']}")
        occurred = record.occurred_at.isoformat() if record.occurred_at else "unknown"
        lines.append(f"  Date: {occurred}")
        blocks.append("\n".join(lines))
    return f"ITEMS TO ANALYZE ({len(batch)} items):\n\n" + "\n\n".join(blocks)


def select_candidates(
    records: Sequence[NormalizedRecord], linked_keys: set[str]
) -> list[NormalizedRecord]:
    """Drop records already on the topic, triaged away, or repeated across topics."""
    seen = set(linked_keys)
    candidates = []
    for record in records:
        if record.triage_status in EXCLUDED_TRIAGE_STATUSES or record.dedup_key in seen:
            continue
        seen.add(record.dedup_key)
        candidates.append(record)
    return candidates


def _is_rate_limited(error: Exception) -> bool:
    message = str(error).lower()
    return "rate_limit" in message or "rate limit" in message or "429" in message


async def auto_link_topic(
    owner_id: str,
    topic_id: str,
    *,
    store: TopicStore,
    completion: SchemaValidatedCompletion,
    settings: Settings | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    batch_size: int = AUTO_LINK_BATCH_SIZE,
) -> AutoLinkResult:
    """
    Link recent records that the model judges relevant to a topic.

    Up to ``AUTO_LINK_MAX_CANDIDATES`` of the owner's newest records are
    considered. Records already linked to the topic or triaged as noise are
    skipped. Only matches scoring at least ``AUTO_LINK_MIN_RELEVANCE`` whose
    id was in the batch are linked. A failed batch is counted and skipped.

    Raises:
        NotFoundError: If the topic does not exist for the owner
    """
    settings = settings or get_settings()
    topic = await store.get_topic(owner_id, topic_id)
    result = AutoLinkResult(topic_id=topic.id, topic_title=topic.title)

    linked_keys = await store.list_linked_keys(owner_id, topic_id)
    recent = await store.list_recent_records(owner_id, AUTO_LINK_MAX_CANDIDATES)
    candidates = select_candidates(recent, linked_keys)
    if not candidates:
        logger.info(f"No unlinked records to scan for topic '{topic.title}'")
        return result

    system_prompt = build_system_prompt(topic)
    for start in range(0, len(candidates), batch_size):
        if start > 0 and settings.AUTO_LINK_BATCH_DELAY_SECONDS > 0:
            await sleep(settings.AUTO_LINK_BATCH_DELAY_SECONDS)

        batch = candidates[start : start + batch_size]
        by_key = {_record_key(record): record for record in batch}

        try:
            completed = await completion.complete(system_prompt, build_batch_prompt(batch), AutoLinkOutput)
        except (SchemaValidationFailure, BackendError) as e:
            logger.error(f"Auto-link batch starting at {start} failed for topic {topic_id}: {e}")
            result.failed_batches += 1
            if _is_rate_limited(e) and settings.AUTO_LINK_RATE_LIMIT_DELAY_SECONDS > 0:
                await sleep(settings.AUTO_LINK_RATE_LIMIT_DELAY_SECONDS)
            continue

        result.tokens_used += completed.tokens_consumed
        result.items_scanned += len(batch)

        for match in completed.data.matches:
            record = by_key.pop(match.item_id, None)
            if record is None or match.relevance < AUTO_LINK_MIN_RELEVANCE:
                continue
            await store.link_record(
                owner_id, topic_id, record, confidence=match.relevance, reason=match.reason
            )
            result.items_linked += 1

    logger.info(
        f"Auto-linked {result.items_linked} of {result.items_scanned} records to topic '{topic.title}'",
        extra={"failed_batches": result.failed_batches, "tokens": result.tokens_used},
    )
    return result
