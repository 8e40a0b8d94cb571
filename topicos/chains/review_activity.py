"""Review recent activity: find unlinked items related to a topic or contact.

Flow: generate per-source queries -> multi-query search -> de-duplicate
against existing links and the time window -> rank (fast model) with an
unranked fallback.
"""

from datetime import datetime, timedelta, timezone
from typing import Literal, Sequence

from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.config import Settings, get_settings
from topicos.core.context_composer import build_notes_section
from topicos.core.llm_usage import log_llm_usage
from topicos.core.logging import get_logger
from topicos.core.relevance_ranker import RelevanceRanker, unranked
from topicos.core.schemas_ai import ReviewQueriesOutput
from topicos.core.schemas_records import (
    TIME_PERIOD_DAYS,
    TIME_PERIOD_LABELS,
    QueriesUsed,
    ReviewActivityResult,
    SourceType,
    TimePeriod,
    TimeRange,
)
from topicos.core.search_aggregator import CrossSourceSearchAggregator, dedupe_records
from topicos.db.store import TopicStore

logger = get_logger(__name__)

REVIEW_SOURCES: tuple[SourceType, ...] = (
    SourceType.GMAIL,
    SourceType.CALENDAR,
    SourceType.DRIVE,
    SourceType.SLACK,
    SourceType.NOTION,
)
MAX_RESULTS_PER_QUERY = 15
LINKED_ITEMS_IN_PROMPT = 15

# ruff: noqa: E501
TOPIC_QUERY_PROMPT = """You are a search query generator. Given a topic/project and a time window ({period}), generate search queries to find recent items from connected sources that might be relevant to this topic but haven't been linked yet.

Use source-specific date operators to limit results to the {period}:
- Gmail: Include "after:{gmail_date}" in EVERY query. Use Gmail operators (from:, subject:, has:attachment, etc.)
- Slack: Include "after:{iso_date}" in EVERY query. Use Slack modifiers (from:, in:, etc.)
- Calendar: Simple keyword queries (date filtering handled by API)
- Drive: Simple keyword queries focusing on project names, deliverables, key terms
- Notion: Simple keyword queries for page titles and content

Generate 2-3 queries per source. Think about:
- Key people, companies, organizations involved
- Project names, acronyms, code names
- Deliverables, milestones, meeting names
- Related concepts the user might have missed

Return JSON: {{ "gmail_queries": [...], "calendar_queries": [...], "drive_queries": [...], "slack_queries": [...], "notion_queries": [...] }}"""

CONTACT_QUERY_PROMPT = """You are a search query generator. Given a contact person and a time window ({period}), generate search queries to find ALL recent items involving or mentioning this person across connected sources.

Use source-specific date operators to limit results to the {period}:
- Gmail: Include "after:{gmail_date}" in EVERY query. Search by their email (from:email, to:email) AND by name
- Slack: Include "after:{iso_date}" in EVERY query. Search by name mentions and from:username
- Calendar: Search for their name and email in event attendees and titles
- Drive: Search for documents shared with, created by, or mentioning them
- Notion: Search for pages mentioning their name

Generate 2-3 queries per source. Be thorough: find conversations with, about, and mentioning this person.

Return JSON: {{ "gmail_queries": [...], "calendar_queries": [...], "drive_queries": [...], "slack_queries": [...], "notion_queries": [...] }}"""


def queries_by_source(
    queries: ReviewQueriesOutput, sources: Sequence[SourceType]
) -> dict[SourceType, list[str]]:
    """Keep non-empty query lists for the requested sources only."""
    mapping = {
        SourceType.GMAIL: queries.gmail_queries,
        SourceType.CALENDAR: queries.calendar_queries,
        SourceType.DRIVE: queries.drive_queries,
        SourceType.SLACK: queries.slack_queries,
        SourceType.NOTION: queries.notion_queries,
    }
    return {source: mapping[source] for source in REVIEW_SOURCES if source in sources and mapping[source]}


async def _topic_entity(store: TopicStore, owner_id: str, topic_id: str, settings: Settings):
    topic = await store.get_topic(owner_id, topic_id)
    linked_keys = await store.list_linked_keys(owner_id, topic_id)
    manual_notes = await store.list_records_for_topic(
        owner_id, topic_id, limit=settings.CONTEXT_MAX_MANUAL_NOTES, source=SourceType.MANUAL
    )

    lines = [
        f"Topic: {topic.title}",
        f"Description: {topic.description or 'No description'}",
        f"Area: {topic.area}",
        f"Tags: {', '.join(topic.tags) or 'None'}",
        f"Goal: {topic.goal or 'Not set'}",
    ]
    if linked_keys:
        lines.append("")
        lines.append(f"Already linked items ({len(linked_keys)} total) -- DO NOT generate queries for these:")
        lines.extend(f"- {key}" for key in sorted(linked_keys)[:LINKED_ITEMS_IN_PROMPT])
    notes = build_notes_section(topic.notes, manual_notes)
    if notes:
        lines.append("")
        lines.append(notes)

    return topic.title, "\n".join(lines), linked_keys


async def _contact_entity(store: TopicStore, owner_id: str, contact_id: str):
    contact = await store.get_contact(owner_id, contact_id)
    topic_ids = await store.list_contact_topic_ids(owner_id, contact_id)

    exclusion: set[str] = set()
    for topic_id in topic_ids:
        exclusion |= await store.list_linked_keys(owner_id, topic_id)

    context = "\n".join(
        [
            f"Contact: {contact.name}",
            f"Email: {contact.email or 'Unknown'}",
            f"Linked topics: {len(topic_ids)} topics",
        ]
    )
    return contact.name, context, exclusion


async def review_recent_activity(
    owner_id: str,
    *,
    time_period: TimePeriod,
    topic_id: str | None = None,
    contact_id: str | None = None,
    sources: Sequence[SourceType] | None = None,
    store: TopicStore,
    aggregator: CrossSourceSearchAggregator,
    completion: SchemaValidatedCompletion,
    rank_completion: SchemaValidatedCompletion | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> ReviewActivityResult:
    """
    Find recent, not-yet-linked items related to a topic or a contact.

    Exactly one of ``topic_id`` / ``contact_id`` must be given.

    Args:
        owner_id: Owner whose sources are searched
        time_period: "15d", "1m" or "3m"
        topic_id: Topic to review
        contact_id: Contact to review
        sources: Sources to search (defaults to all reviewable sources)
        store: Persistence
        aggregator: Cross-source search
        completion: Completion for query generation
        rank_completion: Completion for ranking (defaults to ``completion``)
        settings: Settings override
        now: Clock override

    Returns:
        ReviewActivityResult; ``results`` carry ``score=None`` if ranking degraded

    Raises:
        ValueError: If not exactly one of topic_id / contact_id is given
        NotFoundError: If the topic or contact does not exist
        SchemaValidationFailure: If query generation fails validation
    """
    if bool(topic_id) == bool(contact_id):
        raise ValueError("Provide exactly one of topic_id or contact_id")

    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    date_from = now - timedelta(days=TIME_PERIOD_DAYS[time_period])
    period = TIME_PERIOD_LABELS[time_period]
    active_sources = list(sources) if sources else list(REVIEW_SOURCES)

    entity_type: Literal["topic", "contact"]
    if topic_id:
        entity_type, entity_id = "topic", topic_id
        entity_name, entity_context, exclusion = await _topic_entity(store, owner_id, topic_id, settings)
        prompt_template = TOPIC_QUERY_PROMPT
    else:
        entity_type, entity_id = "contact", contact_id
        entity_name, entity_context, exclusion = await _contact_entity(store, owner_id, contact_id)
        prompt_template = CONTACT_QUERY_PROMPT

    system_prompt = prompt_template.format(
        period=period,
        gmail_date=date_from.strftime("%Y/%m/%d"),
        iso_date=date_from.date().isoformat(),
    )
    generated = await completion.complete(system_prompt, entity_context, ReviewQueriesOutput)
    await log_llm_usage(
        workflow="review_activity_queries",
        model=generated.model,
        provider=completion.provider,
        tokens=generated.tokens_consumed,
        user_id=owner_id,
        topic_id=topic_id,
    )

    source_queries = queries_by_source(generated.data, active_sources)
    queries_used = [QueriesUsed(source=source, queries=queries) for source, queries in source_queries.items()]

    raw = await aggregator.multi_query_search(
        owner_id,
        source_queries,
        date_from=date_from,
        date_to=now,
        max_results_per_query=MAX_RESULTS_PER_QUERY,
    )
    candidates = dedupe_records(raw, exclude=exclusion, since=date_from)

    result = ReviewActivityResult(
        queries_used=queries_used,
        time_range=TimeRange(date_from=date_from, date_to=now),
        total_before_filter=len(raw),
        entity_type=entity_type,
        entity_name=entity_name,
        entity_id=entity_id,
    )
    if not candidates:
        logger.info(f"Review of {entity_type} '{entity_name}' found nothing new ({len(raw)} raw)")
        return result

    ranker = RelevanceRanker(rank_completion or completion)
    ranked = await ranker.rank(
        entity_name, candidates[: settings.RANK_MAX_CANDIDATES], entity_type=entity_type
    )
    if ranked and all(candidate.score is None for candidate in ranked):
        result.results = unranked(candidates)
    else:
        result.results = ranked

    logger.info(
        f"Review {period} for {entity_type} '{entity_name}': {len(result.results)} results "
        f"from {len(raw)} raw, {len(candidates)} after de-duplication",
        extra={"entity_id": entity_id},
    )
    return result
