"""Tests for the LLM-backed chains (queries, review, triage, contacts, deep dive)."""

from datetime import datetime, timedelta, timezone

import pytest

from topicos.chains.ai_functions import generate_deliverable, suggest_topics
from topicos.chains.deep_dive import render_deep_dive_markdown, run_deep_dive
from topicos.chains.extract_contacts import link_topic_contacts, match_contacts
from topicos.chains.find_queries import generate_search_queries
from topicos.chains.review_activity import review_recent_activity
from topicos.chains.triage import triage_records
from topicos.connectors.base import ConnectorRegistry
from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.context_composer import ContextComposer
from topicos.core.exceptions import SchemaValidationFailure
from topicos.core.schemas_ai import DeepDiveOutput, ExtractedContact
from topicos.core.schemas_records import (
    Contact,
    EnrichManyResult,
    NormalizedRecord,
    SourceType,
    Topic,
)
from topicos.core.search_aggregator import CrossSourceSearchAggregator
from tests.fakes.fake_backends import FakeConnector, RoutingBackend, scripted_completion
from tests.fakes.fake_store import FakeTopicStore

OWNER = "owner-1"
NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def _record(external_id: str, source: SourceType = SourceType.GMAIL, days_ago: int = 1, **kwargs):
    return NormalizedRecord(
        external_id=external_id,
        source=source,
        title=kwargs.pop("title", f"Item {external_id}"),
        occurred_at=NOW - timedelta(days=days_ago),
        **kwargs,
    )


# =======================
# find queries
# =======================


@pytest.mark.asyncio
async def test_generate_search_queries_dedupes_and_caps():
    completion, backend = scripted_completion([{"queries": [" vendor ", "vendor", "", "a", "b", "c", "d", "e"]}])

    queries = await generate_search_queries("vendor emails", "Launch", completion=completion)

    assert queries == ["vendor", "a", "b", "c", "d"]
    assert backend.calls[0]["user"] == "Generate search queries for: Launch - vendor emails"


@pytest.mark.asyncio
async def test_generate_search_queries_rejects_empty_list():
    completion, backend = scripted_completion([{"queries": []}])

    with pytest.raises(SchemaValidationFailure):
        await generate_search_queries("anything", completion=completion)
    assert len(backend.calls) == 2


# =======================
# ai functions
# =======================


@pytest.mark.asyncio
async def test_suggest_topics_drops_unknown_topic_ids():
    completion, backend = scripted_completion(
        [
            {
                "suggestions": [
                    {"topic_id": "t1", "proposed_title": None, "confidence": 0.9, "reason": "r", "evidence": "e"},
                    {"topic_id": "ghost", "proposed_title": None, "confidence": 0.8, "reason": "r", "evidence": "e"},
                    {"topic_id": None, "proposed_title": "New", "confidence": 0.6, "reason": "r", "evidence": "e"},
                ]
            }
        ]
    )

    result = await suggest_topics("text", [Topic(id="t1", title="Launch")], completion=completion)

    assert [s.topic_id for s in result.data.suggestions] == ["t1", None]
    assert '- [t1] "Launch" (work)' in backend.calls[0]["user"]


@pytest.mark.asyncio
async def test_generate_deliverable_names_kind_in_prompt():
    completion, backend = scripted_completion(
        [{"kind": "email", "title": "Update", "content": "Hi all", "missing_info": []}]
    )

    result = await generate_deliverable(
        "email", title="Launch", summary="On track", items=["Kickoff"], tasks=["Book venue"], completion=completion
    )

    assert result.data.content == "Hi all"
    assert 'Generate a "email" deliverable' in backend.calls[0]["system"]
    assert "1. Kickoff" in backend.calls[0]["user"]


# =======================
# triage
# =======================


@pytest.mark.asyncio
async def test_triage_skips_failed_batch_and_filters_foreign_ids():
    records = [_record(f"m{i}", id=f"r{i}") for i in range(3)]
    completion, backend = scripted_completion(
        [
            {
                "items": [
                    {"item_id": "r0", "triage_status": "relevant", "triage_score": 0.9, "triage_reason": "x"},
                    {"item_id": "zzz", "triage_status": "noise", "triage_score": 0.1, "triage_reason": "x"},
                ]
            },
            "not json",
        ]
    )

    result = await triage_records(records, completion=completion, batch_size=2)

    assert [item.item_id for item in result.items] == ["r0"]
    assert result.failed_batches == 1
    assert result.tokens_used == 10
    assert len(backend.calls) == 3
    assert 'id="r2"' in backend.calls[1]["user"]


# =======================
# contacts
# =======================


def test_match_contacts_prefers_email_and_dedupes():
    dana = Contact(id="c1", name="Dana Lee", email="dana@x.com")
    sam = Contact(id="c2", name="Sam Park")
    extracted = [
        ExtractedContact(name="D. Lee", email="DANA@x.com"),
        ExtractedContact(name="sam park"),
        ExtractedContact(name="Dana Lee"),
        ExtractedContact(name="Stranger", email="who@y.com"),
    ]

    assert match_contacts(extracted, [dana, sam]) == [dana, sam]


@pytest.mark.asyncio
async def test_link_topic_contacts_is_idempotent(settings):
    store = FakeTopicStore(OWNER)
    store.add_contact(Contact(id="c1", name="Dana Lee", email="dana@x.com"))
    store.add_record(_record("m1", topic_id="t1", body="Dana will send the deck"))
    completion, backend = scripted_completion([{"contacts": [{"name": "Dana Lee", "email": "dana@x.com"}]}])

    first = await link_topic_contacts(OWNER, "t1", store=store, completion=completion, settings=settings)
    second = await link_topic_contacts(OWNER, "t1", store=store, completion=completion, settings=settings)

    assert first == second == 1
    assert store.contact_links == {("c1", "t1")}
    assert "Dana Lee <dana@x.com>" in backend.calls[0]["system"]


@pytest.mark.asyncio
async def test_link_topic_contacts_without_records_skips_model(settings):
    store = FakeTopicStore(OWNER)
    completion, backend = scripted_completion([{"contacts": []}])

    assert await link_topic_contacts(OWNER, "t1", store=store, completion=completion, settings=settings) == 0
    assert backend.calls == []


# =======================
# deep dive
# =======================

DEEP_DIVE_RESPONSE = {
    "executive_summary": "The launch is on track.",
    "timeline": [{"date": "2025-05-01", "event": "Kickoff", "participants": ["Dana"]}],
    "decisions": [{"decision": "Pick vendor A", "made_by": "Dana"}],
    "action_items": [{"action": "Send deck", "owner": "Sam"}],
    "people": [{"name": "Dana", "title": "PM"}],
    "risks": ["Venue not booked"],
    "recommendations": [{"what": "Book venue", "why": "Lead time", "lead": "Sam"}],
}


@pytest.mark.asyncio
async def test_deep_dive_saves_markdown_summary(settings):
    store = FakeTopicStore(OWNER)
    store.add_topic(Topic(id="t1", title="Launch", description="Ship v2"))
    store.add_record(_record("m1", topic_id="t1", body="Kickoff notes"))
    completion, backend = scripted_completion([DEEP_DIVE_RESPONSE])

    report = await run_deep_dive(
        OWNER,
        "t1",
        store=store,
        composer=ContextComposer(store, settings),
        completion=completion,
        enrichment=EnrichManyResult(enriched_count=1, failed_count=2),
        settings=settings,
    )

    assert store.summaries["t1"] == report.markdown
    assert report.tokens_used == 10
    call = backend.calls[0]
    assert call["max_tokens"] == settings.DEEP_DIVE_MAX_TOKENS
    assert "Content enrichment: 1 items enriched, 2 failed" in call["user"]
    assert "Kickoff notes" in call["user"]


def test_render_deep_dive_markdown_sections():
    markdown = render_deep_dive_markdown(DeepDiveOutput.model_validate(DEEP_DIVE_RESPONSE))

    for heading in [
        "## Executive Summary",
        "## Detailed Timeline",
        "## Key Decisions Made",
        "## Action Items & Commitments",
        "## People & Roles",
        "## Risks & Blockers",
        "## Strategic Recommendations",
    ]:
        assert heading in markdown
    assert "- **2025-05-01**: Kickoff (Dana)" in markdown
    assert "1. **Book venue**: Lead time (Lead: Sam)" in markdown


def test_render_deep_dive_markdown_omits_empty_sections():
    markdown = render_deep_dive_markdown(DeepDiveOutput(executive_summary="Quiet week."))

    assert markdown == "## Executive Summary\n\nQuiet week."


# =======================
# review recent activity
# =======================

QUERIES = {"gmail_queries": ["after:2025/05/02 launch"], "drive_queries": ["launch deck"]}


def _review_route(ranked):
    def route(system: str, user: str):
        if "search query generator" in system:
            return QUERIES
        return ranked

    return route


@pytest.fixture
def review_setup(settings):
    store = FakeTopicStore(OWNER)
    store.add_topic(Topic(id="t1", title="Launch plan", description="Ship v2"))
    store.add_record(_record("m1", topic_id="t1"))
    store.add_contact(Contact(id="c1", name="Dana Lee", email="dana@x.com"))
    store.contact_links.add(("c1", "t1"))

    gmail = FakeConnector(
        SourceType.GMAIL,
        results=[_record("m1", days_ago=2), _record("m2", days_ago=3), _record("old", days_ago=40)],
    )
    drive = FakeConnector(SourceType.DRIVE, results=[_record("d1", SourceType.DRIVE, days_ago=5)])
    aggregator = CrossSourceSearchAggregator(store, ConnectorRegistry([gmail, drive]), settings)
    return store, aggregator, gmail


@pytest.mark.asyncio
async def test_review_topic_excludes_linked_and_old_then_ranks(review_setup, settings):
    store, aggregator, gmail = review_setup
    ranked = {"ranked": [{"index": 1, "score": 0.9, "reason": "deck"}, {"index": 0, "score": 0.1}]}
    backend = RoutingBackend(_review_route(ranked))

    result = await review_recent_activity(
        OWNER,
        time_period="1m",
        topic_id="t1",
        store=store,
        aggregator=aggregator,
        completion=SchemaValidatedCompletion(backend),
        settings=settings,
        now=NOW,
    )

    assert result.entity_type == "topic"
    assert result.entity_name == "Launch plan"
    assert result.total_before_filter == 4
    assert [q.source for q in result.queries_used] == [SourceType.GMAIL, SourceType.DRIVE]
    assert [r.record.external_id for r in result.results] == ["d1"]
    assert result.results[0].score == 0.9
    assert result.time_range.date_from == NOW - timedelta(days=30)
    assert "after:2025/05/02" in backend.calls[0]["system"]
    assert "gmail:m1" in backend.calls[0]["user"]
    assert gmail.search_calls[0].max_results == 15


@pytest.mark.asyncio
async def test_review_falls_back_to_unranked(review_setup, settings):
    store, aggregator, _ = review_setup
    backend = RoutingBackend(_review_route("cannot rank"))

    result = await review_recent_activity(
        OWNER,
        time_period="1m",
        topic_id="t1",
        store=store,
        aggregator=aggregator,
        completion=SchemaValidatedCompletion(backend),
        settings=settings,
        now=NOW,
    )

    assert [r.record.external_id for r in result.results] == ["m2", "d1"]
    assert all(r.score is None for r in result.results)


@pytest.mark.asyncio
async def test_review_contact_excludes_items_of_linked_topics(review_setup, settings):
    store, aggregator, _ = review_setup
    generate = SchemaValidatedCompletion(RoutingBackend(_review_route({})))
    rank_backend = RoutingBackend(lambda s, u: {"ranked": [{"index": 0, "score": 0.7}, {"index": 1, "score": 0.8}]})

    result = await review_recent_activity(
        OWNER,
        time_period="3m",
        contact_id="c1",
        store=store,
        aggregator=aggregator,
        completion=generate,
        rank_completion=SchemaValidatedCompletion(rank_backend),
        settings=settings,
        now=NOW,
    )

    assert result.entity_type == "contact"
    assert result.entity_name == "Dana Lee"
    # 3m window keeps the 40 day old item; the linked m1 is still excluded
    assert sorted(r.record.external_id for r in result.results) == ["m2", "old"]
    assert len(rank_backend.calls) == 1
    assert '"Dana Lee"' in rank_backend.calls[0]["system"]


@pytest.mark.asyncio
async def test_review_requires_exactly_one_entity(review_setup, settings):
    store, aggregator, _ = review_setup
    completion, _ = scripted_completion([QUERIES])

    for kwargs in ({}, {"topic_id": "t1", "contact_id": "c1"}):
        with pytest.raises(ValueError):
            await review_recent_activity(
                OWNER,
                time_period="15d",
                store=store,
                aggregator=aggregator,
                completion=completion,
                settings=settings,
                **kwargs,
            )
