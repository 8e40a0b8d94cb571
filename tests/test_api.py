"""Tests for the v1 API endpoints with in-memory dependencies."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from pydantic import ValidationError

from topicos.api.deps import (
    get_completion,
    get_fast_completion,
    get_registry,
    get_store,
    raise_http_error,
    require_owner,
)
from topicos.connectors.base import ConnectorRegistry
from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.schemas_records import Contact, NormalizedRecord, SourceType, Topic, TopicTask
from topicos.main import app
from tests.fakes.fake_backends import FakeConnector, RoutingBackend, scripted_completion
from tests.fakes.fake_store import FakeTopicStore

OWNER = "owner-1"


@pytest.fixture
def store():
    return FakeTopicStore(OWNER)


@pytest.fixture
def gmail():
    return FakeConnector(
        SourceType.GMAIL,
        results=[NormalizedRecord(external_id="m9", source=SourceType.GMAIL, title="Budget thread")],
        bodies={"m1": "Full kickoff email"},
    )


@pytest.fixture
def client(store, gmail):
    """Test client with auth, store, connectors and completion overridden."""
    completion, _ = scripted_completion([{"queries": ["launch vendor", "launch deck", "launch budget"]}])
    app.dependency_overrides[require_owner] = lambda: OWNER
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_registry] = lambda: ConnectorRegistry([gmail])
    app.dependency_overrides[get_completion] = lambda: completion
    app.dependency_overrides[get_fast_completion] = lambda: completion
    yield TestClient(app)
    app.dependency_overrides.clear()


def _seed_topic(store: FakeTopicStore) -> None:
    store.add_topic(Topic(id="t1", title="Launch plan", description="Ship v2"))
    store.add_record(
        NormalizedRecord(
            id="r1",
            topic_id="t1",
            external_id="m1",
            source=SourceType.GMAIL,
            title="Kickoff",
            occurred_at=datetime(2025, 5, 1, tzinfo=timezone.utc),
        )
    )


def test_topic_context_not_found(client):
    response = client.get("/v1/topics/missing/context")

    assert response.status_code == 404


def test_topic_context(client, store):
    _seed_topic(store)

    response = client.get("/v1/topics/t1/context")

    assert response.status_code == 200
    data = response.json()
    assert data["topic_id"] == "t1"
    assert "Description (ground truth): Ship v2" in data["context"]


def test_enrich_topic(client, store):
    _seed_topic(store)

    response = client.post("/v1/topics/t1/enrich")

    assert response.status_code == 200
    assert response.json() == {"enriched": 1, "failed": 0, "total": 1}
    assert store.body_writes == [("r1", "Full kickoff email")]


def test_batch_enrich_without_topics_is_404(client):
    response = client.post("/v1/topics/batch-enrich", json={"area": "personal"})

    assert response.status_code == 404
    assert response.json()["detail"] == "No active topics found"


def test_batch_enrich_streams_events(client, store):
    store.add_topic(Topic(id="t1", title="Launch plan"))
    backend = RoutingBackend(lambda system, user: {"executive_summary": "Quiet so far."})
    app.dependency_overrides[get_completion] = lambda: SchemaValidatedCompletion(backend)

    response = client.post("/v1/topics/batch-enrich", json={"area": "work"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = [
        json.loads(line[len("data: "):]) for line in response.text.split("\n\n") if line.startswith("data: ")
    ]
    assert [(e["type"], e.get("stage")) for e in events] == [
        ("start", None),
        ("progress", "enrich"),
        ("progress", "contacts"),
        ("progress", "deep_dive"),
        ("progress", "done"),
        ("complete", None),
    ]
    assert events[4]["contacts_linked"] == 0
    assert store.summaries["t1"].startswith("## Executive Summary")


def test_search_reports_per_source_errors(client):
    response = client.post("/v1/search", json={"query": "budget", "sources": ["gmail", "slack"]})

    assert response.status_code == 200
    by_source = {result["source"]: result for result in response.json()}
    assert by_source["gmail"]["items"][0]["external_id"] == "m9"
    assert by_source["slack"]["error"] == "Source not connected"


def test_find_returns_queries(client):
    response = client.post("/v1/ai/find", json={"description": "vendor emails", "topic_title": "Launch"})

    assert response.status_code == 200
    assert response.json() == {"queries": ["launch vendor", "launch deck", "launch budget"]}


def test_find_rejects_empty_description(client):
    response = client.post("/v1/ai/find", json={"description": ""})

    assert response.status_code == 422


def test_review_activity_requires_one_entity(client):
    response = client.post(
        "/v1/ai/review-activity", json={"topic_id": "t1", "contact_id": "c1", "time_period": "1m"}
    )

    assert response.status_code == 400


def test_review_activity_unknown_topic(client):
    response = client.post("/v1/ai/review-activity", json={"topic_id": "nope", "time_period": "15d"})

    assert response.status_code == 404


def test_contact_stats(client, store):
    store.add_contact(Contact(id="c1", name="Dana Lee", email="dana@x.com"))
    store.add_record(
        NormalizedRecord(
            external_id="m1",
            topic_id="t1",
            source=SourceType.GMAIL,
            occurred_at=datetime.now(timezone.utc) - timedelta(days=1),
            metadata={"from": "Dana Lee <dana@x.com>"},
        )
    )

    response = client.post("/v1/contacts/c1/stats")

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 1
    assert data["topic_ids"] == ["t1"]
    assert data["engagement"]["level"] == "active"
    assert data["communication_score"] == 45
    assert store.contact_stats["c1"].count == 1


def test_contact_stats_unknown_contact(client):
    response = client.post("/v1/contacts/ghost/stats")

    assert response.status_code == 404


def test_model_validation_error_maps_to_500():
    with pytest.raises(ValidationError) as validation:
        Topic.model_validate({"title": "No id"})

    with pytest.raises(HTTPException) as raised:
        raise_http_error(validation.value, "Deep dive")

    assert raised.value.status_code == 500


def test_plain_value_error_maps_to_400():
    with pytest.raises(HTTPException) as raised:
        raise_http_error(ValueError("Provide topic_id or contact_id"), "Review activity")

    assert raised.value.status_code == 400
    assert raised.value.detail == "Provide topic_id or contact_id"


def _use_completion(responses: list) -> object:
    completion, backend = scripted_completion(responses)
    app.dependency_overrides[get_completion] = lambda: completion
    app.dependency_overrides[get_fast_completion] = lambda: completion
    return backend


def test_classify(client):
    _use_completion([{"area": "personal", "confidence": 0.8, "rationale": "Dentist"}])

    response = client.post("/v1/ai/classify", json={"text": "Dentist appointment Friday"})

    assert response.status_code == 200
    assert response.json()["area"] == "personal"


def test_classify_schema_failure_is_500(client):
    _use_completion([{"area": "hobby"}])

    response = client.post("/v1/ai/classify", json={"text": "Guitar"})

    assert response.status_code == 500


def test_extract_signals(client):
    _use_completion(
        [{"people": [{"name": "Dana Lee"}], "orgs": [], "dates": [], "deadlines": [], "action_items": []}]
    )

    response = client.post("/v1/ai/extract-signals", json={"text": "Call Dana"})

    assert response.status_code == 200
    assert response.json()["people"][0]["name"] == "Dana Lee"


def test_paste_lists_active_topics_of_every_area(client, store):
    store.add_topic(Topic(id="t1", title="Launch plan"))
    store.add_topic(Topic(id="t2", title="Job search", area="career"))
    backend = _use_completion(
        [
            {
                "detected_area": "career",
                "area_confidence": 0.9,
                "matched_topics": [],
                "extracted_tasks": [],
                "extracted_people": [],
                "extracted_deadlines": [],
                "suggested_summary_updates": [],
                "suggested_deliverables": [],
            }
        ]
    )

    response = client.post("/v1/ai/paste", json={"text": "Recruiter call notes"})

    assert response.status_code == 200
    assert response.json()["detected_area"] == "career"
    assert "[t1]" in backend.calls[0]["user"]
    assert "[t2]" in backend.calls[0]["user"]


def test_paste_rejects_empty_text(client):
    response = client.post("/v1/ai/paste", json={"text": ""})

    assert response.status_code == 422


def test_summarize(client, store):
    _seed_topic(store)
    backend = _use_completion([{"summary": "Kicked off.", "key_points": [], "risks": [], "next_steps": []}])

    response = client.post("/v1/ai/summarize", json={"topic_id": "t1"})

    assert response.status_code == 200
    assert response.json()["summary"] == "Kicked off."
    assert "Title: Kickoff" in backend.calls[0]["user"]


def test_summarize_unknown_topic(client):
    response = client.post("/v1/ai/summarize", json={"topic_id": "nope"})

    assert response.status_code == 404


def test_urgency(client, store):
    _seed_topic(store)
    store.tasks["t1"] = [TopicTask(title="Book venue", due_date="2025-06-01"), TopicTask(title="Old", status="done")]
    backend = _use_completion(
        [{"score": 55, "drivers": [], "explanation": "Moderate.", "suggested_today_actions": []}]
    )

    response = client.post("/v1/ai/urgency", json={"topic_id": "t1"})

    assert response.status_code == 200
    assert response.json()["score"] == 55
    user = backend.calls[0]["user"]
    assert "Tasks: 1 pending out of 2 total" in user
    assert "2025-06-01 Book venue" in user


def test_triage_persists_verdicts_for_untriaged_records(client, store):
    store.add_record(NormalizedRecord(id="r1", external_id="m1", source=SourceType.GMAIL, title="Invoice"))
    store.add_record(
        NormalizedRecord(id="r2", external_id="m2", source=SourceType.GMAIL, title="Sale!", triage_status="noise")
    )
    backend = _use_completion(
        [{"items": [{"item_id": "r1", "triage_status": "relevant", "triage_score": 0.8, "triage_reason": "Bill"}]}]
    )

    response = client.post("/v1/ai/triage", json={"limit": 10})

    assert response.status_code == 200
    assert [item["item_id"] for item in response.json()["items"]] == ["r1"]
    assert store.triage_writes == {"r1": ("relevant", 0.8, "Bill")}
    assert 'id="r2"' not in backend.calls[0]["user"]


def test_auto_link_route(client, store):
    _seed_topic(store)
    store.add_record(NormalizedRecord(id="r7", topic_id="t9", external_id="m7", source=SourceType.GMAIL, title="Venue"))
    _use_completion([{"matches": [{"item_id": "r7", "relevance": 0.9, "reason": "Launch venue"}], "summary": "1"}])

    response = client.post("/v1/topics/t1/auto-link")

    assert response.status_code == 200
    data = response.json()
    assert data["items_scanned"] == 1
    assert data["items_linked"] == 1
    assert data["topic_title"] == "Launch plan"
    assert store.record_links == [("t1", "gmail:m7", 0.9, "Launch venue")]


def test_auto_link_unknown_topic(client):
    response = client.post("/v1/topics/nope/auto-link")

    assert response.status_code == 404
