"""Tests for the single-call AI helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from topicos.chains.ai_functions import (
    analyze_paste,
    classify_area,
    extract_signals,
    summarize_topic,
    topic_urgency_state,
    urgency_score,
)
from topicos.core.exceptions import SchemaValidationFailure
from topicos.core.schemas_records import NormalizedRecord, SourceType, Topic, TopicTask
from tests.fakes.fake_backends import scripted_completion

SIGNALS = {
    "people": [{"name": "Dana Lee", "role": "vendor PM", "email": "dana@x.com"}],
    "orgs": ["Acme"],
    "dates": [{"date": "2025-06-10", "context": "kickoff"}],
    "deadlines": [{"date": "2025-06-20", "description": "Contract signed", "urgency": "high"}],
    "action_items": [{"title": "Send NDA", "assignee": "me", "priority": "high"}],
}

SUMMARY = {
    "summary": "Vendor selection is nearly done.",
    "key_points": ["Acme shortlisted"],
    "risks": ["Legal review pending"],
    "next_steps": [{"action": "Sign contract", "priority": "high", "rationale": "Deadline on the 20th"}],
}

URGENCY = {
    "score": 72,
    "drivers": [{"signal": "deadline", "weight": 0.6, "detail": "Contract due in 3 days"}],
    "explanation": "A hard deadline is close.",
    "suggested_today_actions": [{"action": "Chase legal", "reason": "Blocking signature"}],
}

PASTE = {
    "detected_area": "work",
    "area_confidence": 0.9,
    "matched_topics": [{"topic_id": "t1", "proposed_title": None, "confidence": 0.8, "reason": "Same vendor"}],
    "extracted_tasks": [{"title": "Reply to Dana", "due_date": None, "priority": "medium"}],
    "extracted_people": [{"name": "Dana Lee"}],
    "extracted_deadlines": [],
    "suggested_summary_updates": [{"topic_id": "t1", "update": "Acme sent revised pricing."}],
    "suggested_deliverables": [{"kind": "follow_up", "description": "Confirm pricing"}],
}


class TestClassifyArea:
    @pytest.mark.asyncio
    async def test_valid_classification(self):
        completion, backend = scripted_completion(
            [{"area": "career", "confidence": 0.85, "rationale": "Recruiter outreach"}]
        )

        result = await classify_area("A recruiter reached out about a staff role", completion=completion)

        assert result.data.area == "career"
        assert result.attempts == 1
        assert "A recruiter reached out" in backend.calls[0]["user"]

    @pytest.mark.asyncio
    async def test_unknown_area_is_repaired(self):
        completion, backend = scripted_completion(
            [
                {"area": "hobby", "confidence": 0.5, "rationale": "Guitar"},
                {"area": "personal", "confidence": 0.7, "rationale": "Guitar lessons"},
            ]
        )

        result = await classify_area("Guitar lessons on Tuesday", completion=completion)

        assert result.data.area == "personal"
        assert result.attempts == 2
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_out_of_range_confidence_fails_after_repair(self):
        completion, backend = scripted_completion([{"area": "work", "confidence": 3, "rationale": "x"}])

        with pytest.raises(SchemaValidationFailure):
            await classify_area("Standup notes", completion=completion)

        assert len(backend.calls) == 2


class TestExtractSignals:
    @pytest.mark.asyncio
    async def test_valid_signals(self):
        completion, _ = scripted_completion([SIGNALS])

        result = await extract_signals("Dana from Acme needs the NDA by the 20th", completion=completion)

        assert result.data.people[0].email == "dana@x.com"
        assert result.data.deadlines[0].urgency == "high"
        assert result.data.action_items[0].priority == "high"

    @pytest.mark.asyncio
    async def test_missing_list_is_repaired(self):
        partial = {key: value for key, value in SIGNALS.items() if key != "orgs"}
        completion, backend = scripted_completion([partial, SIGNALS])

        result = await extract_signals("Dana from Acme", completion=completion)

        assert result.data.orgs == ["Acme"]
        assert result.attempts == 2
        assert len(backend.calls) == 2


class TestSummarizeTopic:
    @pytest.mark.asyncio
    async def test_items_are_numbered_with_source(self):
        records = [
            NormalizedRecord(external_id="m1", source=SourceType.GMAIL, title="Pricing", snippet="Revised quote"),
            NormalizedRecord(external_id="s1", source=SourceType.SLACK, title="#vendors", snippet="Legal is on it"),
        ]
        completion, backend = scripted_completion([SUMMARY])

        result = await summarize_topic(records, completion=completion)

        assert result.data.next_steps[0].action == "Sign contract"
        user = backend.calls[0]["user"]
        assert user.startswith("Summarize the following 2 items:")
        assert "[1] (gmail, unknown)" in user
        assert "Snippet: Legal is on it" in user

    @pytest.mark.asyncio
    async def test_bad_priority_is_repaired(self):
        broken = {**SUMMARY, "next_steps": [{"action": "Sign", "priority": "urgent", "rationale": "r"}]}
        completion, backend = scripted_completion([broken, SUMMARY])

        result = await summarize_topic([], completion=completion)

        assert result.data.summary == SUMMARY["summary"]
        assert len(backend.calls) == 2


class TestUrgencyScore:
    @pytest.mark.asyncio
    async def test_topic_state_is_rendered(self):
        completion, backend = scripted_completion([URGENCY])

        result = await urgency_score(
            {
                "title": "Vendor contract",
                "task_count": 5,
                "pending_tasks": 3,
                "upcoming_deadlines": ["2025-06-20 contract"],
                "recent_items": 4,
            },
            completion=completion,
        )

        assert result.data.score == 72
        user = backend.calls[0]["user"]
        assert "Tasks: 3 pending out of 5 total" in user
        assert "Upcoming deadlines: 2025-06-20 contract" in user
        assert "Last updated: unknown" in user

    @pytest.mark.asyncio
    async def test_score_above_100_is_repaired(self):
        completion, backend = scripted_completion([{**URGENCY, "score": 140}, URGENCY])

        result = await urgency_score({"title": "Vendor contract"}, completion=completion)

        assert result.data.score == 72
        assert "Upcoming deadlines: none" in backend.calls[0]["user"]
        assert len(backend.calls) == 2


class TestAnalyzePaste:
    @pytest.mark.asyncio
    async def test_existing_topics_are_listed(self):
        completion, backend = scripted_completion([PASTE])

        result = await analyze_paste(
            "Dana: revised pricing attached", [Topic(id="t1", title="Vendor contract")], completion=completion
        )

        assert result.data.matched_topics[0].topic_id == "t1"
        assert result.data.suggested_deliverables[0].kind == "follow_up"
        assert '- [t1] "Vendor contract" (work)' in backend.calls[0]["user"]

    @pytest.mark.asyncio
    async def test_no_topics_and_repair(self):
        completion, backend = scripted_completion(["not json at all", PASTE])

        result = await analyze_paste("random paste", [], completion=completion)

        assert result.data.detected_area == "work"
        assert "(no existing topics)" in backend.calls[0]["user"]
        assert len(backend.calls) == 2


def test_urgency_state_from_stored_topic():
    now = datetime(2025, 6, 1, tzinfo=timezone.utc)
    topic = Topic(id="t1", title="Vendor contract", due_date="2025-06-30")
    tasks = [
        TopicTask(title="Sign", due_date="2025-06-20"),
        TopicTask(title="Draft", status="done", due_date="2025-05-01"),
    ]
    records = [
        NormalizedRecord(external_id="m1", source=SourceType.GMAIL, occurred_at=now - timedelta(days=2)),
        NormalizedRecord(external_id="m2", source=SourceType.GMAIL, occurred_at=now - timedelta(days=30)),
        NormalizedRecord(external_id="m3", source=SourceType.GMAIL),
    ]

    state = topic_urgency_state(topic, tasks, records, now=now)

    assert state["task_count"] == 2
    assert state["pending_tasks"] == 1
    assert state["upcoming_deadlines"] == ["2025-06-30 topic due", "2025-06-20 Sign"]
    assert state["recent_items"] == 1
    assert state["last_update"] == (now - timedelta(days=2)).isoformat()
