"""Single-call AI helpers: classification, suggestions, signals, summaries, deliverables."""

from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from topicos.core.completion import CompletionResult, SchemaValidatedCompletion
from topicos.core.logging import get_logger
from topicos.core.schemas_ai import (
    ClassifyAreaOutput,
    DeliverableKind,
    ExtractSignalsOutput,
    GenerateDeliverableOutput,
    PasteAnalysisOutput,
    SuggestTopicsOutput,
    SummarizeTopicOutput,
    UrgencyScoreOutput,
)
from topicos.core.schemas_records import NormalizedRecord, Topic, TopicTask

logger = get_logger(__name__)

CLOSED_TASK_STATUSES = frozenset({"done", "completed", "archived"})

# ruff: noqa: E501
CLASSIFY_AREA_PROMPT = """You are a life-area classifier for a personal productivity system called TopicOS.
Given a piece of text (an email, note, calendar event, etc.), classify it into one of three areas:
- "personal": family, health, hobbies, finance, personal errands
- "career": job search, professional development, networking, skills
- "work": current job tasks, projects, meetings, coworkers

Respond with a JSON object containing:
- area: one of "personal", "career", "work"
- confidence: a number between 0 and 1
- rationale: a brief explanation of your classification"""

SUGGEST_TOPICS_PROMPT = """You are a topic-matching engine for TopicOS, a personal productivity system.
Given a piece of text and a list of existing topics, suggest which topics the text relates to.
You may suggest existing topics (by topic_id) or propose new topics (with proposed_title, topic_id as null).

For each suggestion provide:
- topic_id: id of the existing topic, or null if proposing a new topic
- proposed_title: null if matching an existing topic, or a title string for a new topic
- confidence: 0-1 how confident you are in the match
- reason: why this topic matches
- evidence: the specific text fragment that supports the match

Return a JSON object with a "suggestions" array. Include all relevant matches.
If nothing matches at all, return an empty suggestions array."""

EXTRACT_SIGNALS_PROMPT = """You are a signal extraction engine for TopicOS, a personal productivity system.
Given a piece of text, extract structured signals:

- people: array of {name, role? (their role/relationship), email? (if found)}
- orgs: array of organization/company name strings
- dates: array of {date (ISO 8601), context (what the date refers to)}
- deadlines: array of {date (ISO 8601), description, urgency ("low"|"medium"|"high"|"critical")}
- action_items: array of {title, assignee? (who should do it), due_date? (ISO 8601), priority ("low"|"medium"|"high")}

Only include signals you are confident about. Do not hallucinate information.
For dates, use ISO 8601 format (YYYY-MM-DD). If only a relative date is mentioned, leave it as a descriptive string."""

SUMMARIZE_TOPIC_PROMPT = """You are a topic summarizer for TopicOS, a personal productivity system.
Given a set of items (emails, calendar events, documents, notes) linked to a topic,
produce a concise but thorough summary.

Return a JSON object with:
- summary: a 2-4 sentence overview of the topic based on these items
- key_points: array of the most important facts or developments
- risks: array of any risks, blockers, or concerns identified
- next_steps: array of {action, priority ("low"|"medium"|"high"), rationale}

Focus on actionable insights. Be specific, not generic."""

URGENCY_SCORE_PROMPT = """You are an urgency scoring engine for TopicOS, a personal productivity system.
Given the current state of a topic, assign an urgency score from 0 to 100.

Consider these factors:
- Number of pending tasks vs total tasks
- How recent the last update was
- Upcoming deadlines and their proximity
- Volume of recent activity (more items = more active = potentially more urgent)

Return a JSON object with:
- score: integer 0-100
- drivers: array of {signal (what factor), weight (0-1 how much it contributed), detail (explanation)}
- explanation: a sentence explaining the overall urgency level
- suggested_today_actions: array of {action, reason} things the user should do today"""

GENERATE_DELIVERABLE_PROMPT = """You are a deliverable generator for TopicOS, a personal productivity system.
Generate a "{kind}" deliverable based on the topic context provided.

Supported kinds: email, follow_up, report, project_plan, meeting_agenda, status_update.

Return a JSON object with:
- kind: "{kind}"
- title: a descriptive title for the deliverable
- content: the full deliverable text in markdown format
- missing_info: array of {{what (info needed), why (why it matters)}} for anything you could not determine
- metadata: optional object with any extra structured data

Make the content professional, clear, and ready to use with minimal editing."""

ANALYZE_PASTE_PROMPT = """You are a paste analysis engine for TopicOS, a personal productivity system.
When a user pastes text into the system, analyze it comprehensively.

Given the pasted text and a list of existing topics, return a JSON object with:
- detected_area: "personal" | "career" | "work"
- area_confidence: 0-1
- matched_topics: array of {topic_id (id or null), proposed_title (string or null), confidence (0-1), reason}
  - Use topic_id for existing topics, proposed_title for new topic suggestions
- extracted_tasks: array of {title, due_date (ISO 8601 or null), priority ("low"|"medium"|"high")}
- extracted_people: array of {name, role?}
- extracted_deadlines: array of {date (ISO 8601), description}
- suggested_summary_updates: array of {topic_id, update (text to append to summary)}
  - Only for existing topics that should have their summaries updated based on this new info
- suggested_deliverables: array of {kind ("email"|"follow_up"|"report"|"project_plan"|"meeting_agenda"|"status_update"), description}

Be thorough but precise. Only suggest matches and extractions you are confident about."""


def format_topic_list(topics: Sequence[Topic]) -> str:
    if not topics:
        return "(no existing topics)"
    return "\n".join(f'- [{topic.id}] "{topic.title}" ({topic.area})' for topic in topics)


async def classify_area(
    text: str, *, completion: SchemaValidatedCompletion
) -> CompletionResult[ClassifyAreaOutput]:
    """Classify text into personal / career / work."""
    return await completion.complete(
        CLASSIFY_AREA_PROMPT, f"Classify the following text:\n\n{text}", ClassifyAreaOutput
    )


async def suggest_topics(
    text: str,
    existing_topics: Sequence[Topic],
    *,
    completion: SchemaValidatedCompletion,
) -> CompletionResult[SuggestTopicsOutput]:
    """Match text against existing topics, or propose new ones."""
    user_prompt = "\n".join(
        ["Existing topics:", format_topic_list(existing_topics), "", "Text to analyze:", text]
    )
    result = await completion.complete(SUGGEST_TOPICS_PROMPT, user_prompt, SuggestTopicsOutput)

    # Suggestions may only reference topics that were offered
    known_ids = {topic.id for topic in existing_topics}
    result.data.suggestions = [
        suggestion
        for suggestion in result.data.suggestions
        if suggestion.topic_id is None or suggestion.topic_id in known_ids
    ]
    return result


async def extract_signals(
    text: str, *, completion: SchemaValidatedCompletion
) -> CompletionResult[ExtractSignalsOutput]:
    """Extract people, orgs, dates, deadlines and action items from text."""
    return await completion.complete(
        EXTRACT_SIGNALS_PROMPT, f"Extract signals from the following text:\n\n{text}", ExtractSignalsOutput
    )


async def summarize_topic(
    records: Sequence[NormalizedRecord], *, completion: SchemaValidatedCompletion
) -> CompletionResult[SummarizeTopicOutput]:
    """Summarize a topic from its records' titles and snippets."""
    items = []
    for i, record in enumerate(records, start=1):
        occurred = record.occurred_at.isoformat() if record.occurred_at else "unknown"
        items.append(
            f"[{i}] ({record.source.value}, {occurred})\nTitle: {record.title}\nSnippet: {record.snippet}"
        )
    user_prompt = f"Summarize the following {len(records)} items:\n\n" + "\n\n".join(items)
    return await completion.complete(SUMMARIZE_TOPIC_PROMPT, user_prompt, SummarizeTopicOutput)


async def urgency_score(
    topic_state: dict[str, Any], *, completion: SchemaValidatedCompletion
) -> CompletionResult[UrgencyScoreOutput]:
    """
    Score a topic's urgency from 0 to 100.

    Args:
        topic_state: title, description, task_count, pending_tasks, last_update,
            upcoming_deadlines, recent_items
        completion: Completion wrapper

    Returns:
        CompletionResult with the urgency score and drivers
    """
    deadlines = topic_state.get("upcoming_deadlines") or []
    user_prompt = "\n".join(
        [
            f"Topic: {topic_state.get('title', '')}",
            f"Description: {topic_state.get('description') or ''}",
            f"Tasks: {topic_state.get('pending_tasks', 0)} pending out of {topic_state.get('task_count', 0)} total",
            f"Last updated: {topic_state.get('last_update', 'unknown')}",
            f"Upcoming deadlines: {', '.join(deadlines) if deadlines else 'none'}",
            f"Recent items (last 7 days): {topic_state.get('recent_items', 0)}",
        ]
    )
    return await completion.complete(URGENCY_SCORE_PROMPT, user_prompt, UrgencyScoreOutput)


async def generate_deliverable(
    kind: DeliverableKind,
    *,
    title: str,
    summary: str,
    items: Sequence[str],
    tasks: Sequence[str],
    completion: SchemaValidatedCompletion,
) -> CompletionResult[GenerateDeliverableOutput]:
    """Draft an email, report, plan, agenda or status update for a topic."""
    user_prompt = "\n".join(
        [
            f"Topic: {title}",
            f"Summary: {summary}",
            "",
            "Related items:",
            *(f"{i}. {item}" for i, item in enumerate(items, start=1)),
            "",
            "Current tasks:",
            *(f"{i}. {task}" for i, task in enumerate(tasks, start=1)),
        ]
    )
    logger.info(f"Generating {kind} deliverable for '{title}'")
    return await completion.complete(
        GENERATE_DELIVERABLE_PROMPT.format(kind=kind), user_prompt, GenerateDeliverableOutput
    )


async def analyze_paste(
    text: str,
    existing_topics: Sequence[Topic],
    *,
    completion: SchemaValidatedCompletion,
) -> CompletionResult[PasteAnalysisOutput]:
    """Analyze pasted text: area, topic matches, tasks, people, deadlines, deliverables."""
    user_prompt = "\n".join(
        ["Existing topics:", format_topic_list(existing_topics), "", "Pasted text:", text]
    )
    return await completion.complete(ANALYZE_PASTE_PROMPT, user_prompt, PasteAnalysisOutput)


def topic_urgency_state(
    topic: Topic,
    tasks: Sequence[TopicTask],
    records: Sequence[NormalizedRecord],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Collect the inputs ``urgency_score`` expects from stored topic data."""
    now = now or datetime.now(timezone.utc)
    pending = [task for task in tasks if task.status not in CLOSED_TASK_STATUSES]
    deadlines = [f"{task.due_date} {task.title}" for task in pending if task.due_date]
    if topic.due_date:
        deadlines.insert(0, f"{topic.due_date} topic due")

    dated = [record.occurred_at for record in records if record.occurred_at]
    dated = [d if d.tzinfo else d.replace(tzinfo=timezone.utc) for d in dated]
    return {
        "title": topic.title,
        "description": topic.description,
        "task_count": len(tasks),
        "pending_tasks": len(pending),
        "last_update": max(dated).isoformat() if dated else "unknown",
        "upcoming_deadlines": deadlines,
        "recent_items": sum(1 for d in dated if now - d <= timedelta(days=7)),
    }
