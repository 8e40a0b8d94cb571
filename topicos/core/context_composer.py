"""Bounded prompt context assembly for a topic.

Sections are emitted in priority order:

1. Ground truth anchor (title / description / goal, verbatim)
2. Previous AI summary and next steps
3. User notes (quick notes + manual note records)
4. Linked records, budgeted per item and in total
5. Active tasks
6. Ancestor topics (parent, grandparent)
7. Ancestor records, lowest priority

Rendering is a pure function of the loaded ``TopicContext`` so the same
topic state always yields the same text.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Sequence

from topicos.core.config import Settings, get_settings
from topicos.core.logging import get_logger
from topicos.core.schemas_records import (
    NextStep,
    NormalizedRecord,
    SourceType,
    Topic,
    TopicContext,
    TopicTask,
)
from topicos.db.store import TopicStore

logger = get_logger(__name__)

MANUAL_NOTE_CHARS = 500
ANCESTOR_SNIPPET_CHARS = 200
ELLIPSIS = "..."


@dataclass
class RecordBudgetStats:
    """How the linked-records section spent its budget."""

    full_body: int = 0
    snippet_only: int = 0
    chars_used: int = 0


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + ELLIPSIS


def _format_next_steps(steps: Sequence[NextStep]) -> str:
    return "\n".join(f"- [{step.priority}] {step.action} -- {step.rationale}" for step in steps)


def build_ground_truth_section(topic: Topic) -> str:
    """Anchor block: the user's own title/description/goal are the primary lens."""
    if not topic.description and not topic.goal:
        section = (
            "=== TOPIC FOCUS ===\n"
            f"Title: {topic.title}\n"
            "Note: The user chose this title deliberately. Keep analysis focused on what this title implies.\n"
        )
    else:
        lines = [
            "=== GROUND TRUTH (CORE FOCUS) ===",
            "The user has DELIBERATELY chosen this title and description. They define the CORE FOCUS of this topic.",
            "ALL analysis MUST be filtered through this lens. Items that are tangential to this stated focus "
            "should be acknowledged but de-prioritized.",
            "Do NOT let the volume of tangential items overshadow the core focus.",
            "",
            f"Title (ground truth): {topic.title}",
        ]
        if topic.description:
            lines.append(f"Description (ground truth): {topic.description}")
        if topic.goal:
            lines.append(f"Goal (ground truth): {topic.goal}")
        section = "\n".join(lines) + "\n"
    return section + "===\n"


def build_prior_analysis_section(topic: Topic) -> str:
    parts = []
    if topic.summary:
        parts.append(f"Previous AI Summary:\n{topic.summary}")
    if topic.next_steps:
        parts.append(f"Previous AI Next Steps:\n{_format_next_steps(topic.next_steps)}")
    return "\n\n".join(parts)


def build_topic_details_section(topic: Topic) -> str:
    return "\n".join(
        [
            f"Topic: {topic.title}",
            f"Description: {topic.description or 'None'}",
            f"Area: {topic.area}",
            f"Status: {topic.status}",
            f"Tags: {', '.join(topic.tags) or 'None'}",
            f"Due date: {topic.due_date or 'Not set'}",
            f"Goal: {topic.goal or 'Not set'}",
        ]
    )


def build_notes_section(notes: str | None, manual_notes: Sequence[NormalizedRecord]) -> str:
    parts = []
    if notes:
        parts.append(f"Quick Notes:\n{notes}")
    if manual_notes:
        entries = []
        for i, note in enumerate(manual_notes, start=1):
            content = note.metadata.get("content") or note.snippet or ""
            date = note.occurred_at.isoformat() if note.occurred_at else "unknown"
            entries.append(f"{i}. [Note] {note.title}\n   {content[:MANUAL_NOTE_CHARS]}\n   Date: {date}")
        parts.append(f"Manual Notes ({len(manual_notes)}):\n" + "\n\n".join(entries))
    if not parts:
        return ""
    return "--- User Notes ---\n" + "\n\n".join(parts)


def _record_header(index: int, record: NormalizedRecord) -> str:
    meta = record.metadata
    date = record.occurred_at.isoformat() if record.occurred_at else "unknown"
    lines = [f"--- Item {index} [{record.source.value}] ---", f"Title: {record.title}", f"Date: {date}"]
    if meta.get("from"):
        lines.append(f"From: {meta['from']}")
    if meta.get("to"):
        lines.append(f"To: {meta['to']}")
    attendees = meta.get("attendees")
    if attendees:
        if isinstance(attendees, list):
            attendees = ", ".join(str(a) for a in attendees)
        lines.append(f"Attendees: {attendees}")
    if meta.get("channel_name"):
        lines.append(f"Channel: #{meta['channel_name']}")
    return "\n".join(lines)


def build_records_section(
    records: Sequence[NormalizedRecord],
    item_char_cap: int,
    total_char_cap: int,
) -> tuple[str, RecordBudgetStats]:
    """
    Render linked records under per-item and total budgets.

    Bodies are clipped to ``item_char_cap``. Once including the next body
    would exceed ``total_char_cap``, that record and every later one are
    rendered snippet-only. No record is ever omitted.
    """
    stats = RecordBudgetStats()
    if not records:
        return "", stats

    budget_exhausted = False
    blocks = []
    for index, record in enumerate(records, start=1):
        header = _record_header(index, record)
        body = _clip(record.body, item_char_cap) if record.body else ""

        if body and not budget_exhausted and stats.chars_used + len(body) <= total_char_cap:
            stats.chars_used += len(body)
            stats.full_body += 1
            blocks.append(f"{header}\nContent:\n{body}")
            continue

        if body:
            budget_exhausted = True
        stats.snippet_only += 1
        blocks.append(f"{header}\nSnippet:\n{_clip(record.snippet or '', item_char_cap)}")

    section = f"Full Content of {len(records)} Linked Items:\n" + "\n\n".join(blocks)
    return section, stats


def build_tasks_section(tasks: Sequence[TopicTask]) -> str:
    if not tasks:
        return ""

    lines = []
    for task in tasks:
        status = "In Progress" if task.status == "in_progress" else task.status.capitalize()
        line = f"- [{status}] [{task.priority.capitalize()}] {task.title}"
        if task.assignee:
            line += f" (Responsible: {task.assignee})"
        if task.due_date:
            line += f" -- Due: {task.due_date}"
        if task.description:
            line += f"\n  {task.description}"
        lines.append(line)
    return "=== TOPIC TASKS ===\n" + "\n".join(lines) + "\n==="


def build_ancestor_section(ancestors: Sequence[Topic]) -> str:
    if not ancestors:
        return ""

    parts = []
    for i, ancestor in enumerate(ancestors):
        level = "Parent Topic" if i == 0 else "Grandparent Topic"
        parts.append(
            f"{level}: {ancestor.title}\n"
            f"  Description: {ancestor.description or 'None'}\n"
            f"  Tags: {', '.join(ancestor.tags) or 'None'}\n"
            f"  Goal: {ancestor.goal or 'None'}"
        )
    return (
        "--- Topic Hierarchy Context (this is a sub-topic) ---\n"
        "This topic exists within a larger topic hierarchy. Consider the parent context when analyzing:\n"
        + "\n\n".join(parts)
    )


def build_ancestor_records_section(
    ancestors: Sequence[Topic], ancestor_records: dict[str, list[NormalizedRecord]]
) -> str:
    parts = []
    for ancestor in ancestors:
        records = ancestor_records.get(ancestor.id) or []
        if not records:
            continue
        lines = [
            f"  [{record.source.value}] {record.title}: {(record.snippet or '')[:ANCESTOR_SNIPPET_CHARS]}"
            for record in records
        ]
        parts.append(f'Items from parent topic "{ancestor.title}" ({len(records)}):\n' + "\n".join(lines))

    if not parts:
        return ""
    return (
        "--- Parent Topic Items (supplementary context, lower priority than this topic's own items) ---\n"
        + "\n\n".join(parts)
    )


def format_records_for_extraction(records: Sequence[NormalizedRecord], preview_chars: int) -> str:
    """Compact record listing with people headers, used by contact extraction."""
    blocks = []
    for record in records:
        meta = record.metadata
        content = record.body or record.snippet or ""
        header = f"[{record.source.value}] {record.title}"
        if meta.get("from"):
            header += f"\nFrom: {meta['from']}"
        if meta.get("to"):
            header += f"\nTo: {meta['to']}"
        if meta.get("cc"):
            header += f"\nCC: {meta['cc']}"
        if meta.get("attendees"):
            header += f"\nAttendees: {json.dumps(meta['attendees'], default=str)}"
        blocks.append(f"{header}\n{_clip(content, preview_chars)}")
    return "\n---\n".join(blocks)


class ContextComposer:
    """Loads topic state from the store and renders bounded prompt context."""

    def __init__(self, store: TopicStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    async def build(self, owner_id: str, topic_id: str) -> TopicContext:
        """Load everything the context needs for one request."""
        settings = self.settings
        topic = await self.store.get_topic(owner_id, topic_id)

        ancestors, tasks, manual_notes, records = await asyncio.gather(
            self.store.get_topic_ancestors(owner_id, topic_id, max_depth=2),
            self.store.list_tasks(owner_id, topic_id, limit=settings.CONTEXT_MAX_TASKS),
            self.store.list_records_for_topic(
                owner_id, topic_id, limit=settings.CONTEXT_MAX_MANUAL_NOTES, source=SourceType.MANUAL
            ),
            self.store.list_records_for_topic(
                owner_id, topic_id, limit=settings.CONTEXT_MAX_RECORDS, ascending=True
            ),
        )

        ancestor_records: dict[str, list[NormalizedRecord]] = {}
        for ancestor in ancestors:
            ancestor_records[ancestor.id] = await self.store.list_records_for_topic(
                owner_id, ancestor.id, limit=settings.CONTEXT_ANCESTOR_ITEMS_PER_ANCESTOR
            )

        return TopicContext(
            topic=topic,
            ancestors=ancestors[:2],
            tasks=tasks,
            manual_notes=manual_notes,
            records=[record for record in records if record.source != SourceType.MANUAL],
            ancestor_records=ancestor_records,
        )

    def render(self, context: TopicContext, extra_sections: Sequence[str] = ()) -> str:
        """Render a loaded context into prompt text, highest priority first."""
        topic = context.topic
        records_section, stats = build_records_section(
            context.records,
            item_char_cap=self.settings.CONTEXT_ITEM_CHAR_CAP,
            total_char_cap=self.settings.CONTEXT_TOTAL_CHAR_CAP,
        )
        if stats.snippet_only:
            logger.debug(
                f"Context budget for topic {topic.id}: {stats.full_body} full, {stats.snippet_only} snippet-only"
            )

        sections = [
            build_ground_truth_section(topic),
            build_prior_analysis_section(topic),
            build_topic_details_section(topic),
            build_notes_section(topic.notes, context.manual_notes),
            *extra_sections,
            records_section,
            build_tasks_section(context.tasks),
            build_ancestor_section(context.ancestors),
            build_ancestor_records_section(context.ancestors, context.ancestor_records),
        ]
        return "\n\n".join(section for section in sections if section)

    async def compose(self, owner_id: str, topic_id: str, extra_sections: Sequence[str] = ()) -> str:
        """Build and render context for a topic."""
        context = await self.build(owner_id, topic_id)
        return self.render(context, extra_sections)
