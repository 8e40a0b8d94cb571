"""Deep dive: long-form structured analysis of a topic, written back as its summary."""

from dataclasses import dataclass

from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.config import Settings, get_settings
from topicos.core.context_composer import ContextComposer
from topicos.core.llm_usage import log_llm_usage
from topicos.core.logging import get_logger
from topicos.core.schemas_ai import DeepDiveOutput
from topicos.core.schemas_records import EnrichManyResult
from topicos.db.store import TopicStore

logger = get_logger(__name__)

# ruff: noqa: E501
SYSTEM_PROMPT = """You are performing a DEEP DIVE analysis of a topic/project. You have access to FULL CONTENT of linked items.

CRITICAL INSTRUCTIONS:
- The topic's title and description define its CORE FOCUS.
- READ every email body completely: they contain decisions, commitments, questions, and context
- CROSS-REFERENCE across sources
- TRACK conversation threads

Return a JSON object with:
- executive_summary: 3-5 sentences capturing the full picture
- timeline: chronological array of {date, event, participants[]} covering ALL events
- decisions: array of {decision, made_by, date, trigger}
- action_items: array of {action, owner, deadline, status, source}
- people: array of {name, title, organization, role_in_topic}
- risks: array of unresolved questions, waiting items, potential conflicts
- recommendations: 3-5 items of {what, why, timeline, lead}

Be EXTREMELY specific. Reference actual content, dates, people."""


@dataclass
class DeepDiveReport:
    analysis: DeepDiveOutput
    markdown: str
    tokens_used: int


def _or_dash(value: str | None) -> str:
    return value or "-"


def render_deep_dive_markdown(analysis: DeepDiveOutput) -> str:
    """Render the structured analysis as the markdown summary stored on the topic."""
    parts = ["## Executive Summary", analysis.executive_summary.strip()]

    if analysis.timeline:
        parts.append("## Detailed Timeline")
        for entry in analysis.timeline:
            who = f" ({', '.join(entry.participants)})" if entry.participants else ""
            parts.append(f"- **{entry.date}**: {entry.event}{who}")

    if analysis.decisions:
        parts.append("## Key Decisions Made")
        for decision in analysis.decisions:
            parts.append(
                f"- {decision.decision} (by {_or_dash(decision.made_by)}, {_or_dash(decision.date)}; "
                f"trigger: {_or_dash(decision.trigger)})"
            )

    if analysis.action_items:
        parts.append("## Action Items & Commitments")
        for item in analysis.action_items:
            parts.append(
                f"- {item.action} | Owner: {_or_dash(item.owner)} | Deadline: {_or_dash(item.deadline)} "
                f"| Status: {_or_dash(item.status)} | Source: {_or_dash(item.source)}"
            )

    if analysis.people:
        parts.append("## People & Roles")
        for person in analysis.people:
            parts.append(
                f"- **{person.name}**, {_or_dash(person.title)} at {_or_dash(person.organization)}: "
                f"{_or_dash(person.role_in_topic)}"
            )

    if analysis.risks:
        parts.append("## Risks & Blockers")
        parts.extend(f"- {risk}" for risk in analysis.risks)

    if analysis.recommendations:
        parts.append("## Strategic Recommendations")
        for i, rec in enumerate(analysis.recommendations, start=1):
            line = f"{i}. **{rec.what}**: {rec.why}"
            if rec.timeline:
                line += f" (Timeline: {rec.timeline})"
            if rec.lead:
                line += f" (Lead: {rec.lead})"
            parts.append(line)

    return "\n\n".join(parts)


async def run_deep_dive(
    owner_id: str,
    topic_id: str,
    *,
    store: TopicStore,
    composer: ContextComposer,
    completion: SchemaValidatedCompletion,
    enrichment: EnrichManyResult | None = None,
    settings: Settings | None = None,
) -> DeepDiveReport:
    """
    Analyze a topic from its full context and save the result as its summary.

    Args:
        owner_id: Topic owner
        topic_id: Topic to analyze
        store: Persistence (summary write-back)
        composer: Context builder
        completion: Completion wrapper
        enrichment: Enrichment counts to mention in the prompt
        settings: Settings override

    Returns:
        DeepDiveReport with the structured analysis and its markdown rendering

    Raises:
        SchemaValidationFailure: If the analysis never validates
        BackendError: If the completion backend fails
    """
    settings = settings or get_settings()
    extra = []
    if enrichment is not None:
        extra.append(
            f"Content enrichment: {enrichment.enriched_count} items enriched, "
            f"{enrichment.failed_count} failed"
        )
    context = await composer.compose(owner_id, topic_id, extra_sections=extra)

    result = await completion.complete(
        SYSTEM_PROMPT, context, DeepDiveOutput, max_tokens=settings.DEEP_DIVE_MAX_TOKENS
    )
    await log_llm_usage(
        workflow="deep_dive",
        model=result.model,
        provider=completion.provider,
        tokens=result.tokens_consumed,
        user_id=owner_id,
        topic_id=topic_id,
    )

    markdown = render_deep_dive_markdown(result.data)
    await store.update_topic_summary(owner_id, topic_id, markdown)
    logger.info(
        f"Deep dive complete for topic {topic_id}",
        extra={"tokens": result.tokens_consumed, "attempts": result.attempts},
    )
    return DeepDiveReport(analysis=result.data, markdown=markdown, tokens_used=result.tokens_consumed)
