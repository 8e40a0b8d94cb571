"""Semantic relevance ranking of search candidates via the completion backend."""

from typing import Sequence

from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.exceptions import BackendError, SchemaValidationFailure
from topicos.core.logging import get_logger
from topicos.core.schemas_ai import RankedIndex, RankResultsOutput
from topicos.core.schemas_records import NormalizedRecord, RankedCandidate

logger = get_logger(__name__)

RELEVANCE_FLOOR = 0.3
SNIPPET_CHARS = 250

# ruff: noqa: E501
RANKING_SYSTEM_PROMPT = """You are ranking search results by relevance to a {entity_type}. Score each result 0.0-1.0 and provide a brief reason why it's relevant.

The {entity_type} is: "{entity_name}"

Score HIGHER if:
- Directly discusses the same subject, project, or person
- Involves the same people or organizations
- References related deliverables, meetings, or milestones
- Is recent and actionable

Score LOWER if:
- Only tangentially related
- Generic or boilerplate content
- Automated notifications with low informational value

Only include results with score >= 0.3. Sort by score descending.
Return JSON: {{ "ranked": [{{ "index": 0, "score": 0.95, "reason": "Brief explanation" }}] }}"""


def build_ranking_prompt(
    entity_name: str,
    candidates: Sequence[NormalizedRecord],
    entity_type: str = "topic",
    context: str | None = None,
) -> str:
    """List candidates by index for the ranking call."""
    label = "Topic" if entity_type == "topic" else "Contact"
    lines = [f"{label}: {entity_name}"]
    if context:
        lines.append(context)
    lines.append("")
    lines.append(f"Search Results ({len(candidates)} items):")
    for index, record in enumerate(candidates):
        lines.append(f"{index}. [{record.source.value}] {record.title}")
        lines.append(f"   {(record.snippet or '')[:SNIPPET_CHARS]}")
    return "\n".join(lines)


def apply_ranking(
    candidates: Sequence[NormalizedRecord],
    ranked: Sequence[RankedIndex],
    floor: float = RELEVANCE_FLOOR,
) -> list[RankedCandidate]:
    """
    Turn backend scores into the final ordered list.

    Out-of-range indices and scores below ``floor`` are dropped, as is any
    repeat of an index already kept (first occurrence wins); the rest is
    sorted by score descending, ties kept in backend order.
    """
    kept: list[RankedCandidate] = []
    seen: set[int] = set()
    for item in ranked:
        if not 0 <= item.index < len(candidates) or item.score < floor or item.index in seen:
            continue
        seen.add(item.index)
        kept.append(RankedCandidate(record=candidates[item.index], score=item.score, reason=item.reason))
    return sorted(kept, key=lambda candidate: candidate.score, reverse=True)


def unranked(candidates: Sequence[NormalizedRecord]) -> list[RankedCandidate]:
    return [RankedCandidate(record=record, score=None, reason=None) for record in candidates]


class RelevanceRanker:
    """Scores candidates against a topic (or contact). Never raises on bad model output."""

    def __init__(self, completion: SchemaValidatedCompletion):
        self.completion = completion
        self.tokens_used = 0

    async def rank(
        self,
        entity_name: str,
        candidates: Sequence[NormalizedRecord],
        entity_type: str = "topic",
        context: str | None = None,
    ) -> list[RankedCandidate]:
        """
        Rank candidates by relevance.

        The caller bounds ``candidates``; everything passed is sent.

        Args:
            entity_name: Topic title (or contact name)
            candidates: De-duplicated candidates
            entity_type: "topic" or "contact"
            context: Optional extra context (e.g. ground-truth block)

        Returns:
            Ranked candidates, or all candidates with ``score=None`` if ranking failed
        """
        if not candidates:
            return []

        system_prompt = RANKING_SYSTEM_PROMPT.format(entity_type=entity_type, entity_name=entity_name)
        user_prompt = build_ranking_prompt(entity_name, candidates, entity_type, context)

        try:
            result = await self.completion.complete(system_prompt, user_prompt, RankResultsOutput)
        except SchemaValidationFailure as e:
            logger.warning(f"Ranking degraded to unranked results: {e}", extra={"errors": e.errors[:5]})
            return unranked(candidates)
        except BackendError as e:
            logger.warning(f"Ranking backend unavailable, returning unranked results: {e}")
            return unranked(candidates)

        self.tokens_used += result.tokens_consumed
        ranked = apply_ranking(candidates, result.data.ranked)
        logger.info(
            f"Ranked {len(candidates)} candidates for '{entity_name}': {len(ranked)} kept",
            extra={"tokens": result.tokens_consumed},
        )
        return ranked
