"""Relevance triage of incoming records (relevant / low_relevance / noise)."""

from dataclasses import dataclass, field
from typing import Sequence

from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.exceptions import BackendError, SchemaValidationFailure
from topicos.core.logging import get_logger
from topicos.core.schemas_ai import TriageBatchOutput, TriageItem
from topicos.core.schemas_records import NormalizedRecord

logger = get_logger(__name__)

TRIAGE_BATCH_SIZE = 30

# ruff: noqa: E501
SYSTEM_PROMPT = """You are the Triage Agent for TopicOS. Score each item's relevance to the user on a 0-1 scale.
- "relevant" (score > 0.6): Requires attention, action, or is about an active project/relationship
- "low_relevance" (score 0.3-0.6): Informational but not actionable right now
- "noise" (score < 0.3): Promotional, automated notifications, spam-like

Be strict about noise. Marketing emails, automated notifications from services, and mass-CC'd threads are usually noise.

Return JSON: { "items": [{ "item_id": "...", "triage_status": "relevant|low_relevance|noise", "triage_score": 0.0, "triage_reason": "..." }] }"""


@dataclass
class TriageResult:
    items: list[TriageItem] = field(default_factory=list)
    tokens_used: int = 0
    failed_batches: int = 0


def _record_key(record: NormalizedRecord) -> str:
    return record.id or record.dedup_key


def build_triage_prompt(batch: Sequence[NormalizedRecord]) -> str:
    lines = []
    for index, record in enumerate(batch):
        line = f'[{index}] id="{_record_key(record)}" source={record.source.value} title="{record.title}"'
        if record.snippet:
            line += f' snippet="{record.snippet}"'
        if record.metadata.get("from"):
            line += f' from="{record.metadata["from"]}"'
        lines.append(line)
    return f"Triage these {len(batch)} items:\n" + "\n".join(lines)


async def triage_records(
    records: Sequence[NormalizedRecord],
    *,
    completion: SchemaValidatedCompletion,
    batch_size: int = TRIAGE_BATCH_SIZE,
) -> TriageResult:
    """
    Classify records in batches.

    A batch whose output never validates (or whose backend call fails) is
    skipped and counted; other batches are unaffected. Verdicts for ids
    that were not in the batch are discarded.
    """
    result = TriageResult()

    for start in range(0, len(records), batch_size):
        batch = records[start : start + batch_size]
        batch_keys = {_record_key(record) for record in batch}

        try:
            completed = await completion.complete(SYSTEM_PROMPT, build_triage_prompt(batch), TriageBatchOutput)
        except (SchemaValidationFailure, BackendError) as e:
            logger.error(f"Triage batch starting at {start} failed: {e}")
            result.failed_batches += 1
            continue

        result.tokens_used += completed.tokens_consumed
        result.items.extend(item for item in completed.data.items if item.item_id in batch_keys)

    logger.info(
        f"Triaged {len(result.items)} of {len(records)} records",
        extra={"failed_batches": result.failed_batches, "tokens": result.tokens_used},
    )
    return result
