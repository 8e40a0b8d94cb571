"""Fire-and-forget LLM usage logger for token/cost tracking."""

import asyncio

from topicos.core.config import get_settings
from topicos.core.logging import get_logger

logger = get_logger(__name__)

# Blended price per 1M tokens (backends report a single token total)
MODEL_PRICING: dict[str, float] = {
    "claude-sonnet-4-5-20250929": 9.0,
    "claude-haiku-4-5-20251001": 2.4,
    "gpt-4o": 6.25,
    "gpt-4o-mini": 0.375,
}


def _model_family(model: str) -> str:
    """Model id without a trailing date segment."""
    head, _, tail = model.rpartition("-")
    return head if head and tail.isdigit() else model


def estimate_cost(model: str, tokens: int) -> float:
    """Estimate cost in USD for a model and token count."""
    price = MODEL_PRICING.get(model)
    if price is None:
        # Dated or suffixed variants fall back to the most specific known family
        families = [key for key in MODEL_PRICING if model.startswith(_model_family(key))]
        if families:
            price = MODEL_PRICING[max(families, key=lambda key: len(_model_family(key)))]
    if price is None:
        logger.warning(f"No pricing found for model '{model}', using $0")
        return 0.0
    return round(tokens * price / 1_000_000, 6)


def _insert_usage_row(row: dict) -> None:
    from topicos.db.supabase_client import get_supabase

    get_supabase().table("llm_usage_log").insert(row).execute()


async def log_llm_usage(
    workflow: str,
    model: str,
    provider: str,
    tokens: int,
    user_id: str | None = None,
    topic_id: str | None = None,
) -> None:
    """Log an LLM call to the usage tracking table. Never raises.

    The insert runs in a worker thread so the event loop is not blocked.
    """
    try:
        settings = get_settings()
        if not settings.SUPABASE_URL:
            logger.debug(f"Usage logging skipped for {workflow}: no Supabase configured")
            return

        row = {
            "workflow": workflow,
            "model": model,
            "provider": provider,
            "tokens_used": tokens,
            "estimated_cost_usd": estimate_cost(model, tokens),
        }
        if user_id:
            row["user_id"] = str(user_id)
        if topic_id:
            row["topic_id"] = str(topic_id)

        await asyncio.to_thread(_insert_usage_row, row)
        logger.debug(f"LLM usage logged: {workflow} model={model} tokens={tokens}")
    except Exception as e:
        # Never fail the main operation due to usage logging
        logger.error(f"Failed to log LLM usage: {e}")
