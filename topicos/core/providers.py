"""Completion backends and configuration-driven provider selection."""

from typing import Any

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from topicos.core.completion import BackendResponse, RetryPolicy, SchemaValidatedCompletion
from topicos.core.config import Settings, get_settings
from topicos.core.exceptions import BackendError, ConfigurationError
from topicos.core.logging import get_logger

logger = get_logger(__name__)


class AnthropicBackend:
    """Primary backend: Anthropic messages API."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str, timeout: float, client: Any | None = None):
        self.model = model
        self.client = client or AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int,
        json_mode: bool = True,
    ) -> BackendResponse:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APIError as e:
            logger.error(f"Anthropic call failed: {e}", extra={"model": self.model})
            raise BackendError(f"Anthropic call failed: {e}", provider=self.name) from e

        text = "".join(
            block.text for block in (response.content or []) if getattr(block, "type", None) == "text"
        )
        usage = response.usage
        tokens_used = (usage.input_tokens + usage.output_tokens) if usage else 0

        logger.info(
            f"Anthropic completion: {tokens_used} tokens",
            extra={"model": self.model, "chars": len(text)},
        )
        return BackendResponse(text=text, raw=response, model=self.model, tokens_used=tokens_used)


class OpenAIBackend:
    """Fallback backend: OpenAI chat completions, JSON-object mode for structured calls."""

    name = "openai"

    def __init__(self, api_key: str, model: str, timeout: float, client: Any | None = None):
        self.model = model
        self.client = client or AsyncOpenAI(api_key=api_key, timeout=timeout)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int,
        json_mode: bool = True,
    ) -> BackendResponse:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            logger.error(f"OpenAI call failed: {e}", extra={"model": self.model})
            raise BackendError(f"OpenAI call failed: {e}", provider=self.name) from e

        text = (response.choices[0].message.content or "") if response.choices else ""
        tokens_used = response.usage.total_tokens if response.usage else 0

        logger.info(
            f"OpenAI completion: {tokens_used} tokens",
            extra={"model": self.model, "chars": len(text)},
        )
        return BackendResponse(text=text, raw=response, model=self.model, tokens_used=tokens_used)


def select_provider(
    settings: Settings | None = None,
    *,
    fast: bool = False,
    retry_policy: RetryPolicy | None = None,
) -> SchemaValidatedCompletion:
    """
    Pick a completion backend by credential presence, primary first.

    Args:
        settings: Settings override (defaults to cached settings)
        fast: Prefer the cheaper model where the backend has one
        retry_policy: Repair policy override (defaults to settings)

    Returns:
        SchemaValidatedCompletion bound to the selected backend

    Raises:
        ConfigurationError: If neither backend has credentials
    """
    settings = settings or get_settings()
    policy = retry_policy or RetryPolicy(
        max_repair_attempts=settings.COMPLETION_MAX_REPAIR_ATTEMPTS,
        backoff_seconds=settings.COMPLETION_REPAIR_BACKOFF_SECONDS,
    )

    if settings.ANTHROPIC_API_KEY:
        backend = AnthropicBackend(
            api_key=settings.ANTHROPIC_API_KEY,
            model=settings.ANTHROPIC_FAST_MODEL if fast else settings.ANTHROPIC_MODEL,
            timeout=settings.COMPLETION_TIMEOUT_SECONDS,
        )
    elif settings.OPENAI_API_KEY:
        backend = OpenAIBackend(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            timeout=settings.COMPLETION_TIMEOUT_SECONDS,
        )
    else:
        raise ConfigurationError(
            "No completion backend configured: set ANTHROPIC_API_KEY or OPENAI_API_KEY"
        )

    logger.debug(f"Selected completion backend {backend.name} ({backend.model})")
    return SchemaValidatedCompletion(
        backend, retry_policy=policy, max_tokens=settings.COMPLETION_MAX_TOKENS
    )
