"""Schema-validated completions with bounded repair retries.

Every structured model call in TopicOS goes through
``SchemaValidatedCompletion.complete``: the system prompt is suffixed with a
JSON-only instruction, the output is de-fenced, parsed and validated, and an
invalid answer is sent back once (by default) together with the concrete list
of violations. A result is never returned unvalidated.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

from topicos.core.exceptions import SchemaValidationFailure
from topicos.core.llm import validate_output
from topicos.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

# ruff: noqa: E501
JSON_ONLY_INSTRUCTION = """

IMPORTANT: You MUST respond with valid JSON only. No markdown, no code blocks, no explanation -- just the JSON object."""

REPAIR_PROMPT = """The previous output was invalid. Here are the problems:

{errors}

Here is your previous output:

{previous_output}

Please fix the output to match the required JSON schema exactly. Output ONLY valid JSON, no explanation."""


@dataclass
class BackendResponse:
    """Raw answer from a completion backend."""

    text: str
    raw: Any
    model: str
    tokens_used: int = 0


class CompletionBackend(Protocol):
    """A text-completion vendor. Implementations live in ``topicos.core.providers``."""

    name: str
    model: str

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int,
        json_mode: bool = True,
    ) -> BackendResponse: ...


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded repair policy. Defaults to one repair retry with no backoff."""

    max_repair_attempts: int = 1
    backoff_seconds: float = 0.0


@dataclass
class CompletionResult(Generic[T]):
    """Validated structured output plus accounting."""

    data: T
    raw: Any
    model: str
    tokens_consumed: int
    attempts: int = 1


@dataclass
class TextCompletion:
    """Free-text output (no schema)."""

    text: str
    raw: Any
    model: str
    tokens_consumed: int


def build_repair_prompt(errors: list[str], previous_output: str) -> str:
    """Build the user prompt for a repair attempt."""
    error_lines = "\n".join(f"- {error}" for error in errors)
    return REPAIR_PROMPT.format(errors=error_lines, previous_output=previous_output)


class SchemaValidatedCompletion:
    """Wraps a backend and enforces schema-shaped output."""

    def __init__(
        self,
        backend: CompletionBackend,
        retry_policy: RetryPolicy | None = None,
        max_tokens: int = 4096,
    ):
        self.backend = backend
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_tokens = max_tokens

    @property
    def provider(self) -> str:
        return self.backend.name

    @property
    def model(self) -> str:
        return self.backend.model

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[T],
        *,
        max_tokens: int | None = None,
    ) -> CompletionResult[T]:
        """
        Run a structured completion.

        Args:
            system_prompt: Call-site system prompt (JSON-only instruction is appended)
            user_prompt: Already-bounded user prompt
            schema: Pydantic model the output must satisfy
            max_tokens: Output token override

        Returns:
            CompletionResult with validated data and summed token usage

        Raises:
            SchemaValidationFailure: If output is still invalid after the repair attempts
            BackendError: If the backend call itself fails
        """
        full_system = system_prompt + JSON_ONLY_INSTRUCTION
        prompt = user_prompt
        total_tokens = 0
        max_attempts = 1 + max(0, self.retry_policy.max_repair_attempts)
        errors: list[str] = []
        raw_text = ""

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                logger.info(
                    f"Attempting repair {attempt - 1}/{max_attempts - 1} for {schema.__name__}",
                    extra={"provider": self.provider, "model": self.model},
                )
                if self.retry_policy.backoff_seconds > 0:
                    await asyncio.sleep(self.retry_policy.backoff_seconds)

            response = await self.backend.generate(
                full_system,
                prompt,
                max_tokens=max_tokens or self.max_tokens,
                json_mode=True,
            )
            total_tokens += response.tokens_used
            raw_text = response.text

            data, errors = validate_output(raw_text, schema)
            if data is not None:
                if attempt > 1:
                    logger.info(f"Repair succeeded for {schema.__name__}")
                return CompletionResult(
                    data=data,
                    raw=response.raw,
                    model=response.model,
                    tokens_consumed=total_tokens,
                    attempts=attempt,
                )

            logger.warning(
                f"Attempt {attempt} failed validation for {schema.__name__}: {len(errors)} problem(s)",
                extra={"errors": errors[:5]},
            )
            prompt = build_repair_prompt(errors, raw_text)

        logger.error(f"Output for {schema.__name__} could not be validated after {max_attempts} attempts")
        raise SchemaValidationFailure(
            f"Model output could not be validated to {schema.__name__}",
            errors=errors,
            raw_output=raw_text,
            attempts=max_attempts,
        )

    async def complete_text(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        max_tokens: int | None = None,
    ) -> TextCompletion:
        """Run a free-text completion without schema enforcement."""
        response = await self.backend.generate(
            system_prompt,
            user_prompt,
            max_tokens=max_tokens or self.max_tokens,
            json_mode=False,
        )
        return TextCompletion(
            text=response.text,
            raw=response.raw,
            model=response.model,
            tokens_consumed=response.tokens_used,
        )
