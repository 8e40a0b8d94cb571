"""Helpers for parsing and validating raw model output."""

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T", bound=BaseModel)

# Snippet of unparseable output quoted back in repair prompts
BAD_OUTPUT_SNIPPET_CHARS = 500

_LEADING_FENCE = re.compile(r"^```[a-zA-Z]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?```\s*$")


def strip_llm_fences(raw_output: str) -> str:
    """Strip one layer of markdown code fencing from model output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    Output without a fence is returned trimmed but otherwise untouched.
    """
    cleaned = raw_output.strip()
    if not cleaned.startswith("```"):
        return cleaned

    cleaned = _LEADING_FENCE.sub("", cleaned, count=1)
    cleaned = _TRAILING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_llm_json_dict(raw_output: str) -> Any:
    """
    Parse model output as JSON after removing code fences.

    Args:
        raw_output: Raw string from the model

    Returns:
        Parsed JSON value

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
    """
    return json.loads(strip_llm_fences(raw_output))


def describe_violations(error: ValidationError) -> list[str]:
    """Render pydantic errors as ``field.path: message`` lines."""
    violations = []
    for item in error.errors():
        path = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        violations.append(f"{path}: {item.get('msg', 'invalid value')}")
    return violations


def validate_output(raw_output: str, schema: type[T]) -> tuple[T | None, list[str]]:
    """
    Parse and validate model output against a schema.

    Args:
        raw_output: Raw string from the model
        schema: Pydantic model describing the expected shape

    Returns:
        (validated instance, []) on success, (None, violations) otherwise
    """
    cleaned = strip_llm_fences(raw_output)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        snippet = cleaned[:BAD_OUTPUT_SNIPPET_CHARS]
        return None, [
            f"<root>: output is not valid JSON ({e.msg} at line {e.lineno} column {e.colno}). "
            f"Output began with: {snippet!r}"
        ]

    try:
        return schema.model_validate(parsed), []
    except ValidationError as e:
        return None, describe_violations(e)
