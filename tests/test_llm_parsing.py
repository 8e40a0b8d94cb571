"""Tests for model output cleanup and validation helpers."""

import pytest
from pydantic import BaseModel

from topicos.core.llm import parse_llm_json_dict, strip_llm_fences, validate_output


class Inner(BaseModel):
    value: int


class Outer(BaseModel):
    name: str
    items: list[Inner]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('```\n{"a": 1}\n```', '{"a": 1}'),
        ('  {"a": 1}  ', '{"a": 1}'),
        ('```json{"a": 1}```', '{"a": 1}'),
    ],
)
def test_strip_llm_fences(raw, expected):
    assert strip_llm_fences(raw) == expected


def test_strip_only_removes_one_layer():
    raw = '```\n```json\n{"a": 1}\n```\n```'
    assert strip_llm_fences(raw).startswith("```json")


def test_parse_llm_json_dict():
    assert parse_llm_json_dict('```json\n{"ok": true}\n```') == {"ok": True}


def test_validate_output_reports_dotted_paths():
    data, errors = validate_output('{"name": "x", "items": [{"value": "abc"}]}', Outer)

    assert data is None
    assert any(error.startswith("items.0.value:") for error in errors)


def test_validate_output_reports_missing_field():
    data, errors = validate_output('{"items": []}', Outer)

    assert data is None
    assert errors == ["name: Field required"]


def test_validate_output_parse_error_quotes_snippet():
    raw = "Sure! Here is the JSON you asked for"
    data, errors = validate_output(raw, Outer)

    assert data is None
    assert len(errors) == 1
    assert "not valid JSON" in errors[0]
    assert "Sure! Here is" in errors[0]


def test_validate_output_success():
    data, errors = validate_output('{"name": "x", "items": [{"value": 3}]}', Outer)

    assert errors == []
    assert data.items[0].value == 3
