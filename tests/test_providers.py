"""Tests for completion backends and provider selection."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from topicos.core.config import Settings
from topicos.core.exceptions import BackendError, ConfigurationError
from topicos.core.providers import AnthropicBackend, OpenAIBackend, select_provider


def _settings(**overrides) -> Settings:
    values = {"ANTHROPIC_API_KEY": None, "OPENAI_API_KEY": None, "SUPABASE_URL": None}
    values.update(overrides)
    return Settings(**values)


class TestSelectProvider:
    def test_prefers_anthropic_when_both_configured(self):
        completion = select_provider(_settings(ANTHROPIC_API_KEY="a", OPENAI_API_KEY="o"))

        assert completion.provider == "anthropic"
        assert completion.model == "claude-sonnet-4-5-20250929"

    def test_fast_selects_cheaper_anthropic_model(self):
        completion = select_provider(_settings(ANTHROPIC_API_KEY="a"), fast=True)

        assert completion.model == "claude-haiku-4-5-20251001"

    def test_falls_back_to_openai(self):
        completion = select_provider(_settings(OPENAI_API_KEY="o"))

        assert completion.provider == "openai"
        assert completion.model == "gpt-4o-mini"

    def test_no_credentials_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            select_provider(_settings())

    def test_retry_policy_comes_from_settings(self):
        completion = select_provider(
            _settings(ANTHROPIC_API_KEY="a", COMPLETION_MAX_REPAIR_ATTEMPTS=3, COMPLETION_MAX_TOKENS=1234)
        )

        assert completion.retry_policy.max_repair_attempts == 3
        assert completion.max_tokens == 1234


class TestAnthropicBackend:
    @pytest.mark.asyncio
    async def test_joins_text_blocks_and_counts_tokens(self):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text='{"a":'),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text=" 1}"),
            ],
            usage=SimpleNamespace(input_tokens=100, output_tokens=20),
        )
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=response)
        backend = AnthropicBackend(api_key="k", model="m", timeout=5, client=client)

        result = await backend.generate("sys", "user", max_tokens=50)

        assert result.text == '{"a": 1}'
        assert result.tokens_used == 120
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]
        assert kwargs["max_tokens"] == 50


class TestOpenAIBackend:
    @pytest.mark.asyncio
    async def test_json_mode_sets_response_format(self):
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"ok": true}'))],
            usage=SimpleNamespace(total_tokens=42),
        )
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=response)
        backend = OpenAIBackend(api_key="k", model="gpt-4o-mini", timeout=5, client=client)

        result = await backend.generate("sys", "user", max_tokens=10)

        assert result.text == '{"ok": true}'
        assert result.tokens_used == 42
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}

    @pytest.mark.asyncio
    async def test_text_mode_omits_response_format(self):
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=None))], usage=None
        )
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=response)
        backend = OpenAIBackend(api_key="k", model="gpt-4o-mini", timeout=5, client=client)

        result = await backend.generate("sys", "user", max_tokens=10, json_mode=False)

        assert result.text == ""
        assert result.tokens_used == 0
        assert "response_format" not in client.chat.completions.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_api_error_becomes_backend_error(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=openai.APIConnectionError(request=request))
        backend = OpenAIBackend(api_key="k", model="gpt-4o-mini", timeout=5, client=client)

        with pytest.raises(BackendError) as exc_info:
            await backend.generate("sys", "user", max_tokens=10)

        assert exc_info.value.provider == "openai"
