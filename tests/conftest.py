"""Pytest configuration and fixtures."""

import os

import pytest

# Module loggers read settings at import time, so the environment is set
# before any topicos module is collected.
os.environ["TOPICOS_ENV"] = "test"
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ.pop("SUPABASE_URL", None)

from topicos.core.config import Settings, get_settings  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["TOPICOS_ENV"] = "test"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with no batch delays and no Supabase usage logging."""
    return Settings(
        ANTHROPIC_API_KEY="test-anthropic-key",
        SUPABASE_URL=None,
        BATCH_INTER_TOPIC_DELAY_SECONDS=0,
        AUTO_LINK_BATCH_DELAY_SECONDS=0,
        AUTO_LINK_RATE_LIMIT_DELAY_SECONDS=0,
    )
