"""Configuration management for TopicOS."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration
    SUPABASE_URL: str | None = Field(default=None, description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str | None = Field(
        default=None, description="Supabase service role key"
    )

    # Environment
    TOPICOS_ENV: str = Field(default="dev", description="Environment: dev, test, staging, prod")

    # Completion backends (primary first)
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key (fallback)")
    ANTHROPIC_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Default Anthropic model"
    )
    ANTHROPIC_FAST_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Cheap Anthropic model for ranking"
    )
    OPENAI_MODEL: str = Field(default="gpt-4o-mini", description="Default OpenAI model")
    COMPLETION_MAX_TOKENS: int = Field(default=4096, description="Max output tokens per call")
    DEEP_DIVE_MAX_TOKENS: int = Field(default=6000, description="Max output tokens for deep dive")
    COMPLETION_TIMEOUT_SECONDS: float = Field(
        default=60.0, description="Client-side timeout for completion calls"
    )

    # Schema repair policy
    COMPLETION_MAX_REPAIR_ATTEMPTS: int = Field(
        default=1, description="Repair retries after an invalid completion"
    )
    COMPLETION_REPAIR_BACKOFF_SECONDS: float = Field(
        default=0.0, description="Delay before each repair retry"
    )

    # Content enrichment
    LINK_FETCH_TIMEOUT_SECONDS: float = Field(default=10.0, description="Timeout for link fetches")
    ENRICH_MAX_BODY_CHARS: int = Field(default=15_000, description="Max cached body characters")
    ENRICH_MAX_RECORDS_PER_TOPIC: int = Field(
        default=30, description="Records considered per topic enrichment"
    )
    ENRICH_BATCH_SIZE: int = Field(default=5, description="Records fetched concurrently")

    # Context composition
    CONTEXT_ITEM_CHAR_CAP: int = Field(default=2000, description="Per-record content cap")
    CONTEXT_TOTAL_CHAR_CAP: int = Field(
        default=40_000, description="Total record content cap before snippet-only"
    )
    CONTEXT_MAX_RECORDS: int = Field(default=30, description="Records included in context")
    CONTEXT_MAX_TASKS: int = Field(default=30, description="Tasks included in context")
    CONTEXT_MAX_MANUAL_NOTES: int = Field(default=20, description="Manual notes in context")
    CONTEXT_ANCESTOR_ITEMS_PER_ANCESTOR: int = Field(
        default=8, description="Records per ancestor topic"
    )

    # Search and ranking
    SEARCH_DEFAULT_MAX_RESULTS: int = Field(default=20, description="Per-source result cap")
    RANK_MAX_CANDIDATES: int = Field(default=40, description="Candidates sent to the ranker")

    # Batch enrichment
    BATCH_INTER_TOPIC_DELAY_SECONDS: float = Field(
        default=2.0, description="Pause between topics in batch enrichment"
    )
    BATCH_CONTACT_RECORD_LIMIT: int = Field(
        default=30, description="Records sent for contact extraction"
    )
    BATCH_CONTACT_PREVIEW_CHARS: int = Field(
        default=1500, description="Per-record preview for contact extraction"
    )

    # Auto-link
    AUTO_LINK_BATCH_DELAY_SECONDS: float = Field(
        default=2.0, description="Pause between auto-link batches"
    )
    AUTO_LINK_RATE_LIMIT_DELAY_SECONDS: float = Field(
        default=15.0, description="Extra pause after a rate-limited auto-link batch"
    )

    # Interaction stats
    STATS_SCAN_LIMIT: int = Field(default=500, description="Most recent records scanned")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance
    """
    return Settings()
