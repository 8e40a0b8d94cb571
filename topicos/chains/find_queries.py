"""Search query generation for finding items related to a description."""

from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.logging import get_logger
from topicos.core.schemas_ai import SearchQueriesOutput

logger = get_logger(__name__)

MAX_QUERIES = 5

# ruff: noqa: E501
SYSTEM_PROMPT = """You are a helpful assistant that generates search queries for finding relevant emails, calendar events, files, and messages. Generate 3-5 search queries that would help find relevant items across Gmail, Google Calendar, Google Drive, and Slack.

Return JSON: { "queries": ["query one", "query two", "query three"] }"""


async def generate_search_queries(
    description: str,
    topic_title: str | None = None,
    *,
    completion: SchemaValidatedCompletion,
) -> list[str]:
    """
    Generate 3-5 search queries for a description.

    Args:
        description: What the user is looking for
        topic_title: Optional topic title used as a prefix
        completion: Completion wrapper

    Returns:
        Non-empty, de-duplicated queries (at most 5)

    Raises:
        SchemaValidationFailure: If the model never returns a valid query list
    """
    prompt = "Generate search queries for: " + (f"{topic_title} - " if topic_title else "") + description
    result = await completion.complete(SYSTEM_PROMPT, prompt, SearchQueriesOutput)

    queries = list(dict.fromkeys(q.strip() for q in result.data.queries if q.strip()))[:MAX_QUERIES]
    logger.info(f"Generated {len(queries)} search queries", extra={"tokens": result.tokens_consumed})
    return queries
