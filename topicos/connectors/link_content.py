"""Fetch and flatten content behind an external URL."""

import html
import re

import httpx
from pydantic import BaseModel

from topicos.core.config import get_settings
from topicos.core.exceptions import ContentFetchError
from topicos.core.logging import get_logger
from topicos.core.schemas_records import (
    FetchedContent,
    NormalizedRecord,
    SearchRequest,
    SourceType,
)

logger = get_logger(__name__)

USER_AGENT = "TopicOS/1.0 (Content Analyzer)"
TRUNCATION_MARKER = "\n[Content truncated]"

_TITLE_RE = re.compile(r"<title[^>]*>([\s\S]*?)</title>", re.IGNORECASE)
_DESCRIPTION_RE = re.compile(
    r"<meta[^>]*name=[\"']description[\"'][^>]*content=[\"']([\s\S]*?)[\"']", re.IGNORECASE
)
_BLOCK_RES = [
    re.compile(rf"<{tag}[\s\S]*?</{tag}>", re.IGNORECASE)
    for tag in ("script", "style", "nav", "footer", "header")
]
_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")


class LinkContent(BaseModel):
    title: str
    description: str
    body: str
    content_type: str  # html | json | text | error


def html_to_text(markup: str) -> str:
    """Strip chrome blocks and tags, unescape entities and collapse whitespace."""
    text = markup
    for pattern in _BLOCK_RES:
        text = pattern.sub("", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    return _WHITESPACE_RE.sub(" ", text).strip()


async def fetch_link_content(
    url: str,
    max_length: int = 15_000,
    timeout: float | None = None,
) -> LinkContent:
    """
    Fetch a URL for AI analysis.

    Never raises: network errors and timeouts come back as
    ``content_type="error"`` with the failure in ``description``.

    Args:
        url: Address to fetch
        max_length: Max body characters kept
        timeout: Wall-clock bound in seconds (defaults to LINK_FETCH_TIMEOUT_SECONDS)

    Returns:
        LinkContent with title, description, body and content type
    """
    request_timeout = timeout or get_settings().LINK_FETCH_TIMEOUT_SECONDS

    try:
        async with httpx.AsyncClient(timeout=request_timeout, follow_redirects=True) as client:
            response = await client.get(
                url,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": "text/html, application/json, text/plain",
                },
            )
            content_type = response.headers.get("content-type", "")
            text = response.text
    except httpx.TimeoutException:
        logger.warning(f"Link fetch timed out after {request_timeout}s: {url}")
        return LinkContent(title=url, description="Request timed out", body="", content_type="error")
    except httpx.HTTPError as e:
        logger.warning(f"Link fetch failed for {url}: {e}")
        return LinkContent(
            title=url, description=str(e) or "Failed to fetch", body="", content_type="error"
        )

    if "text/html" in content_type:
        title_match = _TITLE_RE.search(text)
        title = _WHITESPACE_RE.sub(" ", title_match.group(1)).strip() if title_match else url
        description_match = _DESCRIPTION_RE.search(text)
        description = description_match.group(1).strip() if description_match else ""

        body = html_to_text(text)
        if len(body) > max_length:
            body = body[:max_length] + TRUNCATION_MARKER
        return LinkContent(title=title, description=description, body=body, content_type="html")

    if "application/json" in content_type:
        return LinkContent(
            title=url, description="JSON data", body=text[:max_length], content_type="json"
        )

    return LinkContent(
        title=url, description="Text content", body=text[:max_length], content_type="text"
    )


class LinkConnector:
    """Connector for ``link`` records. Links are fetched, never searched."""

    source = SourceType.LINK

    def __init__(self, max_length: int | None = None, timeout: float | None = None):
        settings = get_settings()
        self.max_length = max_length or settings.ENRICH_MAX_BODY_CHARS
        self.timeout = timeout or settings.LINK_FETCH_TIMEOUT_SECONDS

    async def search(self, owner_id: str, request: SearchRequest) -> list[NormalizedRecord]:
        return []

    async def fetch_full_content(self, owner_id: str, record: NormalizedRecord) -> FetchedContent:
        url = record.external_id or record.url or record.metadata.get("url") or ""
        if not url:
            return FetchedContent()

        content = await fetch_link_content(url, max_length=self.max_length, timeout=self.timeout)
        if content.content_type == "error":
            raise ContentFetchError(f"Could not fetch {url}: {content.description}", record_id=record.id)

        return FetchedContent(
            body=f"Title: {content.title}\nDescription: {content.description}\n\n{content.body}",
            extra_metadata={"content_type": content.content_type},
        )
