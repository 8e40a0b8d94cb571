"""Source connector contract and registry.

Vendor connectors (mail, calendar, file storage, chat, notes) own their auth
and token refresh. The pipeline only calls ``search`` and
``fetch_full_content`` and treats any exception as a per-source failure.
"""

from typing import Iterable, Protocol

from topicos.core.logging import get_logger
from topicos.core.schemas_records import (
    FetchedContent,
    NormalizedRecord,
    SearchRequest,
    SourceType,
)

logger = get_logger(__name__)


class SourceConnector(Protocol):
    source: SourceType

    async def search(self, owner_id: str, request: SearchRequest) -> list[NormalizedRecord]: ...

    async def fetch_full_content(self, owner_id: str, record: NormalizedRecord) -> FetchedContent: ...


class ConnectorRegistry:
    """Maps each source to the connector serving it."""

    def __init__(self, connectors: Iterable[SourceConnector] = ()):
        self._connectors: dict[SourceType, SourceConnector] = {}
        for connector in connectors:
            self.register(connector)

    def register(self, connector: SourceConnector) -> None:
        if connector.source in self._connectors:
            logger.info(f"Replacing connector for {connector.source.value}")
        self._connectors[connector.source] = connector

    def get(self, source: SourceType) -> SourceConnector | None:
        return self._connectors.get(source)

    @property
    def sources(self) -> list[SourceType]:
        return list(self._connectors)
