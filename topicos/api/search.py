"""Cross-source search endpoint."""

from fastapi import APIRouter, Depends

from topicos.api.deps import get_registry, get_store, raise_http_error, require_owner
from topicos.connectors.base import ConnectorRegistry
from topicos.core.schemas_records import SearchRequest, SourceSearchResult
from topicos.core.search_aggregator import CrossSourceSearchAggregator
from topicos.db.store import TopicStore

router = APIRouter()


@router.post("/search", response_model=list[SourceSearchResult])
async def search(
    request: SearchRequest,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
) -> list[SourceSearchResult]:
    """Search the requested sources; a failing source reports ``error`` instead of failing the call."""
    try:
        return await CrossSourceSearchAggregator(store, registry).search(owner_id, request)
    except Exception as e:
        raise_http_error(e, "Search")
