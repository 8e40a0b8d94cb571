"""Contact interaction stats endpoint."""

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from topicos.api.deps import get_store, raise_http_error, require_owner
from topicos.core.interaction_stats import (
    InteractionStatsEngine,
    communication_score,
    engagement_level,
)
from topicos.core.schemas_records import EngagementLevel
from topicos.db.store import TopicStore

router = APIRouter()


class ContactStatsResponse(BaseModel):
    contact_id: str
    count: int
    last_interaction_at: datetime | None
    topic_ids: list[str]
    engagement: EngagementLevel
    communication_score: int


@router.post("/{contact_id}/stats", response_model=ContactStatsResponse)
async def refresh_contact_stats(
    contact_id: str,
    owner_id: str = Depends(require_owner),
    store: TopicStore = Depends(get_store),
) -> ContactStatsResponse:
    """Recompute a contact's interaction stats from recent records and persist them."""
    try:
        contact = await store.get_contact(owner_id, contact_id)
        stats = await InteractionStatsEngine(store).update_contact_stats(owner_id, contact)
    except Exception as e:
        raise_http_error(e, "Contact stats")

    engagement = engagement_level(stats.last_interaction_at, stats.count)
    return ContactStatsResponse(
        contact_id=contact_id,
        count=stats.count,
        last_interaction_at=stats.last_interaction_at,
        topic_ids=stats.topic_ids,
        engagement=engagement,
        communication_score=communication_score(stats.count, engagement.days_since),
    )
