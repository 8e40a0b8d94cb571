"""Contact interaction statistics derived from linked records.

Matching is a recency-biased approximation: only the owner's most recent
``STATS_SCAN_LIMIT`` records are scanned, newest first.
"""

import json
from datetime import datetime, timezone

from topicos.core.config import Settings, get_settings
from topicos.core.logging import get_logger
from topicos.core.schemas_records import (
    PEOPLE_METADATA_FIELDS,
    Contact,
    ContactStats,
    EngagementLevel,
    NormalizedRecord,
)
from topicos.db.store import TopicStore

logger = get_logger(__name__)

# Minimum lengths that guard short names/emails against false positives
METADATA_NAME_MIN_CHARS = 2
TEXT_NAME_MIN_CHARS = 3
TEXT_EMAIL_MIN_CHARS = 3


def _field_text(value: object) -> str:
    if isinstance(value, str):
        return value.lower()
    return json.dumps(value, default=str, ensure_ascii=False).lower()


def item_mentions_contact(record: NormalizedRecord, contact: Contact) -> bool:
    """
    Check whether a record mentions a contact.

    People metadata fields are checked first (non-string values are JSON
    encoded), then title + snippet + body.
    """
    email = (contact.email or "").lower()
    name = (contact.name or "").lower()
    if not email and not name:
        return False

    for field in PEOPLE_METADATA_FIELDS:
        value = record.metadata.get(field)
        if not value:
            continue
        text = _field_text(value)
        if email and email in text:
            return True
        if name and len(name) > METADATA_NAME_MIN_CHARS and name in text:
            return True

    full_text = f"{record.title or ''} {record.snippet or ''} {record.body or ''}".lower()
    if email and len(email) > TEXT_EMAIL_MIN_CHARS and email in full_text:
        return True
    if name and len(name) > TEXT_NAME_MIN_CHARS and name in full_text:
        return True

    return False


def engagement_level(
    last_interaction_at: datetime | None,
    interaction_count: int,
    now: datetime | None = None,
) -> EngagementLevel:
    """Bucket a contact by days since the last interaction."""
    if last_interaction_at is None or interaction_count == 0:
        return EngagementLevel(level="new", label="New", days_since=-1)

    now = now or datetime.now(timezone.utc)
    if last_interaction_at.tzinfo is None:
        last_interaction_at = last_interaction_at.replace(tzinfo=timezone.utc)
    days_since = (now - last_interaction_at).days

    if days_since <= 7:
        return EngagementLevel(level="active", label="Active", days_since=days_since)
    if days_since <= 30:
        return EngagementLevel(level="recent", label="Recent", days_since=days_since)
    if days_since <= 90:
        return EngagementLevel(level="idle", label="Idle", days_since=days_since)
    return EngagementLevel(level="cold", label="Cold", days_since=days_since)


def communication_score(interaction_count: int, days_since: int) -> int:
    """Frequency/recency score in 0..100."""
    if interaction_count == 0 or days_since < 0:
        return 0
    if days_since <= 7:
        recency_bonus = 40
    elif days_since <= 30:
        recency_bonus = 25
    elif days_since <= 90:
        recency_bonus = 10
    else:
        recency_bonus = 0
    frequency_score = min(60, interaction_count * 5)
    return min(100, recency_bonus + frequency_score)


class InteractionStatsEngine:
    """Computes and persists per-contact interaction stats."""

    def __init__(self, store: TopicStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    async def compute_stats(self, owner_id: str, contact: Contact) -> ContactStats:
        """
        Count records mentioning a contact. Read-only.

        Args:
            owner_id: Owner whose records are scanned
            contact: Contact identity (name/email)

        Returns:
            ContactStats with match count, newest match time and topic ids
        """
        records = await self.store.list_recent_records(owner_id, limit=self.settings.STATS_SCAN_LIMIT)
        stats = ContactStats()
        topic_ids: dict[str, None] = {}

        for record in records:
            if not item_mentions_contact(record, contact):
                continue
            stats.count += 1
            # Input is newest first, so the first match is the latest
            if stats.last_interaction_at is None:
                stats.last_interaction_at = record.occurred_at
            if record.topic_id:
                topic_ids[record.topic_id] = None

        stats.topic_ids = list(topic_ids)
        logger.debug(
            f"Contact {contact.id}: {stats.count} matches in {len(records)} records",
            extra={"topics": len(stats.topic_ids)},
        )
        return stats

    async def update_contact_stats(self, owner_id: str, contact: Contact) -> ContactStats:
        """Compute stats and write count/last interaction back to the contact."""
        stats = await self.compute_stats(owner_id, contact)
        await self.store.update_contact_stats(owner_id, contact.id, stats)
        logger.info(f"Updated interaction stats for contact {contact.id}: {stats.count} interactions")
        return stats

    async def list_contact_records(
        self, owner_id: str, contact: Contact, limit: int = 50
    ) -> list[NormalizedRecord]:
        """Recent records mentioning a contact, newest first."""
        records = await self.store.list_recent_records(owner_id, limit=self.settings.STATS_SCAN_LIMIT)
        return [record for record in records if item_mentions_contact(record, contact)][:limit]
