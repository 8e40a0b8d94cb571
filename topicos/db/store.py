"""Owner-scoped persistence for topics, records, tasks and contacts.

The pipeline only talks to ``TopicStore``. ``SupabaseTopicStore`` is the
production implementation; every query is filtered by ``user_id``.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Protocol

from topicos.core.exceptions import NotFoundError
from topicos.core.logging import get_logger
from topicos.core.schemas_records import (
    Contact,
    ContactStats,
    NormalizedRecord,
    SourceType,
    Topic,
    TopicTask,
    make_dedup_key,
)
from topicos.db.supabase_client import get_supabase

logger = get_logger(__name__)

TOPIC_COLUMNS = (
    "id, title, description, goal, area, status, tags, due_date, summary, "
    "next_steps, notes, parent_topic_id"
)
RECORD_COLUMNS = (
    "id, topic_id, source, source_account_id, external_id, title, snippet, body, url, "
    "occurred_at, metadata, triage_status"
)
TASK_COLUMNS = "title, description, status, priority, due_date, assignee"


class TopicStore(Protocol):
    """Narrow persistence contract consumed by the pipeline."""

    async def get_topic(self, owner_id: str, topic_id: str) -> Topic: ...

    async def get_topic_ancestors(
        self, owner_id: str, topic_id: str, max_depth: int = 2
    ) -> list[Topic]: ...

    async def list_active_topics(self, owner_id: str, area: str) -> list[Topic]: ...

    async def list_records_for_topic(
        self,
        owner_id: str,
        topic_id: str,
        *,
        limit: int,
        ascending: bool = False,
        source: SourceType | None = None,
    ) -> list[NormalizedRecord]: ...

    async def list_recent_records(self, owner_id: str, limit: int) -> list[NormalizedRecord]: ...

    async def list_linked_keys(self, owner_id: str, topic_id: str) -> set[str]: ...

    async def list_tasks(self, owner_id: str, topic_id: str, limit: int) -> list[TopicTask]: ...

    async def list_contacts(self, owner_id: str) -> list[Contact]: ...

    async def get_contact(self, owner_id: str, contact_id: str) -> Contact: ...

    async def list_contact_topic_ids(self, owner_id: str, contact_id: str) -> list[str]: ...

    async def upsert_contact_topic_link(
        self, owner_id: str, contact_id: str, topic_id: str
    ) -> None: ...

    async def update_topic_summary(self, owner_id: str, topic_id: str, summary: str) -> None: ...

    async def set_record_body(
        self,
        owner_id: str,
        record_id: str,
        body: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    async def set_record_triage(
        self, owner_id: str, record_id: str, status: str, score: float, reason: str
    ) -> None: ...

    async def link_record(
        self,
        owner_id: str,
        topic_id: str,
        record: NormalizedRecord,
        *,
        confidence: float,
        reason: str,
    ) -> None: ...

    async def update_contact_stats(
        self, owner_id: str, contact_id: str, stats: ContactStats
    ) -> None: ...


def row_to_record(row: dict[str, Any]) -> NormalizedRecord:
    """Convert a ``topic_items`` row into a NormalizedRecord."""
    return NormalizedRecord(
        id=row.get("id"),
        topic_id=row.get("topic_id"),
        external_id=row.get("external_id") or "",
        source=row.get("source") or SourceType.MANUAL,
        account_ref=row.get("source_account_id"),
        title=row.get("title") or "",
        snippet=row.get("snippet") or "",
        body=row.get("body"),
        url=row.get("url"),
        occurred_at=row.get("occurred_at"),
        metadata=row.get("metadata") or {},
        triage_status=row.get("triage_status"),
    )


def row_to_topic(row: dict[str, Any]) -> Topic:
    """Convert a ``topics`` row into a Topic, tolerating null collections."""
    data = dict(row)
    data["tags"] = data.get("tags") or []
    data["next_steps"] = data.get("next_steps") or []
    return Topic.model_validate(data)


class SupabaseTopicStore:
    """TopicStore over the sync Supabase client, run in worker threads."""

    def __init__(self, client: Any | None = None):
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    # Topics

    def _get_topic(self, owner_id: str, topic_id: str) -> Topic:
        response = (
            self.client.table("topics")
            .select(TOPIC_COLUMNS)
            .eq("id", topic_id)
            .eq("user_id", owner_id)
            .execute()
        )
        if not response.data:
            raise NotFoundError(f"Topic not found: {topic_id}")
        return row_to_topic(response.data[0])

    async def get_topic(self, owner_id: str, topic_id: str) -> Topic:
        return await asyncio.to_thread(self._get_topic, owner_id, topic_id)

    def _get_topic_ancestors(self, owner_id: str, topic_id: str, max_depth: int) -> list[Topic]:
        topic = self._get_topic(owner_id, topic_id)
        ancestors: list[Topic] = []
        seen = {topic.id}
        current_id = topic.parent_topic_id

        while current_id and current_id not in seen and len(ancestors) < max_depth:
            try:
                parent = self._get_topic(owner_id, current_id)
            except NotFoundError:
                break
            ancestors.append(parent)
            seen.add(parent.id)
            current_id = parent.parent_topic_id

        return ancestors

    async def get_topic_ancestors(
        self, owner_id: str, topic_id: str, max_depth: int = 2
    ) -> list[Topic]:
        return await asyncio.to_thread(self._get_topic_ancestors, owner_id, topic_id, max_depth)

    def _list_active_topics(self, owner_id: str, area: str) -> list[Topic]:
        response = (
            self.client.table("topics")
            .select(TOPIC_COLUMNS)
            .eq("user_id", owner_id)
            .eq("area", area)
            .eq("status", "active")
            .order("updated_at", desc=True)
            .execute()
        )
        return [row_to_topic(row) for row in response.data or []]

    async def list_active_topics(self, owner_id: str, area: str) -> list[Topic]:
        return await asyncio.to_thread(self._list_active_topics, owner_id, area)

    def _update_topic_summary(self, owner_id: str, topic_id: str, summary: str) -> None:
        (
            self.client.table("topics")
            .update({"summary": summary, "updated_at": datetime.now(timezone.utc).isoformat()})
            .eq("id", topic_id)
            .eq("user_id", owner_id)
            .execute()
        )
        logger.info(f"Updated summary for topic {topic_id} ({len(summary)} chars)")

    async def update_topic_summary(self, owner_id: str, topic_id: str, summary: str) -> None:
        await asyncio.to_thread(self._update_topic_summary, owner_id, topic_id, summary)

    # Records

    def _list_records_for_topic(
        self,
        owner_id: str,
        topic_id: str,
        limit: int,
        ascending: bool,
        source: SourceType | None,
    ) -> list[NormalizedRecord]:
        query = (
            self.client.table("topic_items")
            .select(RECORD_COLUMNS)
            .eq("topic_id", topic_id)
            .eq("user_id", owner_id)
        )
        if source is not None:
            query = query.eq("source", source.value)
        response = query.order("occurred_at", desc=not ascending).limit(limit).execute()
        return [row_to_record(row) for row in response.data or []]

    async def list_records_for_topic(
        self,
        owner_id: str,
        topic_id: str,
        *,
        limit: int,
        ascending: bool = False,
        source: SourceType | None = None,
    ) -> list[NormalizedRecord]:
        return await asyncio.to_thread(
            self._list_records_for_topic, owner_id, topic_id, limit, ascending, source
        )

    def _list_recent_records(self, owner_id: str, limit: int) -> list[NormalizedRecord]:
        response = (
            self.client.table("topic_items")
            .select(RECORD_COLUMNS)
            .eq("user_id", owner_id)
            .order("occurred_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [row_to_record(row) for row in response.data or []]

    async def list_recent_records(self, owner_id: str, limit: int) -> list[NormalizedRecord]:
        return await asyncio.to_thread(self._list_recent_records, owner_id, limit)

    def _list_linked_keys(self, owner_id: str, topic_id: str) -> set[str]:
        response = (
            self.client.table("topic_items")
            .select("external_id, source")
            .eq("topic_id", topic_id)
            .eq("user_id", owner_id)
            .execute()
        )
        return {make_dedup_key(row["source"], row["external_id"]) for row in response.data or []}

    async def list_linked_keys(self, owner_id: str, topic_id: str) -> set[str]:
        return await asyncio.to_thread(self._list_linked_keys, owner_id, topic_id)

    def _set_record_body(
        self, owner_id: str, record_id: str, body: str, metadata: dict[str, Any] | None
    ) -> None:
        payload: dict[str, Any] = {"body": body}
        if metadata is not None:
            payload["metadata"] = metadata
        (
            self.client.table("topic_items")
            .update(payload)
            .eq("id", record_id)
            .eq("user_id", owner_id)
            .execute()
        )

    async def set_record_body(
        self,
        owner_id: str,
        record_id: str,
        body: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        await asyncio.to_thread(self._set_record_body, owner_id, record_id, body, metadata)

    def _set_record_triage(
        self, owner_id: str, record_id: str, status: str, score: float, reason: str
    ) -> None:
        (
            self.client.table("topic_items")
            .update({"triage_status": status, "triage_score": score, "triage_reason": reason})
            .eq("id", record_id)
            .eq("user_id", owner_id)
            .execute()
        )

    async def set_record_triage(
        self, owner_id: str, record_id: str, status: str, score: float, reason: str
    ) -> None:
        await asyncio.to_thread(self._set_record_triage, owner_id, record_id, status, score, reason)

    def _link_record(
        self,
        owner_id: str,
        topic_id: str,
        record: NormalizedRecord,
        confidence: float,
        reason: str,
    ) -> None:
        row = {
            "user_id": owner_id,
            "topic_id": topic_id,
            "source": record.source.value,
            "source_account_id": record.account_ref,
            "external_id": record.external_id,
            "title": record.title,
            "snippet": record.snippet,
            "body": record.body,
            "url": record.url,
            "occurred_at": record.occurred_at.isoformat() if record.occurred_at else None,
            "triage_status": record.triage_status,
            "metadata": {
                **record.metadata,
                "link_confidence": confidence,
                "link_reason": reason,
                "linked_by": "auto_link",
            },
        }
        (
            self.client.table("topic_items")
            .upsert(row, on_conflict="topic_id,source,external_id")
            .execute()
        )

    async def link_record(
        self,
        owner_id: str,
        topic_id: str,
        record: NormalizedRecord,
        *,
        confidence: float,
        reason: str,
    ) -> None:
        await asyncio.to_thread(self._link_record, owner_id, topic_id, record, confidence, reason)

    # Tasks

    def _list_tasks(self, owner_id: str, topic_id: str, limit: int) -> list[TopicTask]:
        response = (
            self.client.table("topic_tasks")
            .select(TASK_COLUMNS)
            .eq("topic_id", topic_id)
            .eq("user_id", owner_id)
            .neq("status", "archived")
            .order("position", desc=False)
            .limit(limit)
            .execute()
        )
        return [TopicTask.model_validate(row) for row in response.data or []]

    async def list_tasks(self, owner_id: str, topic_id: str, limit: int) -> list[TopicTask]:
        return await asyncio.to_thread(self._list_tasks, owner_id, topic_id, limit)

    # Contacts

    def _list_contacts(self, owner_id: str) -> list[Contact]:
        response = (
            self.client.table("contacts").select("id, name, email").eq("user_id", owner_id).execute()
        )
        return [Contact.model_validate(row) for row in response.data or []]

    async def list_contacts(self, owner_id: str) -> list[Contact]:
        return await asyncio.to_thread(self._list_contacts, owner_id)

    def _get_contact(self, owner_id: str, contact_id: str) -> Contact:
        response = (
            self.client.table("contacts")
            .select("id, name, email")
            .eq("id", contact_id)
            .eq("user_id", owner_id)
            .execute()
        )
        if not response.data:
            raise NotFoundError(f"Contact not found: {contact_id}")
        return Contact.model_validate(response.data[0])

    async def get_contact(self, owner_id: str, contact_id: str) -> Contact:
        return await asyncio.to_thread(self._get_contact, owner_id, contact_id)

    def _list_contact_topic_ids(self, owner_id: str, contact_id: str) -> list[str]:
        response = (
            self.client.table("contact_topic_links")
            .select("topic_id")
            .eq("contact_id", contact_id)
            .eq("user_id", owner_id)
            .execute()
        )
        return [row["topic_id"] for row in response.data or []]

    async def list_contact_topic_ids(self, owner_id: str, contact_id: str) -> list[str]:
        return await asyncio.to_thread(self._list_contact_topic_ids, owner_id, contact_id)

    def _upsert_contact_topic_link(self, owner_id: str, contact_id: str, topic_id: str) -> None:
        (
            self.client.table("contact_topic_links")
            .upsert(
                {"user_id": owner_id, "contact_id": contact_id, "topic_id": topic_id},
                on_conflict="contact_id,topic_id",
            )
            .execute()
        )

    async def upsert_contact_topic_link(self, owner_id: str, contact_id: str, topic_id: str) -> None:
        await asyncio.to_thread(self._upsert_contact_topic_link, owner_id, contact_id, topic_id)

    def _update_contact_stats(self, owner_id: str, contact_id: str, stats: ContactStats) -> None:
        (
            self.client.table("contacts")
            .update(
                {
                    "interaction_count": stats.count,
                    "last_interaction_at": (
                        stats.last_interaction_at.isoformat() if stats.last_interaction_at else None
                    ),
                }
            )
            .eq("id", contact_id)
            .eq("user_id", owner_id)
            .execute()
        )

    async def update_contact_stats(
        self, owner_id: str, contact_id: str, stats: ContactStats
    ) -> None:
        await asyncio.to_thread(self._update_contact_stats, owner_id, contact_id, stats)
