"""Extract people from a topic's records and link matching contacts."""

from typing import Sequence

from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.config import Settings, get_settings
from topicos.core.context_composer import format_records_for_extraction
from topicos.core.logging import get_logger
from topicos.core.schemas_ai import ExtractContactsOutput, ExtractedContact
from topicos.core.schemas_records import Contact, NormalizedRecord
from topicos.db.store import TopicStore

logger = get_logger(__name__)

# ruff: noqa: E501
SYSTEM_PROMPT = """Extract all people mentioned in these communications. For each person, find their name, email (if available), role/title, and organization.
Do NOT include the user/owner of these communications.
ALREADY KNOWN CONTACTS: {known_contacts}
Return JSON: {{ "contacts": [{{ "name": "Full Name", "email": "email@example.com or empty", "role": "their role", "organization": "their org" }}] }}"""


async def extract_topic_contacts(
    records: Sequence[NormalizedRecord],
    known_contacts: Sequence[Contact],
    *,
    completion: SchemaValidatedCompletion,
    preview_chars: int = 1500,
) -> list[ExtractedContact]:
    """
    Ask the model for every person mentioned in the records.

    Raises:
        SchemaValidationFailure: If the output never validates
    """
    if not records:
        return []

    known = ", ".join(f"{contact.name} <{contact.email or '?'}>" for contact in known_contacts)
    user_prompt = "Items:\n" + format_records_for_extraction(records, preview_chars)
    result = await completion.complete(
        SYSTEM_PROMPT.format(known_contacts=known or "none"), user_prompt, ExtractContactsOutput
    )
    return result.data.contacts


def match_contacts(extracted: Sequence[ExtractedContact], contacts: Sequence[Contact]) -> list[Contact]:
    """
    Match extracted people to existing contacts.

    Exact case-insensitive email match first, then exact case-insensitive
    name match. Each contact is returned at most once, in first-match order.
    """
    by_email = {contact.email.lower(): contact for contact in contacts if contact.email}
    by_name = {contact.name.lower(): contact for contact in contacts if contact.name}

    matched: dict[str, Contact] = {}
    for person in extracted:
        email_key = (person.email or "").strip().lower()
        name_key = (person.name or "").strip().lower()
        contact = (email_key and by_email.get(email_key)) or (name_key and by_name.get(name_key))
        if contact and contact.id not in matched:
            matched[contact.id] = contact
    return list(matched.values())


async def link_topic_contacts(
    owner_id: str,
    topic_id: str,
    *,
    store: TopicStore,
    completion: SchemaValidatedCompletion,
    contacts: Sequence[Contact] | None = None,
    settings: Settings | None = None,
) -> int:
    """
    Extract people from a topic's records and link matching contacts.

    Linking is an upsert, so re-running is a no-op for existing links.

    Returns:
        Number of contacts linked

    Raises:
        SchemaValidationFailure: If extraction output never validates
    """
    settings = settings or get_settings()
    records = await store.list_records_for_topic(
        owner_id, topic_id, limit=settings.BATCH_CONTACT_RECORD_LIMIT
    )
    if not records:
        return 0

    if contacts is None:
        contacts = await store.list_contacts(owner_id)

    extracted = await extract_topic_contacts(
        records,
        contacts,
        completion=completion,
        preview_chars=settings.BATCH_CONTACT_PREVIEW_CHARS,
    )
    matched = match_contacts(extracted, contacts)
    for contact in matched:
        await store.upsert_contact_topic_link(owner_id, contact.id, topic_id)

    logger.info(
        f"Linked {len(matched)} contacts to topic {topic_id} ({len(extracted)} people extracted)",
    )
    return len(matched)
