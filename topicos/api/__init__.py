"""API router for v1 endpoints."""

from fastapi import APIRouter

from topicos.api import ai, contacts, search, topics

router = APIRouter()

# Topic enrichment, batch stream and context
router.include_router(topics.router, prefix="/topics", tags=["topics"])

# Cross-source search
router.include_router(search.router, tags=["search"])

# AI helpers (query generation, activity review, classification, triage)
router.include_router(ai.router, prefix="/ai", tags=["ai"])

# Contact interaction stats
router.include_router(contacts.router, prefix="/contacts", tags=["contacts"])
