"""Shared FastAPI dependencies: owner auth, store, connectors, completion backends."""

from functools import lru_cache
from typing import NoReturn, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from topicos.connectors.base import ConnectorRegistry
from topicos.connectors.link_content import LinkConnector
from topicos.core.completion import SchemaValidatedCompletion
from topicos.core.exceptions import ConfigurationError, NotFoundError
from topicos.core.logging import get_logger
from topicos.core.providers import select_provider
from topicos.db.store import SupabaseTopicStore, TopicStore

logger = get_logger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


async def require_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Resolve the Supabase bearer token to the owner id. Raises 401 if not authenticated."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        from topicos.db.supabase_client import get_supabase

        # Validates the JWT signature and expiration
        auth_response = get_supabase().auth.get_user(credentials.credentials)
    except Exception as e:
        logger.error(f"Token verification error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    if not auth_response or not auth_response.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return str(auth_response.user.id)


@lru_cache(maxsize=1)
def get_store() -> TopicStore:
    return SupabaseTopicStore()


@lru_cache(maxsize=1)
def get_registry() -> ConnectorRegistry:
    """Built-in connectors. Vendor connectors are registered by the host application."""
    return ConnectorRegistry([LinkConnector()])


def get_completion() -> SchemaValidatedCompletion:
    try:
        return select_provider()
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e


def get_fast_completion() -> SchemaValidatedCompletion:
    try:
        return select_provider(fast=True)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e


def raise_http_error(e: Exception, action: str) -> NoReturn:
    """Translate a domain exception into the matching HTTPException."""
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    if isinstance(e, ConfigurationError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    # pydantic's ValidationError subclasses ValueError but signals a server-side bug
    if isinstance(e, ValidationError):
        logger.exception(f"{action} failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"{action} failed"
        ) from e
    if isinstance(e, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    logger.exception(f"{action} failed: {e}")
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"{action} failed: {e}"
    ) from e
