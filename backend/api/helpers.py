"""Shared API helpers for route handlers."""

from typing import TypeVar

from fastapi import HTTPException
from sqlalchemy.orm import Session

from database import Base
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from tasks.dispatcher import JobDispatcher
from tasks.runtime import get_dispatcher as get_runtime_dispatcher

T = TypeVar("T", bound=Base)


def get_or_404(db: Session, model: type[T], entity_id: str, detail: str = "Not found") -> T:
    """Fetch a single entity by primary key or raise 404.

    Args:
        db: Database session.
        model: SQLAlchemy model class.
        entity_id: Primary key value.
        detail: Error message for the 404 response.

    Returns:
        The entity instance.

    Raises:
        HTTPException: 404 if the entity doesn't exist.
    """
    entity = db.get(model, entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail=detail)
    return entity


def get_dispatcher() -> JobDispatcher:
    """Get the job dispatcher (dependency for injection in tests)."""
    return get_runtime_dispatcher()


def get_registry() -> ProviderRegistry:
    """Get the provider registry (dependency for injection in tests)."""
    return get_provider_registry()
