"""Pydantic request and response schemas."""

from .sync import (
    LinkProviderAccountRequest,
    LinkProviderAccountResponse,
    ProviderAccountResponse,
    SyncResponse,
    SyncTriggerRequest,
    WebhookAcceptedResponse,
)

__all__ = [
    "LinkProviderAccountRequest",
    "LinkProviderAccountResponse",
    "ProviderAccountResponse",
    "SyncResponse",
    "SyncTriggerRequest",
    "WebhookAcceptedResponse",
]
