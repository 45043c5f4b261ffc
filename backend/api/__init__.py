"""API route handlers."""
from . import provider_accounts, sync, webhooks

__all__ = ["provider_accounts", "sync", "webhooks"]
