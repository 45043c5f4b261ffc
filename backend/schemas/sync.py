"""Pydantic schemas for syncs, provider accounts and webhooks."""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, model_validator


class SyncTriggerRequest(BaseModel):
    """Optional activity window for a manually triggered sync."""

    window_start_date: Optional[date] = None
    window_end_date: Optional[date] = None

    @model_validator(mode="after")
    def check_window(self):
        if (
            self.window_start_date
            and self.window_end_date
            and self.window_start_date > self.window_end_date
        ):
            raise ValueError("window_start_date must not be after window_end_date")
        return self


class SyncResponse(BaseModel):
    """A sync run and its progress."""

    id: str
    connection_id: str
    status: str
    status_text: Optional[str] = None
    error: Optional[str] = None
    window_start_date: Optional[date] = None
    window_end_date: Optional[date] = None
    sync_stats: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ProviderAccountResponse(BaseModel):
    id: str
    connection_id: str
    external_id: str
    name: str
    institution_name: Optional[str] = None
    account_type: Optional[str] = None
    currency: str
    account_id: Optional[str] = None
    activities_fetch_pending: bool = False

    model_config = {"from_attributes": True}


class LinkProviderAccountRequest(BaseModel):
    """Link to an existing account, or create one when ``account_id`` is omitted."""

    account_id: Optional[str] = None


class LinkProviderAccountResponse(BaseModel):
    provider_account: ProviderAccountResponse
    connection_status: str


class WebhookAcceptedResponse(BaseModel):
    accepted: bool = True
    jobs_enqueued: int = 0
