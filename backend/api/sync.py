"""Sync API endpoints."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.helpers import get_dispatcher, get_or_404
from config import settings
from database import get_db
from models import Connection, Sync, SyncStatus
from schemas import SyncResponse, SyncTriggerRequest
from tasks.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sync"])

SYNC_CONNECTION_JOB = "tasks.jobs.sync_connection_job"

ACTIVE_STATUSES = (
    SyncStatus.PENDING.value,
    SyncStatus.IMPORTING.value,
    SyncStatus.PROCESSING.value,
    SyncStatus.CALCULATING.value,
)


def active_sync(db: Session, connection_id: str) -> Sync | None:
    """Return a non-terminal sync started within the lock TTL, if any."""
    cutoff = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(
        seconds=settings.SYNC_LOCK_TTL_SECONDS
    )
    return (
        db.query(Sync)
        .filter(
            Sync.connection_id == connection_id,
            Sync.status.in_(ACTIVE_STATUSES),
            Sync.created_at >= cutoff,
        )
        .first()
    )


@router.post("/connections/{connection_id}/sync", response_model=SyncResponse, status_code=202)
def trigger_sync(
    connection_id: str,
    body: Optional[SyncTriggerRequest] = Body(default=None),
    db: Session = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
):
    """Start a sync of one connection in the background.

    Creates a pending Sync and dispatches the pipeline job.  Progress is
    read back with ``GET /api/syncs/{id}``.

    Raises:
        HTTPException:
            - 404 Not Found: Unknown connection
            - 409 Conflict: A sync of this connection is already running
    """
    connection = get_or_404(db, Connection, connection_id, "Connection not found")

    if active_sync(db, connection.id) is not None:
        raise HTTPException(
            status_code=409,
            detail="Sync already in progress. Please wait for the current sync to complete.",
        )

    body = body or SyncTriggerRequest()
    sync = Sync(
        connection_id=connection.id,
        status=SyncStatus.PENDING.value,
        status_text="Waiting to start",
        window_start_date=body.window_start_date,
        window_end_date=body.window_end_date,
    )
    db.add(sync)
    db.commit()
    db.refresh(sync)

    dispatcher.enqueue(
        SYNC_CONNECTION_JOB,
        connection_id=connection.id,
        window_start_date=body.window_start_date.isoformat() if body.window_start_date else None,
        window_end_date=body.window_end_date.isoformat() if body.window_end_date else None,
        sync_id=sync.id,
    )
    logger.info("Sync %s dispatched for connection %s", sync.id, connection.id)

    db.refresh(sync)
    return sync


@router.get("/syncs/{sync_id}", response_model=SyncResponse)
def get_sync(sync_id: str, db: Session = Depends(get_db)):
    """Get a sync's status, status text and stats."""
    return get_or_404(db, Sync, sync_id, "Sync not found")


@router.get("/connections/{connection_id}/syncs", response_model=list[SyncResponse])
def list_syncs(
    connection_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List a connection's syncs, newest first."""
    get_or_404(db, Connection, connection_id, "Connection not found")
    return (
        db.query(Sync)
        .filter(Sync.connection_id == connection_id)
        .order_by(Sync.created_at.desc())
        .limit(limit)
        .all()
    )
