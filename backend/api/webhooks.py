"""Inbound provider webhooks.

A delivery is accepted only when its HMAC signature verifies under the
webhook secret of at least one connection of that provider.  Accepted
deliveries never do work inline: they dispatch a single-account fetch
when the payload names a known account, otherwise a full connection sync.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from api.helpers import get_dispatcher, get_registry
from api.sync import SYNC_CONNECTION_JOB, active_sync
from config import settings
from database import get_db
from integrations.provider_protocol import ProviderKind
from integrations.provider_registry import ProviderRegistry
from integrations.webhook_signature import verify_signature
from models import Connection, ProviderAccount, Sync, SyncStatus
from schemas import WebhookAcceptedResponse
from services.retry_scheduler import FETCH_ACTIVITIES_JOB
from tasks.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _webhook_secret(kind: ProviderKind, connection: Connection) -> str:
    credentials = connection.credentials or {}
    secret = credentials.get("webhook_signing_secret")
    if secret:
        return secret
    if kind == ProviderKind.MERCURY:
        return settings.MERCURY_WEBHOOK_SECRET
    return ""


def _payload_account_id(raw_body: bytes) -> str | None:
    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    for container in (payload, payload.get("data"), payload.get("resource")):
        if isinstance(container, dict):
            value = container.get("accountId") or container.get("account_id")
            if value:
                return str(value)
    return None


def _dispatch_sync(db: Session, dispatcher: JobDispatcher, connection: Connection) -> bool:
    if active_sync(db, connection.id) is not None:
        logger.info("Webhook for connection %s dropped: sync already running", connection.id)
        return False
    sync = Sync(
        connection_id=connection.id,
        status=SyncStatus.PENDING.value,
        status_text="Waiting to start",
    )
    db.add(sync)
    db.commit()
    dispatcher.enqueue(SYNC_CONNECTION_JOB, connection_id=connection.id, sync_id=sync.id)
    return True


async def raw_body(request: Request) -> bytes:
    """Request body, read on the event loop so the handler can run in the threadpool."""
    return await request.body()


@router.post("/{provider_kind}", response_model=WebhookAcceptedResponse)
def receive_webhook(
    provider_kind: str,
    request: Request,
    body: bytes = Depends(raw_body),
    db: Session = Depends(get_db),
    dispatcher: JobDispatcher = Depends(get_dispatcher),
    registry: ProviderRegistry = Depends(get_registry),
):
    """Verify a provider webhook delivery and dispatch the matching work.

    Raises:
        HTTPException:
            - 404 Not Found: Unknown provider, or provider without webhooks
            - 401 Unauthorized: Signature did not verify for any connection
    """
    try:
        kind = ProviderKind(provider_kind.lower())
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider_kind}")
    if not registry.is_registered(kind) or not registry.get(kind).supports_webhooks:
        raise HTTPException(status_code=404, detail=f"Webhooks not supported for {provider_kind}")

    signature = request.headers.get(f"x-{kind.value}-signature")
    timestamp = request.headers.get(f"x-{kind.value}-timestamp")

    connections = db.query(Connection).filter(Connection.provider_kind == kind.value).all()
    matched = [
        c
        for c in connections
        if verify_signature(
            _webhook_secret(kind, c),
            body,
            signature,
            timestamp,
            tolerance_seconds=settings.WEBHOOK_TOLERANCE_SECONDS,
        )
    ]
    if connections and not matched:
        logger.warning("Rejected %s webhook: signature did not verify", kind.value)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    account_external_id = _payload_account_id(body)
    enqueued = 0
    for connection in matched:
        provider_account = None
        if account_external_id:
            provider_account = (
                db.query(ProviderAccount)
                .filter_by(connection_id=connection.id, external_id=account_external_id)
                .first()
            )
        if provider_account is not None:
            dispatcher.enqueue(FETCH_ACTIVITIES_JOB, provider_account_id=provider_account.id)
            enqueued += 1
        elif _dispatch_sync(db, dispatcher, connection):
            enqueued += 1

    logger.info("Accepted %s webhook: %d job(s) dispatched", kind.value, enqueued)
    return WebhookAcceptedResponse(accepted=True, jobs_enqueued=enqueued)
