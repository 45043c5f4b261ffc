"""Queue job entry points.

Each job opens its own database session, looks up the rows it was
dispatched for and hands off to :class:`SyncOrchestrator`.  A job whose
rows have been deleted since dispatch is logged and discarded.
"""

import logging
from datetime import date, timedelta

from config import settings
from database import get_session_local
from integrations.provider_registry import get_provider_registry
from models import Connection, ProviderAccount, Sync
from services.sync_orchestrator import FetchOutcome, SyncOrchestrator
from tasks.locks import account_lock_key
from tasks.runtime import get_dispatcher, get_lock_store

logger = logging.getLogger(__name__)


def _parse_date(value: str | date | None) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _orchestrator(db) -> SyncOrchestrator:
    return SyncOrchestrator(
        db,
        registry=get_provider_registry(),
        dispatcher=get_dispatcher(),
        lock_store=get_lock_store(),
    )


def sync_connection_job(
    connection_id: str,
    window_start_date: str | None = None,
    window_end_date: str | None = None,
    sync_id: str | None = None,
) -> str | None:
    """Run the full sync pipeline for a connection.

    Returns:
        The Sync id, or None if the connection no longer exists.
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        connection = db.get(Connection, connection_id)
        if connection is None:
            logger.warning("Discarding sync job: connection %s no longer exists", connection_id)
            return None

        sync = db.get(Sync, sync_id) if sync_id else None
        if sync_id and sync is None:
            logger.warning("Sync %s no longer exists, starting a new one", sync_id)

        result = _orchestrator(db).sync_connection(
            connection,
            window_start_date=_parse_date(window_start_date),
            window_end_date=_parse_date(window_end_date),
            sync=sync,
        )
        return result.id
    finally:
        db.close()


def fetch_activities_job(
    provider_account_id: str,
    start_date: str | None = None,
    end_date: str | None = None,
    retry_count: int = 0,
    lock_held: bool = False,
) -> FetchOutcome | None:
    """Fetch, merge and import one provider account's activity.

    Dispatched by webhooks and by the retry scheduler.  ``lock_held`` is
    set when the dispatching job handed its account lock to this one.

    Returns:
        The FetchOutcome, or None if the provider account no longer exists.
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        provider_account = db.get(ProviderAccount, provider_account_id)
        if provider_account is None:
            logger.warning(
                "Discarding fetch job: provider account %s no longer exists", provider_account_id
            )
            if lock_held:
                get_lock_store().release(account_lock_key(provider_account_id))
            return None

        start = _parse_date(start_date) or (
            date.today() - timedelta(days=settings.DEFAULT_SYNC_LOOKBACK_DAYS)
        )
        outcome = _orchestrator(db).fetch_activities(
            provider_account,
            start_date=start,
            end_date=_parse_date(end_date),
            retry_count=retry_count,
            lock_held=lock_held,
        )
        logger.info(
            "Fetch job for provider account %s (retry %d): %s",
            provider_account_id, retry_count, outcome.status,
        )
        return outcome
    finally:
        db.close()
