"""Phased sync pipeline for one provider connection.

A sync moves through an explicit state machine::

    pending -> importing -> processing -> calculating -> completed
                         \\-> requires_account_setup
    (any non-terminal state) -> failed

- importing: fetch accounts and activity from the provider, merge each
  account's activity into its stored raw payload.
- link check: if any provider account is not linked to a canonical
  account the connection is flagged ``pending_account_setup`` and the
  sync halts before touching the ledger.
- processing: import each linked account's merged activity.
- calculating: rebuild holdings, then balances, per linked account.
- completed: stats are stored, ``last_synced_at`` stamped, listeners told.

Authentication failures flip the connection to ``requires_update`` and
fail the sync.  Every other error is contained to the account (or the
single record) it came from.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import ProviderAuthError, ProviderError, ProviderRateLimitError
from integrations.provider_protocol import ProviderAccountData, ProviderClient
from integrations.provider_registry import ProviderRegistry, get_provider_registry
from models import Connection, ConnectionStatus, ProviderAccount, Sync, SyncStatus
from services.account_processor import AccountProcessor
from services.activity_merger import merge
from services.balance_materializer import BalanceMaterializer
from services.holdings_materializer import HoldingsMaterializer
from services.relink_service import RelinkService
from services.retry_scheduler import RetryScheduler
from tasks.dispatcher import InlineDispatcher, JobDispatcher
from tasks.locks import InProcessLockStore, LockStore, account_lock_key

logger = logging.getLogger(__name__)

S = SyncStatus

VALID_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    S.PENDING: frozenset({S.IMPORTING, S.FAILED}),
    S.IMPORTING: frozenset({S.PROCESSING, S.REQUIRES_ACCOUNT_SETUP, S.FAILED}),
    S.PROCESSING: frozenset({S.CALCULATING, S.FAILED}),
    S.CALCULATING: frozenset({S.COMPLETED, S.FAILED}),
    S.REQUIRES_ACCOUNT_SETUP: frozenset({S.FAILED}),
    S.COMPLETED: frozenset(),
    S.FAILED: frozenset(),
}

STATUS_TEXT: dict[SyncStatus, str] = {
    S.PENDING: "Waiting to start",
    S.IMPORTING: "Importing accounts and activity",
    S.PROCESSING: "Processing transactions",
    S.CALCULATING: "Calculating holdings and balances",
    S.COMPLETED: "Sync complete",
}

SyncListener = Callable[[Sync], None]


class InvalidTransitionError(Exception):
    """A sync was asked to move to a state its current state cannot reach."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid sync transition: {current} -> {requested}")


@dataclass
class FetchOutcome:
    """Result of fetching and merging one provider account's activity.

    ``status`` is one of ``fetched``, ``empty``, ``retry_scheduled``,
    ``rate_limited``, ``auth_failed``, ``skipped_locked`` or
    ``awaiting_setup`` (merged but not processed because the connection
    still has unlinked accounts).  When
    ``lock_handed_off`` is set a follow-up job now owns the account lock.
    """

    provider_account_id: str
    status: str
    activities_fetched: int = 0
    error: str | None = None
    lock_handed_off: bool = False


def _awaiting_setup(connection: Connection) -> bool:
    """No account of a connection is processed while any of its accounts is unlinked."""
    return (
        connection.status == ConnectionStatus.PENDING_ACCOUNT_SETUP.value
        or bool(connection.unlinked_provider_accounts)
    )

def _new_stats() -> dict:
    return {
        "total_accounts": 0,
        "linked_accounts": 0,
        "unlinked_accounts": 0,
        "accounts_processed": 0,
        "accounts_skipped": [],
        "activities_fetched": 0,
        "entries_imported": 0,
        "entries_updated": 0,
        "records_skipped": 0,
        "holdings_written": 0,
        "balances_written": 0,
        "retries_scheduled": 0,
        "errors": [],
    }


class SyncOrchestrator:
    """Runs the sync state machine for connections.

    Commits after each phase so progress is visible to readers of the
    ``syncs`` table while the pipeline runs.
    """

    def __init__(
        self,
        db: Session,
        registry: ProviderRegistry | None = None,
        dispatcher: JobDispatcher | None = None,
        lock_store: LockStore | None = None,
        retry_scheduler: RetryScheduler | None = None,
        end_date: date | None = None,
    ):
        """
        Args:
            db: Database session
            registry: Provider registry (default: all known providers)
            dispatcher: Job dispatcher for delayed retries
            lock_store: Per-account lock store
            retry_scheduler: Retry policy (default: built on ``dispatcher``)
            end_date: Last day for materialized snapshots (default today)
        """
        self.db = db
        self.registry = registry or get_provider_registry()
        self.dispatcher = dispatcher or InlineDispatcher(eager=False)
        self.lock_store = lock_store or InProcessLockStore()
        self.retry_scheduler = retry_scheduler or RetryScheduler(self.dispatcher)
        self.end_date = end_date
        self._listeners: list[SyncListener] = []

    def add_listener(self, listener: SyncListener) -> None:
        """Register a callback invoked with each completed Sync."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def transition(self, sync: Sync, new_status: SyncStatus, status_text: str | None = None) -> None:
        """Move a sync to ``new_status`` and commit.

        Raises:
            InvalidTransitionError: If the move is not in VALID_TRANSITIONS.
        """
        current = SyncStatus(sync.status)
        if new_status not in VALID_TRANSITIONS[current]:
            raise InvalidTransitionError(current.value, new_status.value)

        sync.status = new_status.value
        sync.status_text = status_text or STATUS_TEXT.get(new_status)
        now = datetime.now(timezone.utc)
        if new_status == S.COMPLETED:
            sync.completed_at = now
        elif new_status == S.FAILED:
            sync.failed_at = now
        self.db.commit()
        logger.info("Sync %s: %s -> %s", sync.id, current.value, new_status.value)

    def _fail(self, sync: Sync, status_text: str, error: str, stats: dict) -> None:
        sync.error = error
        sync.sync_stats = stats
        if sync.is_terminal:
            self.db.commit()
            return
        self.transition(sync, S.FAILED, status_text)

    def _notify(self, sync: Sync) -> None:
        for listener in self._listeners:
            try:
                listener(sync)
            except Exception:
                logger.warning("Sync listener failed for sync %s", sync.id, exc_info=True)

    # ------------------------------------------------------------------
    # Import phase
    # ------------------------------------------------------------------

    def _upsert_provider_accounts(
        self, connection: Connection, remote_accounts: list[ProviderAccountData]
    ) -> list[ProviderAccount]:
        """Create or refresh the connection's provider accounts.

        Returns:
            The upserted ProviderAccount rows (flushed, not committed)
        """
        upserted = []
        new_count = 0
        for remote in remote_accounts:
            existing = (
                self.db.query(ProviderAccount)
                .filter_by(connection_id=connection.id, external_id=remote.id)
                .first()
            )
            if existing is None:
                existing = ProviderAccount(
                    connection=connection,
                    external_id=remote.id,
                    activities_fetch_pending=False,
                )
                self.db.add(existing)
                new_count += 1

            existing.name = remote.name
            existing.currency = (remote.currency or "USD").upper()
            existing.institution_id = remote.institution_id
            existing.institution_name = remote.institution_name
            existing.account_type = remote.account_type
            if remote.current_balance is not None:
                existing.current_balance = remote.current_balance
            existing.raw_payload = remote.raw_data
            upserted.append(existing)

        self.db.flush()
        logger.info(
            "Connection %s: provider accounts upserted (%d new, %d existing)",
            connection.id, new_count, len(upserted) - new_count,
        )
        return upserted

    def _refresh_balance(self, client: ProviderClient, provider_account: ProviderAccount) -> None:
        try:
            balance = client.get_balance(provider_account.external_id)
        except ProviderAuthError:
            raise
        except ProviderError as e:
            logger.warning(
                "Balance fetch failed for provider account %s: %s", provider_account.id, e
            )
            return
        if balance is not None:
            provider_account.current_balance = balance

    def _import_account(
        self,
        client: ProviderClient,
        provider_account: ProviderAccount,
        start_date: date,
        end_date: date | None,
        retry_count: int = 0,
    ) -> FetchOutcome:
        """Fetch one account's activity and merge it into the stored payload.

        Transient provider errors count as "no activity" so the empty-fetch
        retry path can still fire.

        Raises:
            ProviderAuthError: Credentials were rejected.
        """
        error = None
        try:
            raw = client.get_transactions(provider_account.external_id, start_date, end_date)
        except ProviderAuthError:
            raise
        except ProviderRateLimitError as e:
            handed_off = self.retry_scheduler.schedule_rate_limited(
                provider_account,
                attempt=retry_count,
                retry_after=e.retry_after,
                start_date=start_date,
                end_date=end_date,
            )
            return FetchOutcome(
                provider_account_id=provider_account.id,
                status="rate_limited",
                error=str(e),
                lock_handed_off=handed_off,
            )
        except ProviderError as e:
            logger.warning(
                "Activity fetch failed for provider account %s: %s", provider_account.id, e
            )
            raw = []
            error = str(e)

        if raw:
            provider_account.raw_activities_payload = merge(
                provider_account.raw_activities_payload, raw
            )
            provider_account.activities_fetch_pending = False
            return FetchOutcome(
                provider_account_id=provider_account.id,
                status="fetched",
                activities_fetched=len(raw),
                error=error,
            )

        definition = self.registry.get(provider_account.connection.provider_kind)
        fresh = provider_account.is_linked and not provider_account.raw_activities_payload
        if fresh and definition.delayed_activity:
            handed_off = self.retry_scheduler.schedule_if_empty(
                provider_account,
                attempt=retry_count,
                start_date=start_date,
                end_date=end_date,
            )
            return FetchOutcome(
                provider_account_id=provider_account.id,
                status="retry_scheduled" if handed_off else "empty",
                error=error,
                lock_handed_off=handed_off,
            )

        return FetchOutcome(provider_account_id=provider_account.id, status="empty", error=error)

    # ------------------------------------------------------------------
    # Processing and calculating phases
    # ------------------------------------------------------------------

    def _process_account(self, provider_account: ProviderAccount, stats: dict) -> None:
        try:
            with self.db.begin_nested():
                result = AccountProcessor(self.db, self.registry).process(provider_account)
        except Exception as e:
            logger.error(
                "Processing failed for provider account %s: %s",
                provider_account.id, e, exc_info=True,
            )
            stats["errors"].append(
                {"provider_account_id": provider_account.id, "phase": "processing", "error": str(e)}
            )
            return

        stats["accounts_processed"] += 1
        stats["entries_imported"] += result.entries_imported
        stats["entries_updated"] += result.entries_updated
        stats["records_skipped"] += result.records_skipped
        stats["errors"].extend(result.errors)

    def _calculate_account(self, account, stats: dict) -> None:
        holdings = HoldingsMaterializer(self.db, end_date=self.end_date).materialize_holdings(account)
        stats["holdings_written"] += holdings.rows_written
        if not holdings.success:
            stats["errors"].append(
                {"account_id": account.id, "phase": "holdings", "error": holdings.error}
            )

        balances = BalanceMaterializer(self.db, end_date=self.end_date).materialize_balances(account)
        stats["balances_written"] += balances.rows_written
        if not balances.success:
            stats["errors"].append(
                {"account_id": account.id, "phase": "balances", "error": balances.error}
            )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def create_sync(
        self,
        connection: Connection,
        window_start_date: date | None = None,
        window_end_date: date | None = None,
    ) -> Sync:
        """Create and commit a pending Sync for a connection."""
        sync = Sync(
            connection_id=connection.id,
            status=S.PENDING.value,
            status_text=STATUS_TEXT[S.PENDING],
            window_start_date=window_start_date,
            window_end_date=window_end_date,
        )
        self.db.add(sync)
        self.db.commit()
        return sync

    def sync_connection(
        self,
        connection: Connection,
        window_start_date: date | None = None,
        window_end_date: date | None = None,
        sync: Sync | None = None,
    ) -> Sync:
        """Run the full pipeline for one connection.

        Never raises for provider or per-account failures; the outcome is
        on the returned Sync's ``status``, ``status_text`` and
        ``sync_stats``.

        Args:
            connection: The connection to sync
            window_start_date: Earliest activity date to fetch
                (default DEFAULT_SYNC_LOOKBACK_DAYS ago)
            window_end_date: Latest activity date to fetch (default open)
            sync: An existing pending Sync to drive (default: create one)

        Returns:
            The Sync record.
        """
        if sync is None:
            sync = self.create_sync(connection, window_start_date, window_end_date)
        start_date = (
            window_start_date
            or sync.window_start_date
            or date.today() - timedelta(days=settings.DEFAULT_SYNC_LOOKBACK_DAYS)
        )
        end_date = window_end_date or sync.window_end_date
        sync.window_start_date = start_date
        sync.window_end_date = end_date

        stats = _new_stats()
        held: list[str] = []
        handed_off: set[str] = set()
        ttl = settings.SYNC_LOCK_TTL_SECONDS

        try:
            self.transition(sync, S.IMPORTING)
            client = self.registry.client_for(connection.provider_kind, connection.credentials)
            provider_accounts = self._upsert_provider_accounts(connection, client.get_accounts())
            RelinkService(self.db).carry_over_links(connection)
            stats["total_accounts"] = len(provider_accounts)

            locked: list[ProviderAccount] = []
            for provider_account in provider_accounts:
                if not self.lock_store.acquire(account_lock_key(provider_account.id), ttl):
                    logger.info(
                        "Provider account %s is already syncing, skipped", provider_account.id
                    )
                    stats["accounts_skipped"].append(provider_account.id)
                    continue
                held.append(provider_account.id)
                locked.append(provider_account)

                if provider_account.current_balance is None:
                    self._refresh_balance(client, provider_account)
                outcome = self._import_account(client, provider_account, start_date, end_date)
                stats["activities_fetched"] += outcome.activities_fetched
                if outcome.lock_handed_off:
                    handed_off.add(provider_account.id)
                    stats["retries_scheduled"] += 1
                if outcome.error:
                    stats["errors"].append(
                        {
                            "provider_account_id": provider_account.id,
                            "phase": "importing",
                            "error": outcome.error,
                        }
                    )
            self.db.commit()

            unlinked = [pa for pa in provider_accounts if not pa.is_linked]
            stats["unlinked_accounts"] = len(unlinked)
            stats["linked_accounts"] = len(provider_accounts) - len(unlinked)
            if unlinked:
                connection.status = ConnectionStatus.PENDING_ACCOUNT_SETUP.value
                sync.sync_stats = stats
                logger.info(
                    "Connection %s has %d unlinked accounts, waiting for setup",
                    connection.id, len(unlinked),
                )
                self.transition(
                    sync,
                    S.REQUIRES_ACCOUNT_SETUP,
                    f"{len(unlinked)} account(s) need to be linked before syncing can continue",
                )
                return sync

            connection.status = ConnectionStatus.GOOD.value
            self.transition(sync, S.PROCESSING)
            for provider_account in locked:
                self._process_account(provider_account, stats)
            self.db.commit()

            self.transition(sync, S.CALCULATING)
            seen: set[str] = set()
            for provider_account in locked:
                account = provider_account.account
                if account is None or account.id in seen:
                    continue
                seen.add(account.id)
                self._calculate_account(account, stats)
            self.db.commit()

            sync.sync_stats = stats
            connection.last_synced_at = datetime.now(timezone.utc)
            status_text = STATUS_TEXT[S.COMPLETED]
            if stats["errors"]:
                status_text = f"Sync complete with {len(stats['errors'])} error(s)"
            self.transition(sync, S.COMPLETED, status_text)
            logger.info(
                "Sync %s completed: %d accounts, %d activities, %d imported, %d errors",
                sync.id,
                stats["accounts_processed"],
                stats["activities_fetched"],
                stats["entries_imported"],
                len(stats["errors"]),
            )
            self._notify(sync)

        except ProviderAuthError as e:
            self.db.rollback()
            logger.warning("Authentication failed for connection %s: %s", connection.id, e)
            connection.status = ConnectionStatus.REQUIRES_UPDATE.value
            self._fail(
                sync,
                f"Authentication with {e.provider_name or connection.provider_kind} failed. "
                "Please reconnect this account.",
                str(e),
                stats,
            )

        except ProviderError as e:
            self.db.rollback()
            logger.warning("Provider error for connection %s: %s", connection.id, e)
            self._fail(
                sync,
                f"{e.provider_name or connection.provider_kind} is unavailable. "
                "Please try again later.",
                str(e),
                stats,
            )

        except Exception as e:
            self.db.rollback()
            logger.error("Sync %s failed: %s", sync.id, e, exc_info=True)
            self._fail(sync, "Sync failed due to an unexpected error.", str(e), stats)

        finally:
            for provider_account_id in held:
                if provider_account_id not in handed_off:
                    self.lock_store.release(account_lock_key(provider_account_id))

        return sync

    def fetch_activities(
        self,
        provider_account: ProviderAccount,
        start_date: date,
        end_date: date | None = None,
        retry_count: int = 0,
        lock_held: bool = False,
    ) -> FetchOutcome:
        """Fetch, merge and (when linked) import one account's activity.

        The single-account path used by delayed retry jobs and webhook
        deliveries.

        Args:
            provider_account: The account to fetch
            start_date: Earliest activity date
            end_date: Latest activity date (None = open)
            retry_count: How many times this fetch has already been retried
            lock_held: True when the dispatching job handed this call the
                account lock

        Returns:
            FetchOutcome describing what happened.
        """
        key = account_lock_key(provider_account.id)
        if not lock_held and not self.lock_store.acquire(key, settings.SYNC_LOCK_TTL_SECONDS):
            logger.info(
                "Fetch for provider account %s dropped: already in progress", provider_account.id
            )
            return FetchOutcome(provider_account_id=provider_account.id, status="skipped_locked")

        outcome = None
        connection = provider_account.connection
        try:
            client = self.registry.client_for(connection.provider_kind, connection.credentials)
            outcome = self._import_account(
                client, provider_account, start_date, end_date, retry_count
            )
            self.db.commit()

            if outcome.status == "fetched" and _awaiting_setup(connection):
                logger.info(
                    "Provider account %s fetched but not processed: connection %s awaits account setup",
                    provider_account.id,
                    connection.id,
                )
                outcome.status = "awaiting_setup"
            elif outcome.status == "fetched" and provider_account.is_linked:
                stats = _new_stats()
                self._process_account(provider_account, stats)
                self._calculate_account(provider_account.account, stats)
                if stats["errors"]:
                    outcome.error = "; ".join(str(err.get("error")) for err in stats["errors"])
                self.db.commit()

        except ProviderAuthError as e:
            self.db.rollback()
            logger.warning(
                "Authentication failed fetching provider account %s: %s", provider_account.id, e
            )
            connection.status = ConnectionStatus.REQUIRES_UPDATE.value
            provider_account.activities_fetch_pending = False
            self.db.commit()
            outcome = FetchOutcome(
                provider_account_id=provider_account.id, status="auth_failed", error=str(e)
            )

        finally:
            if outcome is None or not outcome.lock_handed_off:
                self.lock_store.release(key)

        return outcome
