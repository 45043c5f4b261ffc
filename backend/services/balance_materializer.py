"""Derive daily balance snapshots from an account's entry history."""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from models import Account, Balance, Entry, Holding
from models.entry import VALUATION
from services.materialization import MaterializeResult, upsert_snapshots

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass
class BalanceSnapshot:
    date: date
    currency: str
    balance: Decimal
    cash_balance: Decimal
    holdings_value: Decimal
    cash_inflows: Decimal
    cash_outflows: Decimal


class BalanceMaterializer:
    """Forward calculator for one account's daily balances.

    Walks every day from the first entry to the end date.  Entries in the
    account currency move the cash balance (assets: ``balance -= amount``,
    liabilities: ``balance += amount``); a Valuation entry pins the total
    balance to its amount.  The holdings value on each day is the sum of
    the latest holdings snapshot of each security on or before that day.

    The live ``Account.balance`` is never touched here.
    """

    def __init__(self, db: Session, end_date: date | None = None):
        self.db = db
        self.end_date = end_date

    def _holdings_by_day(self, account: Account) -> list[Holding]:
        return (
            self.db.query(Holding)
            .filter(Holding.account_id == account.id, Holding.currency == account.currency)
            .order_by(Holding.date)
            .all()
        )

    def calculate(self, account: Account) -> list[BalanceSnapshot]:
        """Compute the daily series without persisting it."""
        entries = (
            self.db.query(Entry)
            .filter(Entry.account_id == account.id)
            .order_by(Entry.date, Entry.created_at)
            .all()
        )
        if not entries:
            return []

        skipped = [e for e in entries if e.currency != account.currency]
        if skipped:
            logger.warning(
                "Balance materialization for account %s skipped %d entries not in %s",
                account.id, len(skipped), account.currency,
            )
        entries = [e for e in entries if e.currency == account.currency]
        if not entries:
            return []

        start = entries[0].date
        end = max(self.end_date or date.today(), entries[-1].date)
        liability = account.is_liability

        by_day: dict[date, list[Entry]] = {}
        for entry in entries:
            by_day.setdefault(entry.date, []).append(entry)

        holdings = self._holdings_by_day(account)
        latest_value: dict[str, Decimal] = {}
        holding_idx = 0

        snapshots: list[BalanceSnapshot] = []
        cash = _ZERO
        day = start
        while day <= end:
            while holding_idx < len(holdings) and holdings[holding_idx].date <= day:
                h = holdings[holding_idx]
                latest_value[h.security_id] = Decimal(h.amount)
                holding_idx += 1
            holdings_value = sum(latest_value.values(), _ZERO)

            inflows = _ZERO
            outflows = _ZERO
            for entry in by_day.get(day, []):
                amount = Decimal(entry.amount)
                if entry.entryable_type == VALUATION:
                    cash = amount if liability else amount - holdings_value
                    continue
                if amount < 0:
                    inflows += -amount
                else:
                    outflows += amount
                cash = cash + amount if liability else cash - amount

            total = cash if liability else cash + holdings_value
            snapshots.append(
                BalanceSnapshot(
                    date=day,
                    currency=account.currency,
                    balance=total,
                    cash_balance=cash,
                    holdings_value=holdings_value,
                    cash_inflows=inflows,
                    cash_outflows=outflows,
                )
            )
            day += timedelta(days=1)

        return snapshots

    def _purge_outside(self, account: Account, snapshots: list[BalanceSnapshot]) -> int:
        if snapshots:
            first, last = snapshots[0].date, snapshots[-1].date
            currency = snapshots[0].currency
        stale = [
            row
            for row in self.db.query(Balance).filter(Balance.account_id == account.id).all()
            if not snapshots or row.date < first or row.date > last or row.currency != currency
        ]
        for row in stale:
            self.db.delete(row)
        return len(stale)

    def materialize_balances(self, account: Account) -> MaterializeResult:
        """Recompute and persist the account's daily balances.

        Returns:
            MaterializeResult with row counts, or the error message.
        """
        try:
            with self.db.begin_nested():
                snapshots = self.calculate(account)
                written = upsert_snapshots(
                    self.db,
                    Balance,
                    [
                        {
                            "account_id": account.id,
                            "date": s.date,
                            "currency": s.currency,
                            "balance": s.balance,
                            "cash_balance": s.cash_balance,
                            "holdings_value": s.holdings_value,
                            "cash_inflows": s.cash_inflows,
                            "cash_outflows": s.cash_outflows,
                        }
                        for s in snapshots
                    ],
                    index_elements=["account_id", "date", "currency"],
                    update_columns=[
                        "balance",
                        "cash_balance",
                        "holdings_value",
                        "cash_inflows",
                        "cash_outflows",
                    ],
                )
                purged = self._purge_outside(account, snapshots)
                self.db.flush()
        except Exception as e:
            logger.error(
                "Balance materialization failed for account %s: %s",
                account.id, e, exc_info=True,
            )
            return MaterializeResult(account_id=account.id, error=str(e))

        logger.info(
            "Balances materialized for account %s: %d written, %d purged",
            account.id, written, purged,
        )
        return MaterializeResult(account_id=account.id, rows_written=written, rows_purged=purged)
