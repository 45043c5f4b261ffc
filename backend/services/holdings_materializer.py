"""Derive dated holdings snapshots from an account's trade history.

The holdings table is recomputed in full on every run by replaying every
Trade of the account in date order (forward calculation).  Full replay is
O(trades) per sync, which is simple and always consistent with the trade
ledger.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from itertools import groupby

from sqlalchemy.orm import Session

from models import Account, Entry, Holding, Trade
from services.materialization import MaterializeResult, upsert_snapshots

logger = logging.getLogger(__name__)

CALCULATED_SOURCE = "calculated"
_ZERO = Decimal("0")


@dataclass
class HoldingSnapshot:
    """One computed holdings row before persistence."""

    security_id: str
    date: date
    qty: Decimal
    price: Decimal
    currency: str
    cost_basis: Decimal | None = None

    @property
    def amount(self) -> Decimal:
        return self.qty * self.price

    @property
    def key(self) -> tuple:
        return (self.security_id, self.date, self.currency)


class HoldingsMaterializer:
    """Forward calculator for one account's holdings."""

    def __init__(self, db: Session, end_date: date | None = None):
        """
        Args:
            db: Database session
            end_date: Last day to carry open positions forward to (default today)
        """
        self.db = db
        self.end_date = end_date

    def _load_trades(self, account: Account) -> list[tuple[Entry, Trade]]:
        return (
            self.db.query(Entry, Trade)
            .join(Trade, Trade.entry_id == Entry.id)
            .filter(Entry.account_id == account.id)
            .order_by(Trade.security_id, Trade.currency, Entry.date, Entry.created_at)
            .all()
        )

    def calculate(self, account: Account) -> list[HoldingSnapshot]:
        """Replay trades and return the holdings series without persisting it.

        For each security a snapshot is emitted on every day with at least
        one trade, at that day's closing cumulative quantity and last trade
        price.  Positions still open get a carry-forward snapshot on the end
        date.  A position that closes emits its ``qty == 0`` snapshot so any
        earlier non-zero row is superseded.
        """
        end_date = self.end_date or date.today()
        snapshots: list[HoldingSnapshot] = []

        rows = self._load_trades(account)
        for (security_id, currency), group in groupby(
            rows, key=lambda r: (r[1].security_id, r[1].currency)
        ):
            qty = _ZERO
            cost_total = _ZERO
            last_price = _ZERO
            last_day: date | None = None

            for day, day_rows in groupby(group, key=lambda r: r[0].date):
                for _entry, trade in day_rows:
                    trade_qty = Decimal(trade.qty)
                    trade_price = Decimal(trade.price)
                    if trade_qty > 0 and qty >= 0:
                        cost_total += trade_qty * trade_price
                    elif trade_qty < 0 and qty > 0:
                        # Sells release cost at the running average
                        sold = min(-trade_qty, qty)
                        cost_total -= cost_total * sold / qty
                    qty += trade_qty
                    last_price = trade_price
                    if qty <= 0:
                        cost_total = _ZERO

                snapshots.append(
                    HoldingSnapshot(
                        security_id=security_id,
                        date=day,
                        qty=qty,
                        price=last_price,
                        currency=currency,
                        cost_basis=(cost_total / qty) if qty > 0 else None,
                    )
                )
                last_day = day

            if qty != 0 and last_day is not None and last_day < end_date:
                snapshots.append(
                    HoldingSnapshot(
                        security_id=security_id,
                        date=end_date,
                        qty=qty,
                        price=last_price,
                        currency=currency,
                        cost_basis=(cost_total / qty) if qty > 0 else None,
                    )
                )

        return snapshots

    def _persist(self, account: Account, snapshots: list[HoldingSnapshot]) -> int:
        rows = [
            {
                "account_id": account.id,
                "security_id": s.security_id,
                "date": s.date,
                "qty": s.qty,
                "price": s.price,
                "amount": s.amount,
                "currency": s.currency,
                "cost_basis": s.cost_basis,
                "source": CALCULATED_SOURCE,
            }
            for s in snapshots
        ]
        return upsert_snapshots(
            self.db,
            Holding,
            rows,
            index_elements=["account_id", "security_id", "date", "currency"],
            update_columns=["qty", "price", "amount", "cost_basis", "source"],
        )

    def _purge_stale(self, account: Account, snapshots: list[HoldingSnapshot]) -> int:
        """Delete calculated rows that the latest replay no longer produces."""
        keep = {s.key for s in snapshots}
        stale = [
            holding
            for holding in self.db.query(Holding)
            .filter(Holding.account_id == account.id, Holding.source == CALCULATED_SOURCE)
            .all()
            if (holding.security_id, holding.date, holding.currency) not in keep
        ]
        for holding in stale:
            self.db.delete(holding)
        return len(stale)

    def materialize_holdings(self, account: Account) -> MaterializeResult:
        """Recompute and persist the account's holdings.

        Any failure is logged with the account id and rolls back only this
        account's holdings pass.

        Returns:
            MaterializeResult with row counts, or the error message.
        """
        try:
            with self.db.begin_nested():
                snapshots = self.calculate(account)
                written = self._persist(account, snapshots)
                purged = self._purge_stale(account, snapshots)
                self.db.flush()
        except Exception as e:
            logger.error(
                "Holdings materialization failed for account %s: %s",
                account.id, e, exc_info=True,
            )
            return MaterializeResult(account_id=account.id, error=str(e))

        logger.info(
            "Holdings materialized for account %s: %d written, %d purged",
            account.id, written, purged,
        )
        return MaterializeResult(account_id=account.id, rows_written=written, rows_purged=purged)
