"""Unit tests for the forward holdings calculator."""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

from models import Holding
from services.holdings_materializer import CALCULATED_SOURCE, HoldingsMaterializer
from tests.fixtures import create_trade

D1 = date(2026, 1, 1)
D2 = date(2026, 1, 2)
D3 = date(2026, 1, 3)
END = date(2026, 1, 10)


def _rows(db, account):
    return (
        db.query(Holding)
        .filter(Holding.account_id == account.id)
        .order_by(Holding.date)
        .all()
    )


class TestCalculate:
    def test_buy_then_partial_sell(self, db, account, security):
        create_trade(db, account, security, "10", "150", D1)
        create_trade(db, account, security, "-4", "160", D3)

        snapshots = HoldingsMaterializer(db, end_date=D3).calculate(account)

        assert [(s.date, s.qty) for s in snapshots] == [(D1, Decimal("10")), (D3, Decimal("6"))]
        assert snapshots[-1].price == Decimal("160")
        assert snapshots[-1].amount == Decimal("960")

    def test_full_sale_emits_zero_row(self, db, account, security):
        create_trade(db, account, security, "10", "150", D1)
        create_trade(db, account, security, "-10", "160", D3)

        snapshots = HoldingsMaterializer(db, end_date=END).calculate(account)

        assert snapshots[-1].date == D3
        assert snapshots[-1].qty == 0
        assert snapshots[-1].cost_basis is None
        # closed positions are not carried forward
        assert all(s.date != END for s in snapshots)

    def test_open_position_carried_to_end_date(self, db, account, security):
        create_trade(db, account, security, "10", "150", D1)

        snapshots = HoldingsMaterializer(db, end_date=END).calculate(account)

        assert [(s.date, s.qty) for s in snapshots] == [(D1, Decimal("10")), (END, Decimal("10"))]

    def test_same_day_trades_collapse(self, db, account, security):
        create_trade(db, account, security, "10", "100", D1)
        create_trade(db, account, security, "5", "110", D1)

        snapshots = HoldingsMaterializer(db, end_date=D1).calculate(account)

        assert len(snapshots) == 1
        assert snapshots[0].qty == Decimal("15")

    def test_weighted_average_cost(self, db, account, security):
        create_trade(db, account, security, "10", "100", D1)
        create_trade(db, account, security, "10", "200", D2)
        create_trade(db, account, security, "-5", "250", D3)

        snapshots = HoldingsMaterializer(db, end_date=D3).calculate(account)

        assert snapshots[1].cost_basis == Decimal("150")
        assert snapshots[2].cost_basis == Decimal("150")

    def test_no_trades(self, db, account):
        assert HoldingsMaterializer(db).calculate(account) == []


class TestMaterializeHoldings:
    def test_persists_calculated_rows(self, db, account, security):
        create_trade(db, account, security, "10", "150", D1)
        create_trade(db, account, security, "-4", "160", D3)

        result = HoldingsMaterializer(db, end_date=D3).materialize_holdings(account)
        db.commit()

        assert result.success
        assert result.rows_written == 2
        rows = _rows(db, account)
        assert [(r.date, r.qty) for r in rows] == [(D1, Decimal("10")), (D3, Decimal("6"))]
        assert all(r.source == CALCULATED_SOURCE for r in rows)

    def test_rerun_is_idempotent(self, db, account, security):
        create_trade(db, account, security, "10", "150", D1)
        materializer = HoldingsMaterializer(db, end_date=D3)
        materializer.materialize_holdings(account)
        db.commit()

        materializer.materialize_holdings(account)
        db.commit()

        assert len(_rows(db, account)) == 2

    def test_purges_rows_no_longer_produced(self, db, account, security):
        create_trade(db, account, security, "10", "150", D1)
        HoldingsMaterializer(db, end_date=END).materialize_holdings(account)
        db.commit()

        result = HoldingsMaterializer(db, end_date=D3).materialize_holdings(account)
        db.commit()

        assert result.rows_purged == 1
        assert [r.date for r in _rows(db, account)] == [D1, D3]

    def test_failure_is_contained(self, db, account, security):
        create_trade(db, account, security, "10", "150", D1)
        materializer = HoldingsMaterializer(db, end_date=D3)

        with patch.object(materializer, "_persist", side_effect=RuntimeError("disk full")):
            result = materializer.materialize_holdings(account)

        assert not result.success
        assert result.error == "disk full"
        assert _rows(db, account) == []
