"""Unit tests for AccountProcessor."""

from decimal import Decimal

import pytest

from integrations.provider_protocol import ProviderKind
from models import Category, Connection, Entry, Merchant, ProviderAccount, Security
from models.entry import TRADE, TRANSACTION
from services.account_processor import AccountProcessor
from tests.fixtures.mocks import (
    SAMPLE_BROKERAGE_ACTIVITIES,
    SAMPLE_MERCURY_TRANSACTIONS,
    make_registry,
)


@pytest.fixture
def mercury_registry():
    return make_registry()


@pytest.fixture
def brokerage_account(db, account):
    conn = Connection(user_id="user-1", name="Brokerage", provider_kind="snaptrade", credentials={})
    db.add(conn)
    db.flush()
    pa = ProviderAccount(
        connection=conn,
        external_id="brk_1",
        name="Brokerage",
        currency="USD",
        account_id=account.id,
        raw_activities_payload=SAMPLE_BROKERAGE_ACTIVITIES,
    )
    db.add(pa)
    db.commit()
    return pa


def test_imports_mercury_transactions(db, account, provider_account, mercury_registry):
    provider_account.raw_activities_payload = SAMPLE_MERCURY_TRANSACTIONS
    db.commit()

    result = AccountProcessor(db, mercury_registry).process(provider_account)

    assert result.entries_imported == 2
    assert result.records_ignored == 1
    assert result.records_skipped == 0
    entries = {e.external_id: e for e in db.query(Entry).filter_by(account_id=account.id)}
    assert set(entries) == {"mercury_txn_1", "mercury_txn_2"}
    rent = entries["mercury_txn_2"]
    assert rent.entryable_type == TRANSACTION
    assert rent.source == "mercury"
    assert rent.amount == Decimal("750")
    assert rent.transaction.merchant.name == "Landlord LLC"


def test_merchants_are_shared_by_provider_id(db, account, provider_account, mercury_registry):
    provider_account.raw_activities_payload = [
        {**SAMPLE_MERCURY_TRANSACTIONS[0], "id": "txn_a"},
        {**SAMPLE_MERCURY_TRANSACTIONS[0], "id": "txn_b"},
    ]
    db.commit()

    AccountProcessor(db, mercury_registry).process(provider_account)

    assert db.query(Merchant).filter_by(provider_merchant_id="cp_acme").count() == 1


def test_maps_category_label_to_existing_category(db, account, provider_account, mercury_registry):
    category = Category(user_id="user-1", name="rent")
    db.add(category)
    provider_account.raw_activities_payload = [SAMPLE_MERCURY_TRANSACTIONS[1]]
    db.commit()

    AccountProcessor(db, mercury_registry).process(provider_account)

    entry = db.query(Entry).filter_by(external_id="mercury_txn_2").one()
    assert entry.transaction.category_id == category.id


def test_unknown_category_label_is_left_blank(db, account, provider_account, mercury_registry):
    provider_account.raw_activities_payload = [SAMPLE_MERCURY_TRANSACTIONS[1]]
    db.commit()

    AccountProcessor(db, mercury_registry).process(provider_account)

    entry = db.query(Entry).filter_by(external_id="mercury_txn_2").one()
    assert entry.transaction.category_id is None


def test_writes_provider_balance(db, account, provider_account, mercury_registry):
    provider_account.current_balance = Decimal("980.10")
    db.commit()

    AccountProcessor(db, mercury_registry).process(provider_account)

    assert account.balance == Decimal("980.10")
    assert account.cash_balance == Decimal("980.10")


def test_bad_record_is_skipped_and_rest_imported(db, account, provider_account, mercury_registry):
    provider_account.raw_activities_payload = [
        {"id": "txn_bad", "amount": "abc", "postedAt": "2026-01-02", "status": "sent"},
        {"amount": 5, "postedAt": "2026-01-02", "status": "sent"},
        SAMPLE_MERCURY_TRANSACTIONS[0],
    ]
    db.commit()

    result = AccountProcessor(db, mercury_registry).process(provider_account)

    assert result.entries_imported == 1
    assert result.records_skipped == 2
    assert result.errors[0]["record"] == "id:txn_bad"
    assert db.query(Entry).filter_by(account_id=account.id).count() == 1


def test_reprocessing_updates_changed_records(db, account, provider_account, mercury_registry):
    provider_account.raw_activities_payload = [SAMPLE_MERCURY_TRANSACTIONS[0]]
    db.commit()
    processor = AccountProcessor(db, mercury_registry)
    processor.process(provider_account)

    provider_account.raw_activities_payload = [{**SAMPLE_MERCURY_TRANSACTIONS[0], "amount": 2100.0}]
    db.commit()
    result = processor.process(provider_account)

    assert result.entries_imported == 0
    assert result.entries_updated == 1
    entry = db.query(Entry).filter_by(external_id="mercury_txn_1").one()
    assert entry.amount == Decimal("-2100")


def test_unlinked_account_is_a_no_op(db, connection, mercury_registry):
    pa = ProviderAccount(
        connection=connection,
        external_id="acc_x",
        name="Unlinked",
        currency="USD",
        raw_activities_payload=SAMPLE_MERCURY_TRANSACTIONS,
    )
    db.add(pa)
    db.commit()

    result = AccountProcessor(db, mercury_registry).process(pa)

    assert result.entries_imported == 0
    assert db.query(Entry).count() == 0


def test_imports_brokerage_trades(db, account, brokerage_account):
    registry = make_registry(kind=ProviderKind.SNAPTRADE)

    result = AccountProcessor(db, registry).process(brokerage_account)

    assert result.entries_imported == 3
    security = db.query(Security).filter_by(ticker="AAPL").one()
    assert security.name == "Apple Inc."
    trades = (
        db.query(Entry)
        .filter_by(account_id=account.id, entryable_type=TRADE)
        .order_by(Entry.date)
        .all()
    )
    assert [t.trade.qty for t in trades] == [Decimal("10"), Decimal("-4")]
    assert all(t.trade.security_id == security.id for t in trades)
    dividend = db.query(Entry).filter_by(external_id="act_div").one()
    assert dividend.entryable_type == TRANSACTION
    assert dividend.amount == Decimal("-12.5")
