"""Test fixtures and sample data."""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from models import Account, Connection, Entry, ProviderAccount, Security, Trade
from models.entry import TRADE


def create_trade(
    db: Session,
    account: Account,
    security: Security,
    qty: str,
    price: str,
    on: date,
    currency: str = "USD",
) -> Entry:
    """Create a trade Entry directly, bypassing the import adapter.

    Args:
        db: Database session
        account: Account the trade belongs to
        security: Traded security
        qty: Signed quantity (negative = sell)
        price: Price per unit
        on: Trade date
        currency: Trade currency

    Returns:
        The created Entry
    """
    quantity = Decimal(qty)
    unit_price = Decimal(price)
    entry = Entry(
        account_id=account.id,
        entryable_type=TRADE,
        date=on,
        amount=quantity * unit_price,
        currency=currency,
        name=f"Trade {security.ticker}",
        locked_attributes={},
    )
    entry.trade = Trade(security_id=security.id, qty=quantity, price=unit_price, currency=currency)
    db.add(entry)
    db.flush()
    return entry


@pytest.fixture
def connection(db):
    """A Mercury connection with no provider accounts yet."""
    conn = Connection(
        user_id="user-1",
        name="Mercury",
        provider_kind="mercury",
        credentials={"api_key": "test-key"},
    )
    db.add(conn)
    db.commit()
    return conn


@pytest.fixture
def account(db):
    """An asset account in USD."""
    acct = Account(user_id="user-1", name="Operating", currency="USD")
    db.add(acct)
    db.commit()
    return acct


@pytest.fixture
def provider_account(db, connection, account):
    """A provider account linked to ``account``."""
    pa = ProviderAccount(
        connection=connection,
        external_id="acc_checking",
        name="Mercury Checking",
        institution_id="mercury.com",
        account_type="checking",
        currency="USD",
        account_id=account.id,
    )
    db.add(pa)
    db.commit()
    return pa


@pytest.fixture
def security(db):
    """Create a test security."""
    sec = Security(ticker="AAPL", name="Apple Inc.")
    db.add(sec)
    db.commit()
    return sec
