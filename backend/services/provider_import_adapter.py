"""Sole write boundary from provider records into the canonical ledger.

Every provider-sourced Entry, Trade, Holding, Merchant and live balance
write for an account goes through :class:`ProviderImportAdapter`.  Writes
are idempotent: re-importing the same provider data updates rows in place
and never creates duplicates.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date as date_type
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from integrations.parsing_utils import parse_date, parse_decimal
from models import Account, Entry, Holding, Merchant, Security, Trade, Transaction
from models.entry import TRADE, TRANSACTION
from services.enrichment_service import enrich_attribute

logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class BalanceValidationError(ValueError):
    """A live balance write was rejected because amount or currency is malformed."""

    pass


@dataclass(frozen=True)
class ImportResult:
    """Outcome of one idempotent import call.

    Attributes:
        entry: The canonical Entry (created or updated).
        created: True if the Entry did not exist before this call.
        changed: Names of the attributes this call actually wrote.
    """

    entry: Entry
    created: bool
    changed: frozenset[str] = field(default_factory=frozenset)

    @property
    def modified(self) -> bool:
        return self.created or bool(self.changed)


def _require_decimal(value, label: str) -> Decimal:
    parsed = parse_decimal(value)
    if parsed is None:
        raise ValueError(f"{label} must be a finite number, got {value!r}")
    return parsed


def _require_date(value, label: str = "date") -> date_type:
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"{label} is not a valid date: {value!r}")
    return parsed


def _require_currency(value) -> str:
    if not isinstance(value, str) or not _CURRENCY_RE.match(value.strip().upper()):
        raise ValueError(f"currency must be a 3-letter ISO code, got {value!r}")
    return value.strip().upper()


def trade_name(quantity: Decimal, ticker: str) -> str:
    """Build the display name for a trade, e.g. ``"Buy 10 AAPL"``."""
    verb = "Sell" if quantity < 0 else "Buy"
    units = format(abs(quantity).normalize(), "f")
    return f"{verb} {units} {ticker}"


class ProviderImportAdapter:
    """Idempotent upserts of provider data into one canonical account.

    Services ``flush()``; the caller owns the commit.
    """

    def __init__(self, db: Session, account: Account):
        self.db = db
        self.account = account

    def _find_entry(self, external_id: str, source: str) -> Entry | None:
        return (
            self.db.query(Entry)
            .filter_by(account_id=self.account.id, external_id=external_id, source=source)
            .first()
        )

    def import_transaction(
        self,
        external_id: str,
        amount,
        currency: str,
        date,
        name: str,
        source: str,
        category_id: str | None = None,
        merchant: Merchant | None = None,
        notes: str | None = None,
        pending: bool = False,
    ) -> ImportResult:
        """Create or update a cash transaction keyed on ``(account, external_id, source)``.

        Amount, currency and date are provider facts and are always written.
        Name, notes, category and merchant go through enrichment, so locked
        or user-owned values survive re-imports.

        Args:
            external_id: Provider's unique ID for the transaction
            amount: Signed amount (positive = outflow)
            currency: ISO currency code
            date: Transaction date (date or parseable string)
            name: Display name / description
            source: Provider source tag (e.g. ``"mercury"``)
            category_id: Optional Category to assign
            merchant: Optional Merchant to assign
            notes: Optional free-text notes
            pending: Whether the provider still reports it as pending

        Returns:
            ImportResult with the Entry and what changed.

        Raises:
            ValueError: If required arguments are missing or malformed.
        """
        if not external_id:
            raise ValueError("external_id is required")
        if not source:
            raise ValueError("source is required")
        amount = _require_decimal(amount, "amount")
        currency = _require_currency(currency)
        date = _require_date(date)

        changed: set[str] = set()
        with self.db.begin_nested():
            entry = self._find_entry(external_id, source)
            created = entry is None
            if created:
                entry = Entry(
                    account_id=self.account.id,
                    entryable_type=TRANSACTION,
                    external_id=external_id,
                    source=source,
                    locked_attributes={},
                )
                entry.transaction = Transaction(pending=False, locked_attributes={})
                self.db.add(entry)
            elif entry.entryable_type != TRANSACTION:
                raise ValueError(
                    f"Entry {external_id} from {source} is a {entry.entryable_type}, "
                    "not a Transaction"
                )

            for attr, value in (("amount", amount), ("currency", currency), ("date", date)):
                if getattr(entry, attr) != value:
                    setattr(entry, attr, value)
                    changed.add(attr)

            if enrich_attribute(self.db, entry, "name", name or "Transaction", source):
                changed.add("name")
            if notes is not None and enrich_attribute(self.db, entry, "notes", notes, source):
                changed.add("notes")

            transaction = entry.transaction
            if category_id is not None and enrich_attribute(
                self.db, transaction, "category_id", category_id, source
            ):
                changed.add("category_id")
            if merchant is not None and enrich_attribute(
                self.db, transaction, "merchant_id", merchant.id, source
            ):
                changed.add("merchant_id")
            if transaction.pending != pending:
                transaction.pending = pending
                changed.add("pending")

            self.db.flush()

        return ImportResult(entry=entry, created=created, changed=frozenset(changed))

    def import_trade(
        self,
        security: Security,
        quantity,
        price,
        amount,
        currency: str,
        date,
        source: str,
        name: str | None = None,
        external_id: str | None = None,
    ) -> ImportResult:
        """Create or update a trade Entry and its Trade in one savepoint.

        Idempotent on ``(account, external_id, source)`` when an external id
        is given.

        Args:
            security: The traded Security
            quantity: Signed units (positive = buy, negative = sell)
            price: Price per unit
            amount: Total value (None = quantity * price)
            currency: ISO currency code
            date: Trade date
            source: Provider source tag
            name: Display name (default e.g. ``"Buy 10 AAPL"``)
            external_id: Provider's unique ID for the trade

        Returns:
            ImportResult with the trade Entry.

        Raises:
            ValueError: If required arguments are missing or malformed.
        """
        if security is None:
            raise ValueError("security is required")
        if not source:
            raise ValueError("source is required")
        quantity = _require_decimal(quantity, "quantity")
        price = _require_decimal(price, "price")
        amount = quantity * price if amount is None else _require_decimal(amount, "amount")
        currency = _require_currency(currency)
        date = _require_date(date)
        display_name = name or trade_name(quantity, security.ticker)

        changed: set[str] = set()
        with self.db.begin_nested():
            entry = self._find_entry(external_id, source) if external_id else None
            created = entry is None
            if created:
                entry = Entry(
                    account_id=self.account.id,
                    entryable_type=TRADE,
                    external_id=external_id,
                    source=source,
                    name=display_name,
                    locked_attributes={},
                )
                entry.trade = Trade()
                self.db.add(entry)
            elif entry.entryable_type != TRADE:
                raise ValueError(
                    f"Entry {external_id} from {source} is a {entry.entryable_type}, not a Trade"
                )

            for attr, value in (("amount", amount), ("currency", currency), ("date", date)):
                if getattr(entry, attr) != value:
                    setattr(entry, attr, value)
                    changed.add(attr)
            if not created and enrich_attribute(self.db, entry, "name", display_name, source):
                changed.add("name")

            trade = entry.trade
            for attr, value in (
                ("security_id", security.id),
                ("qty", quantity),
                ("price", price),
                ("currency", currency),
            ):
                if getattr(trade, attr) != value:
                    setattr(trade, attr, value)
                    changed.add(f"trade.{attr}")

            self.db.flush()

        return ImportResult(entry=entry, created=created, changed=frozenset(changed))

    def import_holding(
        self,
        security: Security,
        quantity,
        amount,
        currency: str,
        date,
        source: str,
        price=None,
    ) -> Holding:
        """Upsert a provider-reported holding on ``(account, security, date, currency)``.

        Returns:
            The Holding row (flushed but not committed).

        Raises:
            ValueError: If required arguments are missing or malformed.
        """
        if security is None:
            raise ValueError("security is required")
        if not source:
            raise ValueError("source is required")
        quantity = _require_decimal(quantity, "quantity")
        amount = _require_decimal(amount, "amount")
        currency = _require_currency(currency)
        date = _require_date(date)
        if price is None:
            price = amount / quantity if quantity != 0 else Decimal("0")
        else:
            price = _require_decimal(price, "price")

        with self.db.begin_nested():
            holding = (
                self.db.query(Holding)
                .filter_by(
                    account_id=self.account.id,
                    security_id=security.id,
                    date=date,
                    currency=currency,
                )
                .first()
            )
            if holding is None:
                holding = Holding(
                    account_id=self.account.id,
                    security_id=security.id,
                    date=date,
                    currency=currency,
                )
                self.db.add(holding)
            holding.qty = quantity
            holding.amount = amount
            holding.price = price
            holding.source = source
            self.db.flush()

        return holding

    def find_or_create_merchant(
        self,
        provider_merchant_id: str | None,
        name: str | None,
        source: str,
        website_url: str | None = None,
        logo_url: str | None = None,
    ) -> Merchant | None:
        """Return the Merchant for ``(source, name)``, creating it if needed.

        Returns:
            The Merchant, or None when the id or name is missing.
        """
        if not provider_merchant_id or not name:
            return None

        merchant = self.db.query(Merchant).filter_by(source=source, name=name).first()
        if merchant is not None:
            return merchant

        try:
            with self.db.begin_nested():
                merchant = Merchant(
                    source=source,
                    name=name,
                    provider_merchant_id=provider_merchant_id,
                    website_url=website_url,
                    logo_url=logo_url,
                )
                self.db.add(merchant)
                self.db.flush()
        except IntegrityError:
            # Created concurrently by another import
            merchant = self.db.query(Merchant).filter_by(source=source, name=name).one()
        else:
            logger.info("Created merchant %r for %s", name, source)
        return merchant

    def update_balance(self, balance, cash_balance=None, source: str | None = None) -> Account:
        """Overwrite the account's live balance.

        Args:
            balance: Total balance
            cash_balance: Cash portion (defaults to ``balance``)
            source: Provider source, for logging

        Raises:
            BalanceValidationError: If an amount is not a finite number or
                the account currency is malformed.
        """
        parsed_balance = parse_decimal(balance)
        if parsed_balance is None:
            raise BalanceValidationError(f"Invalid balance {balance!r} for account {self.account.id}")
        if cash_balance is None:
            parsed_cash = parsed_balance
        else:
            parsed_cash = parse_decimal(cash_balance)
            if parsed_cash is None:
                raise BalanceValidationError(
                    f"Invalid cash balance {cash_balance!r} for account {self.account.id}"
                )
        currency = self.account.currency
        if not isinstance(currency, str) or not _CURRENCY_RE.match(currency):
            raise BalanceValidationError(
                f"Invalid currency {currency!r} for account {self.account.id}"
            )

        self.account.balance = parsed_balance
        self.account.cash_balance = parsed_cash
        self.db.flush()
        logger.debug(
            "Balance updated for account %s: %s %s (source=%s)",
            self.account.id, parsed_balance, currency, source,
        )
        return self.account
