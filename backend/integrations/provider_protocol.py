"""Provider protocol definitions for multi-provider support.

This module defines the common interfaces that all data aggregation providers
(Mercury, Wise, SimpleFIN, SnapTrade, CoinStats) must implement to work with
the sync pipeline, and the normalized record types the import adapter
consumes.

Provider clients return activity as raw JSON dicts.  Those dicts are what
gets merged and persisted on the provider account, so reprocessing never
needs to re-fetch.  A provider-specific normalizer turns each raw dict into a
:class:`NormalizedTransaction` or :class:`NormalizedTrade` at processing time.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Protocol


class ProviderKind(str, Enum):
    """Known provider kinds.  Stored on ``Connection.provider_kind``."""

    MERCURY = "mercury"
    WISE = "wise"
    SIMPLEFIN = "simplefin"
    SNAPTRADE = "snaptrade"
    COINSTATS = "coinstats"


@dataclass
class ProviderAccountData:
    """Normalized account data from any provider.

    All provider clients must map their account data to this format.
    """

    id: str  # Provider's external ID for the account
    name: str  # Account name/nickname
    currency: str = "USD"
    institution_id: str | None = None  # Stable institution identifier (id or domain)
    institution_name: str | None = None  # Bank/brokerage name
    account_type: str | None = None  # e.g., "checking", "brokerage", "wallet"
    current_balance: Decimal | None = None  # Last balance reported by the provider
    raw_data: dict | None = None  # Raw provider response, persisted as raw_payload


@dataclass
class NormalizedTransaction:
    """A cash transaction ready for the import adapter.

    ``amount`` follows the ledger convention: positive is an outflow
    (expense), negative is an inflow (income).
    """

    external_id: str
    amount: Decimal
    date: date
    description: str
    currency: str | None = None  # None means "use the account currency"
    pending: bool = False
    category: str | None = None  # Provider category label, mapped by name
    merchant: str | None = None  # Merchant / counterparty display name
    merchant_id: str | None = None  # Provider's merchant identifier
    notes: str | None = None
    raw_data: dict | None = None


@dataclass
class NormalizedTrade:
    """A security trade ready for the import adapter.

    ``quantity`` is signed: positive for buys, negative for sells.
    ``amount`` follows the ledger convention (buys are outflows).
    """

    external_id: str
    date: date
    symbol: str
    quantity: Decimal
    price: Decimal
    amount: Decimal
    currency: str | None = None
    security_name: str | None = None
    exchange: str | None = None
    raw_data: dict | None = None


class ProviderClient(Protocol):
    """Protocol that all provider clients must implement.

    This defines the contract for data aggregation providers.
    Any new provider integration must implement these methods.
    Clients raise the typed exceptions from :mod:`integrations.exceptions`.
    """

    @property
    def provider_name(self) -> str:
        """Return the provider display name (e.g., 'Mercury')."""
        ...

    def get_accounts(self) -> list[ProviderAccountData]:
        """Fetch all accounts visible to this connection's credentials.

        Raises:
            ProviderAuthError: If the credentials are rejected.
            ProviderError: If the provider API call fails.
        """
        ...

    def get_transactions(
        self, account_id: str, start_date: date, end_date: date | None = None
    ) -> list[dict]:
        """Fetch raw activity records for one account.

        Args:
            account_id: The provider's external account ID.
            start_date: Earliest activity date to request.
            end_date: Latest activity date to request (None = today).

        Returns:
            Raw provider JSON dicts, one per activity.  Already-normalized
            providers may return dicts shaped like
            ``{external_id, amount, date, description, pending, category}``.
        """
        ...

    def get_balance(self, account_id: str) -> Decimal | None:
        """Fetch the current balance of one account, if the provider reports it."""
        ...
