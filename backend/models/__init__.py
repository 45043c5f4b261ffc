"""SQLAlchemy ORM models."""

from .account import Account
from .balance import Balance
from .category import Category
from .connection import Connection, ConnectionStatus
from .data_enrichment import DataEnrichment
from .entry import Entry
from .holding import Holding
from .merchant import Merchant
from .provider_account import ProviderAccount
from .security import Security
from .sync import Sync, SyncStatus
from .trade import Trade
from .transaction import Transaction
from .valuation import Valuation
from .utils import generate_uuid

__all__ = [
    "Account",
    "Balance",
    "Category",
    "Connection",
    "ConnectionStatus",
    "DataEnrichment",
    "Entry",
    "Holding",
    "Merchant",
    "ProviderAccount",
    "Security",
    "Sync",
    "SyncStatus",
    "Trade",
    "Transaction",
    "Valuation",
    "generate_uuid",
]
