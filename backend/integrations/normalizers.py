"""Per-provider normalizers from raw activity JSON to import-ready records.

Each normalizer takes one raw activity dict (as stored in
``ProviderAccount.raw_activities_payload``) and returns a
:class:`NormalizedTransaction`, a :class:`NormalizedTrade`, or ``None``
when the record should be ignored (cancelled transfers, zero-value
dust).  Unparseable records raise :class:`ProviderDataError` so the caller
can log and skip just that record.
"""

import logging
from decimal import Decimal
from typing import Callable, Union

from integrations.exceptions import ProviderDataError
from integrations.parsing_utils import parse_date, parse_decimal
from integrations.provider_protocol import NormalizedTrade, NormalizedTransaction

logger = logging.getLogger(__name__)

NormalizedRecord = Union[NormalizedTransaction, NormalizedTrade]
Normalizer = Callable[[dict], Union[NormalizedRecord, None]]

_BUY_TYPES = frozenset({"buy", "bought", "purchase", "reinvest", "reinvestment"})
_SELL_TYPES = frozenset({"sell", "sold", "sale"})

# Transaction types that move value out of a crypto wallet.
_OUTGOING_CRYPTO_TYPES = frozenset({"sent", "send", "sell", "withdraw", "transfer_out", "swap_out"})

_MERCURY_IGNORED_STATUSES = frozenset({"cancelled", "failed", "reversed"})


def _require_date(record: dict, *keys: str, provider: str):
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        parsed = parse_date(value)
        if parsed is None:
            raise ProviderDataError(
                f"Unparseable date {value!r} in field {key!r}", provider_name=provider
            )
        return parsed
    raise ProviderDataError(
        f"Missing date (looked for {', '.join(keys)})", provider_name=provider
    )


def _require_amount(value, provider: str) -> Decimal:
    amount = parse_decimal(value)
    if amount is None:
        raise ProviderDataError(f"Unparseable amount {value!r}", provider_name=provider)
    return amount


def _symbol_of(record: dict) -> str | None:
    """Extract a ticker from a flat or nested ``symbol`` field."""
    symbol = record.get("symbol")
    if isinstance(symbol, dict):
        nested = symbol.get("symbol")
        if isinstance(nested, dict):
            nested = nested.get("symbol")
        symbol = nested
    if symbol:
        return str(symbol).strip().upper()
    return None


def _currency_of(record: dict) -> str | None:
    currency = record.get("currency")
    if isinstance(currency, dict):
        currency = currency.get("code")
    return str(currency).upper() if currency else None


def normalize_generic(record: dict) -> NormalizedRecord | None:
    """Normalize a record already shaped like the provider boundary contract.

    Expected keys: ``external_id`` (or ``id``), ``amount``, ``date``,
    ``description`` (or ``name``), optional ``pending``, ``category``,
    ``merchant``, ``currency``.  Records carrying a symbol and a buy/sell
    ``type`` are treated as trades.
    """
    external_id = record.get("external_id") or record.get("id")
    if not external_id:
        raise ProviderDataError("Record has no external_id")

    activity_type = str(record.get("type") or "").lower()
    symbol = _symbol_of(record)
    if symbol and activity_type in (_BUY_TYPES | _SELL_TYPES):
        return _brokerage_trade(record, str(external_id), activity_type, symbol, "generic")

    trade_date = _require_date(record, "date", "posted_at", provider="generic")
    return NormalizedTransaction(
        external_id=str(external_id),
        amount=_require_amount(record.get("amount"), "generic"),
        date=trade_date,
        description=record.get("description") or record.get("name") or "Transaction",
        currency=_currency_of(record),
        pending=bool(record.get("pending", False)),
        category=record.get("category"),
        merchant=record.get("merchant"),
        notes=record.get("notes"),
        raw_data=record,
    )


def normalize_mercury(record: dict) -> NormalizedTransaction | None:
    """Normalize a Mercury bank transaction.

    Mercury reports money leaving the account as a negative amount.  When
    an explicit ``direction`` is present it wins: debits are outflows,
    credits inflows.
    """
    status = str(record.get("status") or "").lower()
    if status in _MERCURY_IGNORED_STATUSES:
        logger.debug("Mercury: ignoring %s transaction %s", status, record.get("id"))
        return None

    raw_id = record.get("id") or record.get("uuid")
    if not raw_id:
        raise ProviderDataError("Mercury transaction has no id", provider_name="Mercury")

    amount_field = record.get("amount")
    if isinstance(amount_field, dict):
        amount_field = amount_field.get("value")
    amount = _require_amount(amount_field, "Mercury")

    direction = record.get("direction")
    if direction:
        signed = abs(amount) if direction == "debit" else -abs(amount)
    else:
        signed = -amount

    merchant = record.get("counterpartyName")
    if not merchant and isinstance(record.get("merchant"), dict):
        merchant = record["merchant"].get("name")

    description = (
        record.get("bankDescription")
        or record.get("description")
        or record.get("note")
        or record.get("externalMemo")
        or merchant
        or "Mercury transaction"
    )

    return NormalizedTransaction(
        external_id=f"mercury_{raw_id}",
        amount=signed,
        date=_require_date(record, "postedAt", "date", "posted_at", "createdAt", provider="Mercury"),
        description=description,
        pending=status == "pending",
        category=record.get("mercuryCategory"),
        merchant=merchant,
        merchant_id=record.get("counterpartyId"),
        notes=record.get("note"),
        raw_data=record,
    )


def _exchange_of(symbol: dict) -> str | None:
    """Exchange MIC or code from a nested symbol, e.g. ``{"exchange": {"mic_code": "XNAS"}}``."""
    exchange = symbol.get("exchange")
    if isinstance(exchange, dict):
        exchange = exchange.get("mic_code") or exchange.get("code")
    if exchange:
        return str(exchange).strip().upper()
    return None


def _brokerage_trade(
    record: dict, external_id: str, activity_type: str, symbol: str, provider: str
) -> NormalizedTrade:
    units = parse_decimal(record.get("units") if record.get("units") is not None else record.get("quantity"))
    if units is None or units == 0:
        raise ProviderDataError(
            f"Trade {external_id} has no units", provider_name=provider
        )
    price = parse_decimal(record.get("price"))
    if price is None:
        raise ProviderDataError(f"Trade {external_id} has no price", provider_name=provider)

    quantity = abs(units) if activity_type in _BUY_TYPES else -abs(units)
    amount = parse_decimal(record.get("amount"))
    if amount is None:
        amount = quantity * price
    else:
        # Buys are outflows regardless of how the provider signs them.
        amount = abs(amount) if quantity > 0 else -abs(amount)

    security_name = exchange = None
    if isinstance(record.get("symbol"), dict):
        security_name = record["symbol"].get("description")
        exchange = _exchange_of(record["symbol"])

    return NormalizedTrade(
        external_id=external_id,
        date=_require_date(record, "trade_date", "date", "settlement_date", provider=provider),
        symbol=symbol,
        quantity=quantity,
        price=price,
        amount=amount,
        currency=_currency_of(record),
        security_name=security_name,
        exchange=exchange,
        raw_data=record,
    )


def normalize_brokerage_activity(record: dict) -> NormalizedRecord | None:
    """Normalize a SnapTrade-style brokerage activity.

    BUY/SELL activities with a symbol become trades; everything else
    (dividends, contributions, fees, interest) is a cash transaction.
    Brokerage amounts are positive when cash enters the account, so the
    sign is flipped to the ledger convention.
    """
    external_id = record.get("id") or record.get("external_id")
    if not external_id:
        raise ProviderDataError("Activity has no id", provider_name="SnapTrade")
    external_id = str(external_id)

    activity_type = str(record.get("type") or "").lower()
    symbol = _symbol_of(record)
    if activity_type in (_BUY_TYPES | _SELL_TYPES):
        if not symbol:
            raise ProviderDataError(
                f"Trade {external_id} has no symbol", provider_name="SnapTrade"
            )
        return _brokerage_trade(record, external_id, activity_type, symbol, "SnapTrade")

    amount = _require_amount(record.get("amount"), "SnapTrade")
    if amount == 0:
        return None

    description = record.get("description") or activity_type.replace("_", " ").title() or "Activity"
    return NormalizedTransaction(
        external_id=external_id,
        amount=-amount,
        date=_require_date(record, "trade_date", "date", "settlement_date", provider="SnapTrade"),
        description=description,
        currency=_currency_of(record),
        category=activity_type or None,
        raw_data=record,
    )


def coinstats_transaction_id(record: dict) -> str | None:
    """Extract a unique transaction id from a CoinStats wallet transaction.

    EVM chains carry it at ``hash.id``; UTXO chains at
    ``transactions[0].items[0].id``.  Falls back to ``date_type_count``.
    """
    hash_data = record.get("hash")
    if isinstance(hash_data, dict) and hash_data.get("id"):
        return str(hash_data["id"])

    transactions = record.get("transactions")
    if isinstance(transactions, list) and transactions:
        items = transactions[0].get("items") if isinstance(transactions[0], dict) else None
        if isinstance(items, list) and items and isinstance(items[0], dict) and items[0].get("id"):
            return str(items[0]["id"])

    coin_data = record.get("coinData") or {}
    if record.get("date") and record.get("type") and coin_data.get("count") is not None:
        return f"{record['date']}_{record['type']}_{coin_data['count']}"
    return None


def normalize_coinstats(record: dict) -> NormalizedTransaction | None:
    """Normalize a CoinStats wallet transaction to a USD cash transaction."""
    tx_id = coinstats_transaction_id(record)
    if not tx_id:
        raise ProviderDataError(
            "CoinStats transaction missing unique identifier", provider_name="CoinStats"
        )

    coin_data = record.get("coinData") or {}
    profit_loss = record.get("profitLoss") or {}
    value = coin_data.get("currentValue")
    if value is None:
        value = profit_loss.get("currentValue", 0)
    absolute = abs(_require_amount(value, "CoinStats"))

    tx_type = str(record.get("type") or "Transaction")
    count = parse_decimal(coin_data.get("count")) or Decimal("0")
    outgoing = count < 0 or tx_type.lower() in _OUTGOING_CRYPTO_TYPES
    amount = absolute if outgoing else -absolute

    symbol = coin_data.get("symbol")
    coin_name = None
    transactions = record.get("transactions") or []
    if transactions and isinstance(transactions[0], dict):
        items = transactions[0].get("items") or []
        if items and isinstance(items[0], dict):
            coin_name = (items[0].get("coin") or {}).get("name")

    if symbol and coin_name:
        name = f"{tx_type} {coin_name} ({symbol})"
    elif symbol or coin_name:
        name = f"{tx_type} {symbol or coin_name}"
    else:
        name = tx_type

    return NormalizedTransaction(
        external_id=f"coinstats_{tx_id}",
        amount=amount,
        date=_require_date(record, "date", provider="CoinStats"),
        description=name,
        currency="USD",
        raw_data=record,
    )
