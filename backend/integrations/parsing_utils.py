"""Shared parsing utilities for provider payloads.

Centralises the date and amount parsing logic that all provider
integrations need: ISO 8601 strings, Unix timestamps, timezone
normalisation, numeric strings.  Nothing here patches third-party
parsers; every helper takes a loosely-typed value and returns either a
well-typed result or ``None``.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation


def parse_iso_datetime(value) -> datetime | None:
    """Parse an ISO 8601 string (or date/datetime object) to a UTC-aware datetime.

    Handles the formats produced by each provider:
    - Z suffix (Mercury, CoinStats: "2024-01-15T10:30:00.000Z")
    - +0000 no-colon offset ("2024-01-15T10:30:00+0000")
    - Standard ISO with colon offset (SnapTrade: "2024-06-28 18:42:46+00:00")
    - Date-only strings ("2024-06-28")
    - datetime/date objects passed through with UTC normalisation

    Args:
        value: A string, date, datetime, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    value_str = str(value).strip()
    if not value_str:
        return None

    # Handle Z suffix: "2024-01-15T10:30:00Z" -> "2024-01-15T10:30:00+00:00"
    if value_str.endswith("Z"):
        value_str = value_str[:-1] + "+00:00"

    # Handle "+0000" no-colon tz: "...+0000" -> "...+00:00"
    if (
        len(value_str) >= 5
        and value_str[-5] in ("+", "-")
        and value_str[-4:].isdigit()
    ):
        value_str = value_str[:-2] + ":" + value_str[-2:]

    try:
        dt = datetime.fromisoformat(value_str)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except (ValueError, TypeError):
        pass

    # Try date-only: "2024-06-28"
    try:
        d = date.fromisoformat(str(value).strip()[:10])
        return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    except (ValueError, TypeError):
        return None


def parse_unix_timestamp(value) -> datetime | None:
    """Parse a Unix epoch timestamp to a UTC-aware datetime.

    Args:
        value: An int, float, string-encoded number, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        return datetime.fromtimestamp(int(float(value)), tz=timezone.utc)
    except (ValueError, TypeError, OSError, OverflowError):
        return None


def parse_date(value) -> date | None:
    """Parse any supported date representation to a calendar date.

    Accepts ``date``/``datetime`` objects, ISO 8601 strings and Unix
    timestamps (numbers or numeric strings).

    Returns:
        The date, or None if the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        dt = parse_unix_timestamp(value)
        return dt.date() if dt else None

    value_str = str(value).strip()
    if value_str.isdigit() and len(value_str) != 8:
        dt = parse_unix_timestamp(value_str)
        return dt.date() if dt else None

    dt = parse_iso_datetime(value_str)
    return dt.date() if dt else None


def parse_decimal(value) -> Decimal | None:
    """Parse a number or numeric string to a finite ``Decimal``.

    Strips thousands separators and surrounding whitespace.  Floats go
    through ``str()`` so binary noise is not carried into the ledger.

    Returns:
        The Decimal, or None for missing, non-numeric or non-finite input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        result = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result

