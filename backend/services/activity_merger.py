"""Deduplicate and merge provider activity payloads.

A provider account keeps its full activity history as raw JSON.  Each sync
fetches a (usually overlapping) window of fresh records, and
:func:`merge` folds them into the stored history so the same activity is
never stored twice.

Each record is keyed, most specific first, on:

1. a provider-native id (``id``, ``external_id``, ``hash.id`` or
   ``transactions[0].items[0].id``);
2. a fingerprint of ``institution:normalized_name:type`` when the record
   names both an institution and itself;
3. a ``date|type|amount|symbol`` composite as a last resort.

On collision the incoming record replaces the stored one.  The result is a
collection of unique records in no particular order.
"""

import logging
import re

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_name(name) -> str:
    """Lower-case a name and strip everything but letters and digits."""
    if name is None:
        return ""
    return _NON_ALNUM.sub("", str(name).lower())


def _dig(record, *path):
    current = record
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
        if current is None:
            return None
    return current


def native_id(record: dict) -> str | None:
    """Return the provider-native unique id of a record, if it carries one."""
    for path in (
        ("id",),
        ("external_id",),
        ("hash", "id"),
        ("transactions", 0, "items", 0, "id"),
    ):
        value = _dig(record, *path)
        if value not in (None, ""):
            return str(value)
    return None


def institution_of(record: dict) -> str | None:
    """Return a stable institution identifier for a record, if any."""
    for path in (
        ("institution_id",),
        ("institution",),
        ("org", "id"),
        ("org", "domain"),
    ):
        value = _dig(record, *path)
        if value not in (None, "") and not isinstance(value, (dict, list)):
            return str(value).lower()
    return None


def fingerprint(record: dict) -> str | None:
    """Return ``institution:normalized_name:type``, or None if underspecified."""
    institution = institution_of(record)
    name = normalize_name(record.get("name") or record.get("description"))
    if not institution or not name:
        return None
    activity_type = str(record.get("type") or "").lower()
    return f"{institution}:{name}:{activity_type}"


def fallback_key(record: dict) -> str:
    """Composite ``date|type|amount|symbol`` key for records with nothing better."""
    record_date = record.get("settlement_date") or record.get("date") or record.get("trade_date")
    symbol = record.get("symbol")
    if isinstance(symbol, dict):
        symbol = symbol.get("symbol")
        if isinstance(symbol, dict):
            symbol = symbol.get("symbol")
    parts = [record_date, record.get("type"), record.get("amount"), symbol]
    return "|".join("" if part is None else str(part) for part in parts)


def activity_key(record: dict) -> str:
    """Resolve the merge key of a single record."""
    record_id = native_id(record)
    if record_id is not None:
        return f"id:{record_id}"
    fp = fingerprint(record)
    if fp is not None:
        return f"fp:{fp}"
    return f"fb:{fallback_key(record)}"


def merge(existing: list[dict] | None, incoming: list[dict] | None) -> list[dict]:
    """Merge freshly fetched records into a stored payload.

    Pure: neither input is modified.

    Args:
        existing: Previously stored records (the merge base).
        incoming: Newly fetched records; these win on key collision.

    Returns:
        Unique records.  Callers must treat the result as a set.
    """
    by_key: dict[str, dict] = {}
    for record in existing or []:
        if isinstance(record, dict):
            by_key[activity_key(record)] = record
    before = len(by_key)

    replaced = 0
    for record in incoming or []:
        if not isinstance(record, dict):
            logger.warning("Skipping non-object activity record: %r", record)
            continue
        key = activity_key(record)
        if key in by_key:
            replaced += 1
        by_key[key] = record

    logger.debug(
        "Merged activities: %d stored, %d incoming, %d replaced, %d total",
        before, len(incoming or []), replaced, len(by_key),
    )
    return list(by_key.values())
