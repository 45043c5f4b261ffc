"""Attribute-level enrichment with locks and source precedence.

An enrichment is a conditional write of one attribute of one record
(an ``Entry`` or ``Transaction``).  A provider import must never clobber a
value a user typed in, nor a value a categorisation rule assigned, so every
provider-sourced attribute write goes through :func:`enrich_attribute`.

Records opt in by carrying a ``locked_attributes`` JSON column mapping
attribute name to the ISO timestamp it was locked at.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from models import DataEnrichment

logger = logging.getLogger(__name__)

USER_SOURCE = "user"
RULE_SOURCE = "rule"
AI_SOURCE = "ai"

# Higher wins.  Every provider source ranks 0.
SOURCE_PRECEDENCE: dict[str, int] = {
    USER_SOURCE: 3,
    RULE_SOURCE: 2,
    AI_SOURCE: 1,
}

# Sources allowed to write through a lock.
LOCK_OVERRIDE_SOURCES = frozenset({USER_SOURCE, RULE_SOURCE})


def source_rank(source: str | None) -> int:
    return SOURCE_PRECEDENCE.get(source or "", 0)


def _json_value(value):
    """Serialise a column value for the JSON ``value`` audit column."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _is_persisted(record) -> bool:
    return inspect(record).persistent


def is_locked(record, attribute: str) -> bool:
    """Return True if ``attribute`` is locked on ``record``."""
    return attribute in (record.locked_attributes or {})


def lock_attribute(record, attribute: str) -> None:
    """Lock ``attribute`` so provider enrichment leaves it alone.

    The JSON column is reassigned rather than mutated in place so the
    ORM sees the change.
    """
    locks = dict(record.locked_attributes or {})
    locks[attribute] = datetime.now(timezone.utc).isoformat()
    record.locked_attributes = locks


def unlock_attribute(record, attribute: str) -> None:
    locks = dict(record.locked_attributes or {})
    locks.pop(attribute, None)
    record.locked_attributes = locks


def current_owner(db: Session, record, attribute: str) -> str | None:
    """Return the highest-precedence source that wrote the attribute's current value.

    Args:
        db: Database session
        record: A persisted enrichable record
        attribute: Attribute name

    Returns:
        The owning source, or None if no logged write matches the
        current value (e.g. it was set when the record was created).
    """
    current = _json_value(getattr(record, attribute))
    rows = (
        db.query(DataEnrichment)
        .filter(
            DataEnrichment.enrichable_type == type(record).__name__,
            DataEnrichment.enrichable_id == record.id,
            DataEnrichment.attribute_name == attribute,
        )
        .all()
    )
    owners = [row.source for row in rows if row.value == current]
    if not owners:
        return None
    return max(owners, key=source_rank)


def log_enrichment(db: Session, record, attribute: str, value, source: str) -> DataEnrichment:
    """Record that ``source`` wrote ``value`` to ``record.attribute``."""
    row = (
        db.query(DataEnrichment)
        .filter_by(
            enrichable_type=type(record).__name__,
            enrichable_id=record.id,
            attribute_name=attribute,
            source=source,
        )
        .first()
    )
    if row is None:
        row = DataEnrichment(
            enrichable_type=type(record).__name__,
            enrichable_id=record.id,
            attribute_name=attribute,
            source=source,
        )
        db.add(row)
    row.value = _json_value(value)
    row.updated_at = datetime.now(timezone.utc)
    db.flush()
    return row


def enrich_attribute(db: Session, record, attribute: str, value, source: str) -> bool:
    """Conditionally write one attribute on behalf of ``source``.

    The write happens only when:
    - the attribute is not locked, unless ``source`` is a user or rule;
    - the incoming value differs from the current one;
    - no higher-precedence source currently owns a non-null value.

    Writes to persisted records are logged as :class:`DataEnrichment` rows.
    Setting attributes on a record that has not been flushed yet is not an
    enrichment, so nothing is logged.

    Args:
        db: Database session
        record: The enrichable record (Entry or Transaction)
        attribute: Attribute name to write
        value: The proposed new value
        source: Who is writing (``"user"``, ``"rule"``, ``"ai"`` or a provider)

    Returns:
        True if the attribute was changed, False otherwise.
    """
    if is_locked(record, attribute) and source not in LOCK_OVERRIDE_SOURCES:
        logger.debug(
            "Enrichment skipped: %s.%s locked (source=%s)",
            type(record).__name__, attribute, source,
        )
        return False

    current = getattr(record, attribute)
    if current == value:
        return False

    persisted = _is_persisted(record)
    if persisted and current is not None:
        owner = current_owner(db, record, attribute)
        if owner is not None and source_rank(owner) > source_rank(source):
            logger.debug(
                "Enrichment skipped: %s.%s owned by %s (source=%s)",
                type(record).__name__, attribute, owner, source,
            )
            return False

    setattr(record, attribute, value)
    if persisted:
        log_enrichment(db, record, attribute, value, source)
    return True


def clear_ai_enrichments(db: Session, record) -> int:
    """Unlock every attribute the AI source wrote on ``record`` and drop its audit rows.

    Returns:
        Number of enrichment rows removed.
    """
    rows = (
        db.query(DataEnrichment)
        .filter_by(
            enrichable_type=type(record).__name__,
            enrichable_id=record.id,
            source=AI_SOURCE,
        )
        .all()
    )
    for row in rows:
        unlock_attribute(record, row.attribute_name)
        db.delete(row)
    db.flush()
    return len(rows)
