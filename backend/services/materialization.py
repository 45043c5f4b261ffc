"""Shared plumbing for the derived snapshot tables (holdings, balances).

Both materializers recompute a full series and write it with
``INSERT ... ON CONFLICT DO UPDATE`` keyed on the table's unique
constraint, so re-running one is always safe.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from models import generate_uuid

# Keeps each statement under SQLite's bound-parameter limit
UPSERT_BATCH_SIZE = 500


@dataclass
class MaterializeResult:
    """Outcome of one materializer pass over one account."""

    account_id: str
    rows_written: int = 0
    rows_purged: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def _dialect_insert(db: Session):
    if db.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert


def upsert_snapshots(
    db: Session,
    model,
    rows: list[dict],
    index_elements: list[str],
    update_columns: list[str],
) -> int:
    """Bulk upsert snapshot rows.

    Args:
        db: Database session
        model: ORM class of the snapshot table
        rows: Column dicts, one per row
        index_elements: Columns of the unique constraint to conflict on
        update_columns: Columns overwritten when the row already exists

    Returns:
        Number of rows sent.
    """
    if not rows:
        return 0

    now = datetime.now(timezone.utc)
    values = [{"id": generate_uuid(), "created_at": now, "updated_at": now, **row} for row in rows]

    insert = _dialect_insert(db)
    for start in range(0, len(values), UPSERT_BATCH_SIZE):
        stmt = insert(model).values(values[start:start + UPSERT_BATCH_SIZE])
        set_ = {column: getattr(stmt.excluded, column) for column in update_columns}
        set_["updated_at"] = now
        stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=set_)
        db.execute(stmt)

    # Core statements bypass the identity map; drop cached instances of this table.
    for obj in list(db.identity_map.values()):
        if isinstance(obj, model):
            db.expire(obj)
    return len(values)
