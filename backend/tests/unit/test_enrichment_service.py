"""Unit tests for attribute enrichment, locks and source precedence."""

from datetime import date
from decimal import Decimal

import pytest

from models import DataEnrichment, Entry
from models.entry import TRANSACTION
from services.enrichment_service import (
    clear_ai_enrichments,
    current_owner,
    enrich_attribute,
    is_locked,
    lock_attribute,
    source_rank,
    unlock_attribute,
)


@pytest.fixture
def entry(db, account):
    e = Entry(
        account_id=account.id,
        entryable_type=TRANSACTION,
        date=date(2026, 1, 2),
        amount=Decimal("10"),
        currency="USD",
        name="COFFEE SHOP 123",
        external_id="t1",
        source="mercury",
        locked_attributes={},
    )
    db.add(e)
    db.commit()
    return e


class TestSourceRank:
    def test_precedence_order(self):
        assert source_rank("user") > source_rank("rule") > source_rank("ai") > source_rank("mercury")

    def test_unknown_and_none_rank_zero(self):
        assert source_rank("snaptrade") == 0
        assert source_rank(None) == 0


class TestLocks:
    def test_lock_and_unlock(self, entry):
        lock_attribute(entry, "name")
        assert is_locked(entry, "name")
        assert "name" in entry.locked_attributes

        unlock_attribute(entry, "name")
        assert not is_locked(entry, "name")

    def test_lock_is_persisted(self, db, entry):
        lock_attribute(entry, "name")
        db.commit()
        db.expire_all()
        assert is_locked(db.get(Entry, entry.id), "name")


class TestEnrichAttribute:
    def test_provider_write_is_logged(self, db, entry):
        assert enrich_attribute(db, entry, "name", "Coffee Shop", "mercury") is True
        assert entry.name == "Coffee Shop"
        row = db.query(DataEnrichment).filter_by(enrichable_id=entry.id).one()
        assert row.source == "mercury"
        assert row.value == "Coffee Shop"

    def test_equal_value_is_noop(self, db, entry):
        assert enrich_attribute(db, entry, "name", "COFFEE SHOP 123", "mercury") is False
        assert db.query(DataEnrichment).count() == 0

    def test_locked_attribute_blocks_provider(self, db, entry):
        lock_attribute(entry, "name")
        assert enrich_attribute(db, entry, "name", "Renamed", "mercury") is False
        assert entry.name == "COFFEE SHOP 123"

    def test_user_writes_through_lock(self, db, entry):
        lock_attribute(entry, "name")
        assert enrich_attribute(db, entry, "name", "Morning coffee", "user") is True
        assert entry.name == "Morning coffee"

    def test_user_owned_value_survives_provider(self, db, entry):
        enrich_attribute(db, entry, "name", "Morning coffee", "user")
        assert current_owner(db, entry, "name") == "user"

        assert enrich_attribute(db, entry, "name", "COFFEE SHOP 456", "mercury") is False
        assert entry.name == "Morning coffee"

    def test_ai_can_replace_provider_value(self, db, entry):
        enrich_attribute(db, entry, "name", "Coffee Shop", "mercury")
        assert enrich_attribute(db, entry, "name", "Coffee", "ai") is True
        assert current_owner(db, entry, "name") == "ai"

    def test_new_record_is_not_logged(self, db, account):
        fresh = Entry(account_id=account.id, entryable_type=TRANSACTION, locked_attributes={})
        assert enrich_attribute(db, fresh, "name", "New", "mercury") is True
        assert fresh.name == "New"
        assert db.query(DataEnrichment).count() == 0


class TestClearAiEnrichments:
    def test_removes_ai_rows_and_unlocks(self, db, entry):
        enrich_attribute(db, entry, "name", "Coffee", "ai")
        lock_attribute(entry, "name")
        enrich_attribute(db, entry, "notes", "typed by hand", "user")

        assert clear_ai_enrichments(db, entry) == 1
        assert not is_locked(entry, "name")
        assert db.query(DataEnrichment).filter_by(source="ai").count() == 0
        assert db.query(DataEnrichment).filter_by(source="user").count() == 1
