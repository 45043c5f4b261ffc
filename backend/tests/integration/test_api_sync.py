"""Integration tests for sync API endpoints."""

from datetime import datetime, timedelta, timezone

from api.sync import SYNC_CONNECTION_JOB
from models import Sync, SyncStatus


def _sync(db, connection, status=SyncStatus.PENDING.value, created_at=None):
    sync = Sync(connection_id=connection.id, status=status, created_at=created_at)
    db.add(sync)
    db.commit()
    return sync


def test_trigger_sync_dispatches_job(client, db, connection, dispatcher):
    response = client.post(
        f"/api/connections/{connection.id}/sync",
        json={"window_start_date": "2026-01-01", "window_end_date": "2026-01-31"},
    )

    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "pending"
    assert data["status_text"] == "Waiting to start"
    assert data["window_start_date"] == "2026-01-01"

    sync = db.get(Sync, data["id"])
    assert sync.connection_id == connection.id
    assert len(dispatcher.dispatched) == 1
    job = dispatcher.dispatched[0]
    assert job.name == SYNC_CONNECTION_JOB
    assert job.kwargs == {
        "connection_id": connection.id,
        "window_start_date": "2026-01-01",
        "window_end_date": "2026-01-31",
        "sync_id": sync.id,
    }


def test_trigger_sync_without_body(client, connection, dispatcher):
    response = client.post(f"/api/connections/{connection.id}/sync")

    assert response.status_code == 202
    assert dispatcher.dispatched[0].kwargs["window_start_date"] is None


def test_trigger_sync_unknown_connection(client, dispatcher):
    response = client.post("/api/connections/nope/sync")

    assert response.status_code == 404
    assert response.json()["detail"] == "Connection not found"
    assert dispatcher.dispatched == []


def test_trigger_sync_rejects_inverted_window(client, connection, dispatcher):
    response = client.post(
        f"/api/connections/{connection.id}/sync",
        json={"window_start_date": "2026-02-01", "window_end_date": "2026-01-01"},
    )

    assert response.status_code == 422
    assert dispatcher.dispatched == []


def test_trigger_sync_conflicts_with_running_sync(client, db, connection, dispatcher):
    _sync(db, connection, status=SyncStatus.IMPORTING.value)

    response = client.post(f"/api/connections/{connection.id}/sync")

    assert response.status_code == 409
    assert "already in progress" in response.json()["detail"]
    assert dispatcher.dispatched == []


def test_trigger_sync_ignores_finished_syncs(client, db, connection):
    _sync(db, connection, status=SyncStatus.COMPLETED.value)
    _sync(db, connection, status=SyncStatus.REQUIRES_ACCOUNT_SETUP.value)

    response = client.post(f"/api/connections/{connection.id}/sync")

    assert response.status_code == 202


def test_trigger_sync_ignores_stale_running_sync(client, db, connection):
    """A sync stuck past the lock TTL no longer blocks new ones."""
    stale = datetime.now(timezone.utc) - timedelta(days=2)
    _sync(db, connection, status=SyncStatus.PROCESSING.value, created_at=stale)

    response = client.post(f"/api/connections/{connection.id}/sync")

    assert response.status_code == 202


def test_get_sync(client, db, connection):
    sync = _sync(db, connection, status=SyncStatus.COMPLETED.value)
    sync.status_text = "Sync complete"
    sync.sync_stats = {"entries_imported": 3, "errors": []}
    db.commit()

    response = client.get(f"/api/syncs/{sync.id}")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["status_text"] == "Sync complete"
    assert data["sync_stats"]["entries_imported"] == 3


def test_get_sync_not_found(client):
    response = client.get("/api/syncs/nope")
    assert response.status_code == 404
    assert response.json()["detail"] == "Sync not found"


def test_list_syncs_newest_first(client, db, connection):
    now = datetime.now(timezone.utc)
    old = _sync(db, connection, SyncStatus.FAILED.value, created_at=now - timedelta(hours=2))
    new = _sync(db, connection, SyncStatus.COMPLETED.value, created_at=now - timedelta(hours=1))

    response = client.get(f"/api/connections/{connection.id}/syncs")

    assert response.status_code == 200
    assert [s["id"] for s in response.json()] == [new.id, old.id]


def test_list_syncs_limit(client, db, connection):
    now = datetime.now(timezone.utc)
    for hours in range(3):
        _sync(db, connection, SyncStatus.COMPLETED.value, created_at=now - timedelta(hours=hours))

    response = client.get(f"/api/connections/{connection.id}/syncs?limit=2")
    assert len(response.json()) == 2

    assert client.get(f"/api/connections/{connection.id}/syncs?limit=0").status_code == 422


def test_list_syncs_unknown_connection(client):
    assert client.get("/api/connections/nope/syncs").status_code == 404
