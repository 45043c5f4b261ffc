"""Integration tests for provider account endpoints."""

import pytest

from models import Account, ConnectionStatus, ProviderAccount


@pytest.fixture
def unlinked(db, connection):
    connection.status = ConnectionStatus.PENDING_ACCOUNT_SETUP.value
    pa = ProviderAccount(
        connection=connection,
        external_id="acc_new",
        name="Mercury Treasury",
        account_type="savings",
        currency="USD",
    )
    db.add(pa)
    db.commit()
    return pa


def test_list_provider_accounts(client, connection, provider_account, unlinked):
    response = client.get(f"/api/connections/{connection.id}/provider-accounts")

    assert response.status_code == 200
    data = response.json()
    assert [pa["name"] for pa in data] == ["Mercury Checking", "Mercury Treasury"]
    assert data[0]["account_id"] == provider_account.account_id
    assert data[1]["account_id"] is None


def test_list_provider_accounts_unknown_connection(client):
    assert client.get("/api/connections/nope/provider-accounts").status_code == 404


def test_link_to_existing_account(client, db, connection, account, unlinked):
    response = client.post(
        f"/api/provider-accounts/{unlinked.id}/link", json={"account_id": account.id}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["provider_account"]["account_id"] == account.id
    assert data["connection_status"] == ConnectionStatus.GOOD.value
    db.refresh(connection)
    assert connection.status == ConnectionStatus.GOOD.value


def test_link_creates_account_when_none_given(client, db, unlinked):
    response = client.post(f"/api/provider-accounts/{unlinked.id}/link", json={})

    assert response.status_code == 200
    account_id = response.json()["provider_account"]["account_id"]
    account = db.get(Account, account_id)
    assert account.name == "Mercury Treasury"
    assert account.user_id == "user-1"


def test_link_rejects_other_users_account(client, db, unlinked):
    foreign = Account(user_id="user-2", name="Someone else's", currency="USD")
    db.add(foreign)
    db.commit()

    response = client.post(
        f"/api/provider-accounts/{unlinked.id}/link", json={"account_id": foreign.id}
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Account belongs to a different user"


def test_link_unknown_account(client, unlinked):
    response = client.post(
        f"/api/provider-accounts/{unlinked.id}/link", json={"account_id": "nope"}
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Account not found"


def test_link_unknown_provider_account(client):
    response = client.post("/api/provider-accounts/nope/link", json={})
    assert response.status_code == 404
