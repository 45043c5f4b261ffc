"""Provider account listing and linking endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import get_or_404
from database import get_db
from models import Account, Connection, ProviderAccount
from schemas import (
    LinkProviderAccountRequest,
    LinkProviderAccountResponse,
    ProviderAccountResponse,
)
from services.relink_service import RelinkService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["provider-accounts"])


@router.get(
    "/connections/{connection_id}/provider-accounts",
    response_model=list[ProviderAccountResponse],
)
def list_provider_accounts(connection_id: str, db: Session = Depends(get_db)):
    """List a connection's provider accounts, linked or not."""
    connection = get_or_404(db, Connection, connection_id, "Connection not found")
    return sorted(connection.provider_accounts, key=lambda pa: pa.name or "")


@router.post(
    "/provider-accounts/{provider_account_id}/link",
    response_model=LinkProviderAccountResponse,
)
def link_provider_account(
    provider_account_id: str,
    body: LinkProviderAccountRequest,
    db: Session = Depends(get_db),
):
    """Link a provider account to an account, creating one if none is given.

    Once every provider account of the connection is linked the
    connection leaves ``pending_account_setup`` and can be synced again.
    """
    provider_account = get_or_404(
        db, ProviderAccount, provider_account_id, "Provider account not found"
    )
    service = RelinkService(db)

    try:
        if body.account_id:
            account = get_or_404(db, Account, body.account_id, "Account not found")
            service.link_provider_account(provider_account, account)
        else:
            service.create_account_for(provider_account)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    db.commit()
    db.refresh(provider_account)
    return LinkProviderAccountResponse(
        provider_account=ProviderAccountResponse.model_validate(provider_account),
        connection_status=provider_account.connection.status,
    )
