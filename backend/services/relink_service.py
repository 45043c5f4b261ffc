"""Linking provider accounts to canonical ledger accounts."""

import logging

from sqlalchemy.orm import Session

from models import Account, Connection, ConnectionStatus, ProviderAccount
from models.account import ASSET, LIABILITY
from services.account_matcher import AccountDescriptor, find_matching_account

logger = logging.getLogger(__name__)

LIABILITY_ACCOUNT_TYPES = {"credit", "credit_card", "creditcard", "loan", "mortgage", "line_of_credit"}


def _descriptor(provider_account: ProviderAccount) -> AccountDescriptor:
    return AccountDescriptor(
        external_id=provider_account.external_id,
        name=provider_account.name,
        institution_id=provider_account.institution_id,
        account_type=provider_account.account_type,
    )


class RelinkService:
    """Keeps the provider-account to account mapping of connections current."""

    def __init__(self, db: Session):
        self.db = db

    def _refresh_connection_status(self, connection: Connection) -> None:
        if (
            connection.status == ConnectionStatus.PENDING_ACCOUNT_SETUP.value
            and not connection.unlinked_provider_accounts
        ):
            connection.status = ConnectionStatus.GOOD.value
            logger.info("Connection %s: all accounts linked", connection.id)

    def link_provider_account(
        self, provider_account: ProviderAccount, account: Account
    ) -> ProviderAccount:
        """Point a provider account at a canonical account.

        Clears the connection's ``pending_account_setup`` status once no
        provider account of it remains unlinked.

        Raises:
            ValueError: If the account belongs to a different user.
        """
        connection = provider_account.connection
        if connection.user_id and account.user_id and connection.user_id != account.user_id:
            raise ValueError("Account belongs to a different user")

        provider_account.account_id = account.id
        provider_account.account = account
        self.db.flush()
        logger.info("Linked provider account %s to account %s", provider_account.id, account.id)

        self._refresh_connection_status(connection)
        self.db.flush()
        return provider_account

    def create_account_for(self, provider_account: ProviderAccount) -> Account:
        """Create a new canonical account mirroring a provider account and link it."""
        account_type = (provider_account.account_type or "").lower()
        account = Account(
            user_id=provider_account.connection.user_id,
            name=provider_account.name,
            currency=provider_account.currency or "USD",
            classification=LIABILITY if account_type in LIABILITY_ACCOUNT_TYPES else ASSET,
            accountable_type=provider_account.account_type,
        )
        self.db.add(account)
        self.db.flush()
        self.link_provider_account(provider_account, account)
        return account

    def carry_over_links(self, connection: Connection) -> int:
        """Link unlinked provider accounts by matching them against known ones.

        When a connection is rotated the provider may return new account
        ids.  Each unlinked provider account is matched (by id, fingerprint,
        then similar name at the same institution) against the linked
        provider accounts of the user's other connections to the same
        provider, and inherits the match's canonical account.

        Returns:
            Number of provider accounts linked.
        """
        unlinked = connection.unlinked_provider_accounts
        if not unlinked:
            return 0

        query = (
            self.db.query(ProviderAccount)
            .join(Connection, ProviderAccount.connection_id == Connection.id)
            .filter(
                Connection.id != connection.id,
                Connection.provider_kind == connection.provider_kind,
                ProviderAccount.account_id.isnot(None),
            )
        )
        if connection.user_id:
            query = query.filter(Connection.user_id == connection.user_id)
        known = query.all()
        if not known:
            return 0

        by_descriptor = {}
        for pa in known:
            by_descriptor.setdefault(_descriptor(pa), pa)
        candidates = list(by_descriptor)

        linked = 0
        claimed: set[str] = {pa.account_id for pa in connection.provider_accounts if pa.account_id}
        for provider_account in unlinked:
            match = find_matching_account(_descriptor(provider_account), candidates)
            if match is None:
                continue
            previous = by_descriptor[match]
            if previous.account_id in claimed:
                continue
            provider_account.account_id = previous.account_id
            provider_account.account = previous.account
            claimed.add(previous.account_id)
            candidates.remove(match)
            linked += 1
            logger.info(
                "Provider account %s matched %s, carrying over link to account %s",
                provider_account.id, previous.id, previous.account_id,
            )

        self.db.flush()
        self._refresh_connection_status(connection)
        self.db.flush()
        return linked
