"""Turn one provider account's stored raw activity into ledger rows."""

import logging
from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from integrations.exceptions import ProviderDataError
from integrations.provider_protocol import NormalizedTrade
from integrations.provider_registry import ProviderRegistry
from models import Category, ProviderAccount
from services.activity_merger import activity_key
from services.provider_import_adapter import ProviderImportAdapter
from services.security_service import SecurityService

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Counts from processing one provider account."""

    provider_account_id: str
    entries_imported: int = 0
    entries_updated: int = 0
    records_ignored: int = 0
    records_skipped: int = 0
    errors: list[dict] = field(default_factory=list)


class AccountProcessor:
    """Feeds a provider account's raw payload through its normalizer and the import adapter.

    Each record is written inside its own savepoint.  A record that fails
    to parse or validate is logged with its identifying fields and
    skipped; the rest of the batch continues.
    """

    def __init__(self, db: Session, registry: ProviderRegistry):
        self.db = db
        self.registry = registry

    def _category_id(self, user_id: str | None, label: str | None) -> str | None:
        """Map a provider category label to an existing Category by name."""
        if not label:
            return None
        query = self.db.query(Category).filter(func.lower(Category.name) == label.strip().lower())
        if user_id:
            query = query.filter(Category.user_id == user_id)
        category = query.first()
        return category.id if category else None

    def process(self, provider_account: ProviderAccount) -> ProcessResult:
        """Import every stored activity of a linked provider account.

        Also writes the provider-reported live balance.

        Returns:
            ProcessResult with import counts and per-record errors.

        Raises:
            BalanceValidationError: If the provider balance is malformed.
        """
        result = ProcessResult(provider_account_id=provider_account.id)
        account = provider_account.account
        if account is None:
            logger.warning(
                "Provider account %s is not linked, nothing to process", provider_account.id
            )
            return result

        source = provider_account.connection.provider_kind
        normalizer = self.registry.normalizer_for(source)
        adapter = ProviderImportAdapter(self.db, account)

        for record in provider_account.raw_activities_payload or []:
            try:
                with self.db.begin_nested():
                    normalized = normalizer(record)
                    if normalized is None:
                        result.records_ignored += 1
                        continue

                    if isinstance(normalized, NormalizedTrade):
                        security = SecurityService.ensure_exists(
                            self.db, normalized.symbol, normalized.security_name, normalized.exchange
                        )
                        outcome = adapter.import_trade(
                            security=security,
                            quantity=normalized.quantity,
                            price=normalized.price,
                            amount=normalized.amount,
                            currency=normalized.currency or account.currency,
                            date=normalized.date,
                            source=source,
                            external_id=normalized.external_id,
                        )
                    else:
                        merchant = adapter.find_or_create_merchant(
                            provider_merchant_id=normalized.merchant_id,
                            name=normalized.merchant,
                            source=source,
                        )
                        outcome = adapter.import_transaction(
                            external_id=normalized.external_id,
                            amount=normalized.amount,
                            currency=normalized.currency or account.currency,
                            date=normalized.date,
                            name=normalized.description,
                            source=source,
                            category_id=self._category_id(account.user_id, normalized.category),
                            merchant=merchant,
                            notes=normalized.notes,
                            pending=normalized.pending,
                        )
            except (ProviderDataError, ValueError, SQLAlchemyError) as e:
                key = activity_key(record) if isinstance(record, dict) else repr(record)
                logger.warning(
                    "Skipping activity %s for provider account %s: %s",
                    key, provider_account.id, e,
                )
                result.records_skipped += 1
                result.errors.append(
                    {"provider_account_id": provider_account.id, "record": key, "error": str(e)}
                )
                continue

            if outcome.created:
                result.entries_imported += 1
            elif outcome.modified:
                result.entries_updated += 1

        if provider_account.current_balance is not None:
            adapter.update_balance(provider_account.current_balance, source=source)

        logger.info(
            "Processed provider account %s: %d imported, %d updated, %d skipped",
            provider_account.id,
            result.entries_imported,
            result.entries_updated,
            result.records_skipped,
        )
        return result
