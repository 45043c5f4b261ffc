"""Service for managing Security records."""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Security

logger = logging.getLogger(__name__)


def normalize_ticker(ticker: str | None) -> str:
    return (ticker or "").strip().upper()


class SecurityService:
    """Lookups and lazy creation on the Security master list."""

    @staticmethod
    def find(db: Session, ticker: str) -> Security | None:
        return db.query(Security).filter_by(ticker=normalize_ticker(ticker)).first()

    @staticmethod
    def ensure_exists(
        db: Session,
        ticker: str,
        name: Optional[str] = None,
        exchange: Optional[str] = None,
    ) -> Security:
        """Return the Security for a ticker, creating it on first sight.

        Tickers are stored upper-cased. On an existing record a missing
        exchange or a placeholder name (empty, or just the ticker) is
        filled in; real values already stored are left alone.

        Args:
            db: Database session
            ticker: Ticker symbol as reported by the provider
            name: Optional security name
            exchange: Optional exchange MIC or code

        Returns:
            The Security record (flushed but not committed)

        Raises:
            ValueError: If the ticker is blank.
        """
        symbol = normalize_ticker(ticker)
        if not symbol:
            raise ValueError("ticker is required")

        security = SecurityService.find(db, symbol)
        if security is None:
            try:
                with db.begin_nested():
                    security = Security(ticker=symbol, name=name or symbol, exchange=exchange)
                    db.add(security)
                    db.flush()
                logger.info("Created security: %s", symbol)
                return security
            except IntegrityError:
                # Created by a concurrent import
                security = db.query(Security).filter_by(ticker=symbol).one()

        changed = False
        if name and (not security.name or security.name == security.ticker):
            security.name = name
            changed = True
        if exchange and not security.exchange:
            security.exchange = exchange
            changed = True
        if changed:
            db.flush()
        return security
