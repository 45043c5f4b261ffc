"""Mercury API client.

This module implements the ProviderClient protocol for Mercury, a US
business bank with a token-authenticated REST API.  Transactions are
paginated with ``limit``/``offset``; the client walks pages until a short
page comes back.
"""

import logging
from datetime import date
from decimal import Decimal

import httpx

from config import settings
from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
    ProviderRateLimitError,
)
from integrations.parsing_utils import parse_decimal
from integrations.provider_protocol import ProviderAccountData

logger = logging.getLogger(__name__)

PAGE_SIZE = 500
MAX_PAGES = 100

_PROVIDER = "Mercury"


def _retry_after_seconds(response: httpx.Response) -> int | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0, int(float(value)))
    except ValueError:
        return None


def _extract_items(payload, preferred_keys: tuple[str, ...]) -> list:
    """Pull the list of records out of a Mercury response body."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in preferred_keys:
            if isinstance(payload.get(key), list):
                return payload[key]
        for value in payload.values():
            if isinstance(value, list):
                return value
    return []


class MercuryClient:
    """Wrapper around the Mercury REST API.

    Implements the ProviderClient protocol for multi-provider support.
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the client with credentials.

        Args:
            api_key: Mercury API token (from the connection's credentials).
            base_url: API root (defaults to settings.MERCURY_API_BASE_URL).
            http_client: Pre-built httpx client, used by tests to inject a
                mock transport.
            timeout: Request timeout in seconds.
        """
        self._api_key = api_key
        self._base_url = base_url or settings.MERCURY_API_BASE_URL
        self._http_client = http_client
        self._timeout = timeout

    @classmethod
    def from_credentials(cls, credentials: dict | None) -> "MercuryClient":
        """Build a client from a connection's opaque credentials blob."""
        credentials = credentials or {}
        return cls(api_key=credentials.get("api_key"), base_url=credentials.get("base_url"))

    @property
    def provider_name(self) -> str:
        return _PROVIDER

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Accept": "application/json",
                    "User-Agent": "ledger-sync Mercury client",
                },
            )
        return self._http_client

    def _get(self, path: str, params: dict | None = None):
        """Issue a GET and map failures onto the provider exception types."""
        if not self._api_key:
            raise ProviderAuthError("Mercury API key not configured", provider_name=_PROVIDER)

        try:
            response = self._client().get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise ProviderAuthError(
                    f"Mercury authentication failed (HTTP {status})",
                    provider_name=_PROVIDER,
                ) from exc
            if status == 429:
                raise ProviderRateLimitError(
                    "Mercury rate limit exceeded",
                    provider_name=_PROVIDER,
                    retry_after=_retry_after_seconds(exc.response),
                ) from exc
            raise ProviderAPIError(
                f"Mercury API error (HTTP {status})",
                provider_name=_PROVIDER,
                status_code=status,
            ) from exc
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderConnectionError(
                f"Mercury connection failed: {exc}",
                provider_name=_PROVIDER,
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderDataError(
                f"Mercury returned a non-JSON response for {path}",
                provider_name=_PROVIDER,
            ) from exc

    def get_accounts(self) -> list[ProviderAccountData]:
        """Fetch all accounts for the API token.

        Returns:
            List of ProviderAccountData objects.
        """
        payload = self._get("/api/v1/accounts")
        accounts = []
        for item in _extract_items(payload, ("accounts", "data")):
            account_id = item.get("id")
            if not account_id:
                logger.warning("Mercury: skipping account without id")
                continue
            accounts.append(
                ProviderAccountData(
                    id=str(account_id),
                    name=item.get("name") or item.get("nickname") or "Mercury Account",
                    currency=item.get("currency") or "USD",
                    institution_id="mercury.com",
                    institution_name="Mercury",
                    account_type=item.get("kind") or item.get("type"),
                    current_balance=parse_decimal(
                        item.get("currentBalance", item.get("current_balance"))
                    ),
                    raw_data=item,
                )
            )
        logger.info("Mercury: %d accounts fetched", len(accounts))
        return accounts

    def get_transactions(
        self, account_id: str, start_date: date, end_date: date | None = None
    ) -> list[dict]:
        """Fetch raw transactions for one account, walking every page.

        Returns:
            Raw Mercury transaction dicts.
        """
        path = f"/api/v1/account/{account_id}/transactions"
        params: dict = {"limit": PAGE_SIZE, "order": "desc", "start": start_date.isoformat()}
        if end_date is not None:
            params["end"] = end_date.isoformat()

        results: list[dict] = []
        offset = 0
        for _ in range(MAX_PAGES):
            payload = self._get(path, params={**params, "offset": offset})
            items = _extract_items(payload, ("transactions", "data"))
            results.extend(items)
            if len(items) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
        else:
            logger.warning(
                "Mercury: stopped paging account %s after %d pages", account_id, MAX_PAGES
            )

        logger.info("Mercury: %d transactions fetched for account %s", len(results), account_id)
        return results

    def get_balance(self, account_id: str) -> Decimal | None:
        """Fetch the current balance of one account."""
        payload = self._get(f"/api/v1/account/{account_id}")
        if not isinstance(payload, dict):
            return None
        return parse_decimal(payload.get("currentBalance", payload.get("current_balance")))
