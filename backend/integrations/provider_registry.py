"""Provider registry keyed by :class:`ProviderKind`.

The registry is responsible for:
- Mapping each provider kind to its client factory and activity normalizer
- Building a client for a connection from its opaque credentials
- Listing known providers and their capabilities
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from integrations.exceptions import ProviderError
from integrations.mercury_client import MercuryClient
from integrations.normalizers import (
    Normalizer,
    normalize_brokerage_activity,
    normalize_coinstats,
    normalize_generic,
    normalize_mercury,
)
from integrations.provider_protocol import ProviderClient, ProviderKind

logger = logging.getLogger(__name__)

ClientFactory = Callable[[dict], ProviderClient]


@dataclass(frozen=True)
class ProviderDefinition:
    """Everything the sync pipeline needs to know about one provider kind."""

    kind: ProviderKind
    display_name: str
    normalizer: Normalizer
    client_factory: ClientFactory | None = None
    supports_webhooks: bool = False
    # Brokerages that need time to index a new connection before activity shows up
    delayed_activity: bool = False


DEFAULT_DEFINITIONS: list[ProviderDefinition] = [
    ProviderDefinition(
        kind=ProviderKind.MERCURY,
        display_name="Mercury",
        normalizer=normalize_mercury,
        client_factory=MercuryClient.from_credentials,
        supports_webhooks=True,
    ),
    ProviderDefinition(kind=ProviderKind.WISE, display_name="Wise", normalizer=normalize_generic),
    ProviderDefinition(
        kind=ProviderKind.SIMPLEFIN, display_name="SimpleFIN", normalizer=normalize_generic
    ),
    ProviderDefinition(
        kind=ProviderKind.SNAPTRADE,
        display_name="SnapTrade",
        normalizer=normalize_brokerage_activity,
        delayed_activity=True,
    ),
    ProviderDefinition(
        kind=ProviderKind.COINSTATS, display_name="CoinStats", normalizer=normalize_coinstats
    ),
]


class ProviderRegistry:
    """Registry of provider definitions.

    Example:
        registry = get_provider_registry()
        client = registry.client_for(ProviderKind.MERCURY, connection.credentials)
        raw = client.get_transactions(account_id, start_date)
    """

    def __init__(self, definitions: list[ProviderDefinition] | None = None):
        self._definitions: dict[ProviderKind, ProviderDefinition] = {}
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: ProviderDefinition) -> None:
        """Register (or replace) the definition for a provider kind."""
        self._definitions[definition.kind] = definition

    def get(self, kind: ProviderKind | str) -> ProviderDefinition:
        """Get the definition for a provider kind.

        Raises:
            ValueError: If the kind is unknown or not registered.
        """
        try:
            kind = ProviderKind(kind)
        except ValueError:
            raise ValueError(f"Unknown provider kind '{kind}'") from None
        if kind not in self._definitions:
            raise ValueError(f"Provider '{kind.value}' is not registered")
        return self._definitions[kind]

    def is_registered(self, kind: ProviderKind | str) -> bool:
        try:
            return ProviderKind(kind) in self._definitions
        except ValueError:
            return False

    def list_kinds(self) -> list[ProviderKind]:
        return list(self._definitions.keys())

    def normalizer_for(self, kind: ProviderKind | str) -> Normalizer:
        return self.get(kind).normalizer

    def client_for(self, kind: ProviderKind | str, credentials: dict | None) -> ProviderClient:
        """Build a provider client from a connection's credentials.

        Raises:
            ProviderError: If no client implementation is wired for the kind.
        """
        definition = self.get(kind)
        if definition.client_factory is None:
            raise ProviderError(
                f"No client available for provider '{definition.display_name}'",
                provider_name=definition.display_name,
            )
        return definition.client_factory(credentials or {})


@lru_cache
def get_provider_registry() -> ProviderRegistry:
    """Registry populated with the default provider definitions (cached per process)."""
    registry = ProviderRegistry(DEFAULT_DEFINITIONS)
    logger.debug(
        "Provider registry: %s", ", ".join(k.value for k in registry.list_kinds())
    )
    return registry
