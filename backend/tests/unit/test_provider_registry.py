"""Unit tests for the provider registry."""

import pytest

from integrations.exceptions import ProviderError
from integrations.mercury_client import MercuryClient
from integrations.normalizers import normalize_brokerage_activity, normalize_mercury
from integrations.provider_protocol import ProviderKind
from integrations.provider_registry import (
    DEFAULT_DEFINITIONS,
    ProviderDefinition,
    ProviderRegistry,
    get_provider_registry,
)
from tests.fixtures.mocks import MockProviderClient


class TestProviderRegistry:
    def test_default_registry_knows_every_kind(self):
        registry = get_provider_registry()
        assert set(registry.list_kinds()) == set(ProviderKind)

    def test_default_registry_is_shared(self):
        assert get_provider_registry() is get_provider_registry()

    def test_get_accepts_kind_or_string(self):
        registry = get_provider_registry()
        assert registry.get("mercury").kind == ProviderKind.MERCURY
        assert registry.get(ProviderKind.SNAPTRADE).display_name == "SnapTrade"

    def test_get_unknown_kind_raises(self):
        with pytest.raises(ValueError, match="Unknown provider kind"):
            get_provider_registry().get("plaid")

    def test_get_unregistered_kind_raises(self):
        registry = ProviderRegistry()
        with pytest.raises(ValueError, match="not registered"):
            registry.get(ProviderKind.WISE)

    def test_is_registered(self):
        registry = get_provider_registry()
        assert registry.is_registered("mercury")
        assert not registry.is_registered("plaid")
        assert not ProviderRegistry().is_registered("mercury")

    def test_normalizer_for(self):
        registry = get_provider_registry()
        assert registry.normalizer_for("mercury") is normalize_mercury
        assert registry.normalizer_for("snaptrade") is normalize_brokerage_activity

    def test_capabilities(self):
        registry = get_provider_registry()
        assert registry.get("mercury").supports_webhooks
        assert not registry.get("mercury").delayed_activity
        assert registry.get("snaptrade").delayed_activity

    def test_register_replaces_definition(self):
        client = MockProviderClient()
        registry = ProviderRegistry(DEFAULT_DEFINITIONS)
        registry.register(
            ProviderDefinition(
                kind=ProviderKind.MERCURY,
                display_name="Mercury (test)",
                normalizer=normalize_mercury,
                client_factory=lambda credentials: client,
            )
        )

        assert registry.client_for("mercury", {}) is client
        assert registry.get("mercury").display_name == "Mercury (test)"


class TestClientFor:
    def test_builds_mercury_client_from_credentials(self):
        client = get_provider_registry().client_for("mercury", {"api_key": "secret-token"})
        assert isinstance(client, MercuryClient)
        assert client.provider_name == "Mercury"

    def test_passes_credentials_to_factory(self):
        seen = []
        registry = ProviderRegistry(
            [
                ProviderDefinition(
                    kind=ProviderKind.WISE,
                    display_name="Wise",
                    normalizer=normalize_mercury,
                    client_factory=lambda credentials: seen.append(credentials) or MockProviderClient(),
                )
            ]
        )

        registry.client_for("wise", None)
        registry.client_for("wise", {"token": "t"})

        assert seen == [{}, {"token": "t"}]

    def test_kind_without_client_raises_provider_error(self):
        with pytest.raises(ProviderError) as exc_info:
            get_provider_registry().client_for("snaptrade", {})
        assert exc_info.value.provider_name == "SnapTrade"
