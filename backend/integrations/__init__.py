"""External API integrations.

This package contains:
- Provider protocol: common interface and normalized record types
- Provider registry: maps ProviderKind to client factories and normalizers
- Normalizers: raw provider JSON to import-ready records
- Mercury client: reference HTTP integration with the Mercury API
- Webhook signature verification for push-capable providers
"""

from integrations.provider_protocol import (
    NormalizedTrade,
    NormalizedTransaction,
    ProviderAccountData,
    ProviderClient,
    ProviderKind,
)
from integrations.provider_registry import ProviderRegistry, get_provider_registry

__all__ = [
    "NormalizedTrade",
    "NormalizedTransaction",
    "ProviderAccountData",
    "ProviderClient",
    "ProviderKind",
    "ProviderRegistry",
    "get_provider_registry",
]
