"""Tenant AI settings model for runtime provider configuration."""

from dataclasses import dataclass
from typing import Optional, Tuple

from kbhub.models.ai import ProviderConfig, ProviderType


@dataclass(frozen=True)
class TenantAISettings:
    """AI settings for one tenant as read from the settings store."""
    tenant_id: str
    enable_ai: bool = True  # Tenant-level AI switch
    providers: Tuple[ProviderConfig, ...] = ()  # In configuration order
    default_provider: Optional[ProviderType] = None  # Observability hint only
    rejected: Tuple[str, ...] = ()  # Reasons for entries that failed to parse
    known: bool = True  # False when the store holds no document for the tenant
