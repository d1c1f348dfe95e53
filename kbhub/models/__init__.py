from .ai import (
    AIReply,
    GenerateRequest,
    GenerateResponse,
    ProviderConfig,
    ProviderInfo,
    ProviderType,
)
from .tenant import TenantAISettings

__all__ = [
    "AIReply",
    "GenerateRequest",
    "GenerateResponse",
    "ProviderConfig",
    "ProviderInfo",
    "ProviderType",
    "TenantAISettings",
]
