"""Load tenant AI settings from the settings store."""

import asyncio
import json
import logging
from typing import Dict, Any, List, Mapping, Optional, Protocol
from pydantic import ValidationError
from sqlalchemy import text

from kbhub.infra.database import get_db_session
from kbhub.models.ai import ProviderConfig, ProviderType
from kbhub.models.tenant import TenantAISettings

logger = logging.getLogger(__name__)


class TenantSettingsStore(Protocol):
    """Source of tenant AI settings."""

    async def get_ai_settings(self, tenant_id: str) -> TenantAISettings:
        ...


def _describe_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'entry'}: {err['msg']}" for err in error.errors()
    )


def parse_ai_settings(tenant_id: str, raw_settings: Optional[Mapping[str, Any]]) -> TenantAISettings:
    """
    Parse a tenant settings document into TenantAISettings.

    Reads:
    - enableAI: tenant AI switch (default true)
    - aiProviders: list of provider configs
    - defaultAIProvider: default provider hint

    Malformed provider entries are logged and recorded as rejected. A
    document that is not an object is treated as empty.
    """
    known = raw_settings is not None
    providers: List[ProviderConfig] = []
    rejected: List[str] = []

    if not isinstance(raw_settings, Mapping):
        if known:
            logger.warning(f"Settings of tenant {tenant_id} are not an object", extra={"tenant_id": tenant_id})
            rejected.append("settings: expected an object")
        raw_settings = {}

    raw_providers = raw_settings.get("aiProviders") or []
    if not isinstance(raw_providers, list):
        rejected.append("aiProviders: expected a list")
        raw_providers = []

    for position, raw in enumerate(raw_providers):
        try:
            providers.append(ProviderConfig.model_validate(raw))
        except ValidationError as e:
            reason = f"aiProviders[{position}]: {_describe_validation_error(e)}"
            logger.warning(f"Invalid provider config for tenant {tenant_id}: {reason}", extra={"tenant_id": tenant_id})
            rejected.append(reason)

    default_provider: Optional[ProviderType] = None
    raw_default = raw_settings.get("defaultAIProvider")
    if raw_default:
        try:
            default_provider = ProviderType(raw_default)
        except ValueError:
            logger.warning(
                f"Unknown default AI provider {raw_default!r} for tenant {tenant_id}",
                extra={"tenant_id": tenant_id},
            )

    return TenantAISettings(
        tenant_id=tenant_id,
        enable_ai=raw_settings.get("enableAI", True) is not False,
        providers=tuple(providers),
        default_provider=default_provider,
        rejected=tuple(rejected),
        known=known,
    )


class InMemoryTenantSettingsStore:
    """Settings held in process, for tests and local development."""

    def __init__(self, documents: Optional[Dict[str, Mapping[str, Any]]] = None):
        self._documents: Dict[str, Mapping[str, Any]] = dict(documents or {})

    def put(self, tenant_id: str, raw_settings: Mapping[str, Any]) -> None:
        self._documents[tenant_id] = raw_settings

    async def get_ai_settings(self, tenant_id: str) -> TenantAISettings:
        raw = self._documents.get(tenant_id)
        if raw is None:
            logger.warning(f"No settings found for tenant {tenant_id}", extra={"tenant_id": tenant_id})
        return parse_ai_settings(tenant_id, raw)


def load_tenant_settings_document(tenant_id: str, database_url: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Read the raw settings document of a tenant (apps.settings)."""
    with get_db_session(tenant_id, database_url) as session:
        row = session.execute(
            text("""
                SELECT settings
                FROM apps
                WHERE id = :tenant_id
            """),
            {"tenant_id": tenant_id}
        ).fetchone()

    if row is None:
        return None

    settings = row.settings
    if isinstance(settings, (str, bytes)):
        settings = json.loads(settings)
    return settings or {}


class SQLTenantSettingsStore:
    """Settings read from the apps table through SQLAlchemy."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url

    async def get_ai_settings(self, tenant_id: str) -> TenantAISettings:
        raw = await asyncio.to_thread(load_tenant_settings_document, tenant_id, self.database_url)
        if raw is None:
            logger.warning(f"Tenant {tenant_id} not found in settings store", extra={"tenant_id": tenant_id})
        return parse_ai_settings(tenant_id, raw)
