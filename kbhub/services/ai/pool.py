"""Per-tenant provider pools, built lazily from tenant AI settings."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Dict, Any, Optional, Tuple

from kbhub.adapters.base import BaseAIProvider
from kbhub.infra.error_handler import NoProviderConfiguredError, ProviderConfigError
from kbhub.infra.metrics import ai_tenant_pool_providers
from kbhub.models.ai import ProviderConfig
from kbhub.models.tenant import TenantAISettings
from kbhub.services.ai.registry import ProviderRegistry
from kbhub.services.tenant_settings_service import TenantSettingsStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PooledProvider:
    """A live provider with its configuration position."""
    provider: BaseAIProvider
    config: ProviderConfig
    position: int

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.config.priority, self.position)


@dataclass(frozen=True)
class SkippedProvider:
    """A configuration entry that was excluded from the pool."""
    provider_type: str
    position: int
    reason: str


class TenantProviderPool:
    """
    Usable providers of one tenant. Read-only once built.

    Requests hold a lease while they use the providers. A retired pool is
    closed when its last lease ends.
    """

    def __init__(
        self,
        settings: TenantAISettings,
        providers: List[PooledProvider],
        skipped: List[SkippedProvider],
    ):
        self.settings = settings
        self.providers: Tuple[PooledProvider, ...] = tuple(providers)
        self.skipped: Tuple[SkippedProvider, ...] = tuple(skipped)
        self._leases = 0
        self._retired = False
        self._closed = False

    @property
    def tenant_id(self) -> str:
        return self.settings.tenant_id

    @property
    def is_empty(self) -> bool:
        return not self.providers

    @property
    def in_use(self) -> int:
        return self._leases

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self.providers)

    def candidates(self) -> List[PooledProvider]:
        """Available providers by ascending priority, ties in configuration order."""
        available = [entry for entry in self.providers if entry.provider.is_available()]
        return sorted(available, key=lambda entry: entry.sort_key)

    def health(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "enable_ai": self.settings.enable_ai,
            "default_provider": self.settings.default_provider.value if self.settings.default_provider else None,
            "providers": [
                {
                    "type": entry.provider.type,
                    "model": entry.provider.model,
                    "available": entry.provider.is_available(),
                    "priority": entry.config.priority,
                    "position": entry.position,
                }
                for entry in sorted(self.providers, key=lambda entry: entry.sort_key)
            ],
            "skipped": [
                {"type": skip.provider_type, "position": skip.position, "reason": skip.reason}
                for skip in self.skipped
            ],
            "rejected": list(self.settings.rejected),
        }

    @asynccontextmanager
    async def lease(self) -> AsyncIterator["TenantProviderPool"]:
        self._leases += 1
        try:
            yield self
        finally:
            self._leases -= 1
            if self._retired and self._leases == 0:
                await self.aclose()

    async def retire(self) -> None:
        """Close now if idle, otherwise when the last lease ends."""
        self._retired = True
        if self._leases == 0:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        for entry in self.providers:
            await entry.provider.aclose()


def build_tenant_pool(settings: TenantAISettings, registry: ProviderRegistry) -> TenantProviderPool:
    """
    Translate a tenant's provider configs into live providers.

    Disabled or invalid entries are skipped and logged, never raised.
    """
    tenant_id = settings.tenant_id
    providers: List[PooledProvider] = []
    skipped: List[SkippedProvider] = []

    if not settings.enable_ai:
        logger.info(f"AI is disabled for tenant {tenant_id}", extra={"tenant_id": tenant_id})
        return TenantProviderPool(settings, providers, skipped)

    for position, config in enumerate(settings.providers):
        provider_type = config.type.value
        log_extra = {"tenant_id": tenant_id, "provider": provider_type, "position": position}

        if not config.enabled:
            logger.info(f"Skipping disabled provider {provider_type}", extra=log_extra)
            skipped.append(SkippedProvider(provider_type, position, "disabled"))
            continue

        try:
            provider = registry.create(config)
        except ProviderConfigError as e:
            logger.warning(f"Skipping provider {provider_type}: {e.message}", extra={**log_extra, "code": e.code.value})
            skipped.append(SkippedProvider(provider_type, position, e.message))
            continue
        except Exception as e:
            logger.error(f"Provider {provider_type} failed to initialize: {e}", extra=log_extra, exc_info=True)
            skipped.append(SkippedProvider(provider_type, position, f"initialization failed: {e}"))
            continue

        if not provider.is_available():
            logger.warning(f"Skipping unavailable provider {provider_type}", extra=log_extra)
            skipped.append(SkippedProvider(provider_type, position, "unavailable"))
            continue

        providers.append(PooledProvider(provider=provider, config=config, position=position))

    for reason in settings.rejected:
        logger.warning(f"Rejected provider entry: {reason}", extra={"tenant_id": tenant_id})

    logger.info(
        f"Tenant {tenant_id} provider pool built",
        extra={
            "tenant_id": tenant_id,
            "providers": [entry.provider.type for entry in sorted(providers, key=lambda entry: entry.sort_key)],
            "skipped": len(skipped),
        },
    )
    return TenantProviderPool(settings, providers, skipped)


class ProviderPoolManager:
    """
    Owns every tenant's pool.

    A pool is built on first use (or explicitly via initialize_tenant) and
    reused until invalidated. A per-tenant lock makes concurrent first use
    build exactly one pool. Pools of tenants unknown to the settings store
    are never kept.
    """

    def __init__(self, registry: ProviderRegistry, settings_store: TenantSettingsStore):
        self.registry = registry
        self.settings_store = settings_store
        self._pools: Dict[str, TenantProviderPool] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _tenant_lock(self, tenant_id: str) -> AsyncIterator[None]:
        # Entries are dropped once nobody holds or waits for the lock
        lock = self._locks.setdefault(tenant_id, asyncio.Lock())
        self._lock_users[tenant_id] = self._lock_users.get(tenant_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[tenant_id] -= 1
            if self._lock_users[tenant_id] == 0:
                del self._lock_users[tenant_id]
                del self._locks[tenant_id]

    def get_existing(self, tenant_id: str) -> Optional[TenantProviderPool]:
        return self._pools.get(tenant_id)

    def tenants(self) -> List[str]:
        return list(self._pools.keys())

    async def load_settings(self, tenant_id: str) -> TenantAISettings:
        """
        Read a tenant's settings from the store.

        Raises:
            NoProviderConfiguredError: If the store cannot be read
        """
        try:
            return await self.settings_store.get_ai_settings(tenant_id)
        except Exception as e:
            logger.error(
                f"Failed to load AI settings for tenant {tenant_id}: {e}",
                extra={"tenant_id": tenant_id},
                exc_info=True,
            )
            raise NoProviderConfiguredError(tenant_id) from e

    def _store(self, pool: TenantProviderPool) -> None:
        self._pools[pool.tenant_id] = pool
        ai_tenant_pool_providers.labels(tenant_id=pool.tenant_id).set(len(pool))

    async def get_pool(self, tenant_id: str) -> TenantProviderPool:
        """
        Return the tenant's pool, building it from the settings store if needed.

        Raises:
            NoProviderConfiguredError: If the settings store cannot be read
        """
        pool = self._pools.get(tenant_id)
        if pool is not None:
            return pool

        async with self._tenant_lock(tenant_id):
            pool = self._pools.get(tenant_id)
            if pool is None:
                settings = await self.load_settings(tenant_id)
                pool = build_tenant_pool(settings, self.registry)
                if settings.known:
                    self._store(pool)
            return pool

    async def initialize_tenant(self, settings: TenantAISettings) -> TenantProviderPool:
        """
        Build (or rebuild) a tenant pool from explicit settings.

        Identical settings keep the current pool. A replaced pool is retired
        and closes once requests still using it finish.
        """
        tenant_id = settings.tenant_id
        async with self._tenant_lock(tenant_id):
            current = self._pools.get(tenant_id)
            if current is not None and current.settings == settings:
                return current

            pool = build_tenant_pool(settings, self.registry)
            self._store(pool)

        if current is not None:
            await current.retire()
        return pool

    async def invalidate(self, tenant_id: str) -> bool:
        """Drop a tenant's pool so the next request rebuilds it."""
        async with self._tenant_lock(tenant_id):
            pool = self._pools.pop(tenant_id, None)
        if pool is None:
            return False
        ai_tenant_pool_providers.remove(tenant_id)
        await pool.retire()
        return True

    async def aclose(self) -> None:
        pools = list(self._pools.values())
        self._pools.clear()
        for pool in pools:
            await pool.aclose()
