"""AI gateway service: validation, response cache and provider failover."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from kbhub.adapters.base import DEFAULT_PROVIDER_TIMEOUT_MS
from kbhub.infra.config import Config, config as default_config
from kbhub.infra.error_handler import AIServiceError
from kbhub.infra.metrics import ai_generate_requests_total
from kbhub.infra.validation import validate_generate_request, validate_tenant_id
from kbhub.models.ai import GenerateRequest, GenerateResponse, ProviderType
from kbhub.models.tenant import TenantAISettings
from kbhub.services.ai.cache import DEFAULT_CACHE_TTL_SECONDS, ResponseCache, build_cache_key
from kbhub.services.ai.orchestrator import FailoverOrchestrator
from kbhub.services.ai.pool import ProviderPoolManager
from kbhub.services.ai.registry import ProviderFactory, ProviderRegistry, register_builtin_providers
from kbhub.services.tenant_settings_service import SQLTenantSettingsStore, TenantSettingsStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AIServiceOptions:
    """Explicit gateway options; the service never reads the environment."""
    cache_enabled: bool = True
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    cache_sweep_interval_seconds: float = 0
    default_timeout_ms: int = DEFAULT_PROVIDER_TIMEOUT_MS

    @classmethod
    def from_config(cls, cfg: Config = default_config) -> "AIServiceOptions":
        return cls(
            cache_enabled=cfg.AI_CACHE_ENABLED,
            cache_ttl_seconds=cfg.AI_CACHE_TTL_SECONDS,
            cache_sweep_interval_seconds=cfg.AI_CACHE_SWEEP_INTERVAL_SECONDS,
            default_timeout_ms=cfg.AI_PROVIDER_TIMEOUT_MS,
        )


class AIGatewayService:
    """
    Entry point for AI generation.

    One instance per process, built at the composition root and passed to
    request handlers. Flow: validate -> cache lookup -> failover orchestrator
    -> cache store. Only InvalidRequestError, NoProviderConfiguredError and
    AllProvidersFailedError reach callers of generate().
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        settings_store: TenantSettingsStore,
        options: Optional[AIServiceOptions] = None,
        cache: Optional[ResponseCache] = None,
    ):
        self.options = options or AIServiceOptions()
        self.registry = registry
        self.settings_store = settings_store
        self.pools = ProviderPoolManager(registry, settings_store)
        self.orchestrator = FailoverOrchestrator(self.pools, self.options.default_timeout_ms)

        if self.options.cache_enabled:
            self.cache = cache if cache is not None else ResponseCache(self.options.cache_ttl_seconds)
        else:
            self.cache = None

    def register_provider(self, provider_type: Union[ProviderType, str], factory: ProviderFactory) -> None:
        """Register a provider factory. Intended for startup only."""
        self.registry.register(provider_type, factory)

    async def initialize_tenant(self, settings: TenantAISettings) -> Dict[str, Any]:
        """Build a tenant's pool from explicit settings. Returns the pool health."""
        pool = await self.pools.initialize_tenant(settings)
        if self.cache is not None:
            self.cache.invalidate_tenant(settings.tenant_id)
        return pool.health()

    async def reload_tenant(self, tenant_id: str) -> Dict[str, Any]:
        """Re-read a tenant's settings from the store and rebuild its pool."""
        validate_tenant_id(tenant_id)
        settings = await self.pools.load_settings(tenant_id)
        logger.info(f"Reloading AI settings for tenant {tenant_id}", extra={"tenant_id": tenant_id})
        return await self.initialize_tenant(settings)

    async def generate(self, request: Union[GenerateRequest, Mapping[str, Any]]) -> GenerateResponse:
        """
        Generate replies for a request.

        Args:
            request: GenerateRequest or raw request mapping (camelCase accepted)

        Returns:
            GenerateResponse from exactly one provider, possibly cached

        Raises:
            InvalidRequestError: Malformed request, no provider attempted
            NoProviderConfiguredError: Tenant has no usable provider
            AllProvidersFailedError: Every attempt failed
        """
        try:
            request = validate_generate_request(request)
        except AIServiceError as e:
            ai_generate_requests_total.labels(tenant_id="unknown", status=e.code.value).inc()
            raise

        tenant_id = request.tenant_id
        cache_key = None

        if self.cache is not None:
            cache_key = build_cache_key(request)
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(
                    "AI response served from cache",
                    extra={"tenant_id": tenant_id, "cache_key": cache_key},
                )
                ai_generate_requests_total.labels(tenant_id=tenant_id, status="cache_hit").inc()
                return cached.detached()

        try:
            pool = await self.pools.get_pool(tenant_id)
            response = await self.orchestrator.generate_with_pool(pool, request)
        except AIServiceError as e:
            ai_generate_requests_total.labels(tenant_id=tenant_id, status=e.code.value).inc()
            raise

        if cache_key is not None:
            # Responses from a pool replaced while the request ran are not stored
            if self.pools.get_existing(tenant_id) is pool:
                self.cache.set(cache_key, response)
                response = response.detached()
            else:
                logger.info(
                    "Tenant providers changed during generation, response not cached",
                    extra={"tenant_id": tenant_id},
                )

        logger.info(
            "AI generation succeeded",
            extra={
                "tenant_id": tenant_id,
                "requester_id": request.requester_id,
                "provider": response.provider.type,
                "processing_time_ms": response.provider.processing_time_ms,
            },
        )
        ai_generate_requests_total.labels(tenant_id=tenant_id, status="success").inc()
        return response

    async def get_tenant_health(self, tenant_id: str) -> Dict[str, Any]:
        """Provider health of a tenant, building its pool if needed."""
        validate_tenant_id(tenant_id)
        pool = await self.pools.get_pool(tenant_id)
        return pool.health()

    def clear_cache(self) -> int:
        """Drop every cached response. Returns the number of entries removed."""
        if self.cache is None:
            return 0
        removed = len(self.cache)
        self.cache.clear()
        logger.info("AI response cache cleared", extra={"removed": removed})
        return removed

    def cache_stats(self) -> Dict[str, Any]:
        if self.cache is None:
            return {"enabled": False}
        return {"enabled": True, **self.cache.stats()}

    def start(self) -> None:
        """Start background work. Call from a running event loop."""
        interval = self.options.cache_sweep_interval_seconds
        if self.cache is not None and interval and interval > 0:
            self.cache.start_periodic_sweep(interval)
            logger.info("AI cache sweep started", extra={"interval_seconds": interval})

    async def close(self) -> None:
        if self.cache is not None:
            await self.cache.stop_periodic_sweep()
        await self.pools.aclose()


def create_default_ai_service(
    settings_store: Optional[TenantSettingsStore] = None,
    options: Optional[AIServiceOptions] = None,
) -> AIGatewayService:
    """Build the process-wide gateway with the built-in providers registered."""
    registry = register_builtin_providers(ProviderRegistry())
    return AIGatewayService(
        registry=registry,
        settings_store=settings_store or SQLTenantSettingsStore(),
        options=options or AIServiceOptions.from_config(),
    )
