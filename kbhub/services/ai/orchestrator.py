"""Failover orchestrator: walks a tenant's providers in priority order."""

import asyncio
import logging
import time
from typing import Optional

from kbhub.adapters.base import DEFAULT_PROVIDER_TIMEOUT_MS
from kbhub.infra.error_handler import (
    AIServiceError,
    AllProvidersFailedError,
    NoProviderConfiguredError,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    wrap_llm_error,
)
from kbhub.infra.metrics import ai_provider_attempt_duration, ai_provider_attempts_total
from kbhub.models.ai import GenerateRequest, GenerateResponse
from kbhub.services.ai.pool import PooledProvider, ProviderPoolManager, TenantProviderPool

logger = logging.getLogger(__name__)


class FailoverOrchestrator:
    """
    Produces a response from exactly one provider of a tenant.

    Providers are attempted strictly one after another in ascending priority.
    Timeouts and backend errors move on to the next candidate; the first
    success is returned. Requests must already be validated.
    """

    def __init__(self, pools: ProviderPoolManager, default_timeout_ms: int = DEFAULT_PROVIDER_TIMEOUT_MS):
        self.pools = pools
        self.default_timeout_ms = default_timeout_ms

    async def generate(self, request: GenerateRequest) -> GenerateResponse:
        """
        Generate a response with failover.

        Raises:
            NoProviderConfiguredError: Tenant has no usable provider
            AllProvidersFailedError: Every attempt failed
        """
        pool = await self.pools.get_pool(request.tenant_id)
        return await self.generate_with_pool(pool, request)

    async def generate_with_pool(self, pool: TenantProviderPool, request: GenerateRequest) -> GenerateResponse:
        """Run the failover walk over a given pool, holding a lease on it throughout."""
        tenant_id = request.tenant_id
        if pool.is_empty:
            raise NoProviderConfiguredError(tenant_id)

        async with pool.lease():
            return await self._walk(pool, request)

    async def _walk(self, pool: TenantProviderPool, request: GenerateRequest) -> GenerateResponse:
        tenant_id = request.tenant_id
        candidates = pool.candidates()
        if not candidates:
            raise NoProviderConfiguredError(tenant_id)

        last_error: Optional[AIServiceError] = None
        attempts = 0

        for entry in candidates:
            provider = entry.provider

            # Re-check just in time
            if not provider.is_available():
                logger.info(
                    f"Provider {provider.type} unavailable, skipping",
                    extra={"tenant_id": tenant_id, "provider": provider.type},
                )
                last_error = ProviderUnavailableError(provider.type)
                continue

            for retry in range(1 + (entry.config.retry_count or 0)):
                attempts += 1
                try:
                    response = await self._attempt(entry, request)
                except AIServiceError as e:
                    last_error = e
                    logger.warning(
                        f"Provider {provider.type} attempt failed: {e.message}",
                        extra={
                            "tenant_id": tenant_id,
                            "provider": provider.type,
                            "attempt": attempts,
                            "retry": retry,
                            "code": e.code.value,
                        },
                    )
                    if isinstance(e, ProviderError) and e.retryable:
                        continue
                    break

                if attempts > 1:
                    logger.info(
                        f"Served by {provider.type} after {attempts} attempts",
                        extra={"tenant_id": tenant_id, "provider": provider.type, "attempt": attempts},
                    )
                return response

        error = AllProvidersFailedError(tenant_id, last_error, attempts)
        logger.error(
            error.message,
            extra={
                "tenant_id": tenant_id,
                "attempts": attempts,
                "provider": error.provider_type,
            },
        )
        raise error

    async def _attempt(self, entry: PooledProvider, request: GenerateRequest) -> GenerateResponse:
        """Run one provider call bounded by its deadline. The call is cancelled on timeout."""
        provider = entry.provider
        timeout_ms = provider.get_timeout_ms(self.default_timeout_ms)
        start_time = time.perf_counter()

        try:
            response = await asyncio.wait_for(provider.generate(request), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            ai_provider_attempts_total.labels(provider=provider.type, outcome="timeout").inc()
            raise ProviderTimeoutError(provider.type, timeout_ms) from None
        except AIServiceError:
            ai_provider_attempts_total.labels(provider=provider.type, outcome="error").inc()
            raise
        except Exception as e:
            ai_provider_attempts_total.labels(provider=provider.type, outcome="error").inc()
            raise wrap_llm_error(e, provider.type) from e
        finally:
            ai_provider_attempt_duration.labels(provider=provider.type).observe(time.perf_counter() - start_time)

        ai_provider_attempts_total.labels(provider=provider.type, outcome="success").inc()
        return response
