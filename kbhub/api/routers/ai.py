"""AI generation API router."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from kbhub.adapters.vendor_adapter_openai import OpenAIProvider
from kbhub.api.dependencies import get_ai_service
from kbhub.api.models import (
    CacheClearResponse,
    CacheStatsResponse,
    ErrorResponse,
    GenerateBody,
    GenerateResponseModel,
    SupportedModelsResponse,
    TenantHealthResponse,
)
from kbhub.models.ai import ProviderType
from kbhub.services.ai.service import AIGatewayService

router = APIRouter()

_ERROR_RESPONSES = {
    422: {"model": ErrorResponse, "description": "Invalid request"},
    502: {"model": ErrorResponse, "description": "All providers failed"},
    503: {"model": ErrorResponse, "description": "No provider configured"},
}


@router.post(
    "/v1/tenants/{tenant_id}/ai/generate",
    response_model=GenerateResponseModel,
    responses=_ERROR_RESPONSES,
    tags=["AI"],
)
async def generate(
    tenant_id: str,
    body: GenerateBody,
    service: AIGatewayService = Depends(get_ai_service),
):
    """
    Generate reply candidates for a tenant.

    Providers are tried in the tenant's priority order with failover.
    Identical requests within the cache TTL are served from cache.
    """
    payload = body.model_dump(by_alias=True, exclude_none=True)
    payload["tenantId"] = tenant_id
    response = await service.generate(payload)
    return JSONResponse(content=response.to_wire())


@router.get("/v1/tenants/{tenant_id}/ai/health", response_model=TenantHealthResponse, tags=["AI"])
async def tenant_health(tenant_id: str, service: AIGatewayService = Depends(get_ai_service)):
    """Provider health for a tenant."""
    return await service.get_tenant_health(tenant_id)


@router.post("/v1/tenants/{tenant_id}/ai/reload", response_model=TenantHealthResponse, tags=["AI"])
async def reload_tenant(tenant_id: str, service: AIGatewayService = Depends(get_ai_service)):
    """Rebuild a tenant's provider pool from the settings store."""
    return await service.reload_tenant(tenant_id)


@router.get("/v1/ai/models", response_model=SupportedModelsResponse, tags=["AI"])
async def supported_models():
    """Models supported by the OpenAI-compatible provider."""
    return {
        "provider": ProviderType.OPENAI.value,
        "models": OpenAIProvider.get_supported_models(),
    }


@router.get("/v1/ai/cache/stats", response_model=CacheStatsResponse, tags=["AI"])
async def cache_stats(service: AIGatewayService = Depends(get_ai_service)):
    """Response cache statistics."""
    return service.cache_stats()


@router.delete("/v1/ai/cache", response_model=CacheClearResponse, tags=["AI"])
async def clear_cache(service: AIGatewayService = Depends(get_ai_service)):
    """Drop every cached response."""
    removed = service.clear_cache()
    return {"status": "cleared", "removed": removed}
