"""Health check API router."""

from fastapi import APIRouter, Depends

from kbhub.api.dependencies import get_ai_service
from kbhub.infra.metrics import get_metrics_response
from kbhub.services.ai.service import AIGatewayService

router = APIRouter()


@router.get("/health", tags=["Health"])
async def health_check(service: AIGatewayService = Depends(get_ai_service)):
    """Combined health check endpoint."""
    return {
        "status": "ok",
        "service": "kbhub",
        "version": "1.0.0",
        "providers": [provider_type.value for provider_type in service.registry.registered_types()],
        "cache": service.cache_stats(),
    }


@router.get("/health/live", tags=["Health"])
async def liveness_probe():
    """Liveness probe - indicates if the process is running."""
    return {"status": "alive"}


@router.get("/metrics", tags=["Health"])
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
