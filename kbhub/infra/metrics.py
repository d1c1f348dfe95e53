"""Prometheus metrics export."""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Gateway requests
ai_generate_requests_total = Counter(
    "ai_generate_requests_total",
    "Total AI generation requests handled by the gateway",
    ["tenant_id", "status"],  # status: success, cache_hit or an error code
)

# Provider attempts
ai_provider_attempts_total = Counter(
    "ai_provider_attempts_total",
    "Total provider generation attempts",
    ["provider", "outcome"],  # outcome: success, timeout, error
)

ai_provider_attempt_duration = Histogram(
    "ai_provider_attempt_duration_seconds",
    "Provider generation attempt duration in seconds",
    ["provider"],
)

# Response cache
ai_cache_events_total = Counter(
    "ai_cache_events_total",
    "Response cache events",
    ["event"],  # hit, miss, expired, store
)

# Tenant pools
ai_tenant_pool_providers = Gauge(
    "ai_tenant_pool_providers",
    "Number of usable providers in a tenant pool",
    ["tenant_id"],
)


def get_metrics_response() -> Response:
    """Get Prometheus metrics as HTTP response."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
