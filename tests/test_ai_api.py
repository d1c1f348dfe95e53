"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from kbhub.main import create_app
from kbhub.models.ai import ProviderType
from kbhub.services.ai.service import AIGatewayService, AIServiceOptions
from kbhub.services.tenant_settings_service import InMemoryTenantSettingsStore


@pytest.fixture
def settings_store(make_entry):
    return InMemoryTenantSettingsStore(
        {
            "T1": {"aiProviders": [make_entry("mock", priority=100), make_entry("openai", priority=10)]},
            "T2": {"aiProviders": [make_entry("openai")]},
            "T3": {"aiProviders": []},
        }
    )


@pytest.fixture
def client(provider_script, settings_store):
    provider_script.register(ProviderType.MOCK)
    provider_script.register(ProviderType.OPENAI, behaviour="fail")
    service = AIGatewayService(provider_script.registry, settings_store, AIServiceOptions())
    with TestClient(create_app(service)) as test_client:
        yield test_client


class TestGenerateEndpoint:
    """Test POST /v1/tenants/{tenant_id}/ai/generate."""

    def test_generate_fails_over_and_returns_camel_case(self, client, provider_script):
        response = client.post(
            "/v1/tenants/T1/ai/generate",
            json={"text": "hello", "stylePrompt": "formal", "requesterId": "u1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["provider"]["type"] == "mock"
        assert "processingTimeMs" in body["provider"]
        assert body["provider"]["tokensUsed"] == 7
        assert body["replies"][0]["style"] == "formal"
        assert body["metadata"]["tenantId"] == "T1"
        assert "requesterId" not in body["metadata"]
        assert provider_script.call_log == ["openai", "mock"]
        assert response.headers["X-Request-ID"]

    def test_gateway_validation_error(self, client):
        response = client.post("/v1/tenants/T1/ai/generate", json={"text": "hello", "candidateCount": 9})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_body_validation_error(self, client):
        response = client.post("/v1/tenants/T1/ai/generate", json={"text": "hello", "tenantId": "T9"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_REQUEST"

    def test_all_providers_failed(self, client):
        response = client.post("/v1/tenants/T2/ai/generate", json={"text": "hello"})

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "ALL_PROVIDERS_FAILED"
        assert error["provider"] == "openai"
        assert error["attempts"] == 1

    def test_no_provider_configured(self, client):
        response = client.post("/v1/tenants/T3/ai/generate", json={"text": "hello"})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "NO_PROVIDER_CONFIGURED"


class TestTenantEndpoints:
    """Test tenant health and reload."""

    def test_health(self, client):
        response = client.get("/v1/tenants/T1/ai/health")

        assert response.status_code == 200
        body = response.json()
        assert body["tenant_id"] == "T1"
        assert [provider["type"] for provider in body["providers"]] == ["openai", "mock"]

    def test_reload(self, client, settings_store, make_entry):
        settings_store.put("T3", {"aiProviders": [make_entry("mock")]})

        response = client.post("/v1/tenants/T3/ai/reload")
        assert response.status_code == 200
        assert [provider["type"] for provider in response.json()["providers"]] == ["mock"]

        response = client.post("/v1/tenants/T3/ai/generate", json={"text": "hello"})
        assert response.status_code == 200


class TestCatalogueAndCache:
    """Test model catalogue and cache management."""

    def test_models(self, client):
        response = client.get("/v1/ai/models")

        assert response.status_code == 200
        body = response.json()
        assert body["provider"] == "openai"
        assert "gpt-4o-mini" in [model["id"] for model in body["models"]]

    def test_cache_stats_and_clear(self, client, provider_script):
        client.post("/v1/tenants/T1/ai/generate", json={"text": "hello"})
        client.post("/v1/tenants/T1/ai/generate", json={"text": "hello"})

        stats = client.get("/v1/ai/cache/stats").json()
        assert stats["enabled"] is True
        assert stats["size"] == 1
        assert stats["hits"] == 1

        response = client.delete("/v1/ai/cache")
        assert response.json() == {"status": "cleared", "removed": 1}
        assert client.get("/v1/ai/cache/stats").json()["size"] == 0


class TestHealthEndpoints:
    """Test service health and metrics."""

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert set(body["providers"]) == {"mock", "openai"}

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}

    def test_metrics(self, client):
        client.post("/v1/tenants/T1/ai/generate", json={"text": "hello"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "ai_generate_requests_total" in response.text
        assert "ai_provider_attempts_total" in response.text


class TestSettingsStoreFailure:
    """Test that an unreadable settings store stays inside the error contract."""

    def test_generate_returns_503(self, provider_script):
        class UnreachableStore:
            async def get_ai_settings(self, tenant_id):
                raise ConnectionError("settings database unreachable")

        provider_script.register(ProviderType.MOCK)
        service = AIGatewayService(provider_script.registry, UnreachableStore(), AIServiceOptions())

        with TestClient(create_app(service)) as test_client:
            response = test_client.post("/v1/tenants/T1/ai/generate", json={"text": "hello"})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "NO_PROVIDER_CONFIGURED"
