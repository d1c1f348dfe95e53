"""Tests for priority ordering and failover."""

from unittest.mock import patch

import pytest
from kbhub.infra.error_handler import (
    AllProvidersFailedError,
    ErrorCode,
    NoProviderConfiguredError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from kbhub.models.ai import GenerateRequest, ProviderType
from kbhub.services.ai.orchestrator import FailoverOrchestrator
from kbhub.services.ai.pool import ProviderPoolManager
from kbhub.services.ai.registry import ProviderRegistry, register_builtin_providers
from kbhub.services.tenant_settings_service import InMemoryTenantSettingsStore


def orchestrator_for(provider_script, documents, default_timeout_ms=1000) -> FailoverOrchestrator:
    manager = ProviderPoolManager(provider_script.registry, InMemoryTenantSettingsStore(documents))
    return FailoverOrchestrator(manager, default_timeout_ms=default_timeout_ms)


def request(tenant_id="T1", text="hello") -> GenerateRequest:
    return GenerateRequest(text=text, tenant_id=tenant_id)


class TestFailoverOrchestrator:
    """Test the failover loop."""

    @pytest.mark.asyncio
    async def test_highest_priority_provider_serves(self, provider_script, make_entry):
        provider_script.register(ProviderType.MOCK)
        provider_script.register(ProviderType.OPENAI)
        orchestrator = orchestrator_for(
            provider_script,
            {"T1": {"aiProviders": [make_entry("mock", priority=100), make_entry("openai", priority=10)]}},
        )

        response = await orchestrator.generate(request())

        assert response.provider.type == "openai"
        assert provider_script.call_log == ["openai"]

    @pytest.mark.asyncio
    async def test_example_tenant_falls_back_to_mock(self, provider_script):
        provider_script.register(ProviderType.MOCK)
        provider_script.register(ProviderType.OPENAI, behaviour="fail")
        orchestrator = orchestrator_for(
            provider_script,
            {
                "T1": {
                    "aiProviders": [
                        {"type": "mock", "priority": 100, "enabled": True},
                        {"type": "openai", "priority": 10, "enabled": True, "apiKey": "x"},
                    ]
                }
            },
        )

        response = await orchestrator.generate(GenerateRequest(text="hello", tenant_id="T1"))

        assert provider_script.call_log == ["openai", "mock"]
        assert response.provider.type == "mock"

    @pytest.mark.asyncio
    async def test_timeout_fails_over_and_cancels_attempt(self, provider_script, make_entry):
        provider_script.register(ProviderType.OPENAI, behaviour="timeout")
        provider_script.register(ProviderType.MOCK)
        orchestrator = orchestrator_for(
            provider_script,
            {"T1": {"aiProviders": [make_entry("openai", priority=1, timeoutMs=50), make_entry("mock", priority=2)]}},
        )

        response = await orchestrator.generate(request())

        assert response.provider.type == "mock"
        assert provider_script.instance(ProviderType.OPENAI).cancelled is True

    @pytest.mark.asyncio
    async def test_default_timeout_applies_without_timeout_ms(self, provider_script, make_entry):
        provider_script.register(ProviderType.OPENAI, behaviour="timeout")
        orchestrator = orchestrator_for(
            provider_script,
            {"T1": {"aiProviders": [make_entry("openai")]}},
            default_timeout_ms=30,
        )

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.generate(request())

        assert isinstance(exc_info.value.last_error, ProviderTimeoutError)
        assert exc_info.value.last_error.timeout_ms == 30

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, provider_script, make_entry):
        provider_script.register(ProviderType.OPENAI, behaviour="fail")
        provider_script.register(ProviderType.MOCK, behaviour="timeout")
        orchestrator = orchestrator_for(
            provider_script,
            {"T1": {"aiProviders": [make_entry("openai", priority=1), make_entry("mock", priority=2, timeoutMs=20)]}},
        )

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.generate(request())

        error = exc_info.value
        assert error.code == ErrorCode.ALL_PROVIDERS_FAILED
        assert error.attempts == 2
        assert error.provider_type == "mock"
        assert isinstance(error.last_error, ProviderTimeoutError)
        assert provider_script.call_log == ["openai", "mock"]

    @pytest.mark.asyncio
    async def test_backend_error_message_is_kept_as_last_error(self, provider_script, make_entry):
        provider_script.register(ProviderType.OPENAI, behaviour="fail")
        orchestrator = orchestrator_for(provider_script, {"T1": {"aiProviders": [make_entry("openai")]}})

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.generate(request())

        assert exc_info.value.provider_type == "openai"
        assert "backend exploded" in exc_info.value.last_error.message

    @pytest.mark.asyncio
    async def test_no_enabled_providers(self, provider_script, make_entry):
        provider_script.register(ProviderType.MOCK)
        orchestrator = orchestrator_for(provider_script, {"T1": {"aiProviders": [make_entry("mock", enabled=False)]}})

        with pytest.raises(NoProviderConfiguredError) as exc_info:
            await orchestrator.generate(request())

        assert exc_info.value.code == ErrorCode.NO_PROVIDER_CONFIGURED
        assert provider_script.call_log == []

    @pytest.mark.asyncio
    async def test_only_provider_fails_validation(self, make_entry):
        registry = register_builtin_providers(ProviderRegistry())
        store = InMemoryTenantSettingsStore({"T1": {"aiProviders": [make_entry("openai")]}})
        orchestrator = FailoverOrchestrator(ProviderPoolManager(registry, store))

        with patch("kbhub.adapters.vendor_adapter_openai.AsyncOpenAI") as mock_client:
            with pytest.raises(NoProviderConfiguredError):
                await orchestrator.generate(request())

        mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_unregistered_only_provider(self, provider_script, make_entry):
        provider_script.register(ProviderType.OPENAI)
        orchestrator = orchestrator_for(provider_script, {"T1": {"aiProviders": [make_entry("google")]}})

        with pytest.raises(NoProviderConfiguredError):
            await orchestrator.generate(request())

        assert provider_script.call_log == []

    @pytest.mark.asyncio
    async def test_unknown_tenant(self, provider_script):
        orchestrator = orchestrator_for(provider_script, {})

        with pytest.raises(NoProviderConfiguredError):
            await orchestrator.generate(request(tenant_id="ghost"))

    @pytest.mark.parametrize(
        "order",
        [
            [("openai", 10), ("anthropic", 50), ("mock", 100)],
            [("mock", 100), ("openai", 10), ("anthropic", 50)],
            [("anthropic", 50), ("mock", 100), ("openai", 10)],
        ],
    )
    @pytest.mark.asyncio
    async def test_attempt_order_ignores_input_order(self, provider_script, make_entry, order):
        for provider_type in (ProviderType.OPENAI, ProviderType.ANTHROPIC, ProviderType.MOCK):
            provider_script.register(provider_type, behaviour="fail")
        entries = [make_entry(provider_type, priority=priority) for provider_type, priority in order]
        orchestrator = orchestrator_for(provider_script, {"T1": {"aiProviders": entries}})

        with pytest.raises(AllProvidersFailedError):
            await orchestrator.generate(request())

        assert provider_script.call_log == ["openai", "anthropic", "mock"]

    @pytest.mark.asyncio
    async def test_equal_priority_keeps_configuration_order(self, provider_script, make_entry):
        provider_script.register(ProviderType.ANTHROPIC, behaviour="fail")
        provider_script.register(ProviderType.OPENAI, behaviour="fail")
        orchestrator = orchestrator_for(
            provider_script,
            {"T1": {"aiProviders": [make_entry("anthropic", priority=5), make_entry("openai", priority=5)]}},
        )

        with pytest.raises(AllProvidersFailedError):
            await orchestrator.generate(request())

        assert provider_script.call_log == ["anthropic", "openai"]

    @pytest.mark.asyncio
    async def test_retry_count_retries_same_provider_first(self, provider_script, make_entry):
        provider_script.register(ProviderType.OPENAI, fail_times=1)
        provider_script.register(ProviderType.MOCK)
        orchestrator = orchestrator_for(
            provider_script,
            {"T1": {"aiProviders": [make_entry("openai", priority=1, retryCount=1), make_entry("mock", priority=2)]}},
        )

        response = await orchestrator.generate(request())

        assert response.provider.type == "openai"
        assert provider_script.call_log == ["openai", "openai"]

    @pytest.mark.asyncio
    async def test_retries_are_counted_as_attempts(self, provider_script, make_entry):
        provider_script.register(ProviderType.OPENAI, behaviour="fail")
        orchestrator = orchestrator_for(
            provider_script, {"T1": {"aiProviders": [make_entry("openai", retryCount=2)]}}
        )

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.generate(request())

        assert exc_info.value.attempts == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_fails_over_without_retrying(self, provider_script, make_entry):
        provider_script.register(ProviderType.OPENAI, behaviour="reject")
        provider_script.register(ProviderType.MOCK)
        orchestrator = orchestrator_for(
            provider_script,
            {"T1": {"aiProviders": [make_entry("openai", priority=1, retryCount=3), make_entry("mock", priority=2)]}},
        )

        response = await orchestrator.generate(request())

        assert response.provider.type == "mock"
        assert provider_script.call_log == ["openai", "mock"]

    @pytest.mark.asyncio
    async def test_non_retryable_error_counts_one_attempt(self, provider_script, make_entry):
        provider_script.register(ProviderType.OPENAI, behaviour="reject")
        orchestrator = orchestrator_for(provider_script, {"T1": {"aiProviders": [make_entry("openai", retryCount=2)]}})

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.generate(request())

        assert exc_info.value.attempts == 1
        assert exc_info.value.last_error.retryable is False

    @pytest.mark.asyncio
    async def test_provider_unavailable_just_in_time_is_skipped(self, provider_script, make_entry, make_settings):
        provider_script.register(ProviderType.OPENAI)
        provider_script.register(ProviderType.MOCK)
        orchestrator = orchestrator_for(provider_script, {})
        pool = await orchestrator.pools.initialize_tenant(
            make_settings("T1", make_entry("openai", priority=1), make_entry("mock", priority=2))
        )
        first = pool.candidates()[0].provider

        # Available when candidates are listed, gone by the time it is reached
        with patch.object(first, "is_available", side_effect=[True, False]):
            response = await orchestrator.generate(request())

        assert response.provider.type == "mock"
        assert provider_script.call_log == ["mock"]

    @pytest.mark.asyncio
    async def test_all_candidates_gone_just_in_time(self, provider_script, make_entry, make_settings):
        provider_script.register(ProviderType.MOCK)
        orchestrator = orchestrator_for(provider_script, {})
        pool = await orchestrator.pools.initialize_tenant(make_settings("T1", make_entry("mock")))

        with patch.object(pool.providers[0].provider, "is_available", side_effect=[True, False]):
            with pytest.raises(AllProvidersFailedError) as exc_info:
                await orchestrator.generate(request())

        assert exc_info.value.attempts == 0
        assert isinstance(exc_info.value.last_error, ProviderUnavailableError)
