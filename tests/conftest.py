"""Pytest configuration and fixtures."""

import asyncio
import os
from typing import Any, Dict, List, Optional

import pytest
from dotenv import load_dotenv

# Load test environment variables
load_dotenv()

# Set test environment before kbhub reads its config
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")

from kbhub.adapters.base import BaseAIProvider, GenerationParams, ProviderResult  # noqa: E402
from kbhub.models.ai import AIReply, ProviderConfig, ProviderType  # noqa: E402
from kbhub.models.tenant import TenantAISettings  # noqa: E402
from kbhub.services.ai.registry import ProviderRegistry  # noqa: E402


class ScriptedProvider(BaseAIProvider):
    """
    Provider whose outcome is fixed by the test.

    behaviour: "succeed", "fail" (retryable backend exception), "reject"
    (authentication failure, not retryable) or "timeout" (never returns).
    fail_times: number of leading calls that fail before succeeding.
    gate: when set, every call waits for the event before answering.
    """

    name = "Scripted Provider"
    default_model = "scripted"

    def __init__(
        self,
        config: ProviderConfig,
        behaviour: str = "succeed",
        fail_times: int = 0,
        call_log: Optional[List[str]] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.provider_type = config.type
        super().__init__(config)
        self.behaviour = behaviour
        self.fail_times = fail_times
        self.call_log = call_log if call_log is not None else []
        self.gate = gate
        self.calls = 0
        self.cancelled = False
        self.closed = False

    async def _generate(self, params: GenerationParams) -> ProviderResult:
        self.calls += 1
        self.call_log.append(self.type)

        if self.gate is not None:
            await self.gate.wait()

        if self.behaviour == "timeout":
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                self.cancelled = True
                raise

        if self.behaviour == "reject":
            raise PermissionError(f"{self.type} 401 unauthorized")

        if self.behaviour == "fail" or self.calls <= self.fail_times:
            raise ConnectionError(f"{self.type} backend exploded")

        return ProviderResult(
            replies=[
                AIReply(id=f"reply_{self.type}_{self.calls}", content=f"reply from {self.type}", style=params.style_prompt)
            ],
            tokens_used=7,
            metadata={"scripted": True},
        )

    async def aclose(self) -> None:
        self.closed = True


class ProviderScript:
    """Registry of scripted providers plus a shared log of attempted provider types."""

    def __init__(self):
        self.registry = ProviderRegistry()
        self.call_log: List[str] = []
        self.instances: List[ScriptedProvider] = []

    def register(
        self,
        provider_type: ProviderType,
        behaviour: str = "succeed",
        fail_times: int = 0,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        def factory(config: ProviderConfig) -> ScriptedProvider:
            provider = ScriptedProvider(config, behaviour, fail_times, self.call_log, gate)
            self.instances.append(provider)
            return provider

        self.registry.register(provider_type, factory)

    def instance(self, provider_type: ProviderType) -> ScriptedProvider:
        return next(p for p in reversed(self.instances) if p.provider_type == provider_type)

    @property
    def total_calls(self) -> int:
        return sum(p.calls for p in self.instances)

    async def wait_for_calls(self, count: int, timeout: float = 1.0) -> None:
        """Yield to the event loop until at least `count` calls have started."""
        async def reached():
            while self.total_calls < count:
                await asyncio.sleep(0)

        await asyncio.wait_for(reached(), timeout)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def provider_entry(provider_type: str, **overrides: Any) -> Dict[str, Any]:
    """Raw camelCase provider entry as stored in tenant settings."""
    entry: Dict[str, Any] = {"type": provider_type, "enabled": True, "priority": 100}
    entry.update(overrides)
    return entry


def tenant_settings(tenant_id: str, *entries: Dict[str, Any], enable_ai: bool = True) -> TenantAISettings:
    return TenantAISettings(
        tenant_id=tenant_id,
        enable_ai=enable_ai,
        providers=tuple(ProviderConfig.model_validate(entry) for entry in entries),
    )


@pytest.fixture
def provider_script() -> ProviderScript:
    return ProviderScript()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_entry():
    return provider_entry


@pytest.fixture
def make_settings():
    return tenant_settings
