"""Mock vendor adapter for development, tests and environment checks."""

import asyncio
import random
from typing import Tuple

from kbhub.adapters.base import BaseAIProvider, GenerationParams, ProviderResult
from kbhub.models.ai import AIReply, ProviderConfig, ProviderType

MOCK_REPLIES = [
    "Here is a smart reply written for your message in the style you picked.",
    "I've adjusted the tone and wording of this reply to match the selected style.",
    "The AI is drafting a personalised reply for you; this is a simulated answer.",
    "In production this is where a real AI backend would write a high-quality reply.",
    "Thanks for using the AI keyboard, keep exploring the other features.",
]

MOCK_STYLES = [
    "formal",
    "humorous",
    "concise",
    "detailed",
    "friendly",
    "professional",
    "creative",
    "encouraging",
]

INPUT_ECHO_LENGTH = 30


class MockAIProvider(BaseAIProvider):
    """Mock provider that returns canned replies after a simulated delay."""

    provider_type = ProviderType.MOCK
    name = "Mock AI Provider"
    default_model = "mock"

    def __init__(self, config: ProviderConfig, latency_range_ms: Tuple[int, int] = (100, 600)):
        super().__init__(config)
        self.latency_range_ms = latency_range_ms

    def validate_config(self, config: ProviderConfig) -> bool:
        # Mock needs nothing beyond being enabled
        return config.enabled is True

    async def _generate(self, params: GenerationParams) -> ProviderResult:
        await self._simulate_processing_delay()

        echo = params.text[:INPUT_ECHO_LENGTH]
        if len(params.text) > INPUT_ECHO_LENGTH:
            echo += "..."

        replies = []
        for i in range(params.candidate_count):
            replies.append(
                AIReply(
                    id=self.generate_reply_id(),
                    content=f'{MOCK_REPLIES[i % len(MOCK_REPLIES)]} [input: "{echo}"]',
                    style=params.style_prompt or random.choice(MOCK_STYLES),
                )
            )

        tokens_used = len(params.text) * 2 + sum(len(reply.content) for reply in replies)

        return ProviderResult(
            replies=replies,
            tokens_used=tokens_used,
            metadata={"simulated": True, "provider": self.type},
        )

    async def _simulate_processing_delay(self) -> None:
        low, high = self.latency_range_ms
        if high <= 0:
            return
        await asyncio.sleep(random.uniform(low, high) / 1000)
