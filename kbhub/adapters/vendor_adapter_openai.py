"""OpenAI-compatible vendor adapter (OpenAI, Azure-style proxies, Groq, OpenRouter...)."""

import logging
from typing import List, Dict, Any, Optional

from openai import AsyncOpenAI

from kbhub.adapters.base import BaseAIProvider, GenerationParams, ProviderResult
from kbhub.infra.config import config as app_config
from kbhub.models.ai import AIReply, ProviderConfig, ProviderType

logger = logging.getLogger(__name__)

SUPPORTED_MODELS: List[Dict[str, Any]] = [
    {
        "id": "gpt-4o-mini",
        "name": "GPT-4o Mini",
        "max_tokens": 16384,
        "is_pro": False,
        "description": "Fast and economical model for everyday conversations",
    },
    {
        "id": "gpt-4o",
        "name": "GPT-4o",
        "max_tokens": 128000,
        "is_pro": True,
        "description": "Most capable model with the highest reply quality",
    },
    {
        "id": "gpt-3.5-turbo",
        "name": "GPT-3.5 Turbo",
        "max_tokens": 16384,
        "is_pro": False,
        "description": "Cost-effective model with fast responses",
    },
]

# Reasoning models take max_completion_tokens and a fixed temperature
REASONING_MODEL_PREFIXES = ("gpt-5", "o1", "o3", "o4")


def build_system_prompt(style_prompt: Optional[str]) -> str:
    """Build the instruction block for the keyboard reply task."""
    if style_prompt:
        return (
            f'Reply to the user\'s message in a "{style_prompt}" style.\n'
            "Requirements:\n"
            f'1. Keep the "{style_prompt}" style and tone\n'
            "2. Keep the reply short and clear\n"
            "3. If it is a conversation, keep it natural and fluent"
        )
    return (
        "Reply to the user's message.\n"
        "Requirements:\n"
        "1. Keep the reply short and clear\n"
        "2. If it is a conversation, keep it natural and fluent\n"
        "3. Give a meaningful reply based on the context"
    )


def is_reasoning_model(model: str) -> bool:
    return model.startswith(REASONING_MODEL_PREFIXES)


class OpenAIProvider(BaseAIProvider):
    """Provider for any API speaking the OpenAI chat completions format."""

    provider_type = ProviderType.OPENAI
    name = "OpenAI"
    default_model = "gpt-4o-mini"
    default_max_tokens = 500

    def __init__(self, config: ProviderConfig, client: Optional[AsyncOpenAI] = None):
        super().__init__(config)
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url or app_config.OPENAI_BASE_URL,
                # Deadlines and failover are owned by the orchestrator
                max_retries=0,
                timeout=self.get_timeout_ms() / 1000,
            )
        return self._client

    def validate_config(self, config: ProviderConfig) -> bool:
        if not super().validate_config(config):
            return False
        if not (config.api_key and config.api_key.strip()):
            return False
        return True

    def build_completion_params(self, params: GenerationParams) -> Dict[str, Any]:
        """Translate generic parameters into a chat completions payload."""
        completion_params: Dict[str, Any] = {
            "model": params.model,
            "messages": [
                {"role": "system", "content": build_system_prompt(params.style_prompt)},
                {"role": "user", "content": params.text},
            ],
            "n": params.candidate_count,
        }
        if is_reasoning_model(params.model):
            completion_params["max_completion_tokens"] = params.max_tokens
        else:
            completion_params["max_tokens"] = params.max_tokens
            completion_params["temperature"] = params.temperature
        return completion_params

    async def _generate(self, params: GenerationParams) -> ProviderResult:
        response = await self.client.chat.completions.create(**self.build_completion_params(params))

        style = params.style_prompt or "default"
        replies = [
            AIReply(
                id=self.generate_reply_id(),
                content=(choice.message.content or "").strip(),
                style=style,
            )
            for choice in response.choices
            if choice.message is not None and choice.message.content
        ]
        if not replies:
            raise ValueError("OpenAI API returned no reply content")

        usage = getattr(response, "usage", None)
        tokens_used = usage.total_tokens if usage is not None else None

        return ProviderResult(
            replies=replies,
            tokens_used=tokens_used,
            metadata={
                "model": response.model or params.model,
                "temperature": params.temperature,
                "finishReasons": [choice.finish_reason for choice in response.choices],
            },
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            logger.debug("OpenAI client closed", extra={"provider": self.type, "model": self.model})

    @staticmethod
    def get_supported_models() -> List[Dict[str, Any]]:
        return [dict(model) for model in SUPPORTED_MODELS]
