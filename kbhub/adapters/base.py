"""Base AI provider: the capability interface every backend implements."""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from kbhub.infra.error_handler import AIServiceError, ProviderUnavailableError, wrap_llm_error
from kbhub.models.ai import (
    AIReply,
    DEFAULT_CANDIDATE_COUNT,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    GenerateRequest,
    GenerateResponse,
    ProviderConfig,
    ProviderInfo,
    ProviderType,
)

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_TIMEOUT_MS = 30000


@dataclass(frozen=True)
class GenerationParams:
    """Backend-neutral parameters with defaults applied."""
    text: str
    style_prompt: Optional[str]
    temperature: float
    max_tokens: int
    candidate_count: int
    model: str


@dataclass
class ProviderResult:
    """Raw output of a backend call."""
    replies: List[AIReply]
    tokens_used: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseAIProvider(ABC):
    """
    Abstract base class for AI providers.

    Subclasses declare ``provider_type`` and ``name`` and implement
    ``_generate``. ``generate`` handles availability, defaults, timing and
    error normalisation so every backend reports the same contract.
    """

    provider_type: ProviderType
    name: str

    default_model: str = "default"
    default_temperature: float = DEFAULT_TEMPERATURE
    default_max_tokens: int = DEFAULT_MAX_TOKENS

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def type(self) -> str:
        return self.provider_type.value

    @property
    def model(self) -> str:
        return self.config.model or self.default_model

    @property
    def priority(self) -> int:
        return self.config.priority

    def is_available(self) -> bool:
        """Cheap check, no I/O: enabled and configuration validates."""
        return self.config.enabled and self.validate_config(self.config)

    def validate_config(self, config: ProviderConfig) -> bool:
        """
        Validate a configuration for this backend.

        Subclasses extend this with backend-specific checks.
        """
        if not config.enabled:
            return False
        return config.type == self.provider_type

    def get_timeout_ms(self, default: int = DEFAULT_PROVIDER_TIMEOUT_MS) -> int:
        return self.config.timeout_ms or default

    async def generate(self, request: GenerateRequest) -> GenerateResponse:
        """
        Generate candidate replies for a request.

        Raises:
            ProviderUnavailableError: If the provider is disabled or misconfigured
            ProviderError: For any backend failure
        """
        start_time = time.perf_counter()

        if not self.is_available():
            raise ProviderUnavailableError(self.type)

        params = self.prepare_request_params(request)

        try:
            result = await self._generate(params)
        except AIServiceError:
            raise
        except Exception as e:
            logger.warning(
                f"Provider {self.type} generation failed: {e}",
                extra={"provider": self.type, "model": params.model, "tenant_id": request.tenant_id},
            )
            raise wrap_llm_error(e, self.type) from e

        processing_time_ms = int((time.perf_counter() - start_time) * 1000)

        return GenerateResponse(
            replies=tuple(result.replies),
            provider=ProviderInfo(
                type=self.type,
                model=params.model,
                processing_time_ms=processing_time_ms,
                tokens_used=result.tokens_used,
            ),
            metadata={"tenantId": request.tenant_id, **result.metadata},
        )

    def prepare_request_params(self, request: GenerateRequest) -> GenerationParams:
        """Build backend-neutral parameters, applying defaults for absent fields."""
        return GenerationParams(
            text=request.text,
            style_prompt=request.style_prompt,
            temperature=request.temperature if request.temperature is not None else self.default_temperature,
            max_tokens=request.max_tokens if request.max_tokens is not None else self.default_max_tokens,
            candidate_count=(
                request.candidate_count if request.candidate_count is not None else DEFAULT_CANDIDATE_COUNT
            ),
            model=self.model,
        )

    @abstractmethod
    async def _generate(self, params: GenerationParams) -> ProviderResult:
        """Perform the backend call."""

    async def aclose(self) -> None:
        """Release backend resources. Default: nothing to release."""

    @staticmethod
    def generate_reply_id() -> str:
        return f"reply_{int(time.time() * 1000)}_{uuid.uuid4().hex[:7]}"

    def has_api_key(self) -> bool:
        return bool(self.config.api_key and self.config.api_key.strip())

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} type={self.type} model={self.model} priority={self.priority}>"
