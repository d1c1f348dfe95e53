"""AI generation models shared by providers, the gateway and the API."""

import copy
from enum import Enum
from typing import Optional, Dict, Any, Tuple
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_TEXT_LENGTH = 4000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 500
DEFAULT_CANDIDATE_COUNT = 1
DEFAULT_PRIORITY = 100


class ProviderType(str, Enum):
    """Known backend kinds. Only registered ones can be instantiated."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    AZURE_OPENAI = "azure_openai"
    MOCK = "mock"


class ProviderConfig(BaseModel):
    """One backend declared by a tenant. Lower priority is tried first."""
    type: ProviderType = Field(..., description="Backend kind")
    api_key: Optional[str] = Field(None, description="API key (stored encrypted upstream)")
    base_url: Optional[str] = Field(None, description="Base URL for self-hosted or proxied endpoints")
    model: Optional[str] = Field(None, description="Model name, e.g. gpt-4o-mini")
    enabled: bool = Field(default=False)
    priority: int = Field(default=DEFAULT_PRIORITY)
    retry_count: Optional[int] = Field(None, ge=0, le=5)
    timeout_ms: Optional[int] = Field(
        None,
        gt=0,
        validation_alias=AliasChoices("timeout_ms", "timeoutMs", "timeout"),
    )

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class GenerateRequest(BaseModel):
    """Validated generation request. Construction is the validation step."""
    text: str = Field(..., min_length=1, max_length=MAX_TEXT_LENGTH)
    style_prompt: Optional[str] = Field(None, max_length=MAX_TEXT_LENGTH)
    temperature: Optional[float] = Field(default=DEFAULT_TEMPERATURE, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=DEFAULT_MAX_TOKENS, ge=1, le=2000)
    candidate_count: Optional[int] = Field(default=DEFAULT_CANDIDATE_COUNT, ge=1, le=5)
    tenant_id: str = Field(..., min_length=1, max_length=128)
    requester_id: Optional[str] = Field(None, description="Used for logging only")

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("text cannot be blank")
        return v


class AIReply(BaseModel):
    """One candidate reply."""
    id: str
    content: str
    style: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ProviderInfo(BaseModel):
    """Provenance of a response."""
    type: str
    model: str
    processing_time_ms: int
    tokens_used: Optional[int] = None

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class GenerateResponse(BaseModel):
    """Result of one successful provider attempt. Never mutated."""
    replies: Tuple[AIReply, ...]
    provider: ProviderInfo
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        """Serialize to the camelCase output contract."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def detached(self) -> "GenerateResponse":
        """Copy whose metadata the caller may change without affecting this response."""
        return self.model_copy(update={"metadata": copy.deepcopy(self.metadata)})
