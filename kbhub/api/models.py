"""API request/response models."""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# Generation Models
# ============================================================================

class GenerateBody(BaseModel):
    """Request body for generation. The tenant comes from the path; ranges are checked by the gateway."""
    text: str = Field(..., example="Can we move the meeting to Friday?")
    style_prompt: Optional[str] = Field(None, example="friendly")
    temperature: Optional[float] = Field(None, example=0.7)
    max_tokens: Optional[int] = Field(None, example=500)
    candidate_count: Optional[int] = Field(None, example=1)
    requester_id: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class ReplyModel(BaseModel):
    id: str
    content: str
    style: Optional[str] = None


class ProviderInfoModel(BaseModel):
    type: str
    model: str
    processingTimeMs: int
    tokensUsed: Optional[int] = None

    model_config = ConfigDict(protected_namespaces=())


class GenerateResponseModel(BaseModel):
    """Response model for a successful generation."""
    replies: List[ReplyModel]
    provider: ProviderInfoModel
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ErrorDetail(BaseModel):
    code: str = Field(..., example="ALL_PROVIDERS_FAILED")
    message: str
    provider: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body returned for gateway failures."""
    error: ErrorDetail


# ============================================================================
# Tenant Provider Models
# ============================================================================

class ProviderHealthModel(BaseModel):
    type: str
    model: str
    available: bool
    priority: int
    position: int


class SkippedProviderModel(BaseModel):
    type: str
    position: int
    reason: str


class TenantHealthResponse(BaseModel):
    """Provider health of one tenant."""
    tenant_id: str
    enable_ai: bool
    default_provider: Optional[str] = None
    providers: List[ProviderHealthModel]
    skipped: List[SkippedProviderModel]
    rejected: List[str]


# ============================================================================
# Catalogue and Cache Models
# ============================================================================

class SupportedModel(BaseModel):
    id: str
    name: str
    max_tokens: int
    is_pro: bool
    description: str


class SupportedModelsResponse(BaseModel):
    provider: str = Field(..., example="openai")
    models: List[SupportedModel]


class CacheStatsResponse(BaseModel):
    enabled: bool
    size: Optional[int] = None
    hits: Optional[int] = None
    misses: Optional[int] = None
    hit_rate: Optional[float] = None
    ttl_seconds: Optional[float] = None


class CacheClearResponse(BaseModel):
    status: str = Field(..., example="cleared")
    removed: int
