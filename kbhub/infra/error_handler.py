"""Error taxonomy for the AI gateway and backend error normalisation."""

import asyncio
import re
from typing import Optional, Tuple, Any, Dict, List
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of backend errors."""
    NETWORK = "network"  # Connection issues
    TIMEOUT = "timeout"  # Attempt deadline exceeded
    API_ERROR = "api_error"  # API returned error response
    AUTH_ERROR = "auth_error"  # Authentication/authorization failures
    RATE_LIMIT = "rate_limit"  # Rate limit exceeded
    UNKNOWN = "unknown"  # Unknown errors


class ErrorCode(str, Enum):
    """Stable machine-readable error codes."""
    # Codes that cross the gateway boundary
    INVALID_REQUEST = "INVALID_REQUEST"
    NO_PROVIDER_CONFIGURED = "NO_PROVIDER_CONFIGURED"
    ALL_PROVIDERS_FAILED = "ALL_PROVIDERS_FAILED"
    UNAVAILABLE_PROVIDER = "UNAVAILABLE_PROVIDER"
    # Codes absorbed by pool construction or the failover loop
    AI_SERVICE_ERROR = "AI_SERVICE_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    INVALID_CONFIG = "INVALID_CONFIG"
    UNREGISTERED_PROVIDER = "UNREGISTERED_PROVIDER"


class AIServiceError(Exception):
    """Base exception for every gateway error."""

    default_code = ErrorCode.AI_SERVICE_ERROR

    def __init__(self, message: str, provider_type: Optional[str] = None, code: Optional[ErrorCode] = None):
        self.message = message
        self.provider_type = provider_type
        self.code = code or self.default_code
        super().__init__(f"[{provider_type}] {message}" if provider_type else message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "provider": self.provider_type,
        }


class InvalidRequestError(AIServiceError):
    """Generation request failed validation."""

    default_code = ErrorCode.INVALID_REQUEST

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        self.details = details or []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["details"] = self.details
        return data


class NoProviderConfiguredError(AIServiceError):
    """Tenant has no enabled, valid provider."""

    default_code = ErrorCode.NO_PROVIDER_CONFIGURED

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant {tenant_id} has no available AI provider configured")


class AllProvidersFailedError(AIServiceError):
    """Every candidate provider failed; wraps the last underlying error."""

    default_code = ErrorCode.ALL_PROVIDERS_FAILED

    def __init__(self, tenant_id: str, last_error: Optional[AIServiceError], attempts: int):
        self.tenant_id = tenant_id
        self.last_error = last_error
        self.attempts = attempts
        if last_error is not None:
            message = f"All AI providers failed after {attempts} attempt(s); last error: {last_error.message}"
            provider_type = last_error.provider_type
        else:
            message = f"All AI providers failed after {attempts} attempt(s)"
            provider_type = None
        super().__init__(message, provider_type)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = self.attempts
        if self.last_error is not None:
            data["last_error"] = {
                "code": self.last_error.code.value,
                "message": self.last_error.message,
                "provider": self.last_error.provider_type,
            }
        return data


class ProviderError(AIServiceError):
    """Backend failure normalised to a single type."""

    default_code = ErrorCode.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        provider_type: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retryable: bool = True,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        code: Optional[ErrorCode] = None,
    ):
        self.category = category
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message, provider_type, code)


class ProviderTimeoutError(ProviderError):
    """A provider attempt exceeded its deadline."""

    default_code = ErrorCode.PROVIDER_TIMEOUT

    def __init__(self, provider_type: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Provider {provider_type} timed out after {timeout_ms}ms",
            provider_type,
            category=ErrorCategory.TIMEOUT,
            retryable=True,
        )


class ProviderUnavailableError(ProviderError):
    """Provider is disabled or its configuration does not validate."""

    default_code = ErrorCode.UNAVAILABLE_PROVIDER

    def __init__(self, provider_type: str):
        super().__init__(
            f"Provider {provider_type} is not available",
            provider_type,
            category=ErrorCategory.UNKNOWN,
            retryable=False,
        )


class ProviderConfigError(AIServiceError):
    """Provider configuration is invalid."""

    default_code = ErrorCode.INVALID_CONFIG

    def __init__(self, provider_type: str, message: str):
        super().__init__(f"Invalid configuration: {message}", provider_type)


class UnregisteredProviderError(ProviderConfigError):
    """Tenant configuration references a provider type with no factory."""

    default_code = ErrorCode.UNREGISTERED_PROVIDER

    def __init__(self, provider_type: str):
        AIServiceError.__init__(self, f"Provider type {provider_type} is not registered", provider_type)


def _extract_retry_after(error: Exception) -> Optional[float]:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if headers is not None:
        value = headers.get("retry-after")
        if value:
            try:
                return float(value)
            except (TypeError, ValueError):
                return None
    match = re.search(r"retry[_-]after[:\s]+(\d+)", str(error), re.IGNORECASE)
    if match:
        return float(match.group(1))
    return None


def classify_error(error: Exception) -> Tuple[ErrorCategory, bool, Optional[float]]:
    """
    Classify an error into a category and determine if it's retryable.

    Args:
        error: The exception to classify

    Returns:
        Tuple of (category, retryable, retry_after_seconds)
    """
    if isinstance(error, ProviderError):
        return error.category, error.retryable, error.retry_after

    if isinstance(error, asyncio.TimeoutError):
        return ErrorCategory.TIMEOUT, True, None

    error_str = str(error).lower()
    error_type = type(error).__name__

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        if status_code == 429:
            return ErrorCategory.RATE_LIMIT, True, _extract_retry_after(error)
        if status_code in (401, 403):
            return ErrorCategory.AUTH_ERROR, False, None
        if status_code >= 500:
            return ErrorCategory.API_ERROR, True, None
        return ErrorCategory.API_ERROR, False, None

    if "timeout" in error_type.lower() or "timed out" in error_str or "timeout" in error_str:
        return ErrorCategory.TIMEOUT, True, None

    if error_type in ("ConnectionError", "APIConnectionError", "ConnectError") or any(
        keyword in error_str for keyword in ["connection", "network", "dns", "refused"]
    ):
        return ErrorCategory.NETWORK, True, None

    if "rate limit" in error_str or "429" in error_str or "too many requests" in error_str:
        return ErrorCategory.RATE_LIMIT, True, _extract_retry_after(error)

    if any(keyword in error_str for keyword in ["unauthorized", "forbidden", "401", "403", "authentication"]):
        return ErrorCategory.AUTH_ERROR, False, None

    return ErrorCategory.UNKNOWN, False, None


def wrap_llm_error(error: Exception, provider: str) -> ProviderError:
    """
    Wrap a backend exception into a ProviderError.

    Args:
        error: Original exception
        provider: Provider type tag ('openai', 'mock', ...)

    Returns:
        ProviderError carrying the provider tag and a readable message
    """
    if isinstance(error, ProviderError):
        return error

    category, retryable, retry_after = classify_error(error)
    status_code = getattr(error, "status_code", None)
    if not isinstance(status_code, int):
        status_code = None
    detail = str(error) or type(error).__name__

    if category == ErrorCategory.RATE_LIMIT:
        message = f"{provider} rate limit exceeded"
    elif category == ErrorCategory.AUTH_ERROR:
        message = f"{provider} authentication failed: {detail}"
    elif category == ErrorCategory.TIMEOUT:
        message = f"{provider} request timed out: {detail}"
    elif category == ErrorCategory.NETWORK:
        message = f"{provider} network error: {detail}"
    elif category == ErrorCategory.API_ERROR and status_code is not None:
        message = f"{provider} API error ({status_code}): {detail}"
    else:
        message = f"{provider} error: {detail}"

    return ProviderError(
        message,
        provider,
        category=category,
        retryable=retryable,
        status_code=status_code,
        retry_after=retry_after,
    )
