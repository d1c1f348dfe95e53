"""Input validation and sanitization for generation requests."""

import logging
import re
from typing import Any, Dict, List, Mapping, Union
from pydantic import ValidationError

from kbhub.infra.error_handler import InvalidRequestError
from kbhub.models.ai import GenerateRequest

logger = logging.getLogger(__name__)

MAX_TENANT_ID_LENGTH = 128

# Control characters except newlines and tabs
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]')

_SUSPICIOUS_TENANT_ID_PATTERNS = [
    r"[';]",
    r"--",
    r"/\*",
    r"\*/",
    r"\s",
]


def sanitize_text(content: str) -> str:
    """
    Remove null bytes and control characters from user text.

    Args:
        content: Raw text

    Returns:
        Sanitized text
    """
    if not content:
        return content
    return _CONTROL_CHARS.sub("", content)


def validate_tenant_id(tenant_id: str) -> str:
    """
    Validate a tenant id taken from a path or header.

    Raises:
        InvalidRequestError: If the id is empty, too long or contains suspicious characters
    """
    if not tenant_id:
        raise InvalidRequestError("tenant_id cannot be empty")

    if len(tenant_id) > MAX_TENANT_ID_LENGTH:
        raise InvalidRequestError("tenant_id too long")

    for pattern in _SUSPICIOUS_TENANT_ID_PATTERNS:
        if re.search(pattern, tenant_id):
            raise InvalidRequestError("Invalid tenant_id: contains suspicious characters")

    return tenant_id


def _error_details(error: ValidationError) -> List[Dict[str, Any]]:
    # ctx can hold exception objects; keep only JSON-safe fields
    return [
        {
            "loc": [str(part) for part in err["loc"]],
            "msg": err["msg"],
            "type": err["type"],
        }
        for err in error.errors()
    ]


def validate_generate_request(payload: Union[GenerateRequest, Mapping[str, Any]]) -> GenerateRequest:
    """
    Validate a generation request before any provider is touched.

    Accepts an already built GenerateRequest or a raw camelCase / snake_case
    mapping. Text fields are sanitized before validation.

    Raises:
        InvalidRequestError: If the request is malformed
    """
    if isinstance(payload, GenerateRequest):
        return payload

    if not isinstance(payload, Mapping):
        raise InvalidRequestError("Generation request must be an object")

    data = dict(payload)
    for key in ("text", "stylePrompt", "style_prompt"):
        if isinstance(data.get(key), str):
            data[key] = sanitize_text(data[key])

    try:
        request = GenerateRequest.model_validate(data)
    except ValidationError as e:
        details = _error_details(e)
        logger.info(
            "Rejected invalid generation request",
            extra={"tenant_id": data.get("tenantId") or data.get("tenant_id"), "errors": details},
        )
        raise InvalidRequestError(
            f"Invalid generation request: {details[0]['msg'] if details else 'validation failed'}",
            details,
        ) from e

    validate_tenant_id(request.tenant_id)
    return request
