"""FastAPI dependencies."""

from fastapi import Request

from kbhub.services.ai.service import AIGatewayService


def get_ai_service(request: Request) -> AIGatewayService:
    """Return the gateway built at application startup."""
    return request.app.state.ai_service
