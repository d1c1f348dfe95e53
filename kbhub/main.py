"""FastAPI AI gateway application."""

import uuid
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kbhub.infra.database import dispose_engines
from kbhub.infra.error_handler import AIServiceError, ErrorCode
from kbhub.infra.logging import app_logger
from kbhub.infra.middleware import RequestIDMiddleware, RequestLoggingMiddleware
from kbhub.infra.timeout import TimeoutMiddleware, REQUEST_TIMEOUT
from kbhub.api.routers import ai, health
from kbhub.services.ai.service import AIGatewayService, create_default_ai_service

ERROR_STATUS_CODES = {
    ErrorCode.INVALID_REQUEST: 422,
    ErrorCode.NO_PROVIDER_CONFIGURED: 503,
    ErrorCode.UNAVAILABLE_PROVIDER: 503,
    ErrorCode.ALL_PROVIDERS_FAILED: 502,
}


def create_app(ai_service: Optional[AIGatewayService] = None) -> FastAPI:
    """
    Build the application.

    Args:
        ai_service: Prebuilt gateway (tests). Built from Config at startup when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown."""
        app_logger.info("Application starting up")
        service = ai_service or create_default_ai_service()
        service.start()
        app.state.ai_service = service

        yield

        app_logger.info("Application shutting down")
        await service.close()
        if ai_service is None:
            dispose_engines()

    app = FastAPI(
        title="KB Hub AI Gateway",
        description="""
        Tenant-isolated AI generation gateway for the AI keyboard apps.

        Each tenant configures its own ordered list of AI providers. Requests are
        served by the highest-priority available provider, failing over to the next
        one on errors or timeouts. Identical requests are answered from a short-lived
        response cache.
        """,
        version="1.0.0",
        lifespan=lifespan,
        tags_metadata=[
            {
                "name": "AI",
                "description": "Reply generation, tenant provider health and cache management",
            },
            {
                "name": "Health",
                "description": "Health check and monitoring endpoints",
            },
        ],
    )

    app.add_middleware(TimeoutMiddleware, timeout=REQUEST_TIMEOUT)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(ai.router)
    app.include_router(health.router)

    @app.exception_handler(AIServiceError)
    async def ai_service_exception_handler(request: Request, exc: AIServiceError):
        """Map gateway errors to HTTP responses."""
        return JSONResponse(
            status_code=ERROR_STATUS_CODES.get(exc.code, 500),
            content={"error": exc.to_dict()},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        details = [
            {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "code": ErrorCode.INVALID_REQUEST.value,
                    "message": "Invalid request",
                    "provider": None,
                    "details": details,
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        error_id = str(uuid.uuid4())
        app_logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"error_id": error_id})
        return JSONResponse(
            status_code=500,
            content={"detail": f"Internal server error. Error ID: {error_id}"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    )
