"""HTTP API for the inventory gateway.

Assembles the FastAPI application: routers under ``/api``, the gateway error
handlers, correlation-ID middleware, ``/health`` and ``/metrics``.
"""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from inventory_gateway import __version__
from inventory_gateway.api import admin, auth, proxy
from inventory_gateway.api.dependencies import GatewayServices
from inventory_gateway.config import Settings
from inventory_gateway.domain.exceptions import GatewayError
from inventory_gateway.infra.observability import get_metrics_text, set_correlation_id
from inventory_gateway.infra.session import NonceStore
from inventory_gateway.infra.supabase import SupabaseClient

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


def error_body(error: GatewayError) -> dict[str, Any]:
    return {
        "success": False,
        "error": error.public_message,
        "code": error.error_code,
        **error.public_details,
    }


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Render a gateway error; internals stay in the server log."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"Request failed: {exc.message}",
        extra={
            "path": request.url.path,
            "status_code": exc.status_code,
            "error_code": exc.error_code,
        },
    )
    return JSONResponse(error_body(exc), status_code=exc.status_code)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info(
        "Request body failed validation",
        extra={"path": request.url.path, "error_code": "VALIDATION_ERROR"},
    )
    return JSONResponse(
        {"success": False, "error": "Invalid request", "code": "VALIDATION_ERROR"},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


def create_http_app(
    settings: Settings,
    *,
    supabase: SupabaseClient | None = None,
    nonce_store: NonceStore | None = None,
    provider_http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create FastAPI application for the gateway.

    Args:
        settings: Application settings
        supabase: Optional data-service client (tests inject one)
        nonce_store: Optional OAuth state nonce store
        provider_http_client: Optional HTTP client for provider calls

    Returns:
        FastAPI application
    """
    services = GatewayServices.build(
        settings,
        supabase=supabase,
        nonce_store=nonce_store,
        provider_http_client=provider_http_client,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.startup()
        logger.info("Gateway started", extra={"mode": settings.environment})
        try:
            yield
        finally:
            await services.shutdown()

    app = FastAPI(
        title="Inventory Gateway",
        description="Session, identity-federation and authorization gateway",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    # Same-origin browser app; CORS only opens up in debug
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next: Any) -> Any:
        """Add correlation ID to request context."""
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        set_correlation_id(correlation_id)

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    app.add_exception_handler(GatewayError, gateway_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]

    app.include_router(auth.router, prefix=API_PREFIX)
    app.include_router(admin.router, prefix=API_PREFIX)
    app.include_router(proxy.router, prefix=API_PREFIX)

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Liveness probe; does not touch the data service."""
        return {"status": "healthy", "environment": settings.environment}

    @app.get("/metrics")
    async def metrics() -> PlainTextResponse:
        """Prometheus metrics endpoint."""
        return PlainTextResponse(get_metrics_text())

    return app


__all__ = ["create_http_app", "gateway_error_handler", "error_body"]
