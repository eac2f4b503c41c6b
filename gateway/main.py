"""
FastAPI Gateway Application Factory
===================================

Main entry point for the API gateway that sits between API clients and two
external services: Ory Kratos (identity) and a language-model provider.

Architecture:
    Clients -> Gateway (this service) -> Kratos public API
                                      -> Ollama / OpenAI

Routers (all under /api/v1):
    - /users/auth/*        : Login, registration and browser logout flows
    - /users/verification* : Email verification flows (session required)
    - /users/recovery*     : Account recovery flows
    - /app/misc/*          : whoami and logout (session required)
    - /app/settings*       : Settings flows (session required)
    - /app/llm/*           : Chat and generation (session required)
    - /health              : Health check endpoint

Environment Variables:
    - KRATOS_PUBLIC_URL: Kratos public API (default: http://localhost:4433)
    - LLM_PROVIDER / LLM_MODEL / LLM_BASE_URL / LLM_API_KEY
    - ALLOWED_ORIGINS: Comma-separated CORS origins
    - PORT / HOST / ENVIRONMENT / LOG_LEVEL

Running the Service:
    Development:
        uvicorn gateway.main:app --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn gateway.main:app --host 0.0.0.0 --port 8080 --workers 4

    With custom log level:
        LOG_LEVEL=DEBUG uvicorn gateway.main:app --reload
"""

import logging
import sys
import time
import uuid
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from . import __version__
from .auth import KratosClient, account_router, users_router
from .config import Settings, get_settings, validate_configuration
from .errors import AppError, error_response, register_exception_handlers
from .llm import LLMClient, create_llm_client, llm_router

API_PREFIX = "/api/v1"
REQUEST_ID_HEADER = "X-Request-ID"

logger = logging.getLogger("gateway.main")


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging and report configuration problems
        - Create the Kratos and LLM clients unless they were injected

    Shutdown tasks:
        - Close the HTTP clients created here
    """
    settings: Settings = app.state.settings
    setup_logging(settings.LOG_LEVEL)

    status = validate_configuration(settings)
    for error in status["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in status["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    owned = []

    if app.state.kratos is None:
        app.state.kratos = KratosClient(
            settings.kratos_public_url_str,
            timeout=settings.KRATOS_TIMEOUT_SECONDS,
        )
        owned.append(app.state.kratos)

    if app.state.llm is None:
        try:
            app.state.llm = create_llm_client(settings)
            owned.append(app.state.llm)
        except ValueError as e:
            logger.error(f"LLM client not initialized: {e}")

    logger.info(
        "Gateway service started",
        extra={
            "version": __version__,
            "environment": settings.ENVIRONMENT,
            "kratos_url": settings.kratos_public_url_str,
            "llm_provider": settings.LLM_PROVIDER,
        }
    )

    yield

    logger.info("Shutting down gateway service")
    for client in owned:
        await client.aclose()
    logger.info("Gateway service shutdown complete")


# Create FastAPI application
def create_app(
    settings: Optional[Settings] = None,
    kratos: Optional[KratosClient] = None,
    llm: Optional[LLMClient] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Settings (defaults to environment-loaded settings)
        kratos: Pre-built Kratos client (tests inject fakes here)
        llm: Pre-built LLM client

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Gateway Service",
        description="Identity flow orchestration and LLM gateway",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.settings = settings
    app.state.kratos = kratos
    app.state.llm = llm

    # Request id, access log and fault barrier
    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"Unhandled exception: {exc}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "exception_type": type(exc).__name__,
                    "request_id": request_id,
                },
                exc_info=True
            )
            response = error_response(AppError.internal())

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                "request_id": request_id,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            }
        )
        return response

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    register_exception_handlers(app)

    # Mount routers
    app.include_router(users_router, prefix=API_PREFIX)
    app.include_router(account_router, prefix=API_PREFIX)
    app.include_router(llm_router, prefix=API_PREFIX)

    # Health check endpoint
    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        """
        Health check endpoint.

        Returns:
            dict: Service status and version
        """
        return {
            "status": "healthy",
            "version": __version__,
        }

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    """
    Direct execution entry point: python -m gateway.main
    """
    settings = get_settings()

    uvicorn.run(
        "gateway.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )
