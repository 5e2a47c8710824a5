"""
FastAPI Application Factory
===========================

Entry point for the federated login portal: a small web server that lets
users sign in with Google, Facebook or GitHub and shows a home and a profile
page based on their session.

Routers:
    - /auth/{provider}, /auth/{provider}/redirect, /logout : Federated login
    - /, /profile                                          : Pages
    - /health                                              : Health check

Environment Variables:
    - SESSION_SECRET: Secret for signing session cookies (required)
    - GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET / GOOGLE_CALLBACK_URL
    - FACEBOOK_CLIENT_ID / FACEBOOK_CLIENT_SECRET / FACEBOOK_CALLBACK_URL
    - GITHUB_CLIENT_ID / GITHUB_CLIENT_SECRET / GITHUB_CALLBACK_URL
    - PUBLIC_BASE_URL: Base for default callback URLs (default: http://localhost:3000)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn portal.app.main:create_app --factory --reload --port 3000

    Production:
        uvicorn portal.app.main:create_app --factory --host 0.0.0.0 --port 3000 --workers 1

    The in-memory session store is per process; run a single worker unless a
    shared SessionStore implementation is supplied.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from portal.app.auth import auth_router
from portal.app.auth.manager import AuthenticationSessionManager
from portal.app.auth.providers import build_provider_clients
from portal.app.auth.session import clear_session_cookie_kwargs
from portal.app.auth.store import InMemorySessionStore, SessionStore, SessionStoreError
from portal.app.config import Settings, get_settings, validate_configuration
from portal.app.models import ErrorResponse, HealthResponse
from portal.app.pages import pages_router

SERVICE_NAME = "portal"
SERVICE_VERSION = "1.0.0"


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
        - Create the shared HTTP client used to talk to identity providers
        - Build the AuthenticationSessionManager and attach it to app.state

    Shutdown tasks:
        - Close the HTTP client if this app created it
        - Detach the manager
    """
    settings: Settings = app.state.settings
    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("portal.main")

    status_report = validate_configuration(settings)
    for error in status_report["errors"]:
        logger.error(f"Configuration error: {error}")
    for warning in status_report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    http_client: Optional[httpx.AsyncClient] = app.state.http_client
    owns_client = http_client is None
    if owns_client:
        http_client = httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT_SECONDS)

    app.state.auth_manager = AuthenticationSessionManager(
        settings=settings,
        store=app.state.session_store,
        clients=build_provider_clients(settings, http_client),
    )

    logger.info(
        f"Server running on {settings.PUBLIC_BASE_URL}",
        extra={"providers": status_report["enabled_providers"]},
    )

    try:
        yield
    finally:
        logger.info("Shutting down portal")
        app.state.auth_manager = None
        if owns_client:
            await http_client.aclose()
            logger.info("Closed provider HTTP client")


# Create FastAPI application
def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Application factory function.

    Args:
        settings: Settings to use (default: loaded from the environment)
        store: Session store (default: InMemorySessionStore with the session TTL)
        http_client: HTTP client for provider calls (default: created and
            closed by the lifespan)

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Portal",
        description="Federated login with Google, Facebook and GitHub",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    if store is None:
        store = InMemorySessionStore(ttl_seconds=settings.SESSION_MAX_AGE_SECONDS)
    app.state.session_store = store
    app.state.http_client = http_client
    app.state.auth_manager = None

    app.include_router(auth_router)
    app.include_router(pages_router)

    # Health check endpoint
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> Dict[str, str]:
        """Return service status and basic metadata."""
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
        }

    @app.exception_handler(SessionStoreError)
    async def session_store_exception_handler(request: Request, exc: SessionStoreError) -> JSONResponse:
        """
        Session store failures are infrastructure errors: report 503 and drop
        the session cookie so the browser starts clean.
        """
        logger = logging.getLogger("portal.main")
        logger.error(
            f"Session store failure: {exc}",
            extra={"path": request.url.path, "method": request.method},
            exc_info=True,
        )

        response = JSONResponse(
            status_code=503,
            content=ErrorResponse(
                error="session_store_unavailable",
                message="Sessions are temporarily unavailable",
            ).model_dump(mode="json"),
        )
        response.set_cookie(**clear_session_cookie_kwargs(settings))
        return response

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unhandled errors and return a standardized error response."""
        logger = logging.getLogger("portal.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="internal_server_error",
                message="An unexpected error occurred",
            ).model_dump(mode="json"),
        )

    return app


if __name__ == "__main__":
    """
    Direct execution entry point: python -m portal.app.main
    """
    settings = get_settings()

    uvicorn.run(
        "portal.app.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
