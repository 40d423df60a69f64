"""
FastAPI Gateway Application Factory
===================================

This is the main entry point for the authorization gateway that sits in
front of the multi-tenant backend data API.

Architecture:
    Proxy clients (shared secret) → Gateway (this service) → Backend data API

Routers:
    - /proxy, /proxy/*   : Policy-checked requests forwarded with privileged credentials
    - /tenant-admins     : Tenant admin provisioning (internal token)
    - /health            : Health check endpoint

Environment Variables Required:
    - BACKEND_URL: Backend base URL (or SUPABASE_URL)
    - BACKEND_API_KEY: Privileged API key (or SUPABASE_SERVICE_ROLE)
    - BACKEND_BEARER_TOKEN: Privileged bearer token (or SUPABASE_SERVICE_ROLE)
    - PROXY_SECRET: Shared secret proxy clients must present
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn gateway.app.main:create_app --factory --reload --host 0.0.0.0 --port 8080

    Production:
        uvicorn gateway.app.main:create_app --factory --host 0.0.0.0 --port 8080 --workers 4
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .audit import AuditSink
from .config import Settings, get_settings, validate_configuration
from .exceptions import ConfigurationError, GatewayError
from .models import ErrorResponse, HealthResponse
from .provisioning import provisioning_router
from .proxy import proxy_router
from .proxy.forwarder import Forwarder
from .proxy.headers import CredentialRewriter
from .proxy.policy import PolicyEngine, RoutePolicy

SERVICE_NAME = "gateway"
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


class AppState:
    """
    Per-application state container built once in the lifespan.

    Everything here is read-only for request handlers: settings, policy
    engine, credential rewriter, and the shared backend client.
    """

    def __init__(self, settings: Settings, backend_client: httpx.AsyncClient):
        self.settings = settings
        self.backend_client = backend_client
        self.policy_engine = PolicyEngine(
            RoutePolicy.from_settings(settings),
            shared_secret=settings.PROXY_SECRET,
        )
        self.rewriter = CredentialRewriter.from_settings(settings)
        self.forwarder = Forwarder(
            backend_client,
            forward_delete_body=settings.FORWARD_DELETE_BODY,
        )
        self.audit_sink = AuditSink(
            backend_client,
            self.rewriter.credentials,
            table_path=settings.AUDIT_TABLE_PATH,
            actor_role=settings.AUDIT_ACTOR_ROLE,
        )


def build_backend_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the shared backend client bound to the configured base URL."""
    return httpx.AsyncClient(
        base_url=settings.backend_url_str,
        timeout=httpx.Timeout(
            settings.BACKEND_TIMEOUT_SECONDS,
            connect=settings.BACKEND_CONNECT_TIMEOUT_SECONDS,
        ),
        transport=transport,
        follow_redirects=False,
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Validate configuration (errors abort startup)
        - Create the shared backend HTTP client
        - Build the AppState (policy engine, rewriter, forwarder, audit sink)

    Shutdown tasks:
        - Drain in-flight audit writes
        - Close the backend client
    """
    settings: Settings = app.state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("gateway.main")

    report = validate_configuration(settings)
    for warning in report["warnings"]:
        logger.warning(f"Configuration warning: {warning}")
    if not report["valid"]:
        raise ConfigurationError("; ".join(report["errors"]))

    backend_client = build_backend_client(settings, app.state.backend_transport)
    app_state = AppState(settings, backend_client)
    app.state.app_state = app_state

    logger.info(
        "Gateway service started",
        extra={
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "read_scope": settings.read_scope_list,
            "write_allowlist": settings.write_allowlist_list,
            "header_mode": settings.HEADER_FORWARD_MODE,
        }
    )

    try:
        yield
    finally:
        logger.info("Shutting down gateway service")
        await app_state.audit_sink.drain()
        await backend_client.aclose()
        app.state.app_state = None
        logger.info("Gateway service shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    backend_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - CORS middleware (only when ALLOWED_ORIGINS is set)
        - Route handlers
        - Exception handlers

    Args:
        settings: Settings to use (defaults to environment settings; missing
                  required values raise ValidationError here)
        backend_transport: Optional httpx transport for the backend client

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Tenant Data Gateway",
        description="Authorization gateway in front of the multi-tenant backend data API",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.settings = settings
    app.state.backend_transport = backend_transport
    app.state.app_state = None

    origins = settings.allowed_origins_list
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=False,
            allow_methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    app.include_router(proxy_router, tags=["Backend Proxy"])
    app.include_router(provisioning_router, tags=["Provisioning"])

    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="ok", service=SERVICE_NAME, version=SERVICE_VERSION)

    @app.get("/", tags=["System"])
    async def root() -> Dict[str, Any]:
        """
        Root endpoint with service information.

        Returns:
            dict: Service metadata and available endpoints
        """
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "description": "Authorization gateway for the backend data API",
            "endpoints": {
                "health": "/health",
                "docs": "/docs",
                "proxy": "/proxy",
                "tenant_admins": "/tenant-admins",
            }
        }

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        """Render gateway errors as ErrorResponse payloads."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message, detail=exc.detail).model_dump(exclude_none=True),
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a generic 500; the payload only names the
        exception class so backend configuration never leaks.
        """
        logger = logging.getLogger("gateway.main")
        logger.error(
            f"Unhandled exception: {type(exc).__name__}",
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
                error="internal server error",
                detail=type(exc).__name__,
            ).model_dump(exclude_none=True),
        )

    return app


if __name__ == "__main__":
    """
    Direct execution entry point.

    This allows running the service directly with: python -m gateway.app.main
    However, using the uvicorn command is recommended for production.
    """
    settings = get_settings()

    uvicorn.run(
        "gateway.app.main:create_app",
        factory=True,
        host=settings.GATEWAY_HOST,
        port=settings.GATEWAY_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
