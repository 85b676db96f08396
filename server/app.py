"""
FastAPI application setup and configuration.
"""

from contextlib import AbstractAsyncContextManager
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from server.middleware import RequestLoggingMiddleware
from server.routes import register_routes
from server.state import Services


# =============================================================================
# Constants
# =============================================================================

API_TITLE = "Agent Relay API"
API_VERSION = "1.0.0"


# =============================================================================
# FastAPI App
# =============================================================================


def create_app(
    services: Services | None = None,
    cors_origins: list[str] | None = None,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager[None]] | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Prebuilt services; otherwise the lifespan must provide them
        cors_origins: Allowed CORS origins (defaults to the configured ones)
        lifespan: Startup/shutdown context

    Returns:
        The configured application
    """
    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)
    if services is not None:
        app.state.services = services
        if cors_origins is None:
            cors_origins = services.config.server.cors_origins

    # SECURITY NOTE: allow_origins=["*"] is insecure for production environments.
    # Set CORS_ORIGINS to specific allowed origins, e.g.
    # CORS_ORIGINS="https://example.com,https://app.example.com"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware (added after CORS so it runs first)
    app.add_middleware(RequestLoggingMiddleware)

    register_routes(app)
    return app
