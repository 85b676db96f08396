"""
Route registration for the agent relay API.
"""

from fastapi import FastAPI

from . import delivery, events, health, permissions, prompts


def register_routes(app: FastAPI) -> None:
    """Register all routes with the FastAPI application."""
    app.include_router(health.router)
    app.include_router(events.router)
    app.include_router(delivery.router)
    app.include_router(prompts.router)
    app.include_router(permissions.router)
