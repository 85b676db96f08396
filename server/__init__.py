"""
Agent relay HTTP server.

Exposes the prompt store, delivery service and permission engine to the
agent runner and to UI clients.
"""

from .app import create_app
from .event_bus import SSEEventBus
from .state import Services, build_services, get_services

__all__ = ["create_app", "SSEEventBus", "Services", "build_services", "get_services"]
