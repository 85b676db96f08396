"""
Core business logic package.

This package contains the transport-agnostic agent-interaction control
plane: permission decisions, the interactive prompt protocol, stream
parsing and prompt delivery. The server package provides HTTP bindings
around these core operations.
"""

from .events import Event, EventBus, NullEventBus, conversation_group, project_group
from .exceptions import (
    CoreError,
    InvalidOperationError,
    NotFoundError,
    PromptNotPendingError,
    StoreUnavailableError,
)

__all__ = [
    # Events
    "Event",
    "EventBus",
    "NullEventBus",
    "conversation_group",
    "project_group",
    # Exceptions
    "CoreError",
    "NotFoundError",
    "InvalidOperationError",
    "PromptNotPendingError",
    "StoreUnavailableError",
]
