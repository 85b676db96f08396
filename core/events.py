"""
Event types and EventBus protocol.

The EventBus is an abstract interface that core uses to publish events.
The server layer provides an SSE-based implementation with subscriber
groups (one group per conversation and per project).
"""

from typing import Any, Protocol

from pydantic import BaseModel


class Event(BaseModel):
    """Domain event that can be published to subscribers."""

    type: str
    properties: dict[str, Any]


class EventBus(Protocol):
    """Abstract interface for publishing events."""

    async def publish(self, event: Event) -> int:
        """Publish an event to all subscribers. Returns the receiver count."""
        ...

    async def publish_to(self, groups: list[str], event: Event) -> int:
        """Publish an event to subscribers of any of the given groups."""
        ...


class NullEventBus:
    """No-op EventBus implementation for testing."""

    async def publish(self, event: Event) -> int:
        """Discard the event."""
        return 0

    async def publish_to(self, groups: list[str], event: Event) -> int:
        """Discard the event."""
        return 0


def conversation_group(conversation_id: str) -> str:
    return f"conversation-{conversation_id}"


def project_group(project_id: str) -> str:
    return f"project-{project_id}"
