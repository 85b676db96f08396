"""
SSE-based EventBus implementation.

This module provides the server-side implementation of the EventBus protocol
using Server-Sent Events for real-time updates to connected clients. Each
subscriber joins a set of groups (``conversation-{id}``, ``project-{id}``);
targeted events only reach subscribers of a matching group.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from core import Event

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Subscription:
    queue: asyncio.Queue[dict[str, Any]]
    groups: set[str] = field(default_factory=set)


class SSEEventBus:
    """
    EventBus implementation that fans events out to SSE subscribers.

    Each subscriber gets a queue that receives events. The event endpoint
    consumes from these queues to stream events to clients.
    """

    def __init__(self) -> None:
        self.subscribers: list[Subscription] = []

    async def publish(self, event: Event) -> int:
        """Publish an event to all subscribers."""
        data = event.model_dump()
        for subscription in self.subscribers:
            await subscription.queue.put(data)
        return len(self.subscribers)

    async def publish_to(self, groups: list[str], event: Event) -> int:
        """Publish an event to subscribers of any of the given groups."""
        data = event.model_dump()
        targets = set(groups)
        received = 0
        for subscription in self.subscribers:
            if subscription.groups & targets:
                await subscription.queue.put(data)
                received += 1
        logger.debug("Event %s sent to %d subscriber(s) of %s", event.type, received, sorted(targets))
        return received

    def subscribe(self, groups: list[str] | None = None) -> asyncio.Queue[dict[str, Any]]:
        """
        Create a new subscription queue.

        Args:
            groups: Groups to join; broadcasts are received regardless

        Returns:
            A queue that will receive matching events
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.subscribers.append(Subscription(queue=queue, groups=set(groups or [])))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        """
        Remove a subscription queue.

        Args:
            queue: The queue to unsubscribe
        """
        self.subscribers = [s for s in self.subscribers if s.queue is not queue]

    def group_sizes(self) -> dict[str, int]:
        sizes: dict[str, int] = {}
        for subscription in self.subscribers:
            for group in subscription.groups:
                sizes[group] = sizes.get(group, 0) + 1
        return sizes
