"""
Event SSE endpoint.
"""

import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Query
from sse_starlette.sse import EventSourceResponse

from core import conversation_group, project_group

from ..state import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/events")
async def subscribe_events(
    conversationID: str | None = Query(None),
    projectID: str | None = Query(None),
    services: Services = Depends(get_services),
) -> EventSourceResponse:
    """Subscribe to prompt events for a conversation and/or project via SSE."""
    groups = []
    if conversationID:
        groups.append(conversation_group(conversationID))
    if projectID:
        groups.append(project_group(projectID))

    event_bus = services.event_bus

    async def event_generator() -> AsyncGenerator[dict, None]:
        queue = event_bus.subscribe(groups)
        logger.info("Client subscribed to %s", groups or "broadcasts")
        try:
            while True:
                event = await queue.get()
                yield {"event": event["type"], "data": json.dumps(event)}
        finally:
            event_bus.unsubscribe(queue)
            logger.info("Client unsubscribed from %s", groups or "broadcasts")

    return EventSourceResponse(event_generator())
