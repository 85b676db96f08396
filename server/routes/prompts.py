"""
Interactive prompt endpoints.

The prompt store behind these routes is the only channel between the agent
executor (which creates and polls prompts) and clients (which answer them).
"""

import logging

from fastapi import APIRouter, Depends, Query

from core import CoreError, Event, conversation_group
from core.models import InteractivePrompt

from ..errors import http_error
from ..requests import AckRequest, RespondRequest
from ..state import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/prompts", status_code=201)
async def create_prompt(
    prompt: InteractivePrompt, services: Services = Depends(get_services)
) -> InteractivePrompt:
    """Persist a new prompt record."""
    try:
        return await services.prompt_store.create(prompt)
    except CoreError as e:
        raise http_error(e)


@router.get("/prompts/{promptID}")
async def get_prompt(promptID: str, services: Services = Depends(get_services)) -> InteractivePrompt:
    """Read a prompt's current state."""
    try:
        return await services.prompt_store.get(promptID)
    except CoreError as e:
        raise http_error(e)


@router.post("/prompts/{promptID}/respond")
async def respond_to_prompt(
    promptID: str, body: RespondRequest, services: Services = Depends(get_services)
) -> InteractivePrompt:
    """
    Answer a pending prompt.

    Only the first response to a pending prompt is accepted; later ones get
    409 Conflict.
    """
    try:
        prompt = await services.prompt_store.respond(promptID, body.selectedOptionId)
    except CoreError as e:
        raise http_error(e)

    await services.event_bus.publish_to(
        [conversation_group(prompt.conversation_id)],
        Event(
            type="prompt_response",
            properties={
                "promptId": prompt.id,
                "selectedOption": prompt.selected_option,
                "status": prompt.status.value,
            },
        ),
    )
    return prompt


@router.post("/prompts/{promptID}/timeout")
async def time_out_prompt(promptID: str, services: Services = Depends(get_services)) -> InteractivePrompt:
    """Move a pending prompt to timeout."""
    try:
        return await services.prompt_store.expire(promptID)
    except CoreError as e:
        raise http_error(e)


@router.post("/prompts/{promptID}/ack")
async def acknowledge_prompt(
    promptID: str, body: AckRequest, services: Services = Depends(get_services)
) -> dict:
    """Record a client's receipt of a delivered prompt."""
    try:
        acknowledged = await services.delivery.acknowledge(
            delivery_id=body.deliveryId, prompt_id=promptID, client_info=body.clientInfo
        )
    except CoreError as e:
        raise http_error(e)
    return {"success": True, "promptId": acknowledged}


@router.get("/prompts/{promptID}/ack")
async def get_acknowledgment(promptID: str, services: Services = Depends(get_services)) -> dict:
    """Whether a client has acknowledged the prompt."""
    return {"promptId": promptID, "acknowledged": services.delivery.is_acknowledged(promptID)}


@router.get("/conversations/{conversationID}/prompts/pending")
async def list_pending_prompts(
    conversationID: str,
    pickup: bool = Query(False),
    services: Services = Depends(get_services),
) -> list[InteractivePrompt]:
    """
    List pending prompts for a conversation, newest first.

    With ``pickup=true`` only prompts flagged for the pull channel are
    returned.
    """
    try:
        return await services.prompt_store.list_pending(conversationID, pickup_only=pickup)
    except CoreError as e:
        raise http_error(e)
