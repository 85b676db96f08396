"""
Prompt delivery endpoints.
"""

from fastapi import APIRouter, Depends

from core.models import DeliveryResult, InteractivePrompt

from ..state import Services, get_services


router = APIRouter()


@router.post("/prompts/deliver")
async def deliver_prompt(
    prompt: InteractivePrompt, services: Services = Depends(get_services)
) -> DeliveryResult:
    """Push a prompt to connected clients through the delivery channels."""
    return await services.delivery.deliver(prompt)


@router.get("/delivery/stats")
async def delivery_stats(services: Services = Depends(get_services)) -> dict:
    """Delivery counters for this backend process."""
    stats = services.delivery.stats()
    stats["groups"] = services.event_bus.group_sizes()
    return stats
