"""
Health check endpoint.
"""

from fastapi import APIRouter, Depends

from ..state import Services, get_services


router = APIRouter()


@router.get("/health")
async def health(services: Services = Depends(get_services)) -> dict:
    """Health check endpoint; also probes the prompt store."""
    store_ok = await services.prompt_store.ping()
    return {
        "status": "ok" if store_ok else "degraded",
        "store": store_ok,
        "subscribers": len(services.event_bus.subscribers),
    }
