"""DeliveryResult model."""

import time

from pydantic import BaseModel, Field


class DeliveryResult(BaseModel):
    success: bool
    prompt_id: str
    channels_used: list[str] = Field(default_factory=list)
    attempts: int = 0
    delivery_id: str | None = None
    error: str | None = None
    created_at: float = Field(default_factory=time.time)
