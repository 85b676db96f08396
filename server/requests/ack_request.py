"""AckRequest model."""

from typing import Any

from pydantic import BaseModel, Field


class AckRequest(BaseModel):
    """Client ``prompt_received_confirmation``."""

    deliveryId: str | None = None
    clientInfo: dict[str, Any] = Field(default_factory=dict)
