"""RespondRequest model."""

from pydantic import BaseModel


class RespondRequest(BaseModel):
    selectedOptionId: str
