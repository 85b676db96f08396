"""Permission check/decision request models."""

from typing import Any

from pydantic import BaseModel, Field


class PermissionCheckRequest(BaseModel):
    tool: str
    action: str
    resource: str | None = None
    projectID: str | None = None


class PermissionDecisionRequest(BaseModel):
    tool: str
    action: str
    conversationID: str
    resource: str | None = None
    projectID: str | None = None
    sessionID: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    workingDirectory: str | None = None
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Prompt timeout in seconds, clamped to the configured maximum",
    )
