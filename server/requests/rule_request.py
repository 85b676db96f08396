"""RuleRequest model."""

from pydantic import BaseModel

from core.permissions import RuleType


class RuleRequest(BaseModel):
    tool: str
    action: str
    resource: str = "*"
    type: RuleType
    projectID: str | None = None
