"""Permission system models."""

import time
from enum import Enum

from pydantic import BaseModel, Field

from core.models import RiskTier, gen_id


class Decision(str, Enum):
    """Outcome of a permission check."""

    AUTO_ALLOW = "AUTO_ALLOW"
    AUTO_DENY = "AUTO_DENY"
    NEEDS_PROMPT = "NEEDS_PROMPT"


class RuleType(str, Enum):
    """Persisted rule effect."""

    ALLOW = "allow"
    DENY = "deny"


class PermissionRule(BaseModel):
    """Persisted allow/deny rule. project_id None means global scope."""

    id: str = Field(default_factory=lambda: gen_id("rul_"))
    tool: str
    action: str
    resource: str = "*"
    type: RuleType
    project_id: str | None = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)


class Verdict(BaseModel):
    """Decision plus the human-readable reason behind it."""

    decision: Decision
    reason: str
    risk_tier: RiskTier
    rule_id: str | None = None


class PermissionCheck(BaseModel):
    """A requested tool invocation to be checked."""

    tool: str
    action: str
    resource: str | None = None
    scope: str | None = None  # project id, None for global-only
