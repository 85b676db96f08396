"""InteractivePrompt models."""

import time
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, model_validator

from .risk import RiskTier
from .utils import gen_id


class PromptStatus(str, Enum):
    """Lifecycle status of a prompt. ANSWERED and TIMEOUT are terminal."""

    PENDING = "pending"
    ANSWERED = "answered"
    TIMEOUT = "timeout"


class PromptType(str, Enum):
    TOOL_PERMISSION = "tool_permission"
    PLAN_REVIEW = "plan_review"
    DELEGATION = "delegation"


class PromptOption(BaseModel):
    id: str
    label: str
    value: str
    description: str | None = None
    is_default: bool = False
    is_recommended: bool = False


class ToolPermissionContext(BaseModel):
    kind: Literal["tool_permission"] = "tool_permission"
    tool_name: str
    action: str
    resource: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    risk_tier: RiskTier = RiskTier.MEDIUM
    working_directory: str | None = None
    warning: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class PlanReviewContext(BaseModel):
    kind: Literal["plan_review"] = "plan_review"
    tool_name: str = "ExitPlanMode"
    plan: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    working_directory: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


class DelegationContext(BaseModel):
    kind: Literal["delegation"] = "delegation"
    task: str
    working_directory: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)


PromptContext = Annotated[
    ToolPermissionContext | PlanReviewContext | DelegationContext,
    Field(discriminator="kind"),
]


class InteractivePrompt(BaseModel):
    """A persisted request for a human decision."""

    id: str = Field(default_factory=lambda: gen_id("prm_"))
    conversation_id: str
    project_id: str | None = None
    session_id: str | None = None
    type: PromptType
    title: str
    message: str
    options: list[PromptOption]
    context: PromptContext
    status: PromptStatus = PromptStatus.PENDING
    selected_option: str | None = None
    timeout_at: float
    created_at: float = Field(default_factory=time.time)
    responded_at: float | None = None
    fallback_storage: bool = False
    pickup_requested_at: float | None = None

    @model_validator(mode="after")
    def _context_matches_type(self) -> "InteractivePrompt":
        if self.context.kind != self.type.value:
            raise ValueError(
                f"context kind '{self.context.kind}' does not match prompt type '{self.type.value}'"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status != PromptStatus.PENDING

    def option(self, option_id: str) -> PromptOption | None:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


class PromptDecision(BaseModel):
    """Decision returned to the blocked executor call. Always carries a reason."""

    approved: bool
    remember: bool = False
    response: Literal["yes", "no", "yes_dont_ask"]
    reason: str
    prompt_id: str | None = None
    status: PromptStatus | None = None  # None when decided without a prompt
    timed_out: bool = False
