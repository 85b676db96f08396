"""ConversationItem models.

The normalized, ordered units a client renders for one conversation.
"""

import time
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from .prompt import InteractivePrompt
from .risk import RiskTier


class ItemStatus(str, Enum):
    COMPLETED = "completed"
    STREAMING = "streaming"
    ACTIVE_STREAMING = "active-streaming"


class ToolDisplayState(str, Enum):
    PENDING = "pending"
    AWAITING_APPROVAL = "awaiting_approval"
    RUNNING = "running"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    FAILED = "failed"


class ChatMessage(BaseModel):
    type: Literal["chat"] = "chat"
    id: str
    role: Literal["user", "assistant"] = "assistant"
    content: str = ""
    timestamp: float = Field(default_factory=time.time)


class ToolMessage(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    action: str | None = None
    resource: str | None = None
    risk_tier: RiskTier = RiskTier.MEDIUM
    state: ToolDisplayState = ToolDisplayState.PENDING
    reason: str | None = None
    awaiting_permission: bool = False  # agent is blocked until a decision arrives
    timestamp: float = Field(default_factory=time.time)


class ToolResultMessage(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str = ""
    is_error: bool = False
    orphan: bool = False
    timestamp: float = Field(default_factory=time.time)


class SystemMessage(BaseModel):
    type: Literal["system", "result", "error"] = "system"
    subtype: str | None = None
    message: str
    data: dict[str, Any] | None = None
    timestamp: float = Field(default_factory=time.time)


class AbortMessage(BaseModel):
    type: Literal["abort"] = "abort"
    message: str = "Operation was aborted by user"
    timestamp: float = Field(default_factory=time.time)


MessageData = Annotated[
    ChatMessage | ToolMessage | ToolResultMessage | SystemMessage | AbortMessage,
    Field(discriminator="type"),
]


class MessageItem(BaseModel):
    id: str
    type: Literal["message"] = "message"
    sort_order: int
    timestamp: float = Field(default_factory=time.time)
    status: ItemStatus = ItemStatus.STREAMING
    data: MessageData
    interrupted: bool = False


class PromptItem(BaseModel):
    id: str
    type: Literal["prompt"] = "prompt"
    sort_order: int
    timestamp: float = Field(default_factory=time.time)
    data: InteractivePrompt


class PlanReviewItem(BaseModel):
    id: str
    type: Literal["plan_review"] = "plan_review"
    sort_order: int
    timestamp: float = Field(default_factory=time.time)
    tool_use_id: str
    plan: str
    prompt_id: str | None = None
    awaiting_permission: bool = False


class LoadingItem(BaseModel):
    id: str
    type: Literal["loading"] = "loading"
    sort_order: int
    timestamp: float = Field(default_factory=time.time)


ConversationItem = Annotated[
    MessageItem | PromptItem | PlanReviewItem | LoadingItem,
    Field(discriminator="type"),
]
