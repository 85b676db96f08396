"""
Domain models for the agent relay.

These are the core data structures used throughout the application.
"""

from .conversation import (
    AbortMessage,
    ChatMessage,
    ConversationItem,
    ItemStatus,
    LoadingItem,
    MessageData,
    MessageItem,
    PlanReviewItem,
    PromptItem,
    SystemMessage,
    ToolDisplayState,
    ToolMessage,
    ToolResultMessage,
)
from .delivery import DeliveryResult
from .prompt import (
    DelegationContext,
    InteractivePrompt,
    PlanReviewContext,
    PromptContext,
    PromptDecision,
    PromptOption,
    PromptStatus,
    PromptType,
    ToolPermissionContext,
)
from .risk import RiskTier
from .stream_event import (
    KNOWN_KINDS,
    PAYLOAD_MODELS,
    AgentTextData,
    ErrorData,
    ResultData,
    StatusData,
    StreamEvent,
    ToolInvocationData,
    ToolResultData,
)
from .utils import gen_id

__all__ = [
    # Utils
    "gen_id",
    "RiskTier",
    # Stream events
    "StreamEvent",
    "KNOWN_KINDS",
    "PAYLOAD_MODELS",
    "AgentTextData",
    "ToolInvocationData",
    "ToolResultData",
    "StatusData",
    "ResultData",
    "ErrorData",
    # Prompt models
    "PromptStatus",
    "PromptType",
    "PromptOption",
    "ToolPermissionContext",
    "PlanReviewContext",
    "DelegationContext",
    "PromptContext",
    "InteractivePrompt",
    "PromptDecision",
    "DeliveryResult",
    # Conversation items
    "ItemStatus",
    "ToolDisplayState",
    "ChatMessage",
    "ToolMessage",
    "ToolResultMessage",
    "SystemMessage",
    "AbortMessage",
    "MessageData",
    "MessageItem",
    "PromptItem",
    "PlanReviewItem",
    "LoadingItem",
    "ConversationItem",
]
