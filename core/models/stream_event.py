"""StreamEvent models.

One event per NDJSON line emitted by the agent executor. The envelope is
parsed first; the payload is validated against the model for its kind.
"""

from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field


StreamEventKind = Literal[
    "agent_text",
    "tool_invocation",
    "tool_result",
    "status",
    "result",
    "error",
    "aborted",
    "stream_done",
]

KNOWN_KINDS: frozenset[str] = frozenset(get_args(StreamEventKind))


class StreamEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: str
    session_id: str | None = Field(default=None, alias="sessionId")
    timestamp: float | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class AgentTextData(BaseModel):
    # Full text of the in-progress message, never a delta
    text: str = ""


class ToolInvocationData(BaseModel):
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    action: str | None = None
    resource: str | None = None
    awaiting_permission: bool = False


class ToolResultData(BaseModel):
    tool_use_id: str
    content: Any = ""
    is_error: bool = False


class StatusData(BaseModel):
    message: str = ""
    subtype: str | None = None


class ResultData(BaseModel):
    result: str | None = None
    subtype: str | None = None
    is_error: bool = False


class ErrorData(BaseModel):
    error: str = "Unknown error"


PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    "agent_text": AgentTextData,
    "tool_invocation": ToolInvocationData,
    "tool_result": ToolResultData,
    "status": StatusData,
    "result": ResultData,
    "error": ErrorData,
}
