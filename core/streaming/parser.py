"""
Stream event parser.

Turns the agent executor's NDJSON event stream into ConversationItems.
Parser errors never end the stream: a bad line becomes a visible error
item and the next line is processed normally.
"""

import json
import logging
import time
from typing import Any

from pydantic import BaseModel, ValidationError

from core.models import (
    PAYLOAD_MODELS,
    AbortMessage,
    AgentTextData,
    ChatMessage,
    ConversationItem,
    ErrorData,
    ItemStatus,
    MessageItem,
    PlanReviewItem,
    ResultData,
    StatusData,
    StreamEvent,
    SystemMessage,
    ToolDisplayState,
    ToolInvocationData,
    ToolMessage,
    ToolResultData,
    ToolResultMessage,
    gen_id,
)
from core.permissions import Decision, classify, normalize_tool_name

from .context import StreamingContext

logger = logging.getLogger(__name__)

PLAN_EXIT_TOOL = "exitplanmode"

# normalized tool name -> (action, input key holding the resource)
TOOL_ACTIONS: dict[str, tuple[str, str | None]] = {
    "bash": ("execute", "command"),
    "read": ("read", "file_path"),
    "write": ("write", "file_path"),
    "edit": ("edit", "file_path"),
    "multiedit": ("edit", "file_path"),
    "delete": ("delete", "file_path"),
    "ls": ("list", "path"),
    "glob": ("search", "pattern"),
    "grep": ("search", "pattern"),
    "webfetch": ("fetch", "url"),
    "websearch": ("search", "query"),
    "notebookread": ("read", "notebook_path"),
    "notebookedit": ("edit", "notebook_path"),
    "task": ("delegate", "description"),
}


def describe_invocation(name: str, tool_input: dict[str, Any]) -> tuple[str, str | None]:
    """Derive (action, resource) for a tool invocation from its input."""
    action, resource_key = TOOL_ACTIONS.get(normalize_tool_name(name), (normalize_tool_name(name), None))
    resource = tool_input.get(resource_key) if resource_key else None
    return action, str(resource) if resource is not None else None


def stringify_content(content: Any) -> str:
    """Flatten tool result content (string, content blocks, or JSON) to text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
            else:
                parts.append(block if isinstance(block, str) else json.dumps(block))
        return "\n".join(parts)
    return json.dumps(content)


class StreamEventParser:
    """
    Consumes one event line at a time for a single conversation.

    Call ``consume`` in arrival order; all state lives in the
    StreamingContext so one parser instance can serve many conversations.
    """

    def __init__(self) -> None:
        self._handlers = {
            "agent_text": self._handle_agent_text,
            "tool_invocation": self._handle_tool_invocation,
            "tool_result": self._handle_tool_result,
            "status": self._handle_status,
            "result": self._handle_result,
            "error": self._handle_error,
            "aborted": self._handle_aborted,
            "stream_done": self._handle_stream_done,
        }

    def consume(self, line: str, ctx: StreamingContext) -> list[ConversationItem]:
        """
        Process one line of the event stream.

        Args:
            line: Raw NDJSON line, optionally with an SSE ``data:`` prefix
            ctx: Streaming state of the conversation

        Returns:
            Items created or updated by this line
        """
        raw = line.strip()
        if raw.startswith("data:"):
            raw = raw[len("data:"):].strip()
        if not raw:
            logger.debug("Ignoring empty stream line for conversation %s", ctx.conversation_id)
            return []

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Unparseable stream line for conversation %s: %s", ctx.conversation_id, e)
            return [self._parse_error(ctx, f"Could not parse stream event: {e}", raw)]

        if not isinstance(payload, dict) or "kind" not in payload:
            logger.warning("Stream event without kind for conversation %s", ctx.conversation_id)
            return [self._parse_error(ctx, "Stream event is missing 'kind'", raw)]

        try:
            event = StreamEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning("Invalid stream event envelope for conversation %s: %s", ctx.conversation_id, e)
            return [self._parse_error(ctx, f"Invalid stream event: {e.error_count()} error(s)", raw)]

        self._capture_session(event, ctx)

        handler = self._handlers.get(event.kind)
        if handler is None:
            return [self._handle_unknown(event, ctx)]

        data: BaseModel | None = None
        model = PAYLOAD_MODELS.get(event.kind)
        if model is not None:
            try:
                data = model.model_validate(event.data)
            except ValidationError as e:
                logger.warning("Invalid %s payload for conversation %s: %s", event.kind, ctx.conversation_id, e)
                return [self._parse_error(ctx, f"Invalid {event.kind} payload: {e.error_count()} error(s)", raw)]

        ctx.set_loading(False)
        try:
            return handler(event, data, ctx)
        except Exception as e:
            logger.exception("Error processing %s event for conversation %s", event.kind, ctx.conversation_id)
            item = self._system(ctx, "error", "processing_error", f"Error processing {event.kind} event: {e}", payload)
            return [item]

    def _capture_session(self, event: StreamEvent, ctx: StreamingContext) -> None:
        session_id = event.session_id or event.data.get("session_id")
        if not session_id:
            return
        if ctx.session_id is None:
            ctx.session_id = session_id
            logger.info("Captured session %s for conversation %s", session_id, ctx.conversation_id)
            if ctx.on_session_id is not None:
                ctx.on_session_id(session_id)
        elif session_id != ctx.session_id:
            logger.warning(
                "Ignoring session %s for conversation %s (already bound to %s)",
                session_id,
                ctx.conversation_id,
                ctx.session_id,
            )

    def _message(self, ctx: StreamingContext, data: Any, status: ItemStatus = ItemStatus.COMPLETED) -> MessageItem:
        item = MessageItem(id=gen_id("itm_"), sort_order=ctx.next_sort_order(), status=status, data=data)
        ctx.append(item)
        return item

    def _system(
        self,
        ctx: StreamingContext,
        message_type: str,
        subtype: str | None,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> MessageItem:
        return self._message(ctx, SystemMessage(type=message_type, subtype=subtype, message=message, data=data))

    def _parse_error(self, ctx: StreamingContext, message: str, raw: str) -> MessageItem:
        return self._system(ctx, "error", "parse_error", message, {"line": raw[:1000]})

    def _finalize(self, ctx: StreamingContext) -> MessageItem | None:
        """Complete the accumulator if it has content; drop it if empty."""
        item = ctx.accumulator
        ctx.accumulator_id = None
        if item is None:
            return None
        if not item.data.content:
            ctx.remove(item.id)
            return None
        item.status = ItemStatus.COMPLETED
        return item

    def _handle_agent_text(self, event: StreamEvent, data: AgentTextData, ctx: StreamingContext) -> list[ConversationItem]:
        item = ctx.accumulator
        if item is None:
            item = self._message(ctx, ChatMessage(id=gen_id("msg_")), ItemStatus.ACTIVE_STREAMING)
            ctx.accumulator_id = item.id

        # Replace, never append
        item.data.content = data.text
        item.timestamp = event.timestamp or time.time()
        return [item]

    def _handle_tool_invocation(
        self, event: StreamEvent, data: ToolInvocationData, ctx: StreamingContext
    ) -> list[ConversationItem]:
        if normalize_tool_name(data.name) == PLAN_EXIT_TOOL:
            plan = str(data.input.get("plan", ""))
            review = PlanReviewItem(
                id=gen_id("itm_"),
                sort_order=ctx.next_sort_order(),
                tool_use_id=data.id,
                plan=plan,
                awaiting_permission=data.awaiting_permission,
            )
            ctx.append(review)
            return [review]

        action, resource = describe_invocation(data.name, data.input)
        action = data.action or action
        resource = data.resource or resource
        tool = ToolMessage(
            id=data.id,
            name=data.name,
            input=data.input,
            action=action,
            resource=resource,
            risk_tier=classify(data.name),
            awaiting_permission=data.awaiting_permission,
        )
        item = self._message(ctx, tool)
        ctx.tool_items[data.id] = item

        if ctx.permission_callback is None:
            tool.state = ToolDisplayState.RUNNING
            return [item]

        try:
            verdict = ctx.permission_callback(data.name, action, resource)
        except Exception as e:
            logger.exception("Permission check failed for tool %s", data.name)
            tool.state = ToolDisplayState.AWAITING_APPROVAL
            tool.reason = f"Permission check failed: {e}"
            return [item]

        tool.risk_tier = verdict.risk_tier
        tool.reason = verdict.reason
        if verdict.decision == Decision.AUTO_ALLOW:
            tool.state = ToolDisplayState.RUNNING
        elif verdict.decision == Decision.AUTO_DENY:
            tool.state = ToolDisplayState.BLOCKED
        else:
            tool.state = ToolDisplayState.AWAITING_APPROVAL
        return [item]

    def _handle_tool_result(self, event: StreamEvent, data: ToolResultData, ctx: StreamingContext) -> list[ConversationItem]:
        invocation = ctx.tool_items.get(data.tool_use_id)
        result = ToolResultMessage(
            tool_use_id=data.tool_use_id,
            content=stringify_content(data.content),
            is_error=data.is_error,
            orphan=invocation is None,
        )
        item = self._message(ctx, result)

        if invocation is None:
            logger.debug("Orphan tool result %s in conversation %s", data.tool_use_id, ctx.conversation_id)
            return [item]

        invocation.data.state = ToolDisplayState.FAILED if data.is_error else ToolDisplayState.COMPLETED
        return [invocation, item]

    def _handle_status(self, event: StreamEvent, data: StatusData, ctx: StreamingContext) -> list[ConversationItem]:
        return [self._system(ctx, "system", data.subtype or "status", data.message or "Status update", event.data)]

    def _handle_result(self, event: StreamEvent, data: ResultData, ctx: StreamingContext) -> list[ConversationItem]:
        touched: list[ConversationItem] = []
        finalized = self._finalize(ctx)
        if finalized is not None:
            touched.append(finalized)
        elif data.result and not any(
            isinstance(item, MessageItem) and isinstance(item.data, ChatMessage) and item.data.role == "assistant"
            for item in ctx.items
        ):
            touched.append(self._message(ctx, ChatMessage(id=gen_id("msg_"), content=data.result)))

        if data.is_error:
            message = data.result or "Query failed"
        else:
            message = "Query completed successfully"
        touched.append(self._system(ctx, "result", data.subtype or "completion", message, event.data))
        return touched

    def _handle_error(self, event: StreamEvent, data: ErrorData, ctx: StreamingContext) -> list[ConversationItem]:
        return [self._system(ctx, "error", "stream_error", data.error, event.data)]

    def _handle_aborted(self, event: StreamEvent, data: None, ctx: StreamingContext) -> list[ConversationItem]:
        touched: list[ConversationItem] = []
        item = ctx.accumulator
        ctx.accumulator_id = None
        if item is not None:
            if item.data.content:
                item.status = ItemStatus.STREAMING
                item.interrupted = True
                touched.append(item)
            else:
                ctx.remove(item.id)

        touched.append(self._message(ctx, AbortMessage()))
        return touched

    def _handle_stream_done(self, event: StreamEvent, data: None, ctx: StreamingContext) -> list[ConversationItem]:
        finalized = self._finalize(ctx)
        return [finalized] if finalized is not None else []

    def _handle_unknown(self, event: StreamEvent, ctx: StreamingContext) -> MessageItem:
        logger.warning("Unknown stream event kind %r for conversation %s", event.kind, ctx.conversation_id)
        return self._system(
            ctx,
            "system",
            "unknown",
            f"Unknown event kind: {event.kind}",
            event.model_dump(by_alias=True),
        )
