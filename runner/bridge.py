"""
Bridge between an agent subprocess and the relay.

The agent writes NDJSON stream events to stdout. Every line is rendered
through the stream parser; tool invocations the agent is blocked on are
decided through the permission gate and answered on the agent's stdin:

    {"kind": "permission_decision", "id": ..., "approved": ..., "remember": ..., "reason": ...}
"""

import asyncio
import json
import sys
from typing import Any, Optional, TextIO

from core.models import ConversationItem, MessageItem, PlanReviewItem, PromptDecision, ToolDisplayState, ToolMessage
from core.permissions import normalize_tool_name
from core.streaming import StreamEventParser, StreamingContext

from .gate import PermissionGate
from .logger import get_logger

logger = get_logger(__name__)

# Agents can emit large tool results on one line
STREAM_LIMIT = 16 * 1024 * 1024

DELEGATION_TOOL = "task"


def decision_message(tool_use_id: str, approved: bool, reason: str, remember: bool = False) -> dict[str, Any]:
    return {
        "kind": "permission_decision",
        "id": tool_use_id,
        "approved": approved,
        "remember": remember,
        "reason": reason,
    }


class AgentBridge:
    """Runs one agent process for one conversation."""

    def __init__(
        self,
        gate: PermissionGate,
        parser: Optional[StreamEventParser] = None,
        output: Optional[TextIO] = None,
    ):
        self.gate = gate
        self.parser = parser or StreamEventParser()
        self.output = output or sys.stdout
        self.ctx = StreamingContext(
            conversation_id=gate.conversation_id,
            permission_callback=gate.check,
            on_session_id=self._on_session_id,
        )
        self._answered: set[str] = set()

    def _on_session_id(self, session_id: str) -> None:
        self.gate.session_id = session_id

    async def handle_line(self, line: str, stdin: Optional[asyncio.StreamWriter] = None) -> list[ConversationItem]:
        """
        Render one agent line and answer any permission request it carries.

        Returns:
            Items created or updated by the line
        """
        # The permission callback makes blocking rule lookups
        items = await asyncio.to_thread(self.parser.consume, line, self.ctx)
        for item in items:
            message = await self._decide(item)
            if message is not None and stdin is not None:
                stdin.write((json.dumps(message) + "\n").encode())
                await stdin.drain()
        self._emit(items)
        return items

    async def _decide(self, item: ConversationItem) -> Optional[dict[str, Any]]:
        if isinstance(item, PlanReviewItem):
            if not item.awaiting_permission or item.tool_use_id in self._answered:
                return None
            self._answered.add(item.tool_use_id)
            decision = await self.gate.review_plan(item.plan)
            item.prompt_id = decision.prompt_id
            return decision_message(item.tool_use_id, decision.approved, decision.reason)

        if not isinstance(item, MessageItem) or not isinstance(item.data, ToolMessage):
            return None
        tool = item.data
        if not tool.awaiting_permission or tool.id in self._answered:
            return None
        self._answered.add(tool.id)

        if tool.state == ToolDisplayState.RUNNING:
            return decision_message(tool.id, True, tool.reason or "Allowed")
        if tool.state == ToolDisplayState.BLOCKED:
            return decision_message(tool.id, False, tool.reason or "Denied")

        decision = await self._ask(tool)
        self.ctx.mark_tool_decision(tool.id, decision.approved, decision.reason)
        return decision_message(tool.id, decision.approved, decision.reason, decision.remember)

    async def _ask(self, tool: ToolMessage) -> PromptDecision:
        if normalize_tool_name(tool.name) == DELEGATION_TOOL:
            task = str(tool.input.get("prompt") or tool.resource or json.dumps(tool.input))
            return await self.gate.delegate(task)
        return await self.gate.authorize(tool.name, tool.action or tool.name, tool.resource, tool.input)

    def _emit(self, items: list[ConversationItem]) -> None:
        for item in items:
            self.output.write(item.model_dump_json() + "\n")
        self.output.flush()

    async def run(self, command: list[str], cwd: Optional[str] = None) -> int:
        """
        Start the agent and bridge its stream until it exits.

        Cancelling the task stops the agent; pending prompts stay in the
        store and any late answer is ignored.

        Returns:
            The agent's exit code
        """
        logger.info(f"Starting agent: {command[0]}")
        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            cwd=cwd,
            limit=STREAM_LIMIT,
        )

        try:
            async for raw in process.stdout:
                await self.handle_line(raw.decode("utf-8", errors="replace"), process.stdin)
        except asyncio.CancelledError:
            logger.info("Agent run aborted")
            self._emit(self.parser.consume(json.dumps({"kind": "aborted"}), self.ctx))
            if process.returncode is None:
                process.terminate()
            raise

        if self.ctx.accumulator is not None:
            logger.warning("Agent exited without stream_done; finalizing message")
            self._emit(self.parser.consume(json.dumps({"kind": "stream_done"}), self.ctx))

        if process.stdin is not None:
            process.stdin.close()
        exit_code = await process.wait()
        logger.info(f"Agent exited with code {exit_code}")
        return exit_code
