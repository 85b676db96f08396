"""Per-conversation streaming state."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from core.models import (
    ConversationItem,
    InteractivePrompt,
    ItemStatus,
    LoadingItem,
    MessageItem,
    PromptItem,
    ToolDisplayState,
    ToolMessage,
    gen_id,
)
from core.permissions import Verdict

logger = logging.getLogger(__name__)

# (tool, action, resource) -> verdict
PermissionCallback = Callable[[str, str, str | None], Verdict]
SessionCallback = Callable[[str], None]


@dataclass
class StreamingContext:
    """
    Mutable state for one conversation's event stream.

    Holds the ordered item list, the single in-flight assistant message
    (the accumulator), the captured session id and an index of tool
    invocations by correlation id. Not shared between conversations.
    """

    conversation_id: str
    permission_callback: PermissionCallback | None = None
    on_session_id: SessionCallback | None = None
    items: list[ConversationItem] = field(default_factory=list)
    session_id: str | None = None
    accumulator_id: str | None = None
    tool_items: dict[str, MessageItem] = field(default_factory=dict)
    _sort_counter: int = 0

    def next_sort_order(self) -> int:
        self._sort_counter += 1
        return self._sort_counter

    def append(self, item: ConversationItem) -> ConversationItem:
        self.items.append(item)
        return item

    def find(self, item_id: str) -> ConversationItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def remove(self, item_id: str) -> None:
        self.items = [item for item in self.items if item.id != item_id]

    @property
    def accumulator(self) -> MessageItem | None:
        """The active-streaming assistant message, if any."""
        if self.accumulator_id is None:
            return None
        item = self.find(self.accumulator_id)
        return item if isinstance(item, MessageItem) else None

    def active_items(self) -> list[MessageItem]:
        return [
            item
            for item in self.items
            if isinstance(item, MessageItem) and item.status == ItemStatus.ACTIVE_STREAMING
        ]

    def add_prompt(self, prompt: InteractivePrompt) -> PromptItem:
        """Show a pending prompt in the conversation."""
        item = PromptItem(id=gen_id("itm_"), sort_order=self.next_sort_order(), data=prompt)
        self.append(item)
        return item

    def resolve_prompt(self, prompt: InteractivePrompt) -> bool:
        """Replace a shown prompt with its updated record. Returns False if not shown."""
        for item in self.items:
            if isinstance(item, PromptItem) and item.data.id == prompt.id:
                item.data = prompt
                item.timestamp = time.time()
                return True
        logger.debug("Prompt %s is not shown in conversation %s", prompt.id, self.conversation_id)
        return False

    def set_loading(self, loading: bool) -> None:
        """Show or hide the single loading indicator."""
        existing = [item for item in self.items if isinstance(item, LoadingItem)]
        if loading and not existing:
            self.append(LoadingItem(id=gen_id("itm_"), sort_order=self.next_sort_order()))
        elif not loading and existing:
            self.items = [item for item in self.items if not isinstance(item, LoadingItem)]

    def mark_tool_decision(self, tool_use_id: str, approved: bool, reason: str | None = None) -> MessageItem | None:
        """Apply a human decision to a tool invocation awaiting approval."""
        item = self.tool_items.get(tool_use_id)
        if item is None:
            logger.warning("No tool invocation %s in conversation %s", tool_use_id, self.conversation_id)
            return None

        tool: ToolMessage = item.data
        tool.state = ToolDisplayState.RUNNING if approved else ToolDisplayState.BLOCKED
        tool.reason = reason
        item.timestamp = time.time()
        return item
