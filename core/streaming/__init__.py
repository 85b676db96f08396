"""
Agent event stream parsing.

Converts the executor's NDJSON events into ordered ConversationItems.
"""

from .context import PermissionCallback, SessionCallback, StreamingContext
from .parser import StreamEventParser, describe_invocation, stringify_content

__all__ = [
    "StreamingContext",
    "StreamEventParser",
    "PermissionCallback",
    "SessionCallback",
    "describe_invocation",
    "stringify_content",
]
