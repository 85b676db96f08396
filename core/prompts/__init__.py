"""
Interactive prompt protocol.

Durable prompt records, the standard option sets, and the orchestrator the
agent executor blocks on while a human decides.
"""

from .builder import (
    OPTION_NO,
    OPTION_YES,
    OPTION_YES_DONT_ASK,
    build_delegation_prompt,
    build_permission_prompt,
    build_plan_review_prompt,
)
from .orchestrator import PromptNotifier, PromptOrchestrator
from .store import PromptStore, SqlitePromptStore

__all__ = [
    "OPTION_YES",
    "OPTION_NO",
    "OPTION_YES_DONT_ASK",
    "build_permission_prompt",
    "build_plan_review_prompt",
    "build_delegation_prompt",
    "PromptStore",
    "SqlitePromptStore",
    "PromptNotifier",
    "PromptOrchestrator",
]
