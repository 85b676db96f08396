"""
Permission system for tool invocations.

Classifies tools by risk and decides auto-allow / auto-deny / needs-prompt
from persisted rules and static tables.
"""

from .dangerous import is_dangerous_operation
from .engine import SAFE_OPERATIONS, PermissionEngine, is_safe_operation
from .models import (
    Decision,
    PermissionCheck,
    PermissionRule,
    RuleType,
    Verdict,
)
from .patterns import match_resource, rule_matches
from .risk import classify, danger_level, normalize_tool_name
from .store import RuleStore, SqliteRuleStore

__all__ = [
    # Enums
    "Decision",
    "RuleType",
    # Models
    "PermissionCheck",
    "PermissionRule",
    "Verdict",
    # Functions
    "classify",
    "danger_level",
    "normalize_tool_name",
    "is_dangerous_operation",
    "is_safe_operation",
    "match_resource",
    "rule_matches",
    "SAFE_OPERATIONS",
    # Classes
    "PermissionEngine",
    "RuleStore",
    "SqliteRuleStore",
]
