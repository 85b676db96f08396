"""Pattern matching logic for permission rules."""

import fnmatch

from .models import PermissionRule

GLOB_CHARS = frozenset("*?[")


def is_wildcard(value: str | None) -> bool:
    return value is None or value == "" or value == "*"


def match_field(pattern: str | None, value: str | None) -> bool:
    """
    Check if a tool or action matches a rule field.

    Absent or "*" fields match anything; otherwise comparison is
    case-insensitive and exact.
    """
    if is_wildcard(pattern):
        return True
    return (value or "").lower() == pattern.lower()


def match_resource(pattern: str | None, resource: str | None) -> bool:
    """
    Check if a resource matches a rule's resource pattern.

    Supports:
    - Wildcard: "*" or an absent pattern matches anything
    - Substring: "src/" matches "/repo/src/main.py"
    - Glob patterns: "*.py" matches "test.py"

    The substring test runs first, so a remembered literal resource such
    as "src/app/[id]/page.tsx" matches itself even though it looks like
    a glob.

    Args:
        pattern: The rule's resource pattern
        resource: The resource being acted upon

    Returns:
        True if resource matches pattern, False otherwise
    """
    if is_wildcard(pattern):
        return True
    if not resource:
        return False

    if pattern in resource:
        return True
    return any(char in GLOB_CHARS for char in pattern) and fnmatch.fnmatch(resource, pattern)


def rule_matches(rule: PermissionRule, tool: str, action: str, resource: str | None) -> bool:
    return (
        match_field(rule.tool, tool)
        and match_field(rule.action, action)
        and match_resource(rule.resource, resource)
    )
