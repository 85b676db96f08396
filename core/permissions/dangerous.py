"""Dangerous operation detection."""

import re


# Patterns applied to "<tool> <action> <resource>"; any match is auto-denied
DANGEROUS_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\brm\s+(-\w+\s+)*-\w*(r\w*f|f\w*r)", re.IGNORECASE), "recursive forced delete"),
    (re.compile(r"\bsudo\b", re.IGNORECASE), "privilege escalation (sudo)"),
    (re.compile(r"\bsu\s+(-|root\b)", re.IGNORECASE), "privilege escalation (su)"),
    (re.compile(r"\bmkfs(\.\w+)?\b", re.IGNORECASE), "filesystem formatting"),
    (re.compile(r"\bformat\s+[a-z]:", re.IGNORECASE), "disk formatting"),
    (re.compile(r"\bdd\s+.*\bof=/dev/", re.IGNORECASE), "raw device write"),
    (re.compile(r">\s*/dev/sd[a-z]", re.IGNORECASE), "raw device write"),
    (re.compile(r"\bdrop\s+(table|database|schema)\b", re.IGNORECASE), "destructive schema statement"),
    (re.compile(r"\btruncate\s+(table\s+)?\w+", re.IGNORECASE), "destructive schema statement"),
    (re.compile(r"\bdelete\b.*\bsystem\b", re.IGNORECASE), "system deletion"),
    (re.compile(r"\bchmod\s+-R\s+777\s+/(\s|$)", re.IGNORECASE), "recursive permission change on /"),
    (re.compile(r":\(\)\s*\{\s*:\|:&\s*\};:"), "fork bomb"),
]


def is_dangerous_operation(tool: str, action: str, resource: str | None = None) -> tuple[bool, str]:
    """
    Check if a tool invocation matches the static denylist.

    Args:
        tool: Tool name
        action: Action description or command
        resource: Resource acted upon (file path, command, URL)

    Returns:
        Tuple of (is_dangerous, reason)
    """
    full_action = f"{tool} {action} {resource or ''}"

    for pattern, label in DANGEROUS_PATTERNS:
        if pattern.search(full_action):
            return True, f"Blocked by denylist: {label}"

    return False, ""
