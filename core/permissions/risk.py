"""Risk classification for tool names."""

from core.models import RiskTier


HIGH_RISK_TOOLS = frozenset({"bash", "write", "edit", "multiedit", "delete"})

MEDIUM_RISK_TOOLS = frozenset({"webfetch", "websearch", "notebookedit", "task"})

LOW_RISK_TOOLS = frozenset(
    {
        "read",
        "ls",
        "glob",
        "grep",
        "notebookread",
        "todowrite",
        "todoread",
        "exitplanmode",
    }
)

# Unknown tools (including unrecognised MCP tools) are not trusted as LOW
DEFAULT_RISK_TIER = RiskTier.MEDIUM

DANGER_LEVELS = {
    RiskTier.LOW: "safe",
    RiskTier.MEDIUM: "moderate",
    RiskTier.HIGH: "dangerous",
}


def normalize_tool_name(tool_name: str) -> str:
    """
    Normalize a tool name for table lookups.

    MCP tools are namespaced as ``mcp__<server>__<tool>``; only the final
    segment is classified.
    """
    name = tool_name.strip().lower()
    if name.startswith("mcp__"):
        name = name.rsplit("__", 1)[-1]
    return name


def classify(tool_name: str) -> RiskTier:
    """
    Classify a tool by its potential for harm.

    Args:
        tool_name: Tool name as reported by the agent (e.g. "Bash")

    Returns:
        The risk tier for the tool
    """
    name = normalize_tool_name(tool_name)
    if name in HIGH_RISK_TOOLS:
        return RiskTier.HIGH
    if name in MEDIUM_RISK_TOOLS:
        return RiskTier.MEDIUM
    if name in LOW_RISK_TOOLS:
        return RiskTier.LOW
    return DEFAULT_RISK_TIER


def danger_level(tier: RiskTier) -> str:
    return DANGER_LEVELS[tier]
