"""RiskTier model."""

from enum import Enum


class RiskTier(str, Enum):
    """Potential for harm of a tool invocation."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
