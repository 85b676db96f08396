"""
HTTP request models for the API.

These are Pydantic models for validating and parsing API requests.
"""

from .ack_request import AckRequest
from .permission_request import PermissionCheckRequest, PermissionDecisionRequest
from .respond_request import RespondRequest
from .rule_request import RuleRequest

__all__ = [
    # Prompt requests
    "RespondRequest",
    "AckRequest",
    # Permission requests
    "PermissionCheckRequest",
    "PermissionDecisionRequest",
    "RuleRequest",
]
