"""Construction of interactive prompts with their standard option sets."""

import time
from typing import Any

from core.models import (
    DelegationContext,
    InteractivePrompt,
    PlanReviewContext,
    PromptOption,
    PromptType,
    RiskTier,
    ToolPermissionContext,
)
from core.permissions.risk import danger_level

# Option ids shared by every prompt type
OPTION_YES = "1"
OPTION_NO = "2"
OPTION_YES_DONT_ASK = "3"

TITLES = {
    "safe": "Confirm Action",
    "moderate": "Permission Required",
    "dangerous": "Dangerous Operation - Permission Required",
}

RISK_MESSAGES = {
    "safe": "This operation is considered safe.",
    "moderate": "This operation may modify files or system state.",
    "dangerous": "**This operation could cause data loss or system damage.**",
}


def permission_options(tool: str, action: str, resource: str | None, risk_tier: RiskTier) -> list[PromptOption]:
    level = danger_level(risk_tier)
    remember_scope = f"Always allow {tool} to {action}"
    if resource:
        remember_scope += f" on files like {resource}"

    return [
        PromptOption(
            id=OPTION_YES,
            label="Yes",
            value="yes",
            description="Allow this operation once",
            is_default=level == "safe",
            is_recommended=level != "dangerous",
        ),
        PromptOption(
            id=OPTION_NO,
            label="No",
            value="no",
            description="Deny this operation",
            is_recommended=level == "dangerous",
        ),
        PromptOption(
            id=OPTION_YES_DONT_ASK,
            label="Yes, don't ask again",
            value="yes_dont_ask",
            description=remember_scope,
            is_recommended=level == "safe",
        ),
    ]


def build_permission_prompt(
    *,
    conversation_id: str,
    tool: str,
    action: str,
    resource: str | None,
    risk_tier: RiskTier,
    timeout: float,
    project_id: str | None = None,
    session_id: str | None = None,
    parameters: dict[str, Any] | None = None,
    working_directory: str | None = None,
    warning: str | None = None,
) -> InteractivePrompt:
    """
    Build a three-option tool-permission prompt.

    Args:
        conversation_id: Conversation the blocked invocation belongs to
        tool: Tool name
        action: Action description or command
        resource: Resource acted upon
        risk_tier: Tier from the risk classifier
        timeout: Seconds until the prompt expires
        project_id: Owning project, used for project-level notifications
        session_id: Agent session id for correlation
        parameters: Raw tool input
        working_directory: Agent working directory
        warning: Optional warning shown with the prompt

    Returns:
        A pending InteractivePrompt (not yet persisted)
    """
    level = danger_level(risk_tier)

    message = f"The agent wants to use **{tool}** to {action}"
    if resource:
        message += f" on `{resource}`"
    if working_directory:
        message += f"\n\n**Working Directory:** `{working_directory}`"
    message += f"\n\n{RISK_MESSAGES[level]}"
    if warning:
        message += f"\n\n{warning}"

    return InteractivePrompt(
        conversation_id=conversation_id,
        project_id=project_id,
        session_id=session_id,
        type=PromptType.TOOL_PERMISSION,
        title=TITLES[level],
        message=message,
        options=permission_options(tool, action, resource, risk_tier),
        context=ToolPermissionContext(
            tool_name=tool,
            action=action,
            resource=resource,
            parameters=parameters or {},
            risk_tier=risk_tier,
            working_directory=working_directory,
            warning=warning,
        ),
        timeout_at=time.time() + timeout,
    )


def build_plan_review_prompt(
    *,
    conversation_id: str,
    plan: str,
    timeout: float,
    project_id: str | None = None,
    session_id: str | None = None,
    parameters: dict[str, Any] | None = None,
    working_directory: str | None = None,
) -> InteractivePrompt:
    return InteractivePrompt(
        conversation_id=conversation_id,
        project_id=project_id,
        session_id=session_id,
        type=PromptType.PLAN_REVIEW,
        title="Review Plan",
        message=f"The agent proposes the following plan:\n\n{plan}",
        options=[
            PromptOption(id=OPTION_YES, label="Approve plan", value="yes", is_default=True, is_recommended=True),
            PromptOption(id=OPTION_NO, label="Keep planning", value="no"),
        ],
        context=PlanReviewContext(
            plan=plan,
            parameters=parameters or {},
            working_directory=working_directory,
        ),
        timeout_at=time.time() + timeout,
    )


def build_delegation_prompt(
    *,
    conversation_id: str,
    task: str,
    timeout: float,
    project_id: str | None = None,
    session_id: str | None = None,
    working_directory: str | None = None,
) -> InteractivePrompt:
    return InteractivePrompt(
        conversation_id=conversation_id,
        project_id=project_id,
        session_id=session_id,
        type=PromptType.DELEGATION,
        title="Delegate Task",
        message=f"Hand this task to the agent?\n\n{task}",
        options=[
            PromptOption(id=OPTION_YES, label="Delegate", value="yes", is_recommended=True),
            PromptOption(id=OPTION_NO, label="Cancel", value="no"),
        ],
        context=DelegationContext(task=task, working_directory=working_directory),
        timeout_at=time.time() + timeout,
    )
