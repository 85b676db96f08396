"""
Permission gate for agent tool invocations.

Binds the permission engine and the prompt orchestrator to one
conversation so the bridge only has to ask "may this tool run?".
"""

from typing import Any

from core.models import PromptDecision, PromptType
from core.permissions import PermissionEngine, Verdict
from core.prompts import PromptOrchestrator, build_delegation_prompt, build_plan_review_prompt

from .logger import get_logger

logger = get_logger(__name__)


class PermissionGate:
    """Decides tool invocations for a single conversation."""

    def __init__(
        self,
        engine: PermissionEngine,
        orchestrator: PromptOrchestrator,
        conversation_id: str,
        project_id: str | None = None,
        working_directory: str | None = None,
    ):
        self.engine = engine
        self.orchestrator = orchestrator
        self.conversation_id = conversation_id
        self.project_id = project_id
        self.working_directory = working_directory
        self.session_id: str | None = None

    def check(self, tool: str, action: str, resource: str | None) -> Verdict:
        """Quick engine verdict; used as the stream parser's permission callback."""
        return self.engine.decide(tool, action, resource, self.project_id)

    async def authorize(
        self,
        tool: str,
        action: str,
        resource: str | None,
        parameters: dict[str, Any] | None = None,
    ) -> PromptDecision:
        """Decide a tool invocation, prompting a human if needed."""
        decision = await self.orchestrator.request_permission(
            tool=tool,
            action=action,
            resource=resource,
            conversation_id=self.conversation_id,
            project_id=self.project_id,
            session_id=self.session_id,
            parameters=parameters,
            working_directory=self.working_directory,
        )
        logger.info(f"{tool} {action}: {'approved' if decision.approved else 'denied'} ({decision.reason})")
        return decision

    async def review_plan(self, plan: str) -> PromptDecision:
        """Ask a human to approve the agent's plan before it leaves plan mode."""
        prompt = build_plan_review_prompt(
            conversation_id=self.conversation_id,
            plan=plan,
            timeout=self.orchestrator.timeout_for(PromptType.PLAN_REVIEW),
            project_id=self.project_id,
            session_id=self.session_id,
            working_directory=self.working_directory,
        )
        decision = await self.orchestrator.request_decision(prompt)
        logger.info(f"Plan review {prompt.id}: {'approved' if decision.approved else 'rejected'}")
        return decision

    async def delegate(self, task: str) -> PromptDecision:
        """Ask a human whether a sub-task may be handed to another agent."""
        prompt = build_delegation_prompt(
            conversation_id=self.conversation_id,
            task=task,
            timeout=self.orchestrator.timeout_for(PromptType.DELEGATION),
            project_id=self.project_id,
            session_id=self.session_id,
            working_directory=self.working_directory,
        )
        decision = await self.orchestrator.request_decision(prompt)
        logger.info(f"Delegation {prompt.id}: {'approved' if decision.approved else 'rejected'}")
        return decision
