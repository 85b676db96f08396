"""Interactive prompt protocol: create, deliver, wait, resolve.

This is what the agent-executor side calls and blocks on. The executor and
the backend never talk directly; the prompt store is the only shared
channel and the wait phase is a bounded poll loop over it.

    CREATING -> PENDING -> ANSWERED | TIMEOUT
"""

import asyncio
import logging
import time
from typing import Any, Protocol

from config import ProtocolConfig
from core.exceptions import (
    CoreError,
    InvalidOperationError,
    NotFoundError,
    PromptNotPendingError,
    StoreUnavailableError,
)
from core.models import DeliveryResult, InteractivePrompt, PromptDecision, PromptStatus, PromptType
from core.permissions import Decision, PermissionEngine

from .builder import OPTION_NO, OPTION_YES, OPTION_YES_DONT_ASK, build_permission_prompt
from .store import PromptStore

logger = logging.getLogger(__name__)

# option id -> (response, approved, remember)
OPTION_RESPONSES = {
    OPTION_YES: ("yes", True, False),
    OPTION_NO: ("no", False, False),
    OPTION_YES_DONT_ASK: ("yes_dont_ask", True, True),
}

RESPONSE_REASONS = {
    "yes": "User approved",
    "no": "User denied",
    "yes_dont_ask": "User approved with remember",
}

TIMED_OUT_REASON = "Prompt timed out without a response"


class PromptNotifier(Protocol):
    """Pushes a newly created prompt to connected clients."""

    async def deliver(self, prompt: InteractivePrompt) -> DeliveryResult:
        ...


class PromptOrchestrator:
    """
    Drives one prompt from creation to a terminal decision.

    Store outages during creation degrade to an in-memory fallback prompt;
    polling failures and timeouts fail closed to deny.
    """

    def __init__(
        self,
        engine: PermissionEngine,
        store: PromptStore,
        notifier: PromptNotifier,
        config: ProtocolConfig | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            engine: Permission engine for auto-decisions and remembered rules
            store: Prompt store shared with the backend
            notifier: Delivery channel for new prompts
            config: Timing and retry settings
        """
        self.engine = engine
        self.store = store
        self.notifier = notifier
        self.config = config or ProtocolConfig()

    def timeout_for(self, prompt_type: PromptType, requested: float | None = None) -> float:
        """Prompt timeout in seconds, clamped to the configured maximum."""
        if requested is None:
            if prompt_type == PromptType.TOOL_PERMISSION:
                requested = self.config.permission_prompt_timeout
            else:
                requested = self.config.delegation_prompt_timeout
        return min(requested, self.config.max_prompt_timeout)

    async def request_permission(
        self,
        *,
        tool: str,
        action: str,
        conversation_id: str,
        resource: str | None = None,
        project_id: str | None = None,
        session_id: str | None = None,
        parameters: dict[str, Any] | None = None,
        working_directory: str | None = None,
        timeout: float | None = None,
    ) -> PromptDecision:
        """
        Decide a tool invocation, prompting a human when the engine cannot.

        Args:
            tool: Tool name
            action: Action description or command
            conversation_id: Conversation the invocation belongs to
            resource: Resource acted upon
            project_id: Owning project; scopes rules and notifications
            session_id: Agent session id
            parameters: Raw tool input
            working_directory: Agent working directory
            timeout: Prompt timeout override in seconds

        Returns:
            The decision, with a reason
        """
        verdict = await self.engine.adecide(tool, action, resource, project_id)
        if verdict.decision == Decision.AUTO_ALLOW:
            logger.info("Auto-approved %s %s: %s", tool, action, verdict.reason)
            return PromptDecision(approved=True, response="yes", reason=verdict.reason)
        if verdict.decision == Decision.AUTO_DENY:
            logger.info("Auto-denied %s %s: %s", tool, action, verdict.reason)
            return PromptDecision(approved=False, response="no", reason=verdict.reason)

        prompt = build_permission_prompt(
            conversation_id=conversation_id,
            tool=tool,
            action=action,
            resource=resource,
            risk_tier=verdict.risk_tier,
            timeout=self.timeout_for(PromptType.TOOL_PERMISSION, timeout),
            project_id=project_id,
            session_id=session_id,
            parameters=parameters,
            working_directory=working_directory,
        )
        decision = await self.request_decision(prompt)

        if decision.approved and decision.remember:
            try:
                await self.engine.aremember(tool, action, resource, True, project_id)
            except CoreError as e:
                logger.error("Failed to remember decision for %s %s: %s", tool, action, e)

        return decision

    async def request_decision(self, prompt: InteractivePrompt) -> PromptDecision:
        """Create, deliver and wait on a prompt of any type."""
        stored = await self.create_prompt(prompt)
        await self.deliver(stored)
        return await self.wait_for_decision(stored)

    async def create_prompt(self, prompt: InteractivePrompt) -> InteractivePrompt:
        """
        Persist a prompt with bounded retries.

        Each attempt starts with a store health probe. When every attempt
        fails the prompt is returned flagged ``fallback_storage`` so the
        caller can still deliver it and wait out its timeout.
        """
        last_error: Exception | None = None

        for attempt in range(1, self.config.create_attempts + 1):
            try:
                if not await self.store.ping():
                    raise StoreUnavailableError("Prompt store health check failed")
                created = await self.store.create(prompt)
                if attempt > 1:
                    logger.info("Created prompt %s on attempt %d", prompt.id, attempt)
                return created
            except CoreError as e:
                if isinstance(e, InvalidOperationError):
                    # A retried create whose first response was lost hits the duplicate id
                    existing = await self._find_persisted(prompt)
                    if existing is not None:
                        logger.info("Prompt %s was already persisted (attempt %d)", prompt.id, attempt)
                        return existing
                last_error = e
                logger.warning(
                    "Failed to create prompt %s (attempt %d/%d): %s",
                    prompt.id,
                    attempt,
                    self.config.create_attempts,
                    e,
                )

            await asyncio.sleep(self.config.retry_delay(attempt))

        logger.error("All store attempts failed for prompt %s, using fallback storage: %s", prompt.id, last_error)
        return prompt.model_copy(update={"fallback_storage": True})

    async def _find_persisted(self, prompt: InteractivePrompt) -> InteractivePrompt | None:
        if prompt.fallback_storage:
            return None
        try:
            existing = await self.store.get(prompt.id)
        except CoreError:
            return None
        if existing.conversation_id != prompt.conversation_id or existing.type != prompt.type:
            return None
        return existing

    async def deliver(self, prompt: InteractivePrompt) -> DeliveryResult:
        """Deliver a prompt; delivery failures never propagate."""
        try:
            result = await self.notifier.deliver(prompt)
        except Exception as e:
            logger.exception("Delivery failed for prompt %s", prompt.id)
            return DeliveryResult(success=False, prompt_id=prompt.id, error=str(e))

        if result.success:
            logger.info("Prompt %s delivered via %s", prompt.id, ", ".join(result.channels_used))
        else:
            logger.warning("Prompt %s was not delivered: %s", prompt.id, result.error)
        return result

    async def wait_for_decision(self, prompt: InteractivePrompt) -> PromptDecision:
        """
        Poll the store until the prompt reaches a terminal status.

        Cancelling the calling task stops polling and leaves the prompt in
        the store; a late answer is simply never observed.
        """
        consecutive_errors = 0

        try:
            while time.time() < prompt.timeout_at:
                try:
                    current = await self.store.get(prompt.id)
                except NotFoundError:
                    logger.warning("Prompt %s vanished while waiting", prompt.id)
                    reason = f"Prompt {prompt.id} no longer exists"
                    if prompt.fallback_storage:
                        reason = f"Prompt {prompt.id} was held in fallback storage and cannot be answered"
                    return PromptDecision(approved=False, response="no", reason=reason, prompt_id=prompt.id)
                except CoreError as e:
                    consecutive_errors += 1
                    logger.warning(
                        "Polling prompt %s failed (%d/%d): %s",
                        prompt.id,
                        consecutive_errors,
                        self.config.max_poll_errors,
                        e,
                    )
                    if consecutive_errors >= self.config.max_poll_errors:
                        return PromptDecision(
                            approved=False,
                            response="no",
                            reason=f"Prompt store unreachable after {consecutive_errors} consecutive polling errors",
                            prompt_id=prompt.id,
                        )
                else:
                    consecutive_errors = 0
                    if current.is_terminal:
                        return self.resolve(current)

                remaining = prompt.timeout_at - time.time()
                await asyncio.sleep(max(0.0, min(self.config.poll_interval, remaining)))
        except asyncio.CancelledError:
            logger.info("Stopped waiting for prompt %s; prompt left in place", prompt.id)
            raise

        return await self._time_out(prompt)

    async def _time_out(self, prompt: InteractivePrompt) -> PromptDecision:
        if not prompt.fallback_storage:
            try:
                await self.store.expire(prompt.id)
            except PromptNotPendingError:
                # Lost the race to a late answer; honour it
                try:
                    current = await self.store.get(prompt.id)
                except CoreError as e:
                    logger.warning("Could not re-read prompt %s after timeout: %s", prompt.id, e)
                else:
                    if current.status == PromptStatus.ANSWERED:
                        return self.resolve(current)
            except CoreError as e:
                logger.warning("Could not record timeout for prompt %s: %s", prompt.id, e)

        logger.warning("Prompt %s timed out, denying", prompt.id)
        return PromptDecision(
            approved=False,
            response="no",
            reason=TIMED_OUT_REASON,
            prompt_id=prompt.id,
            status=PromptStatus.TIMEOUT,
            timed_out=True,
        )

    def resolve(self, prompt: InteractivePrompt) -> PromptDecision:
        """Map a terminal prompt to a decision."""
        if prompt.status == PromptStatus.TIMEOUT:
            return PromptDecision(
                approved=False,
                response="no",
                reason=TIMED_OUT_REASON,
                prompt_id=prompt.id,
                status=PromptStatus.TIMEOUT,
                timed_out=True,
            )

        response, approved, remember = OPTION_RESPONSES.get(prompt.selected_option or "", ("no", False, False))
        decision = PromptDecision(
            approved=approved,
            remember=remember,
            response=response,
            reason=RESPONSE_REASONS[response],
            prompt_id=prompt.id,
            status=prompt.status,
        )
        logger.info("Prompt %s resolved: %s", prompt.id, "APPROVED" if approved else "DENIED")
        return decision
