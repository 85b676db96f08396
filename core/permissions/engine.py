"""Permission decision engine."""

import asyncio
import logging

from core.exceptions import StoreUnavailableError

from .dangerous import is_dangerous_operation
from .models import Decision, PermissionRule, RuleType, Verdict
from .patterns import rule_matches
from .risk import classify, normalize_tool_name
from .store import RuleStore

logger = logging.getLogger(__name__)

# Read-only (tool, action keyword) combinations that never need a prompt
SAFE_OPERATIONS = [
    ("read", "read"),
    ("ls", "list"),
    ("grep", "search"),
    ("glob", "search"),
    ("notebookread", "read"),
]


def is_safe_operation(tool: str, action: str) -> bool:
    name = normalize_tool_name(tool)
    lowered = action.lower()
    return any(name == safe_tool and safe_action in lowered for safe_tool, safe_action in SAFE_OPERATIONS)


class PermissionEngine:
    """
    Decides whether a tool invocation is auto-allowed, auto-denied or needs
    a human prompt.

    Evaluation order is fixed so an explicit deny always beats an allow:
    deny rules, static denylist, allow rules, safe operations, prompt.
    """

    def __init__(self, rule_store: RuleStore):
        """
        Initialize the permission engine.

        Args:
            rule_store: Store for persisted allow/deny rules
        """
        self.rule_store = rule_store

    def decide(
        self,
        tool: str,
        action: str,
        resource: str | None = None,
        scope: str | None = None,
    ) -> Verdict:
        """
        Decide how a tool invocation should be handled.

        Args:
            tool: Tool name (e.g. "Bash")
            action: Action description or command
            resource: Resource acted upon (file path, command, URL)
            scope: Project id; global rules always apply

        Returns:
            Verdict with decision, reason and risk tier
        """
        tier = classify(tool)

        rules: list[PermissionRule] | None
        try:
            rules = self.rule_store.list_rules(scope)
        except StoreUnavailableError as e:
            logger.warning("Permission rules unavailable, skipping allow rules: %s", e)
            rules = None

        matching = [rule for rule in rules or [] if rule_matches(rule, tool, action, resource)]

        for rule in matching:
            if rule.type == RuleType.DENY:
                return Verdict(
                    decision=Decision.AUTO_DENY,
                    reason=f"Denied by rule {rule.id} ({rule.tool}/{rule.action} on {rule.resource})",
                    risk_tier=tier,
                    rule_id=rule.id,
                )

        is_dangerous, warning = is_dangerous_operation(tool, action, resource)
        if is_dangerous:
            return Verdict(decision=Decision.AUTO_DENY, reason=warning, risk_tier=tier)

        for rule in matching:
            if rule.type == RuleType.ALLOW:
                return Verdict(
                    decision=Decision.AUTO_ALLOW,
                    reason=f"Allowed by rule {rule.id} ({rule.tool}/{rule.action} on {rule.resource})",
                    risk_tier=tier,
                    rule_id=rule.id,
                )

        if is_safe_operation(tool, action):
            return Verdict(
                decision=Decision.AUTO_ALLOW,
                reason=f"Read-only operation: {tool} {action}",
                risk_tier=tier,
            )

        if rules is None:
            reason = f"Permission rules unavailable; {tier.value} risk {tool} requires approval"
        else:
            reason = f"{tier.value} risk {tool} requires approval"
        return Verdict(decision=Decision.NEEDS_PROMPT, reason=reason, risk_tier=tier)

    def remember(
        self,
        tool: str,
        action: str,
        resource: str | None,
        approved: bool,
        scope: str | None = None,
    ) -> PermissionRule:
        """
        Persist a "don't ask again" decision as a rule.

        Args:
            tool: Tool name
            action: Action description
            resource: Resource pattern, None for any resource
            approved: True stores an allow rule, False a deny rule
            scope: Project id, None for a global rule

        Returns:
            The stored rule
        """
        rule = PermissionRule(
            tool=tool,
            action=action,
            resource=resource or "*",
            type=RuleType.ALLOW if approved else RuleType.DENY,
            project_id=scope,
        )
        return self.rule_store.upsert(rule)

    async def adecide(
        self,
        tool: str,
        action: str,
        resource: str | None = None,
        scope: str | None = None,
    ) -> Verdict:
        """Run ``decide`` in a worker thread; rule stores may block on I/O."""
        return await asyncio.to_thread(self.decide, tool, action, resource, scope)

    async def aremember(
        self,
        tool: str,
        action: str,
        resource: str | None,
        approved: bool,
        scope: str | None = None,
    ) -> PermissionRule:
        """Run ``remember`` in a worker thread."""
        return await asyncio.to_thread(self.remember, tool, action, resource, approved, scope)
