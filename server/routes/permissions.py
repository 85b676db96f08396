"""Permission check, decision and rule endpoints."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Query

from core import CoreError
from core.models import PromptDecision
from core.permissions import PermissionRule, Verdict

from ..errors import http_error
from ..requests import PermissionCheckRequest, PermissionDecisionRequest, RuleRequest
from ..state import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/permission/check")
async def check_permission(
    body: PermissionCheckRequest, services: Services = Depends(get_services)
) -> Verdict:
    """
    Ask the permission engine how a tool invocation should be handled.

    Returns:
        AUTO_ALLOW, AUTO_DENY or NEEDS_PROMPT with a reason
    """
    verdict = await services.engine.adecide(body.tool, body.action, body.resource, body.projectID)
    logger.info("Permission check %s %s -> %s", body.tool, body.action, verdict.decision.value)
    return verdict


@router.post("/permission/request")
async def request_permission(
    body: PermissionDecisionRequest, services: Services = Depends(get_services)
) -> PromptDecision:
    """
    Decide a tool invocation, prompting a human when needed.

    Blocks until the prompt is answered or times out.
    """
    return await services.orchestrator.request_permission(
        tool=body.tool,
        action=body.action,
        resource=body.resource,
        conversation_id=body.conversationID,
        project_id=body.projectID,
        session_id=body.sessionID,
        parameters=body.parameters,
        working_directory=body.workingDirectory,
        timeout=body.timeout,
    )


@router.get("/permission/rules")
async def list_rules(
    projectID: str | None = Query(None), services: Services = Depends(get_services)
) -> list[PermissionRule]:
    """List global rules plus the rules of the given project."""
    try:
        return await asyncio.to_thread(services.rule_store.list_rules, projectID)
    except CoreError as e:
        raise http_error(e)


@router.put("/permission/rules")
async def upsert_rule(body: RuleRequest, services: Services = Depends(get_services)) -> PermissionRule:
    """Create a rule or overwrite the type of an existing one."""
    rule = PermissionRule(
        tool=body.tool,
        action=body.action,
        resource=body.resource,
        type=body.type,
        project_id=body.projectID,
    )
    try:
        return await asyncio.to_thread(services.rule_store.upsert, rule)
    except CoreError as e:
        raise http_error(e)


@router.delete("/permission/rules/{ruleID}")
async def delete_rule(ruleID: str, services: Services = Depends(get_services)) -> dict:
    """Remove a rule."""
    try:
        await asyncio.to_thread(services.rule_store.delete, ruleID)
    except CoreError as e:
        raise http_error(e)
    return {"success": True}
