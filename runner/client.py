"""
HTTP clients for the relay backend.

The runner never touches the backend database; it reaches the prompt store,
the permission rules and the delivery service through the relay API.
"""

import asyncio
import random
import re
from typing import Any, Optional

import httpx

from core.exceptions import (
    InvalidOperationError,
    NotFoundError,
    PromptNotPendingError,
    StoreUnavailableError,
)
from core.models import DeliveryResult, InteractivePrompt
from core.permissions import PermissionRule, RuleType

from .logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 10.0  # seconds
REQUEST_ID_HEADER = "X-Request-ID"

_STATUS_PATTERN = re.compile(r"status: (\w+)")


def _detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except ValueError:
        return response.text


def raise_for_status(response: httpx.Response, resource: str, identifier: str) -> None:
    """Translate an error response into the matching core exception."""
    status = response.status_code
    if status < 400:
        return

    detail = _detail(response)
    if status == 404:
        raise NotFoundError(resource, identifier)
    if status == 409:
        match = _STATUS_PATTERN.search(detail)
        raise PromptNotPendingError(identifier, match.group(1) if match else "unknown")
    if 400 <= status < 500:
        raise InvalidOperationError(detail)
    raise StoreUnavailableError(f"Relay returned {status}: {detail}")


class HttpPromptStore:
    """Prompt store backed by the relay API."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def _request(self, method: str, url: str, identifier: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"Relay unreachable: {e}") from e
        raise_for_status(response, "InteractivePrompt", identifier)
        return response

    async def ping(self) -> bool:
        try:
            response = await self.client.get("/health")
            return response.status_code == 200 and bool(response.json().get("store"))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Relay health check failed: {e}")
            return False

    async def create(self, prompt: InteractivePrompt) -> InteractivePrompt:
        response = await self._request("POST", "/prompts", prompt.id, json=prompt.model_dump(mode="json"))
        return InteractivePrompt.model_validate(response.json())

    async def get(self, prompt_id: str) -> InteractivePrompt:
        response = await self._request("GET", f"/prompts/{prompt_id}", prompt_id)
        return InteractivePrompt.model_validate(response.json())

    async def respond(self, prompt_id: str, option_id: str) -> InteractivePrompt:
        response = await self._request(
            "POST", f"/prompts/{prompt_id}/respond", prompt_id, json={"selectedOptionId": option_id}
        )
        return InteractivePrompt.model_validate(response.json())

    async def expire(self, prompt_id: str) -> InteractivePrompt:
        response = await self._request("POST", f"/prompts/{prompt_id}/timeout", prompt_id)
        return InteractivePrompt.model_validate(response.json())

    async def list_pending(self, conversation_id: str | None = None, pickup_only: bool = False) -> list[InteractivePrompt]:
        if conversation_id is None:
            raise InvalidOperationError("Listing pending prompts over HTTP requires a conversation id")
        response = await self._request(
            "GET",
            f"/conversations/{conversation_id}/prompts/pending",
            conversation_id,
            params={"pickup": str(pickup_only).lower()},
        )
        return [InteractivePrompt.model_validate(item) for item in response.json()]


class HttpRuleStore:
    """
    Rule store backed by the relay API.

    Synchronous like the engine; async callers go through
    ``PermissionEngine.adecide`` or a worker thread.
    """

    def __init__(self, client: httpx.Client):
        self.client = client

    def _request(self, method: str, url: str, identifier: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"Relay unreachable: {e}") from e
        raise_for_status(response, "PermissionRule", identifier)
        return response

    def list_rules(self, scope: str | None = None, rule_type: RuleType | None = None) -> list[PermissionRule]:
        params = {"projectID": scope} if scope else {}
        response = self._request("GET", "/permission/rules", scope or "global", params=params)
        rules = [PermissionRule.model_validate(item) for item in response.json()]
        if rule_type is not None:
            rules = [rule for rule in rules if rule.type == rule_type]
        return rules

    def upsert(self, rule: PermissionRule) -> PermissionRule:
        response = self._request(
            "PUT",
            "/permission/rules",
            rule.id,
            json={
                "tool": rule.tool,
                "action": rule.action,
                "resource": rule.resource,
                "type": rule.type.value,
                "projectID": rule.project_id,
            },
        )
        return PermissionRule.model_validate(response.json())

    def delete(self, rule_id: str) -> None:
        self._request("DELETE", f"/permission/rules/{rule_id}", rule_id)


class HttpPromptNotifier:
    """Asks the relay's delivery service to push a prompt to clients."""

    def __init__(self, client: httpx.AsyncClient, max_retries: int = 3, base_delay: float = 0.5, max_delay: float = 5.0):
        self.client = client
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def _should_retry(self, error: Optional[Exception], status_code: Optional[int] = None) -> bool:
        """Determine if a request should be retried based on the error or status code."""
        if status_code is not None:
            return 500 <= status_code < 600
        return isinstance(error, (httpx.TimeoutException, httpx.NetworkError))

    async def deliver(self, prompt: InteractivePrompt) -> DeliveryResult:
        """
        Deliver a prompt with exponential backoff retry logic.

        Never raises; a delivery that could not be requested is reported as
        a failed DeliveryResult.
        """
        error = "not attempted"
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.post("/prompts/deliver", json=prompt.model_dump(mode="json"))
                if response.status_code == 200:
                    if attempt > 0:
                        logger.info(f"Delivery of {prompt.id} succeeded on attempt {attempt + 1}/{self.max_retries + 1}")
                    return DeliveryResult.model_validate(response.json())

                error = f"status {response.status_code}"
                if not self._should_retry(None, response.status_code):
                    logger.error(f"Delivery of {prompt.id} failed with status {response.status_code} (non-retryable)")
                    break
            except httpx.HTTPError as e:
                error = str(e)
                if not self._should_retry(e):
                    logger.error(f"Delivery of {prompt.id} failed with non-retryable error: {e}")
                    break

            if attempt < self.max_retries:
                logger.warning(f"Delivery of {prompt.id} failed ({error}), attempt {attempt + 1}/{self.max_retries + 1}, retrying...")
                delay = min(self.base_delay * (2 ** attempt), self.max_delay)
                # Jitter: up to 25% of the delay
                await asyncio.sleep(delay + delay * 0.25 * random.random())

        return DeliveryResult(success=False, prompt_id=prompt.id, error=f"Delivery request failed: {error}")


class RelayClient:
    """Owns the HTTP connections to one relay backend."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        request_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sync_transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {REQUEST_ID_HEADER: request_id} if request_id else {}
        self.async_client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, headers=headers, transport=transport
        )
        self.sync_client = httpx.Client(base_url=self.base_url, timeout=timeout, headers=headers, transport=sync_transport)
        self.prompts = HttpPromptStore(self.async_client)
        self.rules = HttpRuleStore(self.sync_client)
        self.notifier = HttpPromptNotifier(self.async_client)

    async def aclose(self) -> None:
        """Close the HTTP clients."""
        await self.async_client.aclose()
        self.sync_client.close()
