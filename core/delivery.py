"""
Prompt delivery service.

Pushes newly created prompts to connected clients through ordered
channels and tracks client acknowledgments:

1. primary: push to the conversation's (and project's) subscriber groups
2. secondary: flag the prompt for pull-based pickup in the store
3. emergency: broadcast to every connected client

A later channel is only tried when every earlier one failed. Delivery and
acknowledgment records live in this process only and expire after a fixed
window.
"""

import logging
import time
from typing import Any, Callable

from config import ProtocolConfig
from .events import Event, EventBus, conversation_group, project_group
from .exceptions import CoreError, InvalidOperationError, NotFoundError
from .models import DeliveryResult, InteractivePrompt, gen_id
from .prompts.store import PromptStore

logger = logging.getLogger(__name__)

CHANNEL_PRIMARY = "primary"
CHANNEL_SECONDARY = "secondary"
CHANNEL_EMERGENCY = "emergency"


def prompt_payload(prompt: InteractivePrompt) -> dict[str, Any]:
    return prompt.model_dump(mode="json")


class DeliveryService:
    """
    Delivers prompts to clients and tracks their acknowledgments.

    Constructed once per backend process and injected where needed.
    """

    def __init__(
        self,
        event_bus: EventBus,
        store: PromptStore,
        config: ProtocolConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the delivery service.

        Args:
            event_bus: Bus used for push channels
            store: Prompt store used for the pickup channel
            config: Protocol settings (acknowledgment expiry)
            clock: Time source, injectable for tests
        """
        self.event_bus = event_bus
        self.store = store
        self.config = config or ProtocolConfig()
        self.clock = clock

        # prompt_id -> (attempts, last attempt time)
        self._attempts: dict[str, tuple[int, float]] = {}
        # delivery_id -> (prompt_id, created time)
        self._deliveries: dict[str, tuple[str, float]] = {}
        # prompt_id -> (acknowledged time, client info)
        self._acks: dict[str, tuple[float, dict[str, Any]]] = {}
        self._channel_counts: dict[str, int] = {
            CHANNEL_PRIMARY: 0,
            CHANNEL_SECONDARY: 0,
            CHANNEL_EMERGENCY: 0,
        }
        self._failures = 0

    async def deliver(self, prompt: InteractivePrompt) -> DeliveryResult:
        """
        Deliver a prompt through the first channel that succeeds.

        Never raises; a failed delivery is reported in the result.
        """
        self._prune()

        attempts = self._attempts.get(prompt.id, (0, 0.0))[0] + 1
        now = self.clock()
        self._attempts[prompt.id] = (attempts, now)

        delivery_id = gen_id("dlv_")
        self._deliveries[delivery_id] = (prompt.id, now)

        channels: list[str] = []
        errors: list[str] = []

        try:
            if await self._deliver_primary(prompt, delivery_id):
                channels.append(CHANNEL_PRIMARY)
            else:
                errors.append("no subscribers for conversation")
        except Exception as e:
            logger.exception("Primary delivery failed for prompt %s", prompt.id)
            errors.append(f"primary: {e}")

        if not channels:
            try:
                await self._deliver_secondary(prompt)
                channels.append(CHANNEL_SECONDARY)
            except Exception as e:
                logger.warning("Secondary delivery failed for prompt %s: %s", prompt.id, e)
                errors.append(f"secondary: {e}")

        if not channels:
            try:
                if await self._deliver_emergency(prompt, delivery_id):
                    channels.append(CHANNEL_EMERGENCY)
                else:
                    errors.append("emergency: no connected clients")
            except Exception as e:
                logger.exception("Emergency delivery failed for prompt %s", prompt.id)
                errors.append(f"emergency: {e}")

        for channel in channels:
            self._channel_counts[channel] += 1

        if not channels:
            self._failures += 1
            logger.error("Prompt %s could not be delivered (attempt %d): %s", prompt.id, attempts, "; ".join(errors))
            return DeliveryResult(
                success=False,
                prompt_id=prompt.id,
                attempts=attempts,
                delivery_id=delivery_id,
                error="; ".join(errors),
            )

        logger.info("Delivered prompt %s via %s (attempt %d)", prompt.id, channels[0], attempts)
        return DeliveryResult(
            success=True,
            prompt_id=prompt.id,
            channels_used=channels,
            attempts=attempts,
            delivery_id=delivery_id,
        )

    async def _deliver_primary(self, prompt: InteractivePrompt, delivery_id: str) -> bool:
        event = Event(
            type="interactive_prompt",
            properties={
                "prompt": prompt_payload(prompt),
                "requiresAck": True,
                "deliveryId": delivery_id,
                "timestamp": self.clock(),
            },
        )
        received = await self.event_bus.publish_to([conversation_group(prompt.conversation_id)], event)

        if prompt.project_id:
            notice = Event(
                type="permission_request",
                properties={
                    "promptId": prompt.id,
                    "conversationId": prompt.conversation_id,
                    "projectId": prompt.project_id,
                    "type": prompt.type.value,
                    "title": prompt.title,
                    "timestamp": self.clock(),
                },
            )
            try:
                await self.event_bus.publish_to([project_group(prompt.project_id)], notice)
            except Exception as e:
                logger.warning("Project notification failed for prompt %s: %s", prompt.id, e)

        logger.debug("Prompt %s pushed to %d subscriber(s)", prompt.id, received)
        return received > 0

    async def _deliver_secondary(self, prompt: InteractivePrompt) -> None:
        if prompt.fallback_storage:
            raise InvalidOperationError("prompt is held in fallback storage")
        await self.store.mark_for_pickup(prompt.id)

    async def _deliver_emergency(self, prompt: InteractivePrompt, delivery_id: str) -> bool:
        event = Event(
            type="emergency_prompt",
            properties={
                "prompt": prompt_payload(prompt),
                "deliveryId": delivery_id,
                "conversationId": prompt.conversation_id,
                "timestamp": self.clock(),
            },
        )
        return await self.event_bus.publish(event) > 0

    async def acknowledge(
        self,
        delivery_id: str | None = None,
        prompt_id: str | None = None,
        client_info: dict[str, Any] | None = None,
    ) -> str:
        """
        Record a client's receipt confirmation.

        Args:
            delivery_id: Delivery id from the pushed event
            prompt_id: Prompt id, used when the delivery id is unknown
            client_info: Client metadata sent with the confirmation

        Returns:
            The acknowledged prompt id

        Raises:
            NotFoundError: If neither id refers to a known delivery
        """
        self._prune()

        resolved = None
        if delivery_id is not None and delivery_id in self._deliveries:
            resolved = self._deliveries[delivery_id][0]
        elif prompt_id is not None and prompt_id in self._attempts:
            resolved = prompt_id
        if resolved is None:
            raise NotFoundError("Delivery", delivery_id or prompt_id or "")

        self._acks[resolved] = (self.clock(), client_info or {})
        logger.info("Prompt %s acknowledged by client", resolved)

        try:
            await self.event_bus.publish_to(
                [conversation_group(await self._conversation_of(resolved))],
                Event(
                    type="acknowledgment_confirmed",
                    properties={"promptId": resolved, "deliveryId": delivery_id, "timestamp": self.clock()},
                ),
            )
        except CoreError as e:
            logger.debug("Could not confirm acknowledgment for prompt %s: %s", resolved, e)
        return resolved

    async def _conversation_of(self, prompt_id: str) -> str:
        prompt = await self.store.get(prompt_id)
        return prompt.conversation_id

    def is_acknowledged(self, prompt_id: str) -> bool:
        self._prune()
        return prompt_id in self._acks

    def stats(self) -> dict[str, Any]:
        """Delivery counters for this process."""
        self._prune()
        return {
            "tracked_prompts": len(self._attempts),
            "active_deliveries": len(self._deliveries),
            "acknowledged": len(self._acks),
            "channels": dict(self._channel_counts),
            "failures": self._failures,
        }

    def _prune(self) -> None:
        cutoff = self.clock() - self.config.ack_expiry
        self._attempts = {k: v for k, v in self._attempts.items() if v[1] > cutoff}
        self._deliveries = {k: v for k, v in self._deliveries.items() if v[1] > cutoff}
        self._acks = {k: v for k, v in self._acks.items() if v[0] > cutoff}
