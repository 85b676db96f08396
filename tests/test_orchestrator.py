"""Tests for the interactive prompt orchestrator."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest

from config import ProtocolConfig
from core.exceptions import InvalidOperationError, NotFoundError, PromptNotPendingError, StoreUnavailableError
from core.models import DeliveryResult, PromptStatus, PromptType
from core.permissions import PermissionEngine, RuleType
from core.prompts import PromptOrchestrator, build_plan_review_prompt
from core.prompts.orchestrator import TIMED_OUT_REASON


def answering_notifier(store, option_id):
    """Notifier whose client answers the prompt as soon as it is delivered."""

    async def deliver(prompt):
        await store.respond(prompt.id, option_id)
        return DeliveryResult(success=True, prompt_id=prompt.id, channels_used=["primary"])

    notifier = MagicMock()
    notifier.deliver = AsyncMock(side_effect=deliver)
    return notifier


def silent_notifier():
    notifier = MagicMock()
    notifier.deliver = AsyncMock(
        side_effect=lambda prompt: DeliveryResult(success=True, prompt_id=prompt.id, channels_used=["primary"])
    )
    return notifier


def mock_store(**overrides):
    store = MagicMock()
    store.ping = AsyncMock(return_value=True)
    store.create = AsyncMock(side_effect=lambda prompt: prompt)
    store.get = AsyncMock()
    store.expire = AsyncMock()
    for name, value in overrides.items():
        setattr(store, name, value)
    return store


async def ask_npm_install(orchestrator, **kwargs):
    return await orchestrator.request_permission(
        tool="Bash",
        action="execute",
        resource="npm install",
        conversation_id="conv_1",
        project_id="proj_1",
        **kwargs,
    )


class TestDecisions:
    @pytest.mark.asyncio
    async def test_approve_and_remember(self, engine, prompt_store, rule_store, fast_config):
        notifier = answering_notifier(prompt_store, "3")
        orchestrator = PromptOrchestrator(engine, prompt_store, notifier, fast_config)

        decision = await ask_npm_install(orchestrator)

        assert decision.approved is True
        assert decision.remember is True
        assert decision.response == "yes_dont_ask"
        assert decision.reason == "User approved with remember"
        assert decision.status == PromptStatus.ANSWERED

        rules = rule_store.list_rules("proj_1")
        assert len(rules) == 1
        assert rules[0].type == RuleType.ALLOW
        assert rules[0].resource == "npm install"
        assert rules[0].project_id == "proj_1"

        # The remembered rule answers the next identical request without a prompt
        second = await ask_npm_install(orchestrator)
        assert second.approved is True
        assert second.prompt_id is None
        assert notifier.deliver.await_count == 1

    @pytest.mark.asyncio
    async def test_approve_once(self, engine, prompt_store, rule_store, fast_config):
        orchestrator = PromptOrchestrator(engine, prompt_store, answering_notifier(prompt_store, "1"), fast_config)

        decision = await ask_npm_install(orchestrator)

        assert decision.approved is True
        assert decision.remember is False
        assert decision.reason == "User approved"
        assert rule_store.list_rules("proj_1") == []

    @pytest.mark.asyncio
    async def test_deny(self, engine, prompt_store, fast_config):
        orchestrator = PromptOrchestrator(engine, prompt_store, answering_notifier(prompt_store, "2"), fast_config)

        decision = await ask_npm_install(orchestrator)

        assert decision.approved is False
        assert decision.response == "no"
        assert decision.reason == "User denied"

    @pytest.mark.asyncio
    async def test_safe_operation_skips_prompt(self, engine, prompt_store, fast_config):
        notifier = silent_notifier()
        orchestrator = PromptOrchestrator(engine, prompt_store, notifier, fast_config)

        decision = await orchestrator.request_permission(
            tool="Read", action="read", resource="/repo/README.md", conversation_id="conv_1"
        )

        assert decision.approved is True
        assert decision.status is None
        notifier.deliver.assert_not_awaited()
        assert await prompt_store.list_pending() == []

    @pytest.mark.asyncio
    async def test_dangerous_operation_skips_prompt(self, engine, prompt_store, fast_config):
        notifier = silent_notifier()
        orchestrator = PromptOrchestrator(engine, prompt_store, notifier, fast_config)

        decision = await orchestrator.request_permission(
            tool="Bash", action="execute", resource="sudo rm -rf /", conversation_id="conv_1"
        )

        assert decision.approved is False
        assert "denylist" in decision.reason
        notifier.deliver.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_plan_review(self, engine, prompt_store, fast_config):
        orchestrator = PromptOrchestrator(engine, prompt_store, answering_notifier(prompt_store, "1"), fast_config)
        prompt = build_plan_review_prompt(
            conversation_id="conv_1",
            plan="1. refactor",
            timeout=orchestrator.timeout_for(PromptType.PLAN_REVIEW),
        )

        decision = await orchestrator.request_decision(prompt)

        assert decision.approved is True
        assert decision.prompt_id == prompt.id


class TestTimeout:
    @pytest.mark.asyncio
    async def test_timeout_denies_and_records(self, engine, prompt_store, fast_config):
        orchestrator = PromptOrchestrator(engine, prompt_store, silent_notifier(), fast_config)

        decision = await ask_npm_install(orchestrator)

        assert decision.approved is False
        assert decision.timed_out is True
        assert decision.reason == TIMED_OUT_REASON
        stored = await prompt_store.get(decision.prompt_id)
        assert stored.status == PromptStatus.TIMEOUT

    @pytest.mark.asyncio
    async def test_late_answer_wins_race(self, engine, fast_config, expired_prompt):
        answered = expired_prompt.model_copy(update={"status": PromptStatus.ANSWERED, "selected_option": "1"})
        store = mock_store(
            expire=AsyncMock(side_effect=PromptNotPendingError(expired_prompt.id, "answered")),
            get=AsyncMock(return_value=answered),
        )
        orchestrator = PromptOrchestrator(engine, store, silent_notifier(), fast_config)

        decision = await orchestrator.wait_for_decision(expired_prompt)

        assert decision.approved is True
        assert decision.timed_out is False

    @pytest.mark.asyncio
    async def test_expire_failure_still_denies(self, engine, fast_config, expired_prompt):
        store = mock_store(expire=AsyncMock(side_effect=StoreUnavailableError("down")))
        orchestrator = PromptOrchestrator(engine, store, silent_notifier(), fast_config)

        decision = await orchestrator.wait_for_decision(expired_prompt)

        assert decision.approved is False
        assert decision.timed_out is True

    def test_timeout_for(self, engine, prompt_store, fast_config):
        orchestrator = PromptOrchestrator(engine, prompt_store, silent_notifier(), fast_config)

        assert orchestrator.timeout_for(PromptType.TOOL_PERMISSION) == pytest.approx(0.3)
        assert orchestrator.timeout_for(PromptType.PLAN_REVIEW) == pytest.approx(0.5)
        assert orchestrator.timeout_for(PromptType.DELEGATION, 600) == pytest.approx(1.0)


class TestStoreFailures:
    @pytest.mark.asyncio
    async def test_unhealthy_store_falls_back(self, engine, fast_config):
        store = mock_store(
            ping=AsyncMock(return_value=False),
            get=AsyncMock(side_effect=NotFoundError("InteractivePrompt", "x")),
        )
        notifier = silent_notifier()
        orchestrator = PromptOrchestrator(engine, store, notifier, fast_config)

        decision = await ask_npm_install(orchestrator)

        assert store.ping.await_count == 3
        store.create.assert_not_awaited()
        delivered = notifier.deliver.await_args.args[0]
        assert delivered.fallback_storage is True
        assert decision.approved is False
        assert "fallback storage" in decision.reason

    @pytest.mark.asyncio
    async def test_create_retries_then_succeeds(self, engine, make_prompt, fast_config):
        prompt = make_prompt()
        store = mock_store(create=AsyncMock(side_effect=[StoreUnavailableError("locked"), prompt]))
        orchestrator = PromptOrchestrator(engine, store, silent_notifier(), fast_config)

        created = await orchestrator.create_prompt(prompt)

        assert created.fallback_storage is False
        assert store.create.await_count == 2

    @pytest.mark.asyncio
    async def test_create_backoff_between_attempts(self, engine, make_prompt):
        config = ProtocolConfig(create_attempts=3, create_retry_delays=[0.1, 0.2, 0.4])
        store = mock_store(create=AsyncMock(side_effect=StoreUnavailableError("down")))
        orchestrator = PromptOrchestrator(engine, store, silent_notifier(), config)

        with patch("core.prompts.orchestrator.asyncio.sleep", new=AsyncMock()) as sleep:
            created = await orchestrator.create_prompt(make_prompt())

        assert created.fallback_storage is True
        assert sleep.await_args_list == [call(0.1), call(0.2), call(0.4)]

    @pytest.mark.asyncio
    async def test_create_retry_after_lost_response(self, engine, prompt_store, make_prompt, fast_config):
        prompt = make_prompt()
        attempts = []

        async def create_then_drop(p):
            attempts.append(p.id)
            created = await prompt_store.create(p)
            if len(attempts) == 1:
                raise StoreUnavailableError("connection reset before response")
            return created

        store = mock_store(create=AsyncMock(side_effect=create_then_drop), get=AsyncMock(side_effect=prompt_store.get))
        orchestrator = PromptOrchestrator(engine, store, silent_notifier(), fast_config)

        created = await orchestrator.create_prompt(prompt)

        assert created.id == prompt.id
        assert created.fallback_storage is False
        assert store.create.await_count == 2
        assert (await prompt_store.get(prompt.id)).status == PromptStatus.PENDING

    @pytest.mark.asyncio
    async def test_create_conflict_with_foreign_prompt(self, engine, make_prompt, fast_config):
        prompt = make_prompt()
        foreign = make_prompt(conversation_id="conv_2").model_copy(update={"id": prompt.id})
        store = mock_store(
            create=AsyncMock(side_effect=InvalidOperationError("duplicate id")),
            get=AsyncMock(return_value=foreign),
        )
        orchestrator = PromptOrchestrator(engine, store, silent_notifier(), fast_config)

        created = await orchestrator.create_prompt(prompt)

        assert created.fallback_storage is True
        assert store.create.await_count == fast_config.create_attempts

    @pytest.mark.asyncio
    async def test_poll_errors_give_up(self, engine, make_prompt, fast_config):
        store = mock_store(get=AsyncMock(side_effect=StoreUnavailableError("down")))
        orchestrator = PromptOrchestrator(engine, store, silent_notifier(), fast_config)

        decision = await orchestrator.wait_for_decision(make_prompt())

        assert decision.approved is False
        assert decision.timed_out is False
        assert "unreachable" in decision.reason
        assert store.get.await_count == fast_config.max_poll_errors

    @pytest.mark.asyncio
    async def test_poll_errors_reset_on_success(self, engine, make_prompt, fast_config):
        prompt = make_prompt()
        answered = prompt.model_copy(update={"status": PromptStatus.ANSWERED, "selected_option": "2"})
        failure = StoreUnavailableError("flaky")
        store = mock_store(get=AsyncMock(side_effect=[failure, failure, prompt, failure, failure, answered]))
        orchestrator = PromptOrchestrator(engine, store, silent_notifier(), fast_config)

        decision = await orchestrator.wait_for_decision(prompt)

        assert decision.approved is False
        assert decision.reason == "User denied"

    @pytest.mark.asyncio
    async def test_vanished_prompt_denies(self, engine, make_prompt, fast_config):
        store = mock_store(get=AsyncMock(side_effect=NotFoundError("InteractivePrompt", "prm_x")))
        orchestrator = PromptOrchestrator(engine, store, silent_notifier(), fast_config)

        decision = await orchestrator.wait_for_decision(make_prompt())

        assert decision.approved is False
        assert "no longer exists" in decision.reason

    @pytest.mark.asyncio
    async def test_delivery_errors_are_contained(self, engine, make_prompt, prompt_store, fast_config):
        notifier = MagicMock()
        notifier.deliver = AsyncMock(side_effect=RuntimeError("boom"))
        orchestrator = PromptOrchestrator(engine, prompt_store, notifier, fast_config)

        result = await orchestrator.deliver(make_prompt())

        assert result.success is False
        assert result.error == "boom"

        # The protocol still runs to a decision
        decision = await ask_npm_install(orchestrator)
        assert decision.timed_out is True


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_leaves_prompt_pending(self, engine, prompt_store, make_prompt, fast_config):
        orchestrator = PromptOrchestrator(engine, prompt_store, silent_notifier(), fast_config)
        prompt = await prompt_store.create(make_prompt(timeout=60))

        task = asyncio.create_task(orchestrator.wait_for_decision(prompt))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert (await prompt_store.get(prompt.id)).status == PromptStatus.PENDING


class SlowRuleStore:
    """Rule store whose lookups block like a slow network call."""

    def __init__(self, delay: float):
        self.delay = delay

    def list_rules(self, scope=None, rule_type=None):
        time.sleep(self.delay)
        return []

    def upsert(self, rule):
        time.sleep(self.delay)
        return rule

    def delete(self, rule_id):
        pass


async def count_ticks(coro, interval: float = 0.01):
    """Run a coroutine while a heartbeat task counts event loop ticks."""
    ticks = 0

    async def heartbeat():
        nonlocal ticks
        while True:
            await asyncio.sleep(interval)
            ticks += 1

    task = asyncio.create_task(heartbeat())
    try:
        result = await coro
    finally:
        task.cancel()
    return result, ticks


class TestEventLoopResponsiveness:
    @pytest.mark.asyncio
    async def test_rule_lookup_does_not_block_loop(self, prompt_store, fast_config):
        engine = PermissionEngine(SlowRuleStore(delay=0.3))
        orchestrator = PromptOrchestrator(engine, prompt_store, silent_notifier(), fast_config)

        decision, ticks = await count_ticks(
            orchestrator.request_permission(
                tool="Read", action="read", resource="/repo/README.md", conversation_id="conv_1"
            )
        )

        assert decision.approved is True
        assert ticks >= 5

    @pytest.mark.asyncio
    async def test_cancel_during_rule_lookup(self, prompt_store, fast_config):
        engine = PermissionEngine(SlowRuleStore(delay=0.5))
        orchestrator = PromptOrchestrator(engine, prompt_store, silent_notifier(), fast_config)

        task = asyncio.create_task(ask_npm_install(orchestrator))
        await asyncio.sleep(0.05)
        started = time.monotonic()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert time.monotonic() - started < 0.3
