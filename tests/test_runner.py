"""Tests for the agent runner: relay clients, permission gate and bridge."""

import asyncio
import io
import json
import logging
import sys
import time

import httpx
import pytest
import pytest_asyncio

from config import RelayConfig, ServerConfig
from core.exceptions import InvalidOperationError, NotFoundError, PromptNotPendingError, StoreUnavailableError
from core.models import DeliveryResult, MessageItem, PlanReviewItem, PromptStatus, ToolDisplayState, ToolMessage
from core.permissions import PermissionEngine, PermissionRule, RuleType
from core.prompts import PromptOrchestrator
from runner.bridge import AgentBridge, decision_message
from runner.client import HttpPromptNotifier, HttpRuleStore, RelayClient, raise_for_status
from runner.gate import PermissionGate
from runner.logger import StructuredFormatter
from runner.main import parse_args
from server import build_services, create_app


class FakeWriter:
    """Collects what the bridge writes to the agent's stdin."""

    def __init__(self):
        self.lines: list[dict] = []

    def write(self, data: bytes) -> None:
        self.lines.append(json.loads(data.decode()))

    async def drain(self) -> None:
        pass


class AnsweringNotifier:
    """Answers every delivered prompt with a fixed option."""

    def __init__(self, store, option_id):
        self.store = store
        self.option_id = option_id
        self.delivered = []

    async def deliver(self, prompt):
        self.delivered.append(prompt)
        await self.store.respond(prompt.id, self.option_id)
        return DeliveryResult(success=True, prompt_id=prompt.id, channels_used=["primary"])


def stream_line(kind, **data):
    return json.dumps({"kind": kind, "data": data})


class TestRaiseForStatus:
    def test_success_passes(self):
        raise_for_status(httpx.Response(200, json={}), "InteractivePrompt", "prm_1")

    @pytest.mark.parametrize(
        "status,error",
        [
            (404, NotFoundError),
            (400, InvalidOperationError),
            (422, InvalidOperationError),
            (503, StoreUnavailableError),
            (500, StoreUnavailableError),
        ],
    )
    def test_mapping(self, status, error):
        with pytest.raises(error):
            raise_for_status(httpx.Response(status, json={"detail": "x"}), "InteractivePrompt", "prm_1")

    def test_conflict_carries_status(self):
        response = httpx.Response(409, json={"detail": "Prompt prm_1 is not pending (status: timeout)"})
        with pytest.raises(PromptNotPendingError) as exc_info:
            raise_for_status(response, "InteractivePrompt", "prm_1")
        assert exc_info.value.status == "timeout"

    def test_non_json_body(self):
        with pytest.raises(StoreUnavailableError, match="Bad Gateway"):
            raise_for_status(httpx.Response(502, text="Bad Gateway"), "InteractivePrompt", "prm_1")


class TestHttpPromptStore:
    @pytest.fixture
    def services(self, db_path, fast_config):
        return build_services(RelayConfig(protocol=fast_config, server=ServerConfig(database_path=db_path)))

    @pytest_asyncio.fixture
    async def relay(self, services):
        client = RelayClient("http://relay", transport=httpx.ASGITransport(app=create_app(services)))
        yield client
        await client.aclose()

    @pytest.mark.asyncio
    async def test_prompt_lifecycle(self, relay, make_prompt):
        prompt = make_prompt()

        assert await relay.prompts.ping() is True
        created = await relay.prompts.create(prompt)
        assert created.id == prompt.id

        pending = await relay.prompts.list_pending("conv_1")
        assert [p.id for p in pending] == [prompt.id]

        answered = await relay.prompts.respond(prompt.id, "1")
        assert answered.status == PromptStatus.ANSWERED
        assert (await relay.prompts.get(prompt.id)).selected_option == "1"

        with pytest.raises(PromptNotPendingError) as exc_info:
            await relay.prompts.expire(prompt.id)
        assert exc_info.value.status == "answered"

    @pytest.mark.asyncio
    async def test_missing_prompt(self, relay):
        with pytest.raises(NotFoundError):
            await relay.prompts.get("prm_missing")

    @pytest.mark.asyncio
    async def test_list_pending_requires_conversation(self, relay):
        with pytest.raises(InvalidOperationError):
            await relay.prompts.list_pending()

    @pytest.mark.asyncio
    async def test_notifier_reaches_delivery_service(self, relay, make_prompt):
        prompt = make_prompt()
        await relay.prompts.create(prompt)

        result = await relay.notifier.deliver(prompt)
        assert result.success is True
        assert result.channels_used == ["secondary"]

    @pytest.mark.asyncio
    async def test_unreachable_relay(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = RelayClient("http://relay", transport=httpx.MockTransport(refuse))
        try:
            assert await client.prompts.ping() is False
            with pytest.raises(StoreUnavailableError):
                await client.prompts.get("prm_1")
        finally:
            await client.aclose()


class TestHttpRuleStore:
    def test_list_and_upsert(self):
        rule = PermissionRule(tool="Bash", action="execute", resource="make", type=RuleType.ALLOW, project_id="p1")
        deny = PermissionRule(tool="Bash", action="*", resource="curl", type=RuleType.DENY)
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.method == "GET":
                return httpx.Response(200, json=[rule.model_dump(mode="json"), deny.model_dump(mode="json")])
            return httpx.Response(200, json=rule.model_dump(mode="json"))

        store = HttpRuleStore(httpx.Client(base_url="http://relay", transport=httpx.MockTransport(handler)))

        assert [r.id for r in store.list_rules("p1")] == [rule.id, deny.id]
        assert [r.id for r in store.list_rules("p1", RuleType.DENY)] == [deny.id]
        assert seen[0].url.params["projectID"] == "p1"

        stored = store.upsert(rule)
        assert stored.id == rule.id
        body = json.loads(seen[-1].content)
        assert seen[-1].method == "PUT"
        assert body == {"tool": "Bash", "action": "execute", "resource": "make", "type": "allow", "projectID": "p1"}

    def test_engine_fails_closed_when_relay_is_down(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = HttpRuleStore(httpx.Client(base_url="http://relay", transport=httpx.MockTransport(refuse)))
        verdict = PermissionEngine(store).decide("Bash", "execute", "make")
        assert verdict.decision.value == "NEEDS_PROMPT"


class TestHttpPromptNotifier:
    @pytest.mark.asyncio
    async def test_retries_server_errors(self, make_prompt):
        prompt = make_prompt()
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"success": True, "prompt_id": prompt.id, "channels_used": ["primary"]})

        client = httpx.AsyncClient(base_url="http://relay", transport=httpx.MockTransport(handler))
        notifier = HttpPromptNotifier(client, max_retries=3, base_delay=0.0)

        result = await notifier.deliver(prompt)
        await client.aclose()

        assert result.success is True
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self, make_prompt):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(422, json={"detail": "bad"})

        client = httpx.AsyncClient(base_url="http://relay", transport=httpx.MockTransport(handler))
        result = await HttpPromptNotifier(client, base_delay=0.0).deliver(make_prompt())
        await client.aclose()

        assert result.success is False
        assert "422" in result.error
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self, make_prompt):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(base_url="http://relay", transport=httpx.MockTransport(handler))
        result = await HttpPromptNotifier(client, max_retries=2, base_delay=0.0).deliver(make_prompt())
        await client.aclose()

        assert result.success is False
        assert "connection refused" in result.error
        assert len(calls) == 3


class TestAgentBridge:
    def make_bridge(self, engine, prompt_store, fast_config, option_id):
        notifier = AnsweringNotifier(prompt_store, option_id)
        orchestrator = PromptOrchestrator(engine, prompt_store, notifier, fast_config)
        gate = PermissionGate(engine, orchestrator, conversation_id="conv_1", project_id="proj_1")
        output = io.StringIO()
        return AgentBridge(gate, output=output), notifier, output

    @pytest.mark.asyncio
    async def test_auto_allowed_tool_answered_immediately(self, engine, prompt_store, fast_config):
        bridge, notifier, _ = self.make_bridge(engine, prompt_store, fast_config, "1")
        stdin = FakeWriter()

        await bridge.handle_line(
            stream_line("tool_invocation", id="t1", name="Read", input={"file_path": "/a"}, awaiting_permission=True),
            stdin,
        )

        assert stdin.lines == [decision_message("t1", True, stdin.lines[0]["reason"])]
        assert stdin.lines[0]["approved"] is True
        assert notifier.delivered == []

    @pytest.mark.asyncio
    async def test_slow_rule_lookup_keeps_loop_running(self, prompt_store, fast_config):
        def slow_rules(request: httpx.Request) -> httpx.Response:
            time.sleep(0.3)
            return httpx.Response(200, json=[])

        rules = HttpRuleStore(httpx.Client(base_url="http://relay", transport=httpx.MockTransport(slow_rules)))
        bridge, _, _ = self.make_bridge(PermissionEngine(rules), prompt_store, fast_config, "1")
        stdin = FakeWriter()
        ticks = 0

        async def heartbeat():
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        task = asyncio.create_task(heartbeat())
        try:
            await bridge.handle_line(
                stream_line("tool_invocation", id="t9", name="Read", input={"file_path": "/a"}, awaiting_permission=True),
                stdin,
            )
        finally:
            task.cancel()

        assert stdin.lines[0]["approved"] is True
        assert ticks >= 5

    @pytest.mark.asyncio
    async def test_prompted_tool_denied(self, engine, prompt_store, fast_config):
        bridge, notifier, output = self.make_bridge(engine, prompt_store, fast_config, "2")
        stdin = FakeWriter()

        items = await bridge.handle_line(
            stream_line("tool_invocation", id="t2", name="Bash", input={"command": "make"}, awaiting_permission=True),
            stdin,
        )

        assert stdin.lines == [decision_message("t2", False, "User denied")]
        assert len(notifier.delivered) == 1
        tool = items[0]
        assert isinstance(tool, MessageItem) and isinstance(tool.data, ToolMessage)
        assert tool.data.state == ToolDisplayState.BLOCKED

        rendered = [json.loads(line) for line in output.getvalue().splitlines()]
        assert rendered[0]["data"]["state"] == "blocked"

    @pytest.mark.asyncio
    async def test_remembered_decision(self, engine, prompt_store, rule_store, fast_config):
        bridge, _, _ = self.make_bridge(engine, prompt_store, fast_config, "3")
        stdin = FakeWriter()

        await bridge.handle_line(
            stream_line("tool_invocation", id="t3", name="Bash", input={"command": "make"}, awaiting_permission=True),
            stdin,
        )

        assert stdin.lines[0]["approved"] is True
        assert stdin.lines[0]["remember"] is True
        assert [r.resource for r in rule_store.list_rules("proj_1")] == ["make"]

    @pytest.mark.asyncio
    async def test_plan_review(self, engine, prompt_store, fast_config):
        bridge, notifier, _ = self.make_bridge(engine, prompt_store, fast_config, "1")
        stdin = FakeWriter()

        items = await bridge.handle_line(
            stream_line("tool_invocation", id="t4", name="ExitPlanMode", input={"plan": "ship"}, awaiting_permission=True),
            stdin,
        )

        assert stdin.lines[0]["approved"] is True
        assert isinstance(items[0], PlanReviewItem)
        assert items[0].prompt_id == notifier.delivered[0].id

    @pytest.mark.asyncio
    async def test_delegation_prompt_for_task_tool(self, engine, prompt_store, fast_config):
        bridge, notifier, _ = self.make_bridge(engine, prompt_store, fast_config, "1")
        stdin = FakeWriter()

        await bridge.handle_line(
            stream_line(
                "tool_invocation",
                id="t5",
                name="Task",
                input={"description": "write docs", "prompt": "Write the docs"},
                awaiting_permission=True,
            ),
            stdin,
        )

        assert notifier.delivered[0].type.value == "delegation"
        assert notifier.delivered[0].context.task == "Write the docs"
        assert stdin.lines[0]["approved"] is True

    @pytest.mark.asyncio
    async def test_non_blocking_events_write_nothing(self, engine, prompt_store, fast_config):
        bridge, _, output = self.make_bridge(engine, prompt_store, fast_config, "1")
        stdin = FakeWriter()

        await bridge.handle_line(stream_line("agent_text", text="thinking"), stdin)
        await bridge.handle_line(stream_line("tool_invocation", id="t6", name="Bash", input={"command": "ls"}), stdin)

        assert stdin.lines == []
        assert len(output.getvalue().splitlines()) == 2

    @pytest.mark.asyncio
    async def test_session_id_reaches_gate(self, engine, prompt_store, fast_config):
        bridge, _, _ = self.make_bridge(engine, prompt_store, fast_config, "1")

        await bridge.handle_line(json.dumps({"kind": "status", "sessionId": "sess_1", "data": {"message": "init"}}))

        assert bridge.gate.session_id == "sess_1"


class TestStructuredFormatter:
    def test_json_output(self, monkeypatch):
        monkeypatch.setenv("CONVERSATION_ID", "conv_9")
        monkeypatch.setenv("REQUEST_ID", "req-456")

        buffer = io.StringIO()
        handler = logging.StreamHandler(buffer)
        handler.setFormatter(StructuredFormatter())
        logger = logging.getLogger("test.runner.formatter")
        logger.handlers = [handler]
        logger.propagate = False
        logger.setLevel(logging.INFO)

        logger.info("Test message", extra={"tool": "Bash"})
        entry = json.loads(buffer.getvalue().strip())

        assert entry["level"] == "INFO"
        assert entry["service"] == "agent-runner"
        assert entry["message"] == "Test message"
        assert entry["conversation_id"] == "conv_9"
        assert entry["request_id"] == "req-456"
        assert entry["context"] == {"tool": "Bash"}

    def test_exception_details(self, monkeypatch):
        monkeypatch.delenv("CONVERSATION_ID", raising=False)
        monkeypatch.delenv("REQUEST_ID", raising=False)
        formatter = StructuredFormatter()
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())

        entry = json.loads(formatter.format(record))
        assert entry["error"] == "boom"
        assert "ValueError" in entry["stack"]
        assert "conversation_id" not in entry


class TestParseArgs:
    def test_command_after_separator(self, monkeypatch):
        monkeypatch.delenv("CONVERSATION_ID", raising=False)
        args = parse_args(["--conversation-id", "conv_1", "--", "my-agent", "--verbose"])
        assert args.conversation_id == "conv_1"
        assert args.command == ["my-agent", "--verbose"]

    def test_conversation_from_env(self, monkeypatch):
        monkeypatch.setenv("CONVERSATION_ID", "conv_env")
        args = parse_args(["my-agent"])
        assert args.conversation_id == "conv_env"

    def test_conversation_required(self, monkeypatch):
        monkeypatch.delenv("CONVERSATION_ID", raising=False)
        with pytest.raises(SystemExit):
            parse_args(["my-agent"])
