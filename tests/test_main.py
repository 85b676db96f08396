"""Tests for the server entry point: lifespan and expiry sweep."""

import asyncio
import contextlib

import pytest
from fastapi.testclient import TestClient

from config import RelayConfig, ServerConfig
from core.models import PromptStatus
from main import build_app, expire_overdue_prompts
from server import build_services, create_app


@pytest.fixture
def config(db_path, fast_config):
    return RelayConfig(protocol=fast_config, server=ServerConfig(database_path=db_path))


def test_lifespan_builds_services(config):
    with TestClient(build_app(config)) as client:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["store"] is True


@pytest.mark.asyncio
async def test_sweep_expires_overdue_prompts(config, make_prompt, expired_prompt):
    app = create_app(build_services(config))
    store = app.state.services.prompt_store
    live = await store.create(make_prompt())
    await store.create(expired_prompt)

    sweeper = asyncio.create_task(expire_overdue_prompts(app, interval=0.01))
    await asyncio.sleep(0.1)
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper

    assert (await store.get(expired_prompt.id)).status == PromptStatus.TIMEOUT
    assert (await store.get(live.id)).status == PromptStatus.PENDING
