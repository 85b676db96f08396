"""
Server-side service container.

Services are built once at startup and stored on ``app.state``; routes
receive them through the ``get_services`` dependency.
"""

import logging
from dataclasses import dataclass

from fastapi import Request

from config import RelayConfig
from core.delivery import DeliveryService
from core.permissions import PermissionEngine, SqliteRuleStore
from core.prompts import PromptOrchestrator, SqlitePromptStore

from .event_bus import SSEEventBus

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: RelayConfig
    event_bus: SSEEventBus
    prompt_store: SqlitePromptStore
    rule_store: SqliteRuleStore
    engine: PermissionEngine
    delivery: DeliveryService
    orchestrator: PromptOrchestrator


def build_services(config: RelayConfig) -> Services:
    """Wire the backend services for one process."""
    db_path = config.server.database_path
    logger.info("Using database %s", db_path)

    event_bus = SSEEventBus()
    prompt_store = SqlitePromptStore(db_path)
    rule_store = SqliteRuleStore(db_path)
    engine = PermissionEngine(rule_store)
    delivery = DeliveryService(event_bus, prompt_store, config.protocol)
    orchestrator = PromptOrchestrator(engine, prompt_store, delivery, config.protocol)

    return Services(
        config=config,
        event_bus=event_bus,
        prompt_store=prompt_store,
        rule_store=rule_store,
        engine=engine,
        delivery=delivery,
        orchestrator=orchestrator,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the process's services."""
    return request.app.state.services
