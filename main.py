"""
Agent relay server entry point.
"""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from config import RelayConfig, load_config
from core import CoreError
from server import build_services, create_app
from server.logging_config import log_timing, setup_logging

# Initialize logging before anything else
setup_logging()
logger = logging.getLogger(__name__)

# Seconds between sweeps that time out overdue prompts
EXPIRY_SWEEP_INTERVAL = 5.0


async def expire_overdue_prompts(app: FastAPI, interval: float = EXPIRY_SWEEP_INTERVAL) -> None:
    """Periodically move pending prompts past their deadline to timeout."""
    store = app.state.services.prompt_store
    while True:
        await asyncio.sleep(interval)
        try:
            with log_timing(logger, "Expiry sweep"):
                await store.expire_overdue()
        except CoreError as e:
            logger.warning("Expiry sweep failed: %s", e)


def build_app(config: RelayConfig) -> FastAPI:
    """Create the application with a lifespan that owns the services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting agent relay server")
        app.state.services = build_services(config)
        sweeper = asyncio.create_task(expire_overdue_prompts(app))
        logger.info("Agent relay ready")

        yield

        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        logger.info("Agent relay stopped")

    return create_app(cors_origins=config.server.cors_origins, lifespan=lifespan)


def main() -> None:
    """Start the relay server."""
    config = load_config()
    app = build_app(config)

    logger.info("Server listening on %s:%d", config.server.host, config.server.port)
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
