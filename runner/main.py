"""
Agent runner - executor-side entry point.

Runs an agent command as a subprocess, renders its event stream and gates
its tool invocations through the relay's permission engine and prompt
protocol.

Usage:
    agent-relay-runner --conversation-id conv_123 -- my-agent --flag

Environment variables:
- RELAY_URL: Base URL of the relay server (default: http://localhost:8000)
- CONVERSATION_ID: Conversation identifier (if not given on the command line)
- PROJECT_ID: Owning project, scopes permission rules
- WORKING_DIR: Agent working directory (default: current directory)
- LOG_LEVEL: Log level (default: INFO)
"""

import argparse
import asyncio
import os
import signal
import sys
from typing import Optional

from config import load_config
from core.permissions import PermissionEngine
from core.prompts import PromptOrchestrator

from .bridge import AgentBridge
from .client import RelayClient
from .gate import PermissionGate
from .logger import configure_logging, get_logger

logger = get_logger(__name__)

DEFAULT_RELAY_URL = "http://localhost:8000"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="agent-relay-runner", description=__doc__.splitlines()[1])
    parser.add_argument("--relay-url", default=os.environ.get("RELAY_URL", DEFAULT_RELAY_URL))
    parser.add_argument("--conversation-id", default=os.environ.get("CONVERSATION_ID"))
    parser.add_argument("--project-id", default=os.environ.get("PROJECT_ID"))
    parser.add_argument("--working-dir", default=os.environ.get("WORKING_DIR", os.getcwd()))
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Agent command, after --")
    args = parser.parse_args(argv)

    if args.command and args.command[0] == "--":
        args.command = args.command[1:]
    if not args.conversation_id:
        parser.error("--conversation-id or CONVERSATION_ID is required")
    if not args.command:
        parser.error("an agent command is required")
    return args


async def run(args: argparse.Namespace) -> int:
    """Wire the relay clients and bridge one agent run."""
    config = load_config()
    client = RelayClient(args.relay_url, request_id=os.environ.get("REQUEST_ID"))

    engine = PermissionEngine(client.rules)
    orchestrator = PromptOrchestrator(engine, client.prompts, client.notifier, config.protocol)
    gate = PermissionGate(
        engine,
        orchestrator,
        conversation_id=args.conversation_id,
        project_id=args.project_id,
        working_directory=args.working_dir,
    )
    bridge = AgentBridge(gate)

    task = asyncio.ensure_future(bridge.run(args.command, cwd=args.working_dir))
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, task.cancel)

    try:
        return await task
    except asyncio.CancelledError:
        logger.info("Runner aborted")
        return 130
    finally:
        await client.aclose()


def main() -> None:
    """Main entry point."""
    args = parse_args()
    configure_logging(level=args.log_level, conversation_id=args.conversation_id)
    logger.info(f"Relay: {args.relay_url}, conversation: {args.conversation_id}")

    try:
        exit_code = asyncio.run(run(args))
    except OSError as e:
        logger.error(f"Failed to start agent: {e}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
