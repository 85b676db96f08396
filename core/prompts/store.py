"""Durable storage for interactive prompts.

The prompt store is the single source of truth for prompt state and the
only channel between the agent executor and the backend. Terminal
transitions are conditional on the current status being pending, so
exactly one writer wins.
"""

import asyncio
import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Protocol

from core import db
from core.exceptions import InvalidOperationError, NotFoundError, PromptNotPendingError, StoreUnavailableError
from core.models import InteractivePrompt, PromptStatus

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS interactive_prompts (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    project_id TEXT,
    session_id TEXT,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    options TEXT NOT NULL,
    context TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    selected_option TEXT,
    timeout_at REAL NOT NULL,
    created_at REAL NOT NULL,
    responded_at REAL,
    pickup_requested_at REAL
);
CREATE INDEX IF NOT EXISTS interactive_prompts_conversation_idx ON interactive_prompts (conversation_id);
CREATE INDEX IF NOT EXISTS interactive_prompts_status_idx ON interactive_prompts (status);
CREATE INDEX IF NOT EXISTS interactive_prompts_timeout_idx ON interactive_prompts (timeout_at);
"""


class PromptStore(Protocol):
    """Create/read/update access to interactive prompts."""

    async def ping(self) -> bool:
        """Lightweight health probe."""
        ...

    async def create(self, prompt: InteractivePrompt) -> InteractivePrompt:
        ...

    async def get(self, prompt_id: str) -> InteractivePrompt:
        """Raises NotFoundError when the prompt does not exist."""
        ...

    async def respond(self, prompt_id: str, option_id: str) -> InteractivePrompt:
        """Transition pending -> answered; raises PromptNotPendingError otherwise."""
        ...

    async def expire(self, prompt_id: str) -> InteractivePrompt:
        """Transition pending -> timeout; raises PromptNotPendingError otherwise."""
        ...

    async def list_pending(self, conversation_id: str | None = None, pickup_only: bool = False) -> list[InteractivePrompt]:
        ...

    async def mark_for_pickup(self, prompt_id: str) -> None:
        """Flag a prompt for the pull-based delivery channel."""
        ...


def _row_to_prompt(row: sqlite3.Row) -> InteractivePrompt:
    data: dict[str, Any] = dict(row)
    data["options"] = json.loads(data["options"])
    data["context"] = json.loads(data["context"])
    return InteractivePrompt.model_validate(data)


class SqlitePromptStore:
    """SQLite-backed prompt store used by the backend process."""

    def __init__(self, db_path: Path):
        """
        Initialize the prompt store.

        Args:
            db_path: SQLite database file
        """
        self.db_path = db_path
        db.ensure_schema(db_path, SCHEMA)

    def _execute(self, query: str, params: tuple = ()) -> tuple[list[sqlite3.Row], int]:
        """Run one statement; returns (rows, rowcount)."""
        try:
            with db.connection(self.db_path) as conn:
                cursor = conn.execute(query, params)
                return cursor.fetchall(), cursor.rowcount
        except sqlite3.IntegrityError as e:
            raise InvalidOperationError(f"Prompt store constraint violated: {e}") from e
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Prompt store error: {e}") from e

    def _fetch(self, prompt_id: str) -> InteractivePrompt:
        rows, _ = self._execute("SELECT * FROM interactive_prompts WHERE id = ?", (prompt_id,))
        if not rows:
            raise NotFoundError("InteractivePrompt", prompt_id)
        return _row_to_prompt(rows[0])

    async def _run(self, query: str, params: tuple = ()) -> tuple[list[sqlite3.Row], int]:
        """Run one statement in a worker thread."""
        return await asyncio.to_thread(self._execute, query, params)

    async def _get(self, prompt_id: str) -> InteractivePrompt:
        return await asyncio.to_thread(self._fetch, prompt_id)

    async def ping(self) -> bool:
        return await asyncio.to_thread(db.ping, self.db_path)

    async def create(self, prompt: InteractivePrompt) -> InteractivePrompt:
        if prompt.fallback_storage:
            raise InvalidOperationError(f"Prompt {prompt.id} is held in fallback storage")

        await self._run(
            """
            INSERT INTO interactive_prompts (
                id, conversation_id, project_id, session_id, type, title, message,
                options, context, status, selected_option, timeout_at, created_at,
                responded_at, pickup_requested_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                prompt.id,
                prompt.conversation_id,
                prompt.project_id,
                prompt.session_id,
                prompt.type.value,
                prompt.title,
                prompt.message,
                json.dumps([option.model_dump() for option in prompt.options]),
                prompt.context.model_dump_json(),
                prompt.status.value,
                prompt.selected_option,
                prompt.timeout_at,
                prompt.created_at,
                prompt.responded_at,
                prompt.pickup_requested_at,
            ),
        )
        logger.info("Created prompt %s (%s) for conversation %s", prompt.id, prompt.type.value, prompt.conversation_id)
        return prompt

    async def get(self, prompt_id: str) -> InteractivePrompt:
        return await self._get(prompt_id)

    async def respond(self, prompt_id: str, option_id: str) -> InteractivePrompt:
        prompt = await self._get(prompt_id)
        if prompt.is_terminal:
            raise PromptNotPendingError(prompt_id, prompt.status.value)
        if prompt.option(option_id) is None:
            raise InvalidOperationError(f"Option {option_id} is not valid for prompt {prompt_id}")

        now = time.time()
        if prompt.timeout_at <= now:
            expired = await self.expire(prompt_id)
            raise PromptNotPendingError(prompt_id, expired.status.value)

        _, updated = await self._run(
            """
            UPDATE interactive_prompts
            SET status = ?, selected_option = ?, responded_at = ?
            WHERE id = ? AND status = ?
            """,
            (PromptStatus.ANSWERED.value, option_id, now, prompt_id, PromptStatus.PENDING.value),
        )
        if updated == 0:
            current = await self._get(prompt_id)
            raise PromptNotPendingError(prompt_id, current.status.value)

        logger.info("Prompt %s answered with option %s", prompt_id, option_id)
        return await self._get(prompt_id)

    async def expire(self, prompt_id: str) -> InteractivePrompt:
        _, updated = await self._run(
            """
            UPDATE interactive_prompts
            SET status = ?, responded_at = ?
            WHERE id = ? AND status = ?
            """,
            (PromptStatus.TIMEOUT.value, time.time(), prompt_id, PromptStatus.PENDING.value),
        )
        current = await self._get(prompt_id)
        if updated == 0:
            raise PromptNotPendingError(prompt_id, current.status.value)

        logger.info("Prompt %s timed out", prompt_id)
        return current

    async def expire_overdue(self, now: float | None = None) -> int:
        """Time out every pending prompt whose deadline has passed."""
        _, updated = await self._run(
            """
            UPDATE interactive_prompts
            SET status = ?, responded_at = ?
            WHERE status = ? AND timeout_at <= ?
            """,
            (PromptStatus.TIMEOUT.value, time.time(), PromptStatus.PENDING.value, now or time.time()),
        )
        if updated:
            logger.info("Expired %d overdue prompts", updated)
        return updated

    async def list_pending(self, conversation_id: str | None = None, pickup_only: bool = False) -> list[InteractivePrompt]:
        query = "SELECT * FROM interactive_prompts WHERE status = ?"
        params: list[Any] = [PromptStatus.PENDING.value]
        if conversation_id is not None:
            query += " AND conversation_id = ?"
            params.append(conversation_id)
        if pickup_only:
            query += " AND pickup_requested_at IS NOT NULL"
        query += " ORDER BY created_at DESC"

        rows, _ = await self._run(query, tuple(params))
        return [_row_to_prompt(row) for row in rows]

    async def mark_for_pickup(self, prompt_id: str) -> None:
        _, updated = await self._run(
            "UPDATE interactive_prompts SET pickup_requested_at = ? WHERE id = ?",
            (time.time(), prompt_id),
        )
        if updated == 0:
            raise NotFoundError("InteractivePrompt", prompt_id)
