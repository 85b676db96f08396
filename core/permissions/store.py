"""Persistent storage for permission rules."""

import logging
import sqlite3
import time
from pathlib import Path
from typing import Protocol

from core import db
from core.exceptions import NotFoundError, StoreUnavailableError

from .models import PermissionRule, RuleType

logger = logging.getLogger(__name__)

# Global rules are stored with an empty scope so the unique key covers them
GLOBAL_SCOPE = ""

SCHEMA = """
CREATE TABLE IF NOT EXISTS permission_rules (
    id TEXT PRIMARY KEY,
    tool TEXT NOT NULL,
    action TEXT NOT NULL,
    resource TEXT NOT NULL DEFAULT '*',
    type TEXT NOT NULL,
    scope TEXT NOT NULL DEFAULT '',
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS permission_rules_key
    ON permission_rules (tool, action, resource, scope);
CREATE INDEX IF NOT EXISTS permission_rules_scope_idx ON permission_rules (scope);
"""


class RuleStore(Protocol):
    """Read/write access to persisted allow/deny rules."""

    def list_rules(self, scope: str | None = None, rule_type: RuleType | None = None) -> list[PermissionRule]:
        """Rules for a project scope plus all global rules."""
        ...

    def upsert(self, rule: PermissionRule) -> PermissionRule:
        """Insert a rule, overwriting the type of an existing rule with the same key."""
        ...

    def delete(self, rule_id: str) -> None:
        ...


def _row_to_rule(row: sqlite3.Row) -> PermissionRule:
    return PermissionRule(
        id=row["id"],
        tool=row["tool"],
        action=row["action"],
        resource=row["resource"],
        type=RuleType(row["type"]),
        project_id=row["scope"] or None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SqliteRuleStore:
    """
    SQLite-backed rule store.

    Rules never expire; a conflicting (tool, action, resource, scope) write
    overwrites the stored rule type.
    """

    def __init__(self, db_path: Path):
        """
        Initialize the rule store.

        Args:
            db_path: SQLite database file (shared with the prompt store)
        """
        self.db_path = db_path
        db.ensure_schema(db_path, SCHEMA)

    def list_rules(self, scope: str | None = None, rule_type: RuleType | None = None) -> list[PermissionRule]:
        query = "SELECT * FROM permission_rules WHERE (scope = ? OR scope = ?)"
        params: list[str] = [GLOBAL_SCOPE, scope or GLOBAL_SCOPE]
        if rule_type is not None:
            query += " AND type = ?"
            params.append(rule_type.value)
        query += " ORDER BY created_at"

        try:
            with db.connection(self.db_path) as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Failed to read permission rules: {e}") from e
        return [_row_to_rule(row) for row in rows]

    def upsert(self, rule: PermissionRule) -> PermissionRule:
        now = time.time()
        try:
            with db.connection(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO permission_rules (id, tool, action, resource, type, scope, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (tool, action, resource, scope)
                    DO UPDATE SET type = excluded.type, updated_at = excluded.updated_at
                    """,
                    (
                        rule.id,
                        rule.tool,
                        rule.action,
                        rule.resource or "*",
                        rule.type.value,
                        rule.project_id or GLOBAL_SCOPE,
                        rule.created_at,
                        now,
                    ),
                )
                row = conn.execute(
                    "SELECT * FROM permission_rules WHERE tool = ? AND action = ? AND resource = ? AND scope = ?",
                    (rule.tool, rule.action, rule.resource or "*", rule.project_id or GLOBAL_SCOPE),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Failed to store permission rule: {e}") from e

        stored = _row_to_rule(row)
        logger.info(
            "Stored permission rule %s: %s/%s on %s = %s (scope: %s)",
            stored.id,
            stored.tool,
            stored.action,
            stored.resource,
            stored.type.value,
            stored.project_id or "global",
        )
        return stored

    def delete(self, rule_id: str) -> None:
        try:
            with db.connection(self.db_path) as conn:
                cursor = conn.execute("DELETE FROM permission_rules WHERE id = ?", (rule_id,))
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Failed to delete permission rule: {e}") from e

        if cursor.rowcount == 0:
            raise NotFoundError("PermissionRule", rule_id)
        logger.info("Deleted permission rule %s", rule_id)
