"""
Shared pytest fixtures for all tests.
"""
import tempfile
import time
from pathlib import Path
from typing import Callable, Iterator

import pytest

from config import ProtocolConfig
from core.models import InteractivePrompt, RiskTier
from core.permissions import PermissionEngine, SqliteRuleStore
from core.prompts import SqlitePromptStore, build_permission_prompt


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """SQLite file shared by the prompt and rule stores."""
    return temp_dir / "relay.db"


@pytest.fixture
def prompt_store(db_path: Path) -> SqlitePromptStore:
    return SqlitePromptStore(db_path)


@pytest.fixture
def rule_store(db_path: Path) -> SqliteRuleStore:
    return SqliteRuleStore(db_path)


@pytest.fixture
def engine(rule_store: SqliteRuleStore) -> PermissionEngine:
    return PermissionEngine(rule_store)


@pytest.fixture
def fast_config() -> ProtocolConfig:
    """Protocol settings with the real structure but tiny delays."""
    return ProtocolConfig(
        create_attempts=3,
        create_retry_delays=[0.0, 0.0, 0.0],
        poll_interval=0.01,
        permission_prompt_timeout=0.3,
        delegation_prompt_timeout=0.5,
        max_prompt_timeout=1.0,
        max_poll_errors=3,
        ack_expiry=300,
    )


@pytest.fixture
def make_prompt() -> Callable[..., InteractivePrompt]:
    """Factory for tool-permission prompts."""

    def _make(
        conversation_id: str = "conv_1",
        tool: str = "Bash",
        action: str = "execute",
        resource: str | None = "npm install",
        timeout: float = 60.0,
        project_id: str | None = "proj_1",
    ) -> InteractivePrompt:
        return build_permission_prompt(
            conversation_id=conversation_id,
            tool=tool,
            action=action,
            resource=resource,
            risk_tier=RiskTier.HIGH,
            timeout=timeout,
            project_id=project_id,
        )

    return _make


@pytest.fixture
def expired_prompt(make_prompt) -> InteractivePrompt:
    prompt = make_prompt()
    prompt.timeout_at = time.time() - 1
    return prompt
