"""Configuration loading utilities."""

import json
import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

from .defaults import CONFIG_DIRNAME, CONFIG_FILENAMES
from .relay_config import RelayConfig

logger = logging.getLogger(__name__)

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "RELAY_DB_PATH": ("server", "database_path"),
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
    "CORS_ORIGINS": ("server", "cors_origins"),
    "RELAY_POLL_INTERVAL": ("protocol", "poll_interval"),
    "RELAY_PROMPT_TIMEOUT": ("protocol", "permission_prompt_timeout"),
}


def strip_jsonc_comments(content: str) -> str:
    """
    Strip comments from JSONC content to convert to valid JSON.

    Handles:
    - Single-line comments: // comment
    - Multi-line comments: /* comment */

    Args:
        content: JSONC content string

    Returns:
        JSON string with comments removed
    """
    # Remove single-line comments; "//" must start a line or follow whitespace so URLs are kept
    content = re.sub(r"(^|\s)//.*?$", r"\1", content, flags=re.MULTILINE)
    # Remove multi-line comments
    content = re.sub(r"/\*.*?\*/", "", content, flags=re.DOTALL)
    return content


def load_config_file(path: Path) -> dict[str, Any] | None:
    """
    Load a config file from the given path.

    Supports both .json and .jsonc files with comment stripping.

    Args:
        path: Path to the config file

    Returns:
        Parsed config dictionary or None if file doesn't exist or is invalid
    """
    if not path.exists():
        return None

    try:
        content = path.read_text()
        if path.suffix == ".jsonc":
            content = strip_jsonc_comments(content)
        return json.loads(content)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load config from %s: %s", path, e)
        return None


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two configuration dictionaries.

    Args:
        base: Base configuration
        override: Override configuration (takes precedence)

    Returns:
        Merged configuration dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def env_overrides(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect config overrides from environment variables."""
    environ = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def load_config(project_root: Path | None = None, environ: dict[str, str] | None = None) -> RelayConfig:
    """
    Load configuration from multiple sources with precedence.

    Order (later wins):
    1. Global: ~/.agent-relay/relay.jsonc
    2. Project-level: relay.jsonc, relay.json
    3. Environment variables

    Args:
        project_root: Project root directory (defaults to current working directory)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Loaded and merged RelayConfig model
    """
    if project_root is None:
        project_root = Path.cwd()

    global_config_path = Path.home() / CONFIG_DIRNAME / CONFIG_FILENAMES[0]
    config_data = load_config_file(global_config_path) or {}

    for filename in CONFIG_FILENAMES:
        project_config = load_config_file(project_root / filename)
        if project_config:
            config_data = merge_configs(config_data, project_config)
            break

    config_data = merge_configs(config_data, env_overrides(environ))

    return RelayConfig(**config_data)


@lru_cache(maxsize=1)
def get_config(project_root: Path | None = None) -> RelayConfig:
    """
    Get cached configuration.

    To reload the config, clear the cache with get_config.cache_clear().
    """
    return load_config(project_root or Path.cwd())
