"""
Configuration module for the agent relay.

Exports the configuration models and loader functions.
"""

from .defaults import DEFAULT_HOST, DEFAULT_PORT
from .loader import env_overrides, get_config, load_config, load_config_file, merge_configs, strip_jsonc_comments
from .relay_config import ProtocolConfig, RelayConfig, ServerConfig

__all__ = [
    # Constants
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    # Config models
    "RelayConfig",
    "ProtocolConfig",
    "ServerConfig",
    # Loader functions
    "load_config",
    "get_config",
    "env_overrides",
    "load_config_file",
    "merge_configs",
    "strip_jsonc_comments",
]
