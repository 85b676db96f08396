"""RelayConfig models."""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from .defaults import (
    CONFIG_DIRNAME,
    DEFAULT_ACK_EXPIRY,
    DEFAULT_CORS_ORIGINS,
    DEFAULT_CREATE_ATTEMPTS,
    DEFAULT_CREATE_RETRY_DELAYS,
    DEFAULT_DB_FILENAME,
    DEFAULT_DELEGATION_PROMPT_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_MAX_POLL_ERRORS,
    DEFAULT_PERMISSION_PROMPT_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PORT,
    MAX_PROMPT_TIMEOUT,
)


class ProtocolConfig(BaseModel):
    """Timing and retry settings for the interactive prompt protocol."""

    create_attempts: int = Field(
        default=DEFAULT_CREATE_ATTEMPTS,
        ge=1,
        description="Store write attempts before falling back to in-memory storage",
    )
    create_retry_delays: list[float] = Field(
        default_factory=lambda: list(DEFAULT_CREATE_RETRY_DELAYS),
        description="Backoff in seconds after each failed create attempt",
    )
    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL,
        gt=0,
        description="Seconds between prompt status polls",
    )
    permission_prompt_timeout: float = Field(
        default=DEFAULT_PERMISSION_PROMPT_TIMEOUT,
        gt=0,
        description="Timeout in seconds for tool-permission prompts",
    )
    delegation_prompt_timeout: float = Field(
        default=DEFAULT_DELEGATION_PROMPT_TIMEOUT,
        gt=0,
        description="Timeout in seconds for plan-review and delegation prompts",
    )
    max_prompt_timeout: float = Field(
        default=MAX_PROMPT_TIMEOUT,
        gt=0,
        description="Upper bound for any prompt timeout",
    )
    max_poll_errors: int = Field(
        default=DEFAULT_MAX_POLL_ERRORS,
        ge=1,
        description="Consecutive polling errors tolerated before giving up",
    )
    ack_expiry: float = Field(
        default=DEFAULT_ACK_EXPIRY,
        gt=0,
        description="Seconds an acknowledgment record is kept",
    )

    @model_validator(mode="after")
    def _clamp_timeouts(self) -> "ProtocolConfig":
        self.permission_prompt_timeout = min(self.permission_prompt_timeout, self.max_prompt_timeout)
        self.delegation_prompt_timeout = min(self.delegation_prompt_timeout, self.max_prompt_timeout)
        return self

    def retry_delay(self, attempt: int) -> float:
        """Backoff after the given failed attempt (1-based)."""
        if not self.create_retry_delays:
            return 0.0
        index = min(attempt - 1, len(self.create_retry_delays) - 1)
        return self.create_retry_delays[index]


class ServerConfig(BaseModel):
    """Backend server settings."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    database_path: Path = Field(
        default_factory=lambda: Path.home() / CONFIG_DIRNAME / DEFAULT_DB_FILENAME,
        description="SQLite file holding prompts and permission rules",
    )
    cors_origins: list[str] = Field(default_factory=lambda: [DEFAULT_CORS_ORIGINS])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


class RelayConfig(BaseModel):
    """Main configuration model."""

    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
