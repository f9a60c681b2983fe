# SPDX-License-Identifier: MIT
"""Centralised application configuration management.

This module exposes :class:`Settings`, a ``pydantic-settings`` model populated
from environment variables and an optional ``.env`` file in the working
directory. Values are validated once at startup; the coordinator capacity in
particular is read only when the runtime environment is initialised.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from constants import DEFAULT_MAX_CONCURRENT_CONVERSATIONS, DEFAULT_PORT

StreamingMode = Literal["stream", "batch"]


def split_ids(raw: str) -> list[str]:
    """Return the non-empty, stripped entries of a comma separated list."""

    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings sourced from the environment."""

    max_concurrent_conversations: int = Field(
        DEFAULT_MAX_CONCURRENT_CONVERSATIONS,
        ge=1,
        description="Maximum number of conversations processed concurrently.",
    )
    log_level: Literal[
        "fatal", "error", "warn", "notice", "info", "debug", "trace"
    ] = Field("info", description="Minimum logfire console level.")
    logfire_token: str | None = Field(
        None, description="Logfire authentication token, if available.", repr=False
    )
    host: str = Field("0.0.0.0", description="Interface the HTTP server binds.")
    port: int = Field(DEFAULT_PORT, gt=0, lt=65536, description="HTTP port.")
    orchestrator: str = Field(
        "gateway.orchestrator:echo_handler",
        description="Import path ('module:attribute') of the message handler.",
    )
    test_adapter_enabled: bool = Field(
        True, description="Expose the in-memory test adapter endpoints."
    )

    telegram_bot_token: str | None = Field(
        None, description="Telegram Bot API token.", repr=False
    )
    telegram_streaming_mode: StreamingMode = Field(
        "stream", description="Deliver replies incrementally or in one batch."
    )
    telegram_allowed_user_ids: str = Field(
        "",
        description="Comma separated Telegram user ids; empty allows everyone.",
    )
    telegram_poll_timeout: int = Field(
        30, ge=0, description="Long-poll timeout for getUpdates in seconds."
    )

    slack_bot_token: str | None = Field(
        None, description="Slack bot OAuth token.", repr=False
    )
    slack_streaming_mode: StreamingMode = Field(
        "stream", description="Deliver replies incrementally or in one batch."
    )
    slack_allowed_user_ids: str = Field(
        "",
        description="Comma separated Slack user ids; empty denies everyone, '*' allows all.",
    )

    model_config = SettingsConfigDict(extra="ignore")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().lower()
            return "warn" if value == "warning" else value
        return value

    @property
    def telegram_allowlist(self) -> list[str]:
        """Return parsed Telegram user ids."""

        return split_ids(self.telegram_allowed_user_ids)

    @property
    def slack_allowlist(self) -> list[str]:
        """Return parsed Slack user ids."""

        return split_ids(self.slack_allowed_user_ids)


def load_settings(env_file: Path | str | None = None) -> Settings:
    """Load and validate application settings.

    Values come from the process environment. A ``.env`` file is merged in
    when ``env_file`` is given or, by default, when one exists in the working
    directory; environment variables win over file values.

    Args:
        env_file: Optional path to a dotenv file.

    Returns:
        Settings: Fully validated application configuration.

    Raises:
        RuntimeError: If configuration values are invalid.
    """

    if env_file is None:
        default = Path(".env")
        env_file = default if default.exists() else None
    try:
        return Settings(_env_file=env_file)
    except ValidationError as exc:
        # Summarise validation issues so the caller receives clear feedback.
        details = "; ".join(
            f"{'.'.join(map(str, error['loc']))}: {error['msg']}"
            for error in exc.errors()
        )
        raise RuntimeError(f"Invalid configuration: {details}") from exc


__all__ = ["Settings", "StreamingMode", "load_settings", "split_ids"]
