"""Settings via pydantic-settings with DUET_ env prefix.

The OpenRouter key is read from the unprefixed OPENROUTER_API_KEY variable
so an existing .env for other OpenRouter tools works unchanged.
"""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DUET_", env_file=".env", extra="ignore")

    log_level: str = "info"

    # Remote completion API (OpenAI-compatible)
    openrouter_api_key: str = Field("", validation_alias="OPENROUTER_API_KEY")
    api_base_url: str = "https://openrouter.ai/api/v1"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 300  # seconds, reasoning models are slow

    # Models
    reasoning_model: str = "deepseek/deepseek-r1"
    response_model: str = "anthropic/claude-3.5-sonnet:beta"
    temperature: float = 0.7
    top_p: float = 1.0

    # Rolling context and editor history
    max_context_entries: int = 10
    reasoning_history_limit: int = 50_000  # chars fed to the reasoning model
    response_history_limit: int = 600_000  # chars fed to the response model
    history_dir: str = ""  # empty = Cline's default global storage

    # Task status polling
    status_wait_timeout: float = 10.0  # seconds one check_response_status may suspend
    status_poll_interval: float = 0.1
    task_retention: int = 0  # seconds to keep finished tasks, 0 = forever

    # Transport
    transport: Literal["stdio", "http"] = "stdio"
    host: str = "127.0.0.1"
    port: int = 8000

    @model_validator(mode="after")
    def _validate_limits(self) -> "Settings":
        for name in ("max_context_entries", "reasoning_history_limit", "response_history_limit"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be a positive integer")
        if self.status_wait_timeout <= 0 or self.status_poll_interval <= 0:
            raise ValueError("status_wait_timeout and status_poll_interval must be positive")
        if self.status_poll_interval > self.status_wait_timeout:
            raise ValueError(
                f"status_poll_interval ({self.status_poll_interval}) must be <= "
                f"status_wait_timeout ({self.status_wait_timeout})"
            )
        if self.task_retention < 0:
            raise ValueError("task_retention must be >= 0")
        return self
