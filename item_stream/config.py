"""
Configuration for producers and connection policies.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from item_stream.types import TimeoutProfile

# Inactivity windows by task complexity. A single-list analysis answers
# within seconds; multi-stage and tool-using analyses need much longer.
TIMEOUT_PROFILES_MS: dict[str, int] = {
    "quick": 30_000,
    "standard": 60_000,
    "extended": 90_000,
}

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"


class ConnectionConfig(BaseModel):
    """Timeout and retry policy for one supervised exchange."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_ms: int = Field(default=TIMEOUT_PROFILES_MS["quick"], gt=0)
    """Maximum wait for the next event before the attempt fails."""

    max_retries: int = Field(default=3, ge=0)
    """Retries after the first attempt."""

    retry_backoff_ms: int = Field(default=1000, ge=0)
    """Base delay; doubles with every retry."""

    def backoff_ms(self, retry: int) -> int:
        """Delay before the given retry (1-based)."""
        return self.retry_backoff_ms * 2 ** max(0, retry - 1)

    @classmethod
    def for_profile(cls, profile: TimeoutProfile, **overrides: int) -> ConnectionConfig:
        if profile not in TIMEOUT_PROFILES_MS:
            raise ValueError(f"Unknown timeout profile: {profile}")
        return cls(**{"timeout_ms": TIMEOUT_PROFILES_MS[profile], **overrides})


class ProducerSettings(BaseModel):
    """Tuning constants for the producer loop."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    parse_every: int = Field(default=50, ge=1)
    """Run a parse/detect/track pass every N chunks."""

    progress_log_every: int = Field(default=200, ge=1)


class StreamSettings(BaseModel):
    """Process-level settings, usually read once from the environment."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    producer: ProducerSettings = Field(default_factory=ProducerSettings)
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    model: str = DEFAULT_MODEL
    api_key: str | None = None
    host: str = "127.0.0.1"
    port: int = Field(default=8000, gt=0, lt=65536)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StreamSettings:
        """
        Build settings from ``ITEM_STREAM_*`` variables.

        Unset variables keep their defaults. Values are validated by the
        pydantic models, so malformed numbers raise ``ValidationError``.
        """
        env = os.environ if environ is None else environ

        connection: dict[str, str] = {}
        for key, var in (
            ("timeout_ms", "ITEM_STREAM_TIMEOUT_MS"),
            ("max_retries", "ITEM_STREAM_MAX_RETRIES"),
            ("retry_backoff_ms", "ITEM_STREAM_RETRY_BACKOFF_MS"),
        ):
            if env.get(var):
                connection[key] = env[var]

        producer: dict[str, str] = {}
        if env.get("ITEM_STREAM_PARSE_EVERY"):
            producer["parse_every"] = env["ITEM_STREAM_PARSE_EVERY"]

        server: dict[str, str] = {}
        for key, var in (("host", "ITEM_STREAM_HOST"), ("port", "ITEM_STREAM_PORT")):
            if env.get(var):
                server[key] = env[var]

        return cls(
            connection=ConnectionConfig.model_validate(connection),
            producer=ProducerSettings.model_validate(producer),
            openai_base_url=env.get("ITEM_STREAM_OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL,
            model=env.get("ITEM_STREAM_MODEL") or DEFAULT_MODEL,
            api_key=get_env_api_key(env),
            **server,
        )


def get_env_api_key(environ: Mapping[str, str] | None = None) -> str | None:
    """
    Get the generation API key from known environment variables.

    ``ITEM_STREAM_API_KEY`` takes precedence over ``OPENAI_API_KEY``.
    """
    env = os.environ if environ is None else environ
    return env.get("ITEM_STREAM_API_KEY") or env.get("OPENAI_API_KEY")
