"""Configuration management for Hookline."""

import logging
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# 1, 5, 15, 30, 60 and 120 minutes
DEFAULT_RETRY_DELAYS_SECONDS: list[float] = [60.0, 300.0, 900.0, 1800.0, 3600.0, 7200.0]


class RetryPolicy(BaseModel):
    """Retry and throughput limits for webhook delivery.

    The delay before the next attempt is looked up in an escalating table
    rather than computed by doubling. After attempt ``k`` fails the next
    attempt is scheduled ``retry_delays_seconds[min(k, len - 1)]`` seconds
    later, so the last entry caps every further delay.

    Attributes:
        max_retries: Attempts after which a delivery is dead-lettered.
        retry_delays_seconds: Escalating delay table.
        request_timeout_seconds: Timeout for each outbound HTTP call.
        concurrency_limit: Deliveries in flight per batch.
        batch_limit: Maximum due deliveries fetched per processing run.
    """

    max_retries: int = Field(
        default=6,
        ge=1,
        le=50,
        description="Attempts before a delivery is archived to the dead letter queue",
    )
    retry_delays_seconds: list[float] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_DELAYS_SECONDS),
        min_length=1,
        description="Escalating retry delay table in seconds",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        le=300.0,
        description="Timeout for each outbound webhook request",
    )
    concurrency_limit: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Deliveries attempted concurrently within one batch",
    )
    batch_limit: int = Field(
        default=500,
        ge=1,
        le=10000,
        description="Maximum due deliveries fetched per processing run",
    )

    @field_validator("retry_delays_seconds")
    @classmethod
    def _delays_not_negative(cls, value: list[float]) -> list[float]:
        if any(delay < 0 for delay in value):
            raise ValueError("retry delays must not be negative")
        return value

    def delay_for(self, attempts: int) -> float:
        """Return the delay in seconds after ``attempts`` failed attempts."""
        index = min(attempts, len(self.retry_delays_seconds) - 1)
        return self.retry_delays_seconds[index]


class CircuitBreakerSettings(BaseModel):
    """Per-destination circuit breaker tuning.

    Attributes:
        failure_threshold: Consecutive thrown failures before opening.
        cooldown_seconds: Seconds an open breaker waits before a probe.
    """

    failure_threshold: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Consecutive failures before the breaker opens",
    )
    cooldown_seconds: float = Field(
        default=60.0,
        ge=0.0,
        le=3600.0,
        description="Seconds before an open breaker allows a trial call",
    )


class Settings(BaseSettings):
    """Hookline configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the HOOKLINE_ prefix. Nested values use a double underscore:
        HOOKLINE_STORAGE_BACKEND=qdrant
        HOOKLINE_RETRY__MAX_RETRIES=3
        HOOKLINE_CIRCUIT_BREAKER__COOLDOWN_SECONDS=120
    """

    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    storage_backend: Literal["memory", "qdrant"] = Field(
        default="memory",
        description="Persistence backend for configs, events, deliveries and dead letters",
    )
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL (use ':memory:' for a local in-process store)",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="hookline",
        description="Prefix for Qdrant collection names",
    )

    # Delivery
    retry: RetryPolicy = Field(
        default_factory=RetryPolicy,
        description="Retry schedule and concurrency limits",
    )
    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=CircuitBreakerSettings,
        description="Per-URL circuit breaker tuning",
    )
    user_agent: str = Field(
        default="Hookline-Webhook/1.0",
        description="User-Agent header sent with every webhook request",
    )
    allow_private_urls: bool = Field(
        default=False,
        description="Allow webhook URLs that resolve to private or loopback hosts",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "HOOKLINE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def _warn_private_urls_in_production(self) -> "Settings":
        if self.env == "production" and self.allow_private_urls:
            logger.warning(
                "HOOKLINE_ALLOW_PRIVATE_URLS is enabled in production; "
                "webhooks may target internal hosts"
            )
        return self


# Global settings instance
settings = Settings()
