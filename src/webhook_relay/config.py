"""Configuration management for the webhook relay."""

import logging
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class CircuitBreakerSettings(BaseModel):
    """Per-webhook circuit breaker tuning.

    A breaker opens once ``failure_threshold`` failures have accumulated
    and stays open for ``reset_timeout_seconds`` before allowing one trial
    delivery (half-open). A success does not reset the count while the
    failures are recent; they are forgotten on the first success after
    ``monitoring_window_seconds`` have passed since the last failure.

    Attributes:
        enabled: Whether the sender consults circuit breakers at all.
        failure_threshold: Accumulated failures before the circuit opens.
        reset_timeout_seconds: Seconds the circuit stays open.
        monitoring_window_seconds: Window after which old failures expire.
    """

    enabled: bool = Field(default=True, description="Enable per-webhook circuit breakers")
    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Accumulated failures before the circuit opens",
    )
    reset_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds the circuit stays open before a trial delivery",
    )
    monitoring_window_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Failures older than this are forgotten",
    )


class Settings(BaseSettings):
    """Relay configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the RELAY_ prefix. For example:
        RELAY_MAX_CONCURRENT_DELIVERIES=20
        RELAY_CIRCUIT_BREAKER__FAILURE_THRESHOLD=3
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Worker pool
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum deliveries in flight at once",
    )
    idle_poll_interval_seconds: float = Field(
        default=0.5,
        gt=0.0,
        le=60.0,
        description="Upper bound on how long an idle worker sleeps before re-checking the queue",
    )

    # Retry policy
    retry_base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Base delay for exponential backoff (doubles each attempt)",
    )
    max_retry_delay_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Cap on a single backoff delay",
    )
    retry_jitter: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Fraction of random jitter added to each backoff delay",
    )

    # Signing
    signature_header: str = Field(
        default="X-Signature",
        min_length=1,
        description="Header carrying the HMAC-SHA256 payload signature",
    )

    # Accounting and quarantine
    tracker_history_size: int = Field(
        default=1000,
        ge=1,
        description="Delivery records retained per webhook",
    )
    dead_letter_retention_days: int = Field(
        default=30,
        ge=1,
        description="Days a dead-letter entry is kept before cleanup",
    )

    # Backlog monitoring
    queue_backlog_threshold: int = Field(
        default=100,
        ge=1,
        description="Queue size above which backlog warnings are logged",
    )
    backlog_check_interval_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="How often the processor checks queue backlog",
    )

    # Config provider
    config_cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0.0,
        description="How long resolved webhook configs are cached",
    )

    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=CircuitBreakerSettings,
        description="Per-webhook circuit breaker tuning",
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
        "env_prefix": "RELAY_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_retry_delays(self) -> "Settings":
        """Validate the backoff cap is not below the base delay.

        A cap below the base would make every retry wait exactly the cap and
        silently disable the exponential growth.
        """
        if self.max_retry_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError(
                f"max_retry_delay_seconds ({self.max_retry_delay_seconds}) must be >= "
                f"retry_base_delay_seconds ({self.retry_base_delay_seconds})"
            )
        if self.env == "production" and self.log_format == "text":
            logger.warning("Text log format in production; JSON is recommended for log shipping")
        return self


# Global settings instance
settings = Settings()
