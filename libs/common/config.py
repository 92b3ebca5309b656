"""Configuration management for the embedding engine.

This module centralizes environment-driven configuration for the Bedrock
embedder. It builds on ``pydantic_settings.BaseSettings`` so configuration can
be provided via environment variables, ``.env`` files, or defaults.

Highlights
- Strongly‑typed settings with sensible defaults
- One place to discover the ``EMBEDDER_*`` environment variables
- Bounds enforced at load time (batch size, concurrency, retry budget)

Usage
- Inject the config in your entrypoint: ``config = EmbedderConfig()``
- Or override selectively: ``EmbedderConfig(model_id="cohere.embed-english-v3")``
"""

from typing import Any, List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODEL_ID = "amazon.titan-embed-text-v2:0"
DEFAULT_CONNECTION_ERROR_MARKERS = [
    "ECONNREFUSED",
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
    "EAI_AGAIN",
    "Connection refused",
]

# ErrorKind values a transport failure can classify to
RetryableKind = Literal["throttled", "authentication", "permission", "connection", "generic"]


class EmbedderConfig(BaseSettings):
    """Configuration for the Bedrock embedding engine.

    Parameters are read from the process environment with the ``EMBEDDER_``
    prefix (``EMBEDDER_BATCH_SIZE``, ``EMBEDDER_MAX_CONCURRENCY``, ...).

    Notes
    - ``region`` and ``endpoint_url`` are only forwarded to the transport
      factory; the engine itself never reads them.
    - ``retryable_kinds`` holds ``ErrorKind`` values; throttling is the only
      kind retried by default.
    """

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    # Model
    model_id: str = Field(default=DEFAULT_MODEL_ID)
    input_type: str = Field(default="search_document")

    # Endpoint (consumed by the transport factory)
    region: Optional[str] = Field(default=None)
    endpoint_url: Optional[str] = Field(default=None)

    # Request shaping
    batch_size: int = Field(default=32, ge=1)
    max_concurrency: int = Field(default=5, ge=1)

    # Retry
    max_retries: int = Field(default=3, ge=1)
    initial_retry_delay_ms: int = Field(default=500, ge=0)
    retryable_kinds: List[RetryableKind] = Field(default_factory=lambda: ["throttled"])
    connection_error_markers: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CONNECTION_ERROR_MARKERS)
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Telemetry
    telemetry_redis_url: Optional[str] = Field(default=None)
    telemetry_channel_prefix: str = Field(default="embedder_events")
    telemetry_timeout_seconds: float = Field(default=2.0, gt=0)


def get_config(**overrides: Any) -> EmbedderConfig:
    """Build an ``EmbedderConfig`` from the environment plus explicit overrides.

    Overrides with a ``None`` value are ignored so callers can pass optional
    settings straight through.
    """
    return EmbedderConfig(**{k: v for k, v in overrides.items() if v is not None})
