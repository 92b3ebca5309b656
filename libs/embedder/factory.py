"""Embedder factory.

Centralizes creation of ``BedrockEmbedder`` instances so callers don't depend
on wiring details: configuration is checked first, then the caller-supplied
transport factory builds the client, and telemetry is attached from config.
"""

from typing import Any, Callable, Optional

from libs.common.config import EmbedderConfig, get_config
from libs.common.events import TelemetryClient, create_telemetry_client
from libs.common.logging import get_logger
from libs.common.metrics import EmbedderMetrics

from .bedrock import BedrockEmbedder
from .transport import Transport

logger = get_logger("embedder.factory")

TransportFactory = Callable[[EmbedderConfig], Transport]


class ConfigurationError(ValueError):
    """Embedder configuration is incomplete."""

    def __init__(self, code: str, message: str):
        super().__init__(f"{code}: {message}")
        self.code = code


def check_config(config: EmbedderConfig) -> None:
    """Reject configurations that cannot produce a working embedder."""
    if not config.model_id:
        raise ConfigurationError("modelIdMissing", "a Bedrock model id is required")
    if not config.region:
        raise ConfigurationError("bedrockConfigMissing", "a Bedrock region is required")


def create_embedder(
    config: EmbedderConfig,
    transport_factory: TransportFactory,
    telemetry: Optional[TelemetryClient] = None,
    metrics: Optional[EmbedderMetrics] = None,
    **kwargs: Any
) -> BedrockEmbedder:
    """Create a ``BedrockEmbedder``.

    Parameters
    - config: Loaded ``EmbedderConfig``
    - transport_factory: Builds the transport from ``config`` (region,
      endpoint, credentials are its concern)
    - telemetry: Overrides the telemetry client derived from config
    - metrics: Optional metrics collector
    - kwargs: Forwarded to ``BedrockEmbedder`` (e.g. ``gate``, ``sleep``)
    """
    check_config(config)

    transport = transport_factory(config)
    if telemetry is None:
        telemetry = create_telemetry_client(
            config.telemetry_redis_url,
            channel_prefix=config.telemetry_channel_prefix,
            timeout=config.telemetry_timeout_seconds,
        )

    logger.info(
        "Creating Bedrock embedder",
        model_id=config.model_id,
        region=config.region,
        endpoint_url=config.endpoint_url,
        max_concurrency=config.max_concurrency,
        batch_size=config.batch_size,
        max_retries=config.max_retries
    )
    return BedrockEmbedder(transport, config=config, telemetry=telemetry, metrics=metrics, **kwargs)


def create_embedder_from_env(transport_factory: TransportFactory, **overrides: Any) -> BedrockEmbedder:
    """Create an embedder from ``EMBEDDER_*`` environment variables."""
    return create_embedder(get_config(**overrides), transport_factory)
