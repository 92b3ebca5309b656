"""Common utilities shared across the embedder.

Includes:
- ``config``: Pydantic-based configuration from ``EMBEDDER_*`` variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics for outbound embedding calls.
- ``events``: telemetry events, Redis publisher, and fire-and-forget client.

Import pattern:
- from libs.common.config import EmbedderConfig
- from libs.common.logging import configure_logging
"""
