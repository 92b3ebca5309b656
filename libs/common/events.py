"""Telemetry events for the embedding engine.

Terminal embedding failures are reported to a telemetry collaborator. The
default transport is Redis pub/sub: producers publish JSON payloads on
namespaced channels derived from ``TelemetryEventName``.

Key concepts
- ``TelemetryEventName`` identifiers are versioned (``.v1`` suffix)
- ``RedisTelemetryPublisher`` composes channel names as ``{prefix}:{event_type}``
- ``TelemetryClient`` is fire‑and‑forget: coroutine publishers run as
  background tasks on the running loop, and a failing sink is logged and never
  affects the embedding call that reported the event
"""

import asyncio
import inspect
import json
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

import redis.asyncio as redis_async

from .logging import get_logger

logger = get_logger("events")

DEFAULT_TELEMETRY_TIMEOUT_SECONDS = 2.0


class TelemetryEventName(Enum):
    """Telemetry event types emitted by the embedder."""
    CODE_INDEX_ERROR = "embedder.error.v1"


@dataclass
class TelemetryEvent:
    """A single telemetry event.

    ``properties`` carries the free‑form payload (error text, location,
    attempt number, ...).
    """
    event_type: str
    properties: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = 0

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = int(time.time() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        return asdict(self)

    def to_json(self) -> str:
        """Convert event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class RedisTelemetryPublisher:
    """Publishes telemetry events to Redis.

    Messages are serialized as JSON to keep consumers language‑agnostic.
    The client is ``redis.asyncio`` with bounded connect and socket timeouts,
    so an unreachable Redis never stalls the event loop. Errors propagate;
    ``TelemetryClient`` decides what to do with them.
    """

    def __init__(
        self,
        redis_url: str,
        channel_prefix: str = "embedder_events",
        timeout: float = DEFAULT_TELEMETRY_TIMEOUT_SECONDS,
    ):
        self.redis_client = redis_async.from_url(
            redis_url,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        self.channel_prefix = channel_prefix

    async def publish(self, event: TelemetryEvent) -> None:
        """Publish an event on the channel derived from its type."""
        channel = f"{self.channel_prefix}:{event.event_type}"
        await self.redis_client.publish(channel, event.to_json())
        logger.debug("Telemetry event published", event_type=event.event_type, channel=channel)

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self.redis_client.aclose()


class InMemoryTelemetryPublisher:
    """Collects events in a list; handy for local runs and tests."""

    def __init__(self):
        self.events: List[TelemetryEvent] = []

    def publish(self, event: TelemetryEvent) -> None:
        self.events.append(event)


class TelemetryClient:
    """Fire‑and‑forget telemetry capture.

    Parameters
    - publisher: Object with ``publish(event)``, or ``None`` to drop events.
      A coroutine ``publish`` is scheduled as a background task; a plain
      ``publish`` is called inline and must not block.
    """

    def __init__(self, publisher: Optional[Any] = None):
        self.publisher = publisher
        self._pending: Set["asyncio.Task[Any]"] = set()

    @property
    def pending(self) -> int:
        """Number of background publishes still running."""
        return len(self._pending)

    def capture_event(self, event_name: TelemetryEventName, properties: Dict[str, Any]) -> None:
        """Report an event; never raises and never waits on the sink."""
        if self.publisher is None:
            return
        event = TelemetryEvent(event_type=event_name.value, properties=dict(properties))

        if inspect.iscoroutinefunction(self.publisher.publish):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("No running event loop, telemetry event dropped", event_type=event.event_type)
                return
            task = loop.create_task(self.publisher.publish(event))
            self._pending.add(task)
            task.add_done_callback(self._on_publish_done)
            return

        try:
            self.publisher.publish(event)
        except Exception as e:
            logger.warning(
                "Failed to capture telemetry event",
                event_type=event.event_type,
                error=str(e)
            )

    async def flush(self) -> None:
        """Wait for background publishes started so far."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_publish_done(self, task: "asyncio.Task[Any]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Failed to capture telemetry event", error=str(error))


def create_telemetry_client(
    redis_url: Optional[str],
    channel_prefix: str = "embedder_events",
    timeout: float = DEFAULT_TELEMETRY_TIMEOUT_SECONDS,
    publisher_factory: Callable[..., Any] = RedisTelemetryPublisher,
) -> TelemetryClient:
    """Create a telemetry client; without a Redis URL events are dropped."""
    if not redis_url:
        return TelemetryClient()
    return TelemetryClient(publisher_factory(redis_url, channel_prefix=channel_prefix, timeout=timeout))
