"""Tests for common utilities."""

import asyncio
import json

import pytest
from pydantic import ValidationError

from libs.common.config import DEFAULT_MODEL_ID, EmbedderConfig, get_config
from libs.common.events import (
    InMemoryTelemetryPublisher,
    RedisTelemetryPublisher,
    TelemetryClient,
    TelemetryEvent,
    TelemetryEventName,
    create_telemetry_client,
)
from libs.common.logging import configure_logging, configure_logging_from_config
from libs.common.metrics import EmbedderMetrics


class FakeRedis:
    def __init__(self):
        self.published = []
        self.closed = False

    async def publish(self, channel, message):
        self.published.append((channel, message))

    async def aclose(self):
        self.closed = True


class SlowPublisher:
    def __init__(self, delay):
        self.delay = delay
        self.events = []

    async def publish(self, event):
        await asyncio.sleep(self.delay)
        self.events.append(event)


def test_config_defaults(make_config):
    config = EmbedderConfig(_env_file=None)
    assert config.model_id == DEFAULT_MODEL_ID
    assert config.batch_size == 32
    assert config.max_concurrency == 5
    assert config.max_retries == 3
    assert config.initial_retry_delay_ms == 500
    assert config.input_type == "search_document"
    assert config.retryable_kinds == ["throttled"]
    assert "ECONNREFUSED" in config.connection_error_markers
    assert config.region is None
    assert config.log_level == "INFO"


def test_config_reads_environment(make_config, monkeypatch):
    monkeypatch.setenv("EMBEDDER_MODEL_ID", "cohere.embed-english-v3")
    monkeypatch.setenv("EMBEDDER_BATCH_SIZE", "10")
    monkeypatch.setenv("EMBEDDER_REGION", "eu-west-1")
    monkeypatch.setenv("EMBEDDER_RETRYABLE_KINDS", '["throttled", "generic"]')

    config = EmbedderConfig(_env_file=None)

    assert config.model_id == "cohere.embed-english-v3"
    assert config.batch_size == 10
    assert config.region == "eu-west-1"
    assert config.retryable_kinds == ["throttled", "generic"]


@pytest.mark.parametrize("field", ["batch_size", "max_concurrency", "max_retries"])
def test_config_rejects_non_positive_bounds(make_config, field):
    with pytest.raises(ValidationError):
        make_config(**{field: 0})


def test_config_rejects_unknown_retryable_kind(make_config, monkeypatch):
    with pytest.raises(ValidationError):
        make_config(retryable_kinds=["throtled"])

    monkeypatch.setenv("EMBEDDER_RETRYABLE_KINDS", '["throtled"]')
    with pytest.raises(ValidationError):
        EmbedderConfig(_env_file=None)


def test_get_config_ignores_none_overrides(make_config):
    config = get_config(region="us-west-2", endpoint_url=None)
    assert config.region == "us-west-2"
    assert config.endpoint_url is None


def test_logging_configuration():
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "debug", "console", region="us-east-1")


def test_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        configure_logging("test-service", "LOUD")


def test_logging_from_config(make_config):
    configure_logging_from_config(make_config(log_level="WARNING", log_format="console"))


def test_metrics_collector():
    metrics = EmbedderMetrics()

    metrics.record_call("cohere", "success", 0.1)
    metrics.record_retry("cohere")
    metrics.record_failure("throttled")
    metrics.record_texts("cohere", 3)

    exposition = metrics.get_metrics()
    assert isinstance(exposition, str)
    assert 'embedder_calls_total{family="cohere",status="success"} 1.0' in exposition
    assert 'embedder_texts_total{family="cohere"} 3.0' in exposition
    assert 'embedder_failures_total{kind="throttled"} 1.0' in exposition


def test_metrics_collectors_are_independent():
    first = EmbedderMetrics()
    second = EmbedderMetrics()
    first.record_retry("titan")
    assert "embedder_retries_total{" not in second.get_metrics()


def test_telemetry_event_serialization():
    event = TelemetryEvent(event_type="embedder.error.v1", properties={"error": "boom"})
    payload = json.loads(event.to_json())
    assert payload["event_type"] == "embedder.error.v1"
    assert payload["properties"] == {"error": "boom"}
    assert payload["timestamp"] > 0


def test_telemetry_client_publishes_events():
    publisher = InMemoryTelemetryPublisher()
    client = TelemetryClient(publisher)

    client.capture_event(TelemetryEventName.CODE_INDEX_ERROR, {"location": "here"})

    assert publisher.events[0].event_type == "embedder.error.v1"
    assert publisher.events[0].properties == {"location": "here"}


def test_telemetry_client_swallows_publisher_errors():
    class BrokenPublisher:
        def publish(self, event):
            raise ConnectionError("redis down")

    # Must not raise
    TelemetryClient(BrokenPublisher()).capture_event(TelemetryEventName.CODE_INDEX_ERROR, {})


def test_telemetry_client_without_publisher_is_noop():
    TelemetryClient().capture_event(TelemetryEventName.CODE_INDEX_ERROR, {"error": "x"})
    assert create_telemetry_client(None).publisher is None


@pytest.mark.asyncio
async def test_redis_publisher(monkeypatch):
    fake = FakeRedis()
    options = {}

    def from_url(url, **kwargs):
        options.update(kwargs)
        return fake

    monkeypatch.setattr("libs.common.events.redis_async.from_url", from_url)

    client = create_telemetry_client("redis://localhost:6379", channel_prefix="embedder_events", timeout=0.5)
    assert isinstance(client.publisher, RedisTelemetryPublisher)
    assert options == {"socket_connect_timeout": 0.5, "socket_timeout": 0.5}

    client.capture_event(TelemetryEventName.CODE_INDEX_ERROR, {"error": "boom"})
    assert client.pending == 1
    await client.flush()

    channel, message = fake.published[0]
    assert channel == "embedder_events:embedder.error.v1"
    assert json.loads(message)["properties"] == {"error": "boom"}
    assert client.pending == 0

    await client.publisher.close()
    assert fake.closed


@pytest.mark.asyncio
async def test_async_publish_does_not_block_the_caller():
    publisher = SlowPublisher(delay=0.5)
    client = TelemetryClient(publisher)

    loop = asyncio.get_running_loop()
    started = loop.time()
    client.capture_event(TelemetryEventName.CODE_INDEX_ERROR, {"error": "boom"})

    assert loop.time() - started < 0.1
    assert publisher.events == []
    await client.flush()
    assert len(publisher.events) == 1


@pytest.mark.asyncio
async def test_async_publish_failure_is_swallowed():
    class BrokenAsyncPublisher:
        async def publish(self, event):
            raise ConnectionError("redis down")

    client = TelemetryClient(BrokenAsyncPublisher())
    client.capture_event(TelemetryEventName.CODE_INDEX_ERROR, {})

    await client.flush()
    await asyncio.sleep(0)
    assert client.pending == 0


def test_async_publish_without_running_loop_is_dropped():
    publisher = SlowPublisher(delay=0)
    client = TelemetryClient(publisher)

    client.capture_event(TelemetryEventName.CODE_INDEX_ERROR, {})

    assert client.pending == 0
    assert publisher.events == []
