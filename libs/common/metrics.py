"""Metrics collection for the embedding engine.

Provides a thin convenience wrapper around ``prometheus_client`` so the engine
can consistently record outbound calls, retries, and terminal failures.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- Each collector owns its registry, so independent engines never collide
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class EmbedderMetrics:
    """Metrics for embedding calls.

    Parameters
    - registry: Optional custom ``CollectorRegistry``; a fresh one by default

    Labels are limited to the model family and the error kind.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.calls = Counter(
            'embedder_calls_total',
            'Total outbound embedding calls',
            ['family', 'status'],
            registry=self.registry
        )

        self.call_duration = Histogram(
            'embedder_call_duration_seconds',
            'Outbound embedding call duration',
            ['family'],
            registry=self.registry
        )

        self.retries = Counter(
            'embedder_retries_total',
            'Total throttling retries',
            ['family'],
            registry=self.registry
        )

        self.failures = Counter(
            'embedder_failures_total',
            'Total terminal embedding failures',
            ['kind'],
            registry=self.registry
        )

        self.texts = Counter(
            'embedder_texts_total',
            'Total texts embedded',
            ['family'],
            registry=self.registry
        )

        self.inflight = Gauge(
            'embedder_inflight_calls',
            'Number of outbound calls currently in flight',
            registry=self.registry
        )

    def record_call(self, family: str, status: str, duration: float) -> None:
        """Record one transport call; ``duration`` is in seconds."""
        self.calls.labels(family=family, status=status).inc()
        self.call_duration.labels(family=family).observe(duration)

    def record_retry(self, family: str) -> None:
        self.retries.labels(family=family).inc()

    def record_failure(self, kind: str) -> None:
        self.failures.labels(kind=kind).inc()

    def record_texts(self, family: str, count: int) -> None:
        self.texts.labels(family=family).inc(count)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')
