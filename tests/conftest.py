"""Shared fixtures: an in-process fake transport and a recording sleep."""

import json
import os
from collections import deque
from typing import Any, Awaitable, Callable, List, Optional

import pytest

from libs.common.config import EmbedderConfig
from libs.common.events import InMemoryTelemetryPublisher, TelemetryClient
from libs.embedder.models import InvokeRequest
from libs.embedder.transport import Transport


def titan_body(vector: List[float]) -> bytes:
    return json.dumps({"embedding": vector}).encode("utf-8")


def cohere_body(vectors: List[List[float]]) -> bytes:
    return json.dumps({"embeddings": vectors}).encode("utf-8")


class FakeTransport(Transport):
    """Records requests and replays scripted outcomes.

    Outcomes are consumed in order; the last one repeats. Exceptions are
    raised, anything else is returned. A ``handler`` coroutine function takes
    precedence over scripted outcomes.
    """

    def __init__(
        self,
        outcomes: Optional[List[Any]] = None,
        handler: Optional[Callable[[InvokeRequest], Awaitable[Any]]] = None,
    ):
        self.requests: List[InvokeRequest] = []
        self._outcomes = deque(outcomes or [])
        self._handler = handler

    async def send(self, request: InvokeRequest) -> bytes:
        self.requests.append(request)
        if self._handler is not None:
            outcome = await self._handler(request)
        elif len(self._outcomes) > 1:
            outcome = self._outcomes.popleft()
        else:
            outcome = self._outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @property
    def call_count(self) -> int:
        return len(self.requests)

    @property
    def bodies(self) -> List[dict]:
        return [json.loads(r.body) for r in self.requests]


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records delays and returns at once."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def telemetry_events() -> InMemoryTelemetryPublisher:
    return InMemoryTelemetryPublisher()


@pytest.fixture
def telemetry(telemetry_events) -> TelemetryClient:
    return TelemetryClient(telemetry_events)


@pytest.fixture
def make_config(monkeypatch):
    """Config builder isolated from ``EMBEDDER_*`` variables in the environment."""
    for key in list(os.environ):
        if key.upper().startswith("EMBEDDER_"):
            monkeypatch.delenv(key, raising=False)

    def build(**overrides: Any) -> EmbedderConfig:
        overrides.setdefault("model_id", "amazon.titan-embed-text-v1")
        overrides.setdefault("region", "us-east-1")
        return EmbedderConfig(_env_file=None, **overrides)

    return build
