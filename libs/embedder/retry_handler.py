"""Retry handler with exponential backoff for embedding calls."""

import asyncio
import time
import traceback
from typing import Any, Awaitable, Callable, FrozenSet, Iterable, Optional

from libs.common.events import TelemetryClient, TelemetryEventName
from libs.common.logging import get_logger
from libs.common.metrics import EmbedderMetrics

from .errors import (
    ConnectionPredicate,
    EmbeddingError,
    ErrorKind,
    classify,
    error_message,
    format_embedding_error,
)

logger = get_logger("embedder.retry_handler")

INITIAL_RETRY_DELAY_MS = 500
MAX_BATCH_RETRIES = 3


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = MAX_BATCH_RETRIES,
        initial_delay_ms: int = INITIAL_RETRY_DELAY_MS,
        exponential_base: float = 2.0,
        retryable_kinds: Iterable[ErrorKind] = (ErrorKind.THROTTLED,),
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.initial_delay_ms = initial_delay_ms
        self.exponential_base = exponential_base
        self.retryable_kinds: FrozenSet[ErrorKind] = frozenset(retryable_kinds)


class RetryHandler:
    """Drives one logical call through classify/backoff/retry.

    The delay before attempt ``n + 1`` is ``initial_delay_ms * base ** n``
    with no jitter. Only failures whose kind is in ``retryable_kinds`` are
    retried; everything else is terminal on first occurrence.
    """

    def __init__(
        self,
        config: RetryConfig,
        is_connection_error: Optional[ConnectionPredicate] = None,
        telemetry: Optional[TelemetryClient] = None,
        metrics: Optional[EmbedderMetrics] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        location: str = "BedrockEmbedder:invoke_model_with_retries",
    ):
        self.config = config
        self.is_connection_error = is_connection_error
        self.telemetry = telemetry or TelemetryClient()
        self.metrics = metrics
        self.sleep = sleep
        self.location = location

    def calculate_delay_ms(self, attempt: int) -> float:
        """Delay in milliseconds before retrying after failed ``attempt``."""
        return self.config.initial_delay_ms * (self.config.exponential_base ** attempt)

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        operation_name: str = "unknown",
        **kwargs: Any
    ) -> Any:
        """Await ``func(*args, **kwargs)`` until it succeeds or fails terminally."""
        max_attempts = self.config.max_attempts

        for attempt in range(max_attempts):
            started = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                self._record_call(operation_name, "error", started)
                kind = classify(e, self.is_connection_error)
                has_more_attempts = attempt < max_attempts - 1

                if kind in self.config.retryable_kinds and has_more_attempts:
                    delay_ms = self.calculate_delay_ms(attempt)
                    logger.warning(
                        "Rate limit hit, retrying" if kind is ErrorKind.THROTTLED else "Call failed, retrying",
                        operation=operation_name,
                        kind=kind.value,
                        delay_ms=delay_ms,
                        attempt=attempt + 1,
                        max_retries=max_attempts,
                        error=error_message(e)
                    )
                    if self.metrics is not None:
                        self.metrics.record_retry(operation_name)
                    await self.sleep(delay_ms / 1000.0)
                    continue

                self._report_failure(e, kind, operation_name, attempt)
                if isinstance(e, EmbeddingError):
                    raise
                raise format_embedding_error(e, kind, max_attempts) from e

            self._record_call(operation_name, "success", started)
            if attempt > 0:
                logger.info(
                    "Operation succeeded after retry",
                    operation=operation_name,
                    attempt=attempt + 1,
                    total_attempts=max_attempts
                )
            return result

        # Unreachable while max_attempts >= 1.
        raise RuntimeError(f"Failed to create embeddings after {max_attempts} attempts")

    def _record_call(self, operation_name: str, status: str, started: float) -> None:
        if self.metrics is not None:
            self.metrics.record_call(operation_name, status, time.perf_counter() - started)

    def _report_failure(self, error: Exception, kind: ErrorKind, operation_name: str, attempt: int) -> None:
        logger.error(
            "Bedrock embedder error",
            operation=operation_name,
            kind=kind.value,
            attempt=attempt + 1,
            max_retries=self.config.max_attempts,
            error=error_message(error)
        )
        self.telemetry.capture_event(
            TelemetryEventName.CODE_INDEX_ERROR,
            {
                "error": error_message(error),
                "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
                "location": self.location,
                "attempt": attempt + 1,
            },
        )
        if self.metrics is not None:
            self.metrics.record_failure(kind.value)
