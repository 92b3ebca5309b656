"""Amazon Bedrock embedding engine.

Turns a list of texts into embeddings by invoking Bedrock embedding models
through an injected ``Transport``. Titan models take one text per call and are
fanned out through the engine's ``ConcurrencyGate``; Cohere models take a list
of texts and are sent sequentially in fixed-size chunks. Every call runs under
``RetryHandler`` so throttling is retried with exponential backoff.
"""

import asyncio
import json
import traceback
from contextlib import nullcontext
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from libs.common.config import EmbedderConfig
from libs.common.events import TelemetryClient, TelemetryEventName
from libs.common.logging import get_logger
from libs.common.metrics import EmbedderMetrics

from .concurrency import ConcurrencyGate
from .errors import (
    EmbeddingError,
    ErrorKind,
    MalformedResponseError,
    UnsupportedModelError,
    format_validation_error,
    make_connection_predicate,
)
from .models import (
    EmbedderInfo,
    EmbeddingResult,
    InvokeRequest,
    ModelFamily,
    Usage,
    ValidationResult,
    chunked,
    estimate_tokens,
    resolve_model_family,
)
from .retry_handler import RetryConfig, RetryHandler
from .transport import Transport

logger = get_logger("embedder.bedrock")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_vector(value: Any) -> bool:
    return isinstance(value, list) and all(_is_number(v) for v in value)


class _RunState:
    """Tracks the first terminal failure of one ``create_embeddings`` call."""

    def __init__(self):
        self.error: Optional[EmbeddingError] = None

    @property
    def aborted(self) -> bool:
        return self.error is not None


class BedrockEmbedder:
    """Embedding engine for Amazon Bedrock models.

    Parameters
    - transport: Already-configured client exposing ``send``
    - config: ``EmbedderConfig``; read from the environment when omitted
    - gate: Optional explicitly owned ``ConcurrencyGate``; one sized from
      ``config.max_concurrency`` is created otherwise
    - telemetry: Fire-and-forget ``TelemetryClient`` for terminal failures
    - metrics: Optional ``EmbedderMetrics``
    - sleep: Backoff sleep, injectable for tests
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[EmbedderConfig] = None,
        gate: Optional[ConcurrencyGate] = None,
        telemetry: Optional[TelemetryClient] = None,
        metrics: Optional[EmbedderMetrics] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.config = config or EmbedderConfig()
        self.transport = transport
        self.gate = gate or ConcurrencyGate(self.config.max_concurrency)
        self.telemetry = telemetry or TelemetryClient()
        self.metrics = metrics

        retry_config = RetryConfig(
            max_attempts=self.config.max_retries,
            initial_delay_ms=self.config.initial_retry_delay_ms,
            retryable_kinds=[ErrorKind(kind) for kind in self.config.retryable_kinds],
        )
        retry_kwargs = {} if sleep is None else {"sleep": sleep}
        self.retry_handler = RetryHandler(
            retry_config,
            is_connection_error=make_connection_predicate(self.config.connection_error_markers),
            telemetry=self.telemetry,
            metrics=metrics,
            **retry_kwargs
        )

    @property
    def embedder_info(self) -> EmbedderInfo:
        return EmbedderInfo(name="bedrock")

    async def create_embeddings(self, texts: Sequence[str], model: Optional[str] = None) -> EmbeddingResult:
        """Create embeddings for ``texts``, preserving input order.

        Parameters
        - texts: Strings to embed (each may be empty)
        - model: Optional model id overriding ``config.model_id``

        Raises
        - ``UnsupportedModelError`` before any call for unknown model ids
        - ``MalformedResponseError`` when a response lacks well-formed vectors
        - another ``EmbeddingError`` subclass for terminal transport failures
        """
        model_id = model or self.config.model_id
        family = resolve_model_family(model_id)
        if family is None:
            error = UnsupportedModelError(model_id)
            self._capture_error(error, "BedrockEmbedder:create_embeddings")
            raise error

        texts = list(texts)
        if family is ModelFamily.SINGLE_INPUT:
            embeddings, tokens = await self._process_single_input(texts, model_id)
        else:
            embeddings, tokens = await self._process_batch_input(texts, model_id)

        if self.metrics is not None:
            self.metrics.record_texts(family.value, len(texts))
        return EmbeddingResult(
            embeddings=embeddings,
            usage=Usage(prompt_tokens=tokens, total_tokens=tokens),
        )

    async def validate_configuration(self) -> ValidationResult:
        """Check the configuration with one minimal request; never raises."""
        try:
            await self.create_embeddings(["test"], self.config.model_id)
        except Exception as e:
            self._capture_error(e, "BedrockEmbedder:validate_configuration")
            logger.warning(
                "Embedder configuration is invalid",
                model_id=self.config.model_id,
                error=str(e)
            )
            return ValidationResult(valid=False, error=format_validation_error(e))
        return ValidationResult(valid=True)

    async def _process_single_input(self, texts: List[str], model_id: str) -> Tuple[List[List[float]], int]:
        embeddings: List[Optional[List[float]]] = [None] * len(texts)
        tokens: List[int] = [0] * len(texts)
        state = _RunState()

        async def embed_at(index: int) -> None:
            if state.aborted:
                return
            embeddings[index], tokens[index] = await self._embed_single(texts[index], model_id)

        async def run(index: int) -> None:
            try:
                await self.gate.acquire_and_run(lambda: embed_at(index))
            except EmbeddingError as e:
                if state.error is None:
                    state.error = e

        await asyncio.gather(*(run(i) for i in range(len(texts))))
        if state.error is not None:
            raise state.error
        return embeddings, sum(tokens)

    async def _process_batch_input(self, texts: List[str], model_id: str) -> Tuple[List[List[float]], int]:
        embeddings: List[List[float]] = []
        total_tokens = 0
        for batch in chunked(texts, self.config.batch_size):
            batch_embeddings, batch_tokens = await self._embed_batch(list(batch), model_id)
            embeddings.extend(batch_embeddings)
            total_tokens += batch_tokens
        return embeddings, total_tokens

    async def _embed_single(self, text: str, model_id: str) -> Tuple[List[float], int]:
        body = {"inputText": text}
        response = await self._invoke(model_id, body, ModelFamily.SINGLE_INPUT)

        embedding = response.get("embedding") if isinstance(response, dict) else None
        if not _is_vector(embedding):
            raise self._malformed_error(ModelFamily.SINGLE_INPUT, model_id)
        return embedding, estimate_tokens(text)

    async def _embed_batch(self, texts: List[str], model_id: str) -> Tuple[List[List[float]], int]:
        body = {"texts": texts, "input_type": self.config.input_type}
        response = await self._invoke(model_id, body, ModelFamily.BATCH_INPUT)

        embeddings = response.get("embeddings") if isinstance(response, dict) else None
        if (
            not isinstance(embeddings, list)
            or len(embeddings) != len(texts)
            or not all(_is_vector(e) for e in embeddings)
        ):
            raise self._malformed_error(ModelFamily.BATCH_INPUT, model_id)
        return embeddings, sum(estimate_tokens(t) for t in texts)

    async def _invoke(self, model_id: str, body: dict, family: ModelFamily) -> Any:
        request = InvokeRequest(model_id=model_id, body=json.dumps(body).encode("utf-8"))
        raw = await self.retry_handler.execute_with_retry(
            self._send,
            request,
            operation_name=family.value
        )
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            raise self._malformed_error(family, model_id)

    async def _send(self, request: InvokeRequest) -> bytes:
        tracker = self.metrics.inflight.track_inprogress() if self.metrics is not None else nullcontext()
        with tracker:
            return await self.transport.send(request)

    def _malformed_error(self, family: ModelFamily, model_id: str) -> MalformedResponseError:
        error = MalformedResponseError(family)
        logger.error("Malformed embedding response", family=family.value, model_id=model_id)
        self._capture_error(error, "BedrockEmbedder:decode_response")
        if self.metrics is not None:
            self.metrics.record_failure(error.kind.value)
        return error

    def _capture_error(self, error: BaseException, location: str) -> None:
        self.telemetry.capture_event(
            TelemetryEventName.CODE_INDEX_ERROR,
            {
                "error": str(error),
                "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
                "location": location,
            },
        )
