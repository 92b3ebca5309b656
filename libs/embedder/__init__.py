"""Bedrock embedding engine.

Includes:
- ``bedrock``: ``BedrockEmbedder``, the request engine (Titan and Cohere).
- ``concurrency``: ``ConcurrencyGate`` bounding in-flight calls.
- ``retry_handler``: per-call retry with exponential backoff on throttling.
- ``errors``: error taxonomy, ``classify`` and message formatting.
- ``factory``: build an embedder from ``EmbedderConfig``.

Import pattern:
- from libs.embedder import BedrockEmbedder
- from libs.embedder.factory import create_embedder
"""

from .bedrock import BedrockEmbedder
from .concurrency import ConcurrencyGate
from .errors import EmbeddingError, ErrorKind, classify
from .models import EmbedderInfo, EmbeddingResult, ModelFamily, Usage, ValidationResult
from .transport import Transport, TransportError

__all__ = [
    "BedrockEmbedder",
    "ConcurrencyGate",
    "EmbedderInfo",
    "EmbeddingError",
    "EmbeddingResult",
    "ErrorKind",
    "ModelFamily",
    "Transport",
    "TransportError",
    "Usage",
    "ValidationResult",
    "classify",
]
