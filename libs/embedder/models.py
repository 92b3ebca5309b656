"""Value objects shared by the embedding engine."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence


class ModelFamily(Enum):
    """Request shape of a Bedrock embedding model.

    ``SINGLE_INPUT`` models (Titan) embed one text per call; ``BATCH_INPUT``
    models (Cohere) take a list of texts per call.
    """
    SINGLE_INPUT = "titan"
    BATCH_INPUT = "cohere"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


MODEL_FAMILY_PREFIXES = (
    ("amazon.titan-embed-", ModelFamily.SINGLE_INPUT),
    ("cohere.embed-", ModelFamily.BATCH_INPUT),
)


def resolve_model_family(model_id: str) -> Optional[ModelFamily]:
    """Return the family of ``model_id``, or ``None`` when it is unsupported."""
    for prefix, family in MODEL_FAMILY_PREFIXES:
        if model_id.startswith(prefix):
            return family
    return None


def estimate_tokens(text: str) -> int:
    """Rough token estimate: a quarter of the UTF-8 byte length, rounded up."""
    return math.ceil(len(text.encode("utf-8")) / 4)


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class EmbeddingResult:
    """Embeddings in input order plus aggregated token usage."""
    embeddings: List[List[float]]
    usage: Usage = field(default_factory=Usage)


@dataclass(frozen=True)
class EmbedderInfo:
    name: str


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class InvokeRequest:
    """Transport-level request for one ``InvokeModel`` call."""
    model_id: str
    body: bytes
    content_type: str = "application/json"
    accept: str = "application/json"


def chunked(texts: Sequence[str], size: int) -> List[Sequence[str]]:
    """Split ``texts`` into contiguous chunks of ``size``; the last may be shorter."""
    return [texts[i:i + size] for i in range(0, len(texts), size)]
