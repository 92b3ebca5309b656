"""Error taxonomy and classification for embedding calls.

Every failed transport attempt goes through ``classify`` exactly once; the
retry loop only looks at the resulting ``ErrorKind``. Terminal failures are
then turned into an ``EmbeddingError`` subclass whose message follows a fixed
template per kind.
"""

from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from .models import ModelFamily

ConnectionPredicate = Callable[[BaseException], bool]


class ErrorKind(Enum):
    UNSUPPORTED_MODEL = "unsupported_model"
    MALFORMED_RESPONSE = "malformed_response"
    THROTTLED = "throttled"
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    CONNECTION = "connection"
    GENERIC = "generic"


class EmbeddingError(Exception):
    """Base class for classified embedding failures.

    Attributes
    - kind: ``ErrorKind`` of the failure
    - attempts: attempt budget reported in the message (``None`` when the
      failure happened outside the retry loop)
    - status_code: HTTP status of the underlying failure, if any
    """

    kind = ErrorKind.GENERIC

    def __init__(
        self,
        message: str,
        attempts: Optional[int] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.attempts = attempts
        self.status_code = status_code


class UnsupportedModelError(EmbeddingError):
    kind = ErrorKind.UNSUPPORTED_MODEL

    def __init__(self, model_id: str):
        super().__init__(f"Unsupported model: {model_id}")
        self.model_id = model_id


class MalformedResponseError(EmbeddingError):
    kind = ErrorKind.MALFORMED_RESPONSE

    def __init__(self, family: ModelFamily):
        super().__init__(f"Invalid {family.display_name} embedding response")
        self.family = family


class ThrottledError(EmbeddingError):
    kind = ErrorKind.THROTTLED


class AuthenticationFailedError(EmbeddingError):
    kind = ErrorKind.AUTHENTICATION


class PermissionDeniedError(EmbeddingError):
    kind = ErrorKind.PERMISSION


class ConnectionFailedError(EmbeddingError):
    kind = ErrorKind.CONNECTION


class TransportFailedError(EmbeddingError):
    kind = ErrorKind.GENERIC


STATUS_KINDS: Dict[int, ErrorKind] = {
    429: ErrorKind.THROTTLED,
    401: ErrorKind.AUTHENTICATION,
    403: ErrorKind.PERMISSION,
}

ERROR_CLASSES = {
    ErrorKind.THROTTLED: ThrottledError,
    ErrorKind.AUTHENTICATION: AuthenticationFailedError,
    ErrorKind.PERMISSION: PermissionDeniedError,
    ErrorKind.CONNECTION: ConnectionFailedError,
    ErrorKind.GENERIC: TransportFailedError,
}

KIND_MESSAGES = {
    ErrorKind.AUTHENTICATION: "Authentication failed. Please check your AWS credentials.",
    ErrorKind.PERMISSION: "Permission denied. Check your AWS IAM permissions.",
    ErrorKind.CONNECTION: "Connection failed. Check the endpoint URL and your network connection.",
}

VALIDATION_MESSAGES = {
    ErrorKind.CONNECTION: "Connection failed. Please check the endpoint URL and your network connection.",
}


def extract_status_code(error: BaseException) -> Optional[int]:
    """Find an HTTP status on an arbitrary failure.

    Looks at ``status_code`` / ``status`` attributes, the AWS SDK
    ``$metadata.httpStatusCode`` shape, and botocore's
    ``response["ResponseMetadata"]["HTTPStatusCode"]``.
    """
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    metadata = getattr(error, "metadata", None) or getattr(error, "$metadata", None)
    if isinstance(metadata, dict) and isinstance(metadata.get("httpStatusCode"), int):
        return metadata["httpStatusCode"]

    response = getattr(error, "response", None)
    if isinstance(response, dict):
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if isinstance(status, int):
            return status
    return None


def error_message(error: BaseException) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error) or type(error).__name__


def make_connection_predicate(markers: Iterable[str]) -> ConnectionPredicate:
    """Build a predicate matching connection-class failures.

    ``ConnectionError`` instances always match; anything else matches when its
    message contains one of ``markers``.
    """
    marker_list = [m for m in markers if m]

    def is_connection_error(error: BaseException) -> bool:
        if isinstance(error, ConnectionError):
            return True
        text = error_message(error)
        return any(marker in text for marker in marker_list)

    return is_connection_error


def classify(error: BaseException, is_connection_error: Optional[ConnectionPredicate] = None) -> ErrorKind:
    """Map a raw failure to its ``ErrorKind``."""
    if isinstance(error, EmbeddingError):
        return error.kind

    status = extract_status_code(error)
    if status in STATUS_KINDS:
        return STATUS_KINDS[status]

    if is_connection_error is not None and is_connection_error(error):
        return ErrorKind.CONNECTION
    return ErrorKind.GENERIC


def format_embedding_error(error: BaseException, kind: ErrorKind, attempts: int) -> EmbeddingError:
    """Wrap a terminal transport failure in its classified error type."""
    if isinstance(error, EmbeddingError):
        return error

    status = extract_status_code(error)
    prefix = f"Failed to create embeddings after {attempts} attempts"
    if kind in KIND_MESSAGES:
        detail = KIND_MESSAGES[kind]
    elif status is not None:
        detail = f"HTTP {status} - {error_message(error)}"
    else:
        detail = error_message(error)

    error_class = ERROR_CLASSES.get(kind, TransportFailedError)
    return error_class(f"{prefix}: {detail}", attempts=attempts, status_code=status)


def format_validation_error(error: BaseException) -> str:
    """Human-readable message for ``validate_configuration`` results."""
    if isinstance(error, EmbeddingError):
        return VALIDATION_MESSAGES.get(error.kind, error.message)
    return str(error) or "Unknown error"
