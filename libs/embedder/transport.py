"""Transport contract consumed by the embedding engine.

The engine never builds a client itself: endpoint resolution, region and
credential selection live with whoever constructs the ``Transport``. The only
operation the engine needs is ``send``.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .models import InvokeRequest


class TransportError(Exception):
    """Failure raised by a transport.

    ``status_code`` is the HTTP status of the remote response when one was
    received (``429`` for throttling), else ``None``.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class Transport(ABC):
    """Already-configured client for the model-inference endpoint."""

    @abstractmethod
    async def send(self, request: InvokeRequest) -> bytes:
        """Invoke the model and return the raw response body.

        Raises
        - ``TransportError`` (or any other exception) on failure
        """
        pass
