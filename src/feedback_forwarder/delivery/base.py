"""Base delivery interface and errors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..events import Event, FeedbackRecord


class DeliveryError(Exception):
    """
    Raised when a forwarding attempt fails.

    Carries the HTTP status (or the transport failure as ``cause``), the target
    URL and the records of the failed attempt, so a retry layer can re-drive them.
    """
    def __init__(
        self,
        url: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
        records: list[FeedbackRecord] | None = None,
        detail: str | None = None,
    ):
        if status_code is not None:
            reason = f"HTTP {status_code}"
        elif cause is not None:
            reason = f"{type(cause).__name__}: {cause}"
        else:
            reason = "unknown error"
        message = f"Feedback delivery to {url} failed ({reason})"
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.cause = cause
        self.records = records or []


class SerializationError(DeliveryError):
    """Raised when no record of an attempt could be encoded as JSON."""


def is_success(status_code: int) -> bool:
    """A response is successful iff its status code is 2xx."""
    return status_code // 100 == 2


class FeedbackSink(ABC):
    """
    Abstract destination for batches of events.

    Implementations turn events into feedback records and deliver them.
    """

    @abstractmethod
    async def send(self, events: list[Event]) -> None:
        """
        Send a batch of events.

        Raises DeliveryError on failure; the batch is not retried here.
        """
        ...

    async def start(self) -> None:
        """Initialize the sink (called on startup)."""
        pass

    async def stop(self) -> None:
        """Clean up the sink (called on shutdown)."""
        pass

    @property
    def stats(self) -> dict[str, Any]:
        return {}
