"""HTTP delivery of feedback records."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

import httpx

from ..events import Event, FeedbackRecord, FieldMapping, build_feedback
from ..metrics import ForwarderMetrics
from .base import DeliveryError, FeedbackSink, SerializationError, is_success


logger = logging.getLogger(__name__)


# Returns a bearer token, synchronously or as an awaitable
TokenProvider = Callable[[], "str | Awaitable[str]"]


@dataclass
class HttpFeedbackClient(FeedbackSink):
    """
    Sends feedback records to the recommendation engine's feedback endpoint.

    One HTTP request per ``deliver`` call: a JSON object for a single record,
    a JSON array for a batch. ``total_requests`` is incremented per record
    before the request goes out; ``errors`` once per failed attempt.

    Config:
        url: Feedback endpoint
        method: HTTP verb (PUT | POST | PATCH)
        timeout_seconds: Bound on each request; a timeout is a failed delivery
        token_provider: Called per request for ``Authorization: Bearer <token>``
        field_mapping: Used by ``send`` to build records from events
    """
    url: str
    method: str = "PUT"
    timeout_seconds: float = 10.0
    token_provider: TokenProvider | None = None
    metrics: ForwarderMetrics = field(default_factory=ForwarderMetrics)
    field_mapping: FieldMapping = field(default_factory=FieldMapping)

    # Injected in tests (httpx.MockTransport)
    transport: httpx.AsyncBaseTransport | None = None

    # Internal state
    _client: httpx.AsyncClient | None = field(default=None, init=False)
    _stats: dict = field(default_factory=dict, init=False)

    def __post_init__(self):
        self.method = self.method.upper()
        self._stats = {
            "requests_sent": 0,
            "requests_failed": 0,
            "records_delivered": 0,
        }

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self.transport,
            )
            logger.info(f"Feedback client started ({self.method} {self.url})")

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info(f"Feedback client stopped. Stats: {self._stats}")

    async def send(self, events: list[Event]) -> None:
        records = [build_feedback(event, self.field_mapping) for event in events]
        await self.deliver(records)

    async def deliver(self, payload: FeedbackRecord | Sequence[FeedbackRecord]) -> None:
        """
        Deliver one record or a batch of records.

        Raises:
            DeliveryError: On a non-2xx response, transport failure or timeout
            SerializationError: If none of the records could be encoded
        """
        single = isinstance(payload, FeedbackRecord)
        records = [payload] if single else list(payload)
        if not records:
            return

        encodable = self._drop_unencodable(records)
        if not encodable:
            raise SerializationError(self.url, detail="no encodable records", records=records)

        body: Any = encodable[0].to_dict() if single else [r.to_dict() for r in encodable]
        content = json.dumps(body, ensure_ascii=False).encode("utf-8")

        self.metrics.total_requests.increment(len(encodable))

        try:
            headers = await self._headers()
        except Exception as e:
            raise self._failure(encodable, cause=e, detail="token fetch failed") from e

        if self._client is None:
            await self.start()

        try:
            response = await self._client.request(
                self.method, self.url, headers=headers, content=content
            )
        except httpx.TimeoutException as e:
            raise self._failure(encodable, cause=e, detail="request timed out") from e
        except httpx.HTTPError as e:
            raise self._failure(encodable, cause=e) from e

        if not is_success(response.status_code):
            raise self._failure(
                encodable,
                status_code=response.status_code,
                detail=response.text[:200] or None,
            )

        self._stats["requests_sent"] += 1
        self._stats["records_delivered"] += len(encodable)
        logger.debug(f"Delivered {len(encodable)} feedback record(s) to {self.url}")

    def _drop_unencodable(self, records: list[FeedbackRecord]) -> list[FeedbackRecord]:
        """Filter out records that cannot be encoded; each one counts as a failed delivery."""
        encodable = []
        for record in records:
            try:
                json.dumps(record.to_dict(), ensure_ascii=False).encode("utf-8")
            except (TypeError, ValueError) as e:
                self.metrics.total_requests.increment(1)
                self.metrics.errors.increment(1)
                self._stats["requests_failed"] += 1
                logger.error(f"Dropping unencodable feedback record {record!r}: {e}")
                continue
            encodable.append(record)
        return encodable

    async def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.token_provider is not None:
            token = self.token_provider()
            if inspect.isawaitable(token):
                token = await token
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _failure(
        self,
        records: list[FeedbackRecord],
        status_code: int | None = None,
        cause: BaseException | None = None,
        detail: str | None = None,
    ) -> DeliveryError:
        self.metrics.errors.increment(1)
        self._stats["requests_failed"] += 1
        error = DeliveryError(
            self.url,
            status_code=status_code,
            cause=cause,
            records=records,
            detail=detail,
        )
        logger.error(str(error))
        return error

    @property
    def stats(self) -> dict[str, Any]:
        return dict(self._stats)
