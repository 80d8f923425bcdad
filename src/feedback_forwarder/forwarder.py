"""Forwarder lifecycle - wires policy, buffer and delivery together."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .buffer import EventBuffer
from .config import ForwarderConfig
from .delivery import HttpFeedbackClient
from .delivery.http import TokenProvider
from .events import Event, build_feedback
from .metrics import ForwarderMetrics
from .policy import ForwardingPolicy


logger = logging.getLogger(__name__)


class FeedbackForwarder:
    """
    Host-facing entry points: ``setup_plugin``, ``on_event``, ``teardown_plugin``.

    With batching disabled every accepted event is delivered immediately as a
    single record. With batching enabled accepted events go through an
    EventBuffer whose flushes are delivered as arrays of records.

    Delivery errors are raised to the caller; nothing is retried here.
    """

    def __init__(
        self,
        config: ForwarderConfig,
        metrics: ForwarderMetrics | None = None,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.metrics = metrics or ForwarderMetrics()
        self._token_provider = token_provider
        self._transport = transport

        self.policy: ForwardingPolicy | None = None
        self.client: HttpFeedbackClient | None = None
        self.buffer: EventBuffer | None = None
        self._timer_task: asyncio.Task | None = None
        self._field_mapping = config.field_mapping.to_mapping()
        self._state = "created"  # created | running | stopped

    async def setup_plugin(self) -> None:
        """
        Validate configuration and start the delivery path.

        Raises:
            ConfigurationError: If configuration is invalid (startup must halt)
        """
        if self._state != "created":
            raise RuntimeError(f"Forwarder already {self._state}")

        self.config.validate()

        token_provider = self._token_provider
        if token_provider is None and self.config.auth_token:
            static_token = self.config.auth_token
            token_provider = lambda: static_token  # noqa: E731

        self.policy = ForwardingPolicy.from_allow_list(self.config.events_to_include)
        self.client = HttpFeedbackClient(
            url=self.config.request_url,
            method=self.config.method_type,
            timeout_seconds=self.config.timeout_seconds,
            token_provider=token_provider,
            metrics=self.metrics,
            field_mapping=self._field_mapping,
            transport=self._transport,
        )
        await self.client.start()

        if self.config.batch.enabled:
            self.buffer = EventBuffer(
                max_bytes=self.config.batch.max_bytes,
                flush_interval_seconds=self.config.batch.flush_interval_seconds,
                on_flush=self.client.send,
            )
            self._timer_task = asyncio.create_task(self.buffer.timer_loop())

        self._state = "running"
        logger.info(
            f"Feedback forwarder started (events={sorted(self.policy.event_names)}, "
            f"batching={'on' if self.buffer else 'off'})"
        )

    async def on_event(self, event: Event | dict[str, Any]) -> bool:
        """
        Handle one event from the host.

        Returns True if the event was accepted for forwarding.

        Raises:
            DeliveryError: If a delivery triggered by this event failed
        """
        if self._state != "running":
            raise RuntimeError(f"on_event called while forwarder is {self._state}")

        if isinstance(event, dict):
            event = Event.from_dict(event)

        if not self.policy.accepts(event):
            return False

        record = build_feedback(event, self._field_mapping)
        if record.is_malformed:
            self.metrics.malformed.increment(1)
            logger.warning(f"Event {event.name!r} from {event.distinct_id!r} has no item id")

        if self.buffer is not None:
            await self.buffer.add(event)
        else:
            await self.client.deliver(record)
        return True

    async def teardown_plugin(self) -> None:
        """
        Flush buffered events and close the HTTP client.

        A failure of the final flush is raised after cleanup.
        """
        if self._state != "running":
            return
        self._state = "stopped"

        logger.info("Shutting down feedback forwarder...")

        if self._timer_task:
            await self.buffer.cancel_timer(self._timer_task)
            self._timer_task = None

        try:
            if self.buffer is not None:
                await self.buffer.stop()
        finally:
            await self.client.stop()
            logger.info(f"Feedback forwarder stopped. Metrics: {self.metrics.as_dict()}")

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "state": self._state,
            "metrics": self.metrics.as_dict(),
            "delivery": self.client.stats if self.client else {},
            "buffer": self.buffer.stats if self.buffer else None,
        }
