"""End-to-end tests for the forwarder lifecycle."""

import asyncio

import httpx
import pytest

from feedback_forwarder.config import ConfigurationError, ForwarderConfig
from feedback_forwarder.delivery import DeliveryError
from feedback_forwarder.events import Event
from feedback_forwarder.forwarder import FeedbackForwarder


def batching(config, **batch):
    config.batch.enabled = True
    for key, value in batch.items():
        setattr(config.batch, key, value)
    return config


class TestSetup:
    @pytest.mark.asyncio
    async def test_missing_events_halts_startup(self, recorder):
        config = ForwarderConfig.from_dict({"requestURL": "http://svc/api/feedback"})
        forwarder = FeedbackForwarder(config, transport=recorder.transport)

        with pytest.raises(ConfigurationError):
            await forwarder.setup_plugin()

        with pytest.raises(RuntimeError):
            await forwarder.on_event({"event": "item_viewed", "properties": {}})

    @pytest.mark.asyncio
    async def test_host_mismatch_halts_startup(self, config, recorder):
        config.allowed_hosts = ["*.internal"]
        forwarder = FeedbackForwarder(config, transport=recorder.transport)

        with pytest.raises(ConfigurationError):
            await forwarder.setup_plugin()

    @pytest.mark.asyncio
    async def test_setup_twice(self, config, recorder):
        forwarder = FeedbackForwarder(config, transport=recorder.transport)
        await forwarder.setup_plugin()
        with pytest.raises(RuntimeError):
            await forwarder.setup_plugin()
        await forwarder.teardown_plugin()


class TestImmediateDelivery:
    @pytest.mark.asyncio
    async def test_end_to_end(self, config, recorder, metrics):
        forwarder = FeedbackForwarder(config, metrics=metrics, transport=recorder.transport)
        await forwarder.setup_plugin()

        accepted = await forwarder.on_event({
            "event": "item_viewed",
            "distinct_id": "u1",
            "properties": {"item_id": "p1"},
            "timestamp": "2024-01-01T00:00:00Z",
        })
        rejected = await forwarder.on_event({
            "event": "page_load",
            "distinct_id": "u1",
            "properties": {"path": "/"},
            "timestamp": "2024-01-01T00:00:01Z",
        })
        await forwarder.teardown_plugin()

        assert accepted is True
        assert rejected is False
        assert len(recorder.requests) == 1
        assert recorder.requests[0].method == "PUT"
        assert recorder.bodies() == [{
            "Comment": "",
            "FeedbackType": "item_viewed",
            "ItemId": "p1",
            "Timestamp": "2024-01-01T00:00:00Z",
            "UserId": "u1",
        }]
        assert metrics.total_requests.value == 1
        assert metrics.errors.value == 0

    @pytest.mark.asyncio
    async def test_filtered_events_change_no_counter(self, config, recorder, metrics, make_event):
        forwarder = FeedbackForwarder(config, metrics=metrics, transport=recorder.transport)
        await forwarder.setup_plugin()

        await forwarder.on_event(make_event(name="page_load"))
        await forwarder.on_event(Event(name="item_viewed", distinct_id="u1"))
        await forwarder.teardown_plugin()

        assert recorder.requests == []
        assert metrics.as_dict() == {"total_requests": 0, "errors": 0, "malformed": 0}

    @pytest.mark.asyncio
    async def test_delivery_error_reaches_host(self, config, recorder, metrics, make_event):
        recorder.responses.append(503)
        forwarder = FeedbackForwarder(config, metrics=metrics, transport=recorder.transport)
        await forwarder.setup_plugin()

        with pytest.raises(DeliveryError) as exc_info:
            await forwarder.on_event(make_event())
        await forwarder.teardown_plugin()

        assert exc_info.value.status_code == 503
        assert metrics.total_requests.value == 1
        assert metrics.errors.value == 1

    @pytest.mark.asyncio
    async def test_malformed_event_counted_and_forwarded(self, config, recorder, metrics, make_event):
        forwarder = FeedbackForwarder(config, metrics=metrics, transport=recorder.transport)
        await forwarder.setup_plugin()

        await forwarder.on_event(make_event(properties={"sku": "x"}))
        await forwarder.teardown_plugin()

        assert metrics.malformed.value == 1
        assert recorder.bodies()[0]["ItemId"] == ""

    @pytest.mark.asyncio
    async def test_static_auth_token(self, config, recorder, make_event):
        config.auth_token = "secret"
        forwarder = FeedbackForwarder(config, transport=recorder.transport)
        await forwarder.setup_plugin()

        await forwarder.on_event(make_event())
        await forwarder.teardown_plugin()

        assert recorder.requests[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_injected_token_provider(self, config, recorder, make_event):
        async def provider():
            return "fresh"

        config.auth_token = "ignored"
        forwarder = FeedbackForwarder(config, token_provider=provider, transport=recorder.transport)
        await forwarder.setup_plugin()

        await forwarder.on_event(make_event())
        await forwarder.teardown_plugin()

        assert recorder.requests[0].headers["Authorization"] == "Bearer fresh"


class TestBatchedDelivery:
    @pytest.mark.asyncio
    async def test_teardown_flushes_buffer(self, config, recorder, metrics, make_event):
        batching(config, max_bytes=1024 * 1024, flush_interval_seconds=60)
        forwarder = FeedbackForwarder(config, metrics=metrics, transport=recorder.transport)
        await forwarder.setup_plugin()

        await forwarder.on_event(make_event(name="item_viewed", item_id="p1"))
        await forwarder.on_event(make_event(name="page_load"))
        await forwarder.on_event(make_event(name="item_purchased", item_id="p2"))
        assert recorder.requests == []

        await forwarder.teardown_plugin()

        assert len(recorder.requests) == 1
        body = recorder.bodies()[0]
        assert [(r["FeedbackType"], r["ItemId"]) for r in body] == [
            ("item_viewed", "p1"),
            ("item_purchased", "p2"),
        ]
        assert metrics.total_requests.value == 2

    @pytest.mark.asyncio
    async def test_size_threshold_flushes_in_order(self, config, recorder, make_event):
        batching(config, max_bytes=1, flush_interval_seconds=60)
        forwarder = FeedbackForwarder(config, transport=recorder.transport)
        await forwarder.setup_plugin()

        for i in range(3):
            await forwarder.on_event(make_event(item_id=f"p{i}"))
        await forwarder.teardown_plugin()

        assert [[r["ItemId"] for r in body] for body in recorder.bodies()] == [["p0"], ["p1"], ["p2"]]

    @pytest.mark.asyncio
    async def test_failed_final_flush_is_raised(self, config, recorder, metrics, make_event):
        batching(config, flush_interval_seconds=60)
        recorder.responses.append(500)
        forwarder = FeedbackForwarder(config, metrics=metrics, transport=recorder.transport)
        await forwarder.setup_plugin()

        await forwarder.on_event(make_event())
        with pytest.raises(DeliveryError):
            await forwarder.teardown_plugin()

        assert metrics.errors.value == 1
        assert forwarder.stats["state"] == "stopped"

    @pytest.mark.asyncio
    async def test_teardown_is_idempotent(self, config, recorder):
        batching(config, flush_interval_seconds=60)
        forwarder = FeedbackForwarder(config, transport=recorder.transport)
        await forwarder.setup_plugin()

        await forwarder.teardown_plugin()
        await forwarder.teardown_plugin()

        with pytest.raises(RuntimeError):
            await forwarder.on_event({"event": "item_viewed", "properties": {}})

    @pytest.mark.asyncio
    async def test_teardown_waits_for_in_flight_timed_flush(self, config, metrics, make_event):
        batching(config, flush_interval_seconds=0.05)
        started = asyncio.Event()
        delivered = []

        async def slow_handler(request):
            started.set()
            await asyncio.sleep(0.2)
            delivered.append(request)
            return httpx.Response(200)

        forwarder = FeedbackForwarder(
            config, metrics=metrics, transport=httpx.MockTransport(slow_handler)
        )
        await forwarder.setup_plugin()
        await forwarder.on_event(make_event(item_id="p1"))

        await asyncio.wait_for(started.wait(), timeout=2)
        await forwarder.teardown_plugin()

        assert len(delivered) == 1
        assert metrics.total_requests.value == 1
        assert metrics.errors.value == 0
        assert forwarder.stats["state"] == "stopped"

    @pytest.mark.asyncio
    async def test_wrongly_typed_event_list_halts_startup(self, config, recorder):
        config.events_to_include = ["item_viewed"]
        forwarder = FeedbackForwarder(config, transport=recorder.transport)

        with pytest.raises(ConfigurationError, match="events_to_include"):
            await forwarder.setup_plugin()
