"""Shared test fixtures for feedback forwarder tests."""

import json
import sys
from pathlib import Path

import httpx
import pytest

# Allow running from a source checkout without installing
_REPO_ROOT = Path(__file__).parent.parent
if (_REPO_ROOT / "src" / "feedback_forwarder").exists():
    sys.path.insert(0, str(_REPO_ROOT / "src"))

from feedback_forwarder.config import ForwarderConfig
from feedback_forwarder.events import Event
from feedback_forwarder.metrics import ForwarderMetrics


class RequestRecorder:
    """
    Fake feedback endpoint backed by httpx.MockTransport.

    Responds with queued status codes in order (200 once the queue is empty),
    or raises a queued exception instead of responding.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: list = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if self.responses else 200
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"RowAffected": 1})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def bodies(self) -> list:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def recorder() -> RequestRecorder:
    return RequestRecorder()


@pytest.fixture
def metrics() -> ForwarderMetrics:
    return ForwarderMetrics()


@pytest.fixture
def make_event():
    """Factory for events with sensible defaults."""
    def factory(name="item_viewed", item_id="p1", distinct_id="u1",
                timestamp="2024-01-01T00:00:00Z", properties=None):
        if properties is None:
            properties = {"item_id": item_id}
        return Event(
            name=name,
            timestamp=timestamp,
            distinct_id=distinct_id,
            properties=properties,
        )
    return factory


@pytest.fixture
def config() -> ForwarderConfig:
    """Configuration matching the host plugin's usual setup."""
    return ForwarderConfig.from_dict({
        "eventsToInclude": "item_viewed,item_purchased",
        "requestURL": "http://svc/api/feedback",
        "methodType": "PUT",
    })
