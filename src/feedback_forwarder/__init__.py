"""
Feedback Forwarder - analytics events to recommendation-engine feedback

Filters a stream of analytics events by name, optionally batches them by
size and age, and delivers them as feedback records over HTTP, counting
requests and failures.
"""

from .buffer import EventBuffer
from .config import BatchConfig, ConfigurationError, FieldMappingConfig, ForwarderConfig
from .delivery import DeliveryError, HttpFeedbackClient, SerializationError
from .events import Event, FeedbackRecord, FieldMapping, build_feedback, event_size
from .forwarder import FeedbackForwarder
from .metrics import Counter, ForwarderMetrics
from .policy import ForwardingPolicy, should_forward

__version__ = "0.1.0"

__all__ = [
    "BatchConfig",
    "ConfigurationError",
    "Counter",
    "DeliveryError",
    "Event",
    "EventBuffer",
    "FeedbackForwarder",
    "FeedbackRecord",
    "FieldMapping",
    "FieldMappingConfig",
    "ForwarderConfig",
    "ForwarderMetrics",
    "ForwardingPolicy",
    "HttpFeedbackClient",
    "SerializationError",
    "build_feedback",
    "event_size",
    "should_forward",
]
