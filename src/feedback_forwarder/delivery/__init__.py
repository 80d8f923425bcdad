"""Delivery of feedback records to the recommendation engine."""

from .base import DeliveryError, FeedbackSink, SerializationError, is_success
from .http import HttpFeedbackClient

__all__ = [
    "DeliveryError",
    "FeedbackSink",
    "SerializationError",
    "is_success",
    "HttpFeedbackClient",
]
