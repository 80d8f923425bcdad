"""Event and feedback record types."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


# Epoch values above this are milliseconds
_EPOCH_MS_THRESHOLD = 1e11


@dataclass(frozen=True, slots=True)
class Event:
    """
    A single analytics event delivered by the host pipeline.

    Owned by the host and passed in by reference; never mutated here.
    """
    name: str
    timestamp: str | int | float | datetime | None = None
    distinct_id: str | None = None
    properties: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Create an event from a host payload (``event``/``name`` keys both accepted)."""
        return cls(
            name=data.get("event", data.get("name", "")),
            timestamp=data.get("timestamp"),
            distinct_id=data.get("distinct_id", data.get("distinctId")),
            properties=data.get("properties"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event": self.name,
            "timestamp": self.timestamp,
            "distinct_id": self.distinct_id,
            "properties": self.properties,
        }


@dataclass(frozen=True, slots=True)
class FieldMapping:
    """
    Where feedback fields come from in an event.

    Paths are dotted lookups into ``Event.properties``
    (e.g. ``segment_traits.anonymousId``). ``None`` for ``user_id`` or
    ``timestamp`` means the top-level event field.
    """
    item_id: str = "item_id"
    user_id: str | None = None
    timestamp: str | None = None


@dataclass(frozen=True, slots=True)
class FeedbackRecord:
    """Normalized payload for the recommendation engine's feedback endpoint."""
    feedback_type: str = ""
    item_id: str = ""
    timestamp: str = ""
    user_id: str = ""
    comment: str = ""

    @property
    def is_malformed(self) -> bool:
        """A record without an item is accepted but points at a bad upstream event."""
        return not self.item_id

    def to_dict(self) -> dict[str, str]:
        """Wire representation, keyed the way the feedback API expects."""
        return {
            "Comment": self.comment,
            "FeedbackType": self.feedback_type,
            "ItemId": self.item_id,
            "Timestamp": self.timestamp,
            "UserId": self.user_id,
        }


def extract_path(data: Any, path: str) -> Any:
    """Extract nested data using dot notation."""
    for key in path.split("."):
        if isinstance(data, dict):
            data = data.get(key)
        elif isinstance(data, list) and key.isdigit():
            idx = int(key)
            data = data[idx] if 0 <= idx < len(data) else None
        else:
            return None
    return data


def normalize_timestamp(value: Any) -> str:
    """Render a timestamp as a string; numbers are treated as epoch time."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return str(value)
    return str(value)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def build_feedback(event: Event, mapping: FieldMapping | None = None) -> FeedbackRecord:
    """
    Build a feedback record from an event.

    Never raises: missing fields become empty strings.
    """
    mapping = mapping or FieldMapping()
    properties = event.properties or {}

    if mapping.user_id:
        user_id = extract_path(properties, mapping.user_id)
    else:
        user_id = event.distinct_id

    if mapping.timestamp:
        timestamp = extract_path(properties, mapping.timestamp)
    else:
        timestamp = event.timestamp

    return FeedbackRecord(
        feedback_type=_as_text(event.name),
        item_id=_as_text(extract_path(properties, mapping.item_id)),
        timestamp=normalize_timestamp(timestamp),
        user_id=_as_text(user_id),
    )


def event_size(event: Event) -> int:
    """Approximate size of an event in bytes (its JSON encoding)."""
    return len(json.dumps(event.to_dict(), default=str).encode("utf-8"))
