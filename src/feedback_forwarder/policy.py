"""Allow-list filtering of incoming events."""

from __future__ import annotations

from dataclasses import dataclass

from .events import Event


def parse_allow_list(allow_list: str) -> frozenset[str]:
    """Split a comma-separated allow-list. Names are matched verbatim, no trimming."""
    return frozenset(allow_list.split(","))


def should_forward(event: Event, allow_list: str) -> bool:
    """True iff the event's name is allowed and it carries properties."""
    return ForwardingPolicy.from_allow_list(allow_list).accepts(event)


@dataclass(frozen=True, slots=True)
class ForwardingPolicy:
    """
    Filter applied before an event reaches the buffer or delivery client.

    Rejection is silent: no error, no metric, no log line.
    """
    event_names: frozenset[str]

    @classmethod
    def from_allow_list(cls, allow_list: str) -> ForwardingPolicy:
        return cls(event_names=parse_allow_list(allow_list))

    def accepts(self, event: Event) -> bool:
        return event.name in self.event_names and event.properties is not None
