"""Structured scheduling events.

The engine reports its decisions (allocations, rule denials, pass
transitions) as events. Each event is kept on the recorder for callers
and tests, and forwarded to the standard logging tree with the event
payload in ``extra`` so a structured handler can pick it up.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Kinds of scheduling events."""

    PASS_STARTED = "pass_started"
    PASS_COMPLETED = "pass_completed"
    ALLOCATED = "allocated"
    RULE_DENIED = "rule_denied"
    RESERVATION_CREATED = "reservation_created"
    RESERVATION_BROKEN = "reservation_broken"
    IMPOSSIBLE_DEMAND = "impossible_demand"
    CASCADE_RISK = "cascade_risk"
    REBALANCED = "rebalanced"
    SWAPPED = "swapped"
    RELAXED_ALLOCATION = "relaxed_allocation"
    THIRD_SHIFT_GRANTED = "third_shift_granted"
    GLOBAL_GATE = "global_gate"
    ATTEMPT_FAILED = "attempt_failed"
    WEEK_ACCEPTED = "week_accepted"


_LEVELS = {
    EventKind.RULE_DENIED: logging.DEBUG,
    EventKind.ALLOCATED: logging.DEBUG,
    EventKind.IMPOSSIBLE_DEMAND: logging.WARNING,
    EventKind.CASCADE_RISK: logging.WARNING,
    EventKind.RESERVATION_BROKEN: logging.WARNING,
    EventKind.ATTEMPT_FAILED: logging.WARNING,
}


@dataclass
class SchedulingEvent:
    """A single engine decision."""

    kind: EventKind
    message: str
    data: dict[str, Any] = field(default_factory=dict)


class EventRecorder:
    """Collects scheduling events and forwards them to logging.

    Args:
        record_denials: Keep RULE_DENIED events (they are numerous).
        sink: Logger receiving the events.
    """

    def __init__(self, record_denials: bool = False, sink: Optional[logging.Logger] = None):
        self.record_denials = record_denials
        self.sink = sink or logger
        self.events: list[SchedulingEvent] = []

    def emit(self, kind: EventKind, message: str, **data: Any) -> None:
        if kind is EventKind.RULE_DENIED and not self.record_denials:
            return
        event = SchedulingEvent(kind=kind, message=message, data=data)
        self.events.append(event)
        level = _LEVELS.get(kind, logging.INFO)
        if self.sink.isEnabledFor(level):
            self.sink.log(level, message, extra={"event": kind.value, "event_data": data})

    def of_kind(self, kind: EventKind) -> list[SchedulingEvent]:
        return [e for e in self.events if e.kind is kind]

    def clear(self) -> None:
        self.events.clear()
