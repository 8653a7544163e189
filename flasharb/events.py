# flasharb/events.py
"""
Structured events for external monitoring
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

TRADE_STARTED = "TradeStarted"
TRADE_SUCCEEDED = "TradeSucceeded"
TRADE_FAILED = "TradeFailed"
CIRCUIT_BREAKER_STATE_CHANGED = "CircuitBreakerStateChanged"
ROUTE_FAILED = "RouteFailed"


@dataclass
class Event:
    name: str
    timestamp: float
    data: Dict[str, Any] = field(default_factory=dict)


class EventLog:
    """Keeps published events in order and fans them out to subscribers"""

    def __init__(self):
        self.events: List[Event] = []
        self._subscribers: List[Callable[[Event], None]] = []

    def subscribe(self, handler: Callable[[Event], None]) -> None:
        self._subscribers.append(handler)

    def publish(self, event: Event) -> None:
        self.events.append(event)
        logger.info(f"[event] {event.name} {event.data}")
        for handler in self._subscribers:
            handler(event)

    def publish_all(self, events: List[Event]) -> None:
        for event in events:
            self.publish(event)

    def named(self, name: str) -> List[Event]:
        return [e for e in self.events if e.name == name]
