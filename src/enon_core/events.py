"""EventChannel — ordered, synchronous observer channel.

Components publish state changes, candidate counts, emergency collapses and
decision records through one :class:`EventChannel`.  Delivery order is
registration order, so the sequence of events seen by a subscriber is
reproducible and testable.

>>> channel = EventChannel()
>>> seen = []
>>> token = channel.subscribe("candidates-created", seen.append)
>>> channel.emit("candidates-created", {"count": 2})
>>> seen[0].payload
{'count': 2}
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

__all__ = [
    "Event",
    "EventChannel",
    "WILDCARD",
    "REGISTER_INITIALIZED",
    "EVALUATION_COMPLETE",
    "DECISION_LOGGED",
    "THRESHOLD_UPDATED",
    "HISTORY_CLEARED",
    "CANDIDATES_CREATED",
    "COLLAPSE_APPLIED",
    "COLLAPSE_EMERGENCY",
    "STATE_CHANGED",
    "TEMPORAL_CORRECTION",
    "CORE_RESET",
]

WILDCARD = "*"

# ── event names ─────────────────────────────────────────────────
REGISTER_INITIALIZED = "register-initialized"
EVALUATION_COMPLETE = "evaluation-complete"
DECISION_LOGGED = "decision-logged"
THRESHOLD_UPDATED = "threshold-updated"
HISTORY_CLEARED = "history-cleared"
CANDIDATES_CREATED = "candidates-created"
COLLAPSE_APPLIED = "collapse-applied"
COLLAPSE_EMERGENCY = "collapse-emergency"
STATE_CHANGED = "state-changed"
TEMPORAL_CORRECTION = "temporal-correction"
CORE_RESET = "core-reset"


@dataclass(frozen=True)
class Event:
    """One delivered event.

    ``sequence`` increases by one per :meth:`EventChannel.emit` call on
    the channel, starting at 1.
    """
    name: str
    payload: Any
    sequence: int


Handler = Callable[[Event], Any]


class EventChannel:
    """Synchronous publish/subscribe channel.

    Handlers subscribed to a specific name and handlers subscribed to
    :data:`WILDCARD` share a single ordering: whichever subscribed first
    is called first.

    A handler that raises is logged and skipped; the remaining handlers
    still receive the event and :meth:`emit` returns normally.
    """

    def __init__(self):
        self._subs: Dict[int, Tuple[str, Handler]] = {}
        self._tokens = itertools.count(1)
        self._sequence = 0

    def __len__(self) -> int:
        return len(self._subs)

    def __repr__(self) -> str:
        return f"EventChannel({len(self._subs)} subscribers)"

    def subscribe(self, name: str, handler: Handler) -> int:
        """Register *handler* for *name* (or ``"*"``); return a token."""
        if not callable(handler):
            raise TypeError(f"handler must be callable, got {handler!r}")
        token = next(self._tokens)
        self._subs[token] = (name, handler)
        return token

    def unsubscribe(self, token: int) -> bool:
        """Remove a subscription.  Returns False if *token* is unknown."""
        return self._subs.pop(token, None) is not None

    def clear(self) -> None:
        """Drop every subscription."""
        self._subs.clear()

    def subscribers(self, name: str) -> List[Handler]:
        """Handlers that would receive *name*, in delivery order."""
        return [h for n, h in self._subs.values()
                if n == name or n == WILDCARD]

    def emit(self, name: str, payload: Any = None) -> Event:
        """Deliver *payload* to every matching handler, in order."""
        self._sequence += 1
        event = Event(name=name, payload=payload, sequence=self._sequence)
        # snapshot so handlers may (un)subscribe during delivery
        for handler in self.subscribers(name):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler %r failed on %r",
                                 handler, name)
        return event
