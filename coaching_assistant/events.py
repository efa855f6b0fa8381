"""In-process publish/subscribe channel for state changes.

The core never calls UI code; it publishes events here and observers (the
SSE endpoints, tests) pull them from their own queue.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Event types
LIVE_RESPONSE = "live_response"
HISTORY = "history"
SUBMISSION_STATE = "submission_state"
TRANSCRIPT = "transcript"
PREVIEW = "preview"
QUESTIONS = "questions"
NOTIFICATION = "notification"


class EventBus:
    """Fan-out of event dicts to any number of subscriber queues."""

    def __init__(self, queue_size: int = 500):
        self._queue_size = queue_size
        self._subscribers: List[asyncio.Queue] = []

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        try:
            self._subscribers.remove(q)
        except ValueError:
            pass

    def publish(self, event_type: str, **payload: Any) -> Dict[str, Any]:
        event = {"type": event_type, "ts": time.time(), **payload}
        for q in list(self._subscribers):
            # backpressure: drop oldest if a subscriber is behind
            if q.full():
                try:
                    q.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            q.put_nowait(event)
        return event

    def notify(self, severity: str, message: str, kind: Optional[str] = None) -> None:
        """User-visible notification (snackbar-style)."""
        log = logger.error if severity == "error" else logger.info
        log("[NOTIFY] %s: %s", severity, message)
        self.publish(NOTIFICATION, severity=severity, message=message, kind=kind)
