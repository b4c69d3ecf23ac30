from __future__ import annotations

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

PARTICIPANT_JOINED = "participant-joined"
PREFERENCE_SUBMITTED = "preference-submitted"
ALL_READY = "all-ready"
STATUS_UPDATE = "status-update"
CONSENSUS_RESULTS = "consensus-results"
CONSENSUS_ERROR = "consensus-error"

_QUEUE_SIZE = 100


class EventBroadcaster:
    """Fan out session-scoped events to every subscribed observer.

    Each observer owns a bounded queue; a slow observer loses its oldest
    events instead of blocking publishers.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    def subscribe(self, session_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=_QUEUE_SIZE)
        self._subscribers.setdefault(session_id, set()).add(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(session_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[session_id]

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    def publish(self, session_id: str, event: str, data: dict[str, Any] | None = None) -> None:
        message = {"event": event, "data": data or {}}
        queues = list(self._subscribers.get(session_id, ()))
        for queue in queues:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(message)
        logger.debug("Published %s to %d observers of %s", event, len(queues), session_id)
