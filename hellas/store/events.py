"""
Hellas Store - Event Channel

Status and progress reporting between the update engine and whatever
front-end consumes it. Publishers emit payload dicts on named topics;
subscribers receive them synchronously on the publishing thread. A
bounded history lets polling clients (the HTTP API) catch up by
sequence number.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from .models import ChannelEvent, ProgressEvent, StatusLevel, StatusMessage, UpdatePhase

logger = logging.getLogger(__name__)

TOPIC_UPDATE_PROGRESS = "update-progress"
TOPIC_INSTALL_STATUS = "install-status"
TOPIC_LAUNCH_STATUS = "launch-status"
TOPIC_ACCOUNT_UPDATED = "account-updated"

Subscriber = Callable[[str, Dict[str, Any]], None]


class EventChannel:
    """Topic-based publish/subscribe with a replayable history."""

    DEFAULT_HISTORY = 500

    def __init__(self, history_size: int = DEFAULT_HISTORY):
        self._lock = threading.Lock()
        self._subscribers: List[Tuple[Optional[str], Subscriber]] = []
        self._history: Deque[ChannelEvent] = deque(maxlen=history_size)
        self._seq = 0

    def subscribe(self, callback: Subscriber, topic: Optional[str] = None) -> Callable[[], None]:
        """
        Subscribe to one topic, or to all topics when topic is None.

        Returns:
            A function that removes the subscription.
        """
        entry = (topic, callback)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def emit(self, topic: str, payload: Dict[str, Any]) -> ChannelEvent:
        """Publish a payload. Subscriber failures are logged, never raised."""
        with self._lock:
            self._seq += 1
            event = ChannelEvent(seq=self._seq, topic=topic, payload=dict(payload))
            self._history.append(event)
            targets = [cb for t, cb in self._subscribers if t is None or t == topic]

        logger.debug("[EventChannel] %s #%d %s", topic, event.seq, payload)
        for callback in targets:
            try:
                callback(topic, event.payload)
            except Exception as e:
                logger.warning("[EventChannel] Subscriber failed on %s: %s", topic, e)
        return event

    def since(self, seq: int = 0, topic: Optional[str] = None) -> List[ChannelEvent]:
        """Events with a sequence number greater than seq."""
        with self._lock:
            return [
                e for e in self._history
                if e.seq > seq and (topic is None or e.topic == topic)
            ]

    @property
    def last_seq(self) -> int:
        return self._seq

    # =========================================================================
    # Typed helpers
    # =========================================================================

    def progress(
        self,
        state: UpdatePhase,
        progress: Optional[int] = None,
        *,
        version: Optional[str] = None,
        message: Optional[str] = None,
    ) -> ChannelEvent:
        event = ProgressEvent(state=state, progress=progress, version=version, message=message)
        return self.emit(TOPIC_UPDATE_PROGRESS, event.to_payload())

    def install_status(self, message: str, level: StatusLevel = StatusLevel.INFO) -> ChannelEvent:
        return self.emit(TOPIC_INSTALL_STATUS, StatusMessage(message=message, level=level).to_payload())

    def launch_status(self, message: str, level: StatusLevel = StatusLevel.INFO) -> ChannelEvent:
        return self.emit(TOPIC_LAUNCH_STATUS, StatusMessage(message=message, level=level).to_payload())
