"""
In-memory delivery buffer for emitted feedback.

Each meeting keeps its most recent payloads (FEEDBACK_HISTORY_MAX) in a
bounded deque. The HTTP layer reads them back with GET /feedback/<meeting_id>;
a push transport can be layered on top of publish() later.
"""

import logging
import threading
from collections import deque
from typing import Deque, Dict, List, Optional

import config
from utils.feedback_types import FeedbackEventPayload

logger = logging.getLogger(__name__)


class FeedbackDelivery:
    def __init__(self, history_max: Optional[int] = None):
        self._history_max = history_max
        self._by_meeting: Dict[str, Deque[FeedbackEventPayload]] = {}
        self._lock = threading.Lock()

    def publish(self, payload: FeedbackEventPayload) -> None:
        """Append one payload to its meeting's buffer (oldest dropped when full)."""
        maxlen = self._history_max or config.FEEDBACK_HISTORY_MAX
        with self._lock:
            buf = self._by_meeting.get(payload.meeting_id)
            if buf is None:
                buf = deque(maxlen=maxlen)
                self._by_meeting[payload.meeting_id] = buf
            buf.append(payload)
        logger.debug("Delivered %s to meeting %s", payload.type, payload.meeting_id)

    def recent(self, meeting_id: str, limit: Optional[int] = None) -> List[FeedbackEventPayload]:
        """Newest last. `limit` keeps only the last N."""
        with self._lock:
            snap = list(self._by_meeting.get(meeting_id, ()))
        if limit is not None and limit >= 0:
            snap = snap[-limit:] if limit else []
        return snap

    def clear_meeting(self, meeting_id: str) -> int:
        with self._lock:
            buf = self._by_meeting.pop(meeting_id, None)
        return len(buf) if buf is not None else 0
