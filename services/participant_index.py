"""
Name and role lookup per (meeting, participant).

Learned from ingestion events (participantRole / participantName). Text
events carry neither, so the sales detectors rely on what the audio side
already reported. Unknown participants resolve to role "unknown".
"""

import threading
from typing import Dict, Optional, Tuple

from utils.feedback_types import PARTICIPANT_ROLES


class ParticipantIndex:
    def __init__(self):
        self._names: Dict[Tuple[str, str], str] = {}
        self._roles: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def update(self, meeting_id: str, participant_id: str, role: Optional[str] = None,
               name: Optional[str] = None) -> None:
        """Record whatever the event told us; missing fields keep the previous value."""
        key = (meeting_id, participant_id)
        with self._lock:
            if role in PARTICIPANT_ROLES and role != "unknown":
                self._roles[key] = role
            if name and name.strip():
                self._names[key] = name.strip()

    def get_name(self, meeting_id: str, participant_id: str) -> Optional[str]:
        with self._lock:
            return self._names.get((meeting_id, participant_id))

    def get_role(self, meeting_id: str, participant_id: str) -> str:
        with self._lock:
            return self._roles.get((meeting_id, participant_id), "unknown")

    def forget_meeting(self, meeting_id: str) -> None:
        with self._lock:
            for table in (self._names, self._roles):
                for key in [k for k in table if k[0] == meeting_id]:
                    del table[key]
