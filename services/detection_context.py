"""
Per-invocation façade handed to every detector.

A DetectionContext binds (meeting_id, participant_id, now). Detectors only
talk to this object, never to the registry. The base class implements the
required surface (identity, windowing, participant cooldowns, id generation)
and documents a safe default for every optional capability:

  - participant name / role          -> None
  - meeting enumeration / lookups    -> empty
  - candidates and overlap history   -> empty, writes ignored
  - meeting cooldowns                -> never in cooldown, writes ignored
  - recent emotions                  -> []  (anti-spam checks always allow)
  - emotion trend                    -> "stable"
  - tension level                    -> computed from the participant's EMA

RegistryDetectionContext backs every capability with the live registry.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from services import cooldowns
from services.state_registry import (
    ParticipantState,
    PostInterruptionCandidate,
    SolutionContextEntry,
    StateRegistry,
    WindowStats,
    window_stats,
)
from utils.context_adjustments import calculate_tension_level, trend_from_change, TREND_STABLE
from utils.feedback_types import FEEDBACK_TYPES, GROUP_PARTICIPANT_ID, SEVERITIES, FeedbackEventPayload


class DetectionContext:
    def __init__(self, meeting_id: str, participant_id: str, now: int):
        self.meeting_id = meeting_id
        self.participant_id = participant_id
        self.now = now

    # -- required -------------------------------------------------------
    def window(self, state: ParticipantState, window_ms: int) -> WindowStats:
        return window_stats(state, self.now, window_ms)

    def in_cooldown(self, state: ParticipantState, feedback_type: str) -> bool:
        return cooldowns.in_cooldown(state, feedback_type, self.now)

    def in_global_cooldown(self, state: ParticipantState) -> bool:
        return cooldowns.in_global_cooldown(state, self.now)

    def set_cooldown(self, state: ParticipantState, feedback_type: str, cooldown_ms: int) -> None:
        cooldowns.set_cooldown(state, feedback_type, self.now, cooldown_ms)

    def make_id(self) -> str:
        return uuid.uuid4().hex

    def feedback(self, feedback_type: str, severity: str, window: WindowStats, message: str,
                 tips: Sequence[str] = (), metadata: Optional[Dict[str, Any]] = None,
                 participant_id: Optional[str] = None) -> FeedbackEventPayload:
        """Build a payload stamped with this context's meeting, participant and clock."""
        if feedback_type not in FEEDBACK_TYPES or severity not in SEVERITIES:
            raise ValueError(f"Unknown feedback type or severity: {feedback_type}/{severity}")
        pid = participant_id or self.participant_id
        return FeedbackEventPayload(
            id=self.make_id(),
            type=feedback_type,
            severity=severity,
            ts=self.now,
            meeting_id=self.meeting_id,
            participant_id=pid,
            window_start=window.start,
            window_end=window.end,
            message=message,
            tips=tuple(tips),
            metadata=dict(metadata or {}),
            participant_name=self.participant_name(pid) if pid != GROUP_PARTICIPANT_ID else None,
        )

    # -- optional, with defaults ---------------------------------------
    def participant_name(self, participant_id: Optional[str] = None) -> Optional[str]:
        return None

    def participant_role(self, participant_id: Optional[str] = None) -> Optional[str]:
        return None

    def display_name(self, participant_id: Optional[str] = None) -> str:
        pid = participant_id or self.participant_id
        return self.participant_name(pid) or pid

    def participants_for_meeting(self) -> List[Tuple[str, ParticipantState]]:
        return []

    def participant_state(self, participant_id: str) -> Optional[ParticipantState]:
        return None

    def in_cooldown_meeting(self, feedback_type: str) -> bool:
        return False

    def set_cooldown_meeting(self, feedback_type: str, cooldown_ms: int) -> None:
        return None

    def post_interruption_candidates(self) -> List[PostInterruptionCandidate]:
        return []

    def update_post_interruption_candidates(self, candidates: List[PostInterruptionCandidate]) -> None:
        return None

    def overlap_history(self) -> List[int]:
        return []

    def update_overlap_history(self, timestamps: List[int]) -> None:
        return None

    def last_overlap_sample_at(self) -> Optional[int]:
        return None

    def set_last_overlap_sample_at(self, ts: int) -> None:
        return None

    def last_speaker(self) -> Optional[str]:
        return None

    def recent_emotions(self, state: ParticipantState, window_ms: int) -> List[Any]:
        return []

    def emotion_trend(self, state: ParticipantState, emotion: str, window_ms: int) -> str:
        return TREND_STABLE

    def tension_level(self, state: ParticipantState) -> str:
        return calculate_tension_level(state.ema.arousal, state.ema.valence)

    def solution_context_entries(self) -> List[SolutionContextEntry]:
        return []


class RegistryDetectionContext(DetectionContext):
    """DetectionContext backed by a StateRegistry and the participant index."""

    def __init__(self, registry: StateRegistry, meeting_id: str, participant_id: str, now: int,
                 participant_index=None):
        super().__init__(meeting_id, participant_id, now)
        self._registry = registry
        self._index = participant_index
        self._meeting = registry.meeting(meeting_id)

    def participant_name(self, participant_id: Optional[str] = None) -> Optional[str]:
        if self._index is None:
            return None
        return self._index.get_name(self.meeting_id, participant_id or self.participant_id)

    def participant_role(self, participant_id: Optional[str] = None) -> Optional[str]:
        if self._index is None:
            return None
        return self._index.get_role(self.meeting_id, participant_id or self.participant_id)

    def participants_for_meeting(self) -> List[Tuple[str, ParticipantState]]:
        return self._registry.participants_for_meeting(self.meeting_id)

    def participant_state(self, participant_id: str) -> Optional[ParticipantState]:
        return self._registry.get(self.meeting_id, participant_id)

    def in_cooldown_meeting(self, feedback_type: str) -> bool:
        return cooldowns.in_cooldown_meeting(self._meeting, feedback_type, self.now)

    def set_cooldown_meeting(self, feedback_type: str, cooldown_ms: int) -> None:
        cooldowns.set_cooldown_meeting(self._meeting, feedback_type, self.now, cooldown_ms)

    def post_interruption_candidates(self) -> List[PostInterruptionCandidate]:
        return list(self._meeting.post_interruption_candidates)

    def update_post_interruption_candidates(self, candidates: List[PostInterruptionCandidate]) -> None:
        self._meeting.post_interruption_candidates = list(candidates)

    def overlap_history(self) -> List[int]:
        return list(self._meeting.overlap_history)

    def update_overlap_history(self, timestamps: List[int]) -> None:
        self._meeting.overlap_history = list(timestamps)

    def last_overlap_sample_at(self) -> Optional[int]:
        return self._meeting.last_overlap_sample_at

    def set_last_overlap_sample_at(self, ts: int) -> None:
        self._meeting.last_overlap_sample_at = ts

    def last_speaker(self) -> Optional[str]:
        return self._meeting.last_speaker

    def recent_emotions(self, state: ParticipantState, window_ms: int) -> List[Any]:
        cutoff = self.now - window_ms
        return [e for e in state.recent_emotions if e.ts >= cutoff]

    def emotion_trend(self, state: ParticipantState, emotion: str, window_ms: int) -> str:
        """Compare the oldest and newest raw sample scores of an emotion inside the window."""
        cutoff = self.now - window_ms
        newest = None
        oldest = None
        for s in reversed(state.samples):
            if s.ts < cutoff:
                break
            score = s.emotions.get(emotion)
            if score is None:
                continue
            if newest is None:
                newest = score
            oldest = score
        if newest is None or oldest is None:
            return TREND_STABLE
        return trend_from_change(newest - oldest)

    def solution_context_entries(self) -> List[SolutionContextEntry]:
        return list(self._meeting.solution_context)
