"""
Cooldown bookkeeping backed by "unlock-at" timestamps.

Participant cooldowns live in ParticipantState.cooldown_until_by_type and
meeting cooldowns in MeetingState.cooldown_until_by_type, so one
participant's cooldown never blocks another's group-scope detector.
set_cooldown also stamps last_feedback_at, which drives the cross-type
global debounce.
"""

from typing import Optional

import config
from services.state_registry import MeetingState, ParticipantState


def in_cooldown(state: ParticipantState, feedback_type: str, now: int) -> bool:
    until = state.cooldown_until_by_type.get(feedback_type)
    return until is not None and now < until


def set_cooldown(state: ParticipantState, feedback_type: str, now: int, cooldown_ms: int) -> None:
    state.cooldown_until_by_type[feedback_type] = now + cooldown_ms
    state.last_feedback_at = now


def in_global_cooldown(state: ParticipantState, now: int, gap_ms: Optional[int] = None) -> bool:
    if state.last_feedback_at is None:
        return False
    if gap_ms is None:
        gap_ms = config.FEEDBACK_GLOBAL_COOLDOWN_MS
    return now - state.last_feedback_at < gap_ms


def in_cooldown_meeting(meeting: MeetingState, feedback_type: str, now: int) -> bool:
    until = meeting.cooldown_until_by_type.get(feedback_type)
    return until is not None and now < until


def set_cooldown_meeting(meeting: MeetingState, feedback_type: str, now: int, cooldown_ms: int) -> None:
    meeting.cooldown_until_by_type[feedback_type] = now + cooldown_ms
