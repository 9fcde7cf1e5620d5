"""
Per-participant and per-meeting state for the feedback engine.

StateRegistry owns exactly one ParticipantState per (meeting_id, participant_id)
and one MeetingState per meeting. Samples are appended in arrival order,
pruned to the retention horizon (65 s) and folded into per-signal EMAs.

Every public mutation happens while the caller holds the meeting lock
(see StateRegistry.meeting_lock); the registry lock only guards the maps.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Tuple

from utils.thresholds import EMA_ALPHA, LONGTERM, TEXT_HISTORY_MAX, WINDOWS

logger = logging.getLogger(__name__)

RECENT_EMOTIONS_MAX = 50


@dataclass(frozen=True)
class Sample:
    ts: int
    speech: bool
    valence: Optional[float] = None
    arousal: Optional[float] = None
    rms_dbfs: Optional[float] = None
    emotions: Dict[str, float] = field(default_factory=dict)


@dataclass
class EmaState:
    valence: Optional[float] = None
    arousal: Optional[float] = None
    rms: Optional[float] = None
    emotions: Dict[str, float] = field(default_factory=dict)

    def emotion(self, name: str) -> float:
        return self.emotions.get(name, 0.0)


@dataclass
class TextHistoryEntry:
    text: str
    timestamp: int
    sales_category: Optional[str] = None
    sales_category_confidence: Optional[float] = None
    sales_category_intensity: Optional[float] = None
    sales_category_ambiguity: Optional[float] = None


@dataclass
class TextAnalysisState:
    """Latest NLP analysis for a participant plus a bounded history of turns."""
    sentiment: Dict[str, float] = field(default_factory=lambda: {"positive": 0.0, "negative": 0.0, "neutral": 0.0})
    keywords: List[str] = field(default_factory=list)
    has_question: bool = False
    last_update: Optional[int] = None
    intent: Optional[str] = None
    intent_confidence: Optional[float] = None
    topic: Optional[str] = None
    topic_confidence: Optional[float] = None
    speech_act: Optional[str] = None
    speech_act_confidence: Optional[float] = None
    entities: List[str] = field(default_factory=list)
    sentiment_label: Optional[str] = None
    sentiment_score: Optional[float] = None
    urgency: Optional[float] = None
    embedding: List[float] = field(default_factory=list)
    sales_category: Optional[str] = None
    sales_category_confidence: Optional[float] = None
    sales_category_intensity: Optional[float] = None
    sales_category_ambiguity: Optional[float] = None
    sales_category_flags: Dict[str, Any] = field(default_factory=dict)
    sales_category_aggregated: Dict[str, Any] = field(default_factory=dict)
    sales_category_transition: Dict[str, Any] = field(default_factory=dict)
    sales_category_trend: Dict[str, Any] = field(default_factory=dict)
    conditional_keywords_detected: List[str] = field(default_factory=list)
    indecision_metrics: Dict[str, Any] = field(default_factory=dict)
    text_history: Deque[TextHistoryEntry] = field(default_factory=lambda: deque(maxlen=TEXT_HISTORY_MAX))

    @property
    def latest_text(self) -> str:
        return self.text_history[-1].text if self.text_history else ""


@dataclass
class RecentEmotion:
    type: str
    ts: int
    score: Optional[float] = None


@dataclass
class ParticipantState:
    samples: Deque[Sample] = field(default_factory=deque)
    ema: EmaState = field(default_factory=EmaState)
    cooldown_until_by_type: Dict[str, int] = field(default_factory=dict)
    last_feedback_at: Optional[int] = None
    text_analysis: Optional[TextAnalysisState] = None
    recent_emotions: Deque[RecentEmotion] = field(default_factory=lambda: deque(maxlen=RECENT_EMOTIONS_MAX))

    def has_spoken(self) -> bool:
        return any(s.speech for s in self.samples)


@dataclass
class PostInterruptionCandidate:
    ts: int
    interrupted_id: str
    valence_before: Optional[float] = None


@dataclass
class SolutionContextEntry:
    ts: int
    participant_id: str
    role: str
    text: str
    embedding: List[float]
    keywords: List[str]
    strength: float


@dataclass
class MeetingState:
    cooldown_until_by_type: Dict[str, int] = field(default_factory=dict)
    overlap_history: List[int] = field(default_factory=list)
    last_overlap_sample_at: Optional[int] = None
    last_speaker: Optional[str] = None
    post_interruption_candidates: List[PostInterruptionCandidate] = field(default_factory=list)
    solution_context: List[SolutionContextEntry] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)


@dataclass(frozen=True)
class WindowStats:
    start: int
    end: int
    samples_count: int
    speech_count: int
    mean_rms_dbfs: Optional[float] = None

    @property
    def speech_coverage(self) -> float:
        return self.speech_count / self.samples_count if self.samples_count > 0 else 0.0


def window_stats(state: ParticipantState, now: int, window_ms: int) -> WindowStats:
    """
    Trailing-window statistics over a participant's samples.

    Scans newest to oldest and stops at the window boundary, so the cost is
    proportional to the window, not to the whole buffer.
    """
    start = now - window_ms
    samples_count = 0
    speech_count = 0
    rms_sum = 0.0
    rms_n = 0
    for s in reversed(state.samples):
        if s.ts < start:
            break
        samples_count += 1
        if s.speech:
            speech_count += 1
        if s.rms_dbfs is not None:
            rms_sum += s.rms_dbfs
            rms_n += 1
    mean_rms = rms_sum / rms_n if rms_n > 0 else None
    return WindowStats(start, now, samples_count, speech_count, mean_rms)


def _smooth(old: Optional[float], new: float) -> float:
    if old is None:
        return new
    return EMA_ALPHA * new + (1 - EMA_ALPHA) * old


def update_ema(state: ParticipantState, sample: Sample) -> None:
    ema = state.ema
    if sample.valence is not None:
        ema.valence = _smooth(ema.valence, sample.valence)
    if sample.arousal is not None:
        ema.arousal = _smooth(ema.arousal, sample.arousal)
    if sample.rms_dbfs is not None:
        ema.rms = _smooth(ema.rms, sample.rms_dbfs)
    for name, score in sample.emotions.items():
        key = name.lower()
        ema.emotions[key] = _smooth(ema.emotions.get(key), score)


def prune_samples(state: ParticipantState, now: int, horizon_ms: int = WINDOWS["prune"]) -> None:
    cutoff = now - horizon_ms
    samples = state.samples
    while samples and samples[0].ts < cutoff:
        samples.popleft()


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


class StateRegistry:
    """Owns all participant and meeting state for the process."""

    def __init__(self):
        self._states: Dict[Tuple[str, str], ParticipantState] = {}
        self._meetings: Dict[str, MeetingState] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get_or_create(self, meeting_id: str, participant_id: str) -> ParticipantState:
        key = (meeting_id, participant_id)
        with self._lock:
            state = self._states.get(key)
            if state is None:
                state = ParticipantState()
                self._states[key] = state
            return state

    def get(self, meeting_id: str, participant_id: str) -> Optional[ParticipantState]:
        with self._lock:
            return self._states.get((meeting_id, participant_id))

    def participants_for_meeting(self, meeting_id: str) -> List[Tuple[str, ParticipantState]]:
        with self._lock:
            return [(pid, st) for (mid, pid), st in self._states.items() if mid == meeting_id]

    def meeting(self, meeting_id: str) -> MeetingState:
        with self._lock:
            m = self._meetings.get(meeting_id)
            if m is None:
                m = MeetingState()
                self._meetings[meeting_id] = m
            return m

    def meeting_lock(self, meeting_id: str) -> threading.RLock:
        """Serializes every event of a meeting; covers both per-key and meeting-scoped state."""
        return self.meeting(meeting_id).lock

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def apply_sample(self, meeting_id: str, participant_id: str, sample: Sample) -> ParticipantState:
        """Append a sample, prune beyond the retention horizon and update the EMAs."""
        state = self.get_or_create(meeting_id, participant_id)
        state.samples.append(sample)
        prune_samples(state, sample.ts)
        update_ema(state, sample)
        return state

    def update_text_analysis(self, state: ParticipantState, text: str, timestamp: int,
                             analysis: Dict[str, Any]) -> TextAnalysisState:
        previous = state.text_analysis
        history = previous.text_history if previous is not None else deque(maxlen=TEXT_HISTORY_MAX)
        history.append(TextHistoryEntry(
            text=text,
            timestamp=timestamp,
            sales_category=analysis.get("sales_category"),
            sales_category_confidence=analysis.get("sales_category_confidence"),
            sales_category_intensity=analysis.get("sales_category_intensity"),
            sales_category_ambiguity=analysis.get("sales_category_ambiguity"),
        ))

        label = analysis.get("sentiment")
        score = analysis.get("sentiment_score")
        score = float(score) if isinstance(score, (int, float)) else 0.0
        sentiment = {k: (score if label == k else 0.0) for k in ("positive", "negative", "neutral")}
        embedding = [float(v) for v in _as_list(analysis.get("embedding")) if isinstance(v, (int, float))]

        ta = TextAnalysisState(
            sentiment=sentiment,
            keywords=[str(k) for k in _as_list(analysis.get("keywords"))],
            has_question=analysis.get("speech_act") == "question",
            last_update=timestamp,
            intent=analysis.get("intent"),
            intent_confidence=analysis.get("intent_confidence"),
            topic=analysis.get("topic"),
            topic_confidence=analysis.get("topic_confidence"),
            speech_act=analysis.get("speech_act"),
            speech_act_confidence=analysis.get("speech_act_confidence"),
            entities=[str(e) for e in _as_list(analysis.get("entities"))],
            sentiment_label=label,
            sentiment_score=score,
            urgency=analysis.get("urgency"),
            embedding=embedding,
            sales_category=analysis.get("sales_category"),
            sales_category_confidence=analysis.get("sales_category_confidence"),
            sales_category_intensity=analysis.get("sales_category_intensity"),
            sales_category_ambiguity=analysis.get("sales_category_ambiguity"),
            sales_category_flags=_as_dict(analysis.get("sales_category_flags")),
            sales_category_aggregated=_as_dict(analysis.get("sales_category_aggregated")),
            sales_category_transition=_as_dict(analysis.get("sales_category_transition")),
            sales_category_trend=_as_dict(analysis.get("sales_category_trend")),
            conditional_keywords_detected=[str(k) for k in _as_list(analysis.get("conditional_keywords_detected"))],
            indecision_metrics=_as_dict(analysis.get("indecision_metrics")),
            text_history=history,
        )
        state.text_analysis = ta
        return ta

    def record_emotion(self, state: ParticipantState, feedback_type: str, ts: int,
                       score: Optional[float] = None) -> None:
        state.recent_emotions.append(RecentEmotion(feedback_type, ts, score))

    def update_speaker_tracking(self, meeting_id: str, now: int) -> Optional[str]:
        """
        Mark the dominant short-window speaker as the meeting's last speaker.

        Dominant means coverage >= 0.5 while the runner-up stays below 0.2.
        Returns the current last speaker (possibly unchanged).
        """
        participants = self.participants_for_meeting(meeting_id)
        meeting = self.meeting(meeting_id)
        if not participants:
            return meeting.last_speaker
        top_id = None
        top_cov = 0.0
        second_cov = 0.0
        for pid, st in participants:
            w = window_stats(st, now, WINDOWS["short"])
            if w.samples_count == 0:
                continue
            cov = w.speech_coverage
            if cov > top_cov:
                second_cov = top_cov
                top_cov = cov
                top_id = pid
            elif cov > second_cov:
                second_cov = cov
        tracking = LONGTERM["speaker_tracking"]
        if top_id and top_cov >= tracking["dominant_coverage"] and second_cov < tracking["runner_up_max"]:
            meeting.last_speaker = top_id
        return meeting.last_speaker

    def evict_meeting(self, meeting_id: str) -> int:
        """Drop every participant and meeting-scoped entry for a meeting. Returns participants removed."""
        with self._lock:
            keys = [k for k in self._states if k[0] == meeting_id]
            for k in keys:
                del self._states[k]
            self._meetings.pop(meeting_id, None)
        logger.info("Evicted meeting %s (%d participants)", meeting_id, len(keys))
        return len(keys)
