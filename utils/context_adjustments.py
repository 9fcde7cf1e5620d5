"""
Context-aware threshold adjustment for primary emotion detectors.

Thresholds tighten for negative emotions under high tension or a rising
trend, and loosen for positive ones when the room is calm. Recent-emotion
helpers implement the anti-spam rules (repeat bursts, near-duplicate
scores) shared by every primary detector.
"""

from typing import Optional

TENSION_HIGH = "high"
TENSION_MODERATE = "moderate"
TENSION_LOW = "low"

TREND_INCREASING = "increasing"
TREND_DECREASING = "decreasing"
TREND_STABLE = "stable"

TREND_DELTA = 0.02


def calculate_tension_level(arousal: Optional[float], valence: Optional[float]) -> str:
    if arousal is not None and valence is not None:
        if arousal > 0.5 and valence < 0.0:
            return TENSION_HIGH
        if arousal < 0.2 and valence > 0.2:
            return TENSION_LOW
    return TENSION_MODERATE


# Per-family tension factors
def hostility_threshold(base: float, tension_level: str) -> float:
    return base * 0.8 if tension_level == TENSION_HIGH else base


def threat_threshold(base: float, tension_level: str) -> float:
    return base * 0.85 if tension_level == TENSION_HIGH else base


def deep_sadness_threshold(base: float, tension_level: str) -> float:
    return base * 0.9 if tension_level == TENSION_HIGH else base


def engagement_threshold(base: float, tension_level: str, reduction: float = 0.10) -> float:
    return base * (1.0 - reduction) if tension_level == TENSION_LOW else base


def serenity_threshold(base: float, tension_level: str) -> float:
    return base * 0.85 if tension_level == TENSION_LOW else base


def connection_threshold(base: float, tension_level: str) -> float:
    return base * 0.9 if tension_level == TENSION_LOW else base


def threshold_by_trend(base: float, emotion_trend: str, category: str = "neutral") -> float:
    if category == "negative":
        if emotion_trend == TREND_INCREASING:
            return base * 0.85
        if emotion_trend == TREND_DECREASING:
            return base * 1.1
    return base


# ---------------------------------------------------------------------------
# Recent-emotion helpers. `recent` is any iterable of objects with
# .type, .ts and optionally .score (see state_registry.RecentEmotion).
# ---------------------------------------------------------------------------
def _same_type(recent, emotion_type: str, cutoff: int, newest_first: bool = True):
    items = [e for e in (recent or ()) if e.type == emotion_type and e.ts >= cutoff]
    items.sort(key=lambda e: e.ts, reverse=newest_first)
    return items


def has_consistent_trend(recent, emotion_type: str, window_ms: int = 30_000, now: int = 0) -> bool:
    """Three same-type detections within the window, each gap under 15 s."""
    recent = list(recent or ())
    if len(recent) < 3:
        return False
    same = _same_type(recent, emotion_type, now - window_ms)
    if len(same) < 3:
        return False
    gap1 = same[0].ts - same[1].ts
    gap2 = same[1].ts - same[2].ts
    return gap1 < 15_000 and gap2 < 15_000


def has_recent_overlap(recent, emotion_type: str, current_score: float,
                       window_ms: int = 20_000, now: int = 0) -> bool:
    """
    True when a same-type detection within the window had a score the
    current one does not beat by more than 20%. A missing stored score is
    assumed to be 80% of the current one.
    """
    same = _same_type(recent, emotion_type, now - window_ms)
    if not same:
        return False
    last_score = same[0].score
    if last_score is None:
        last_score = current_score * 0.8
    return current_score <= last_score * 1.2


def trend_from_change(change: float) -> str:
    """Classify an emotion score change; +/-0.02 counts as stable."""
    if change > TREND_DELTA:
        return TREND_INCREASING
    if change < -TREND_DELTA:
        return TREND_DECREASING
    return TREND_STABLE
