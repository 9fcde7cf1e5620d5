"""
Detection thresholds, gates, cooldowns and windows for the feedback engine.

All values are compile-time constants grouped by detection layer:
  1. PRIMARY   - per-emotion cutoffs on EMA scores (0..1 scale)
  2. META      - trend / interruption / polarization parameters
  3. PROSODY   - dBFS, arousal, valence, monotony and pace bands
  4. LONGTERM  - silence, overlap and interruption frequency

Runtime-tunable values (text/sales detector cooldowns, thresholds, context
windows) live in config.py instead.
"""

from typing import Dict

# EMA smoothing factor: ema = ALPHA * new + (1 - ALPHA) * old
EMA_ALPHA: float = 0.3

# Trailing windows (ms)
WINDOWS: Dict[str, int] = {
    "short": 3_000,
    "long": 10_000,
    "trend": 20_000,
    "prune": 65_000,
}

# Minimum speech coverage per layer
GATES: Dict[str, float] = {
    "min_speech_primary": 0.18,
    "min_speech_meta": 0.22,
    "min_speech_prosodic": 0.30,
    "min_speech_prosodic_volume": 0.50,
    "min_speech_longterm": 0.15,
}

# ============================================================================
# LAYER 1: PRIMARY EMOTIONS
# ============================================================================
PRIMARY_MIN_SAMPLES: int = 6
SIGNIFICANT_EMOTION: float = 0.07

PRIMARY: Dict[str, Dict[str, float]] = {
    "hostility": {
        "anger": 0.20,
        "disgust": 0.12,
        "distress": 0.09,
        "rage": 0.10,
        "contempt": 0.09,
        "fear": 0.15,
        "horror": 0.18,
        "terror": 0.18,
        "anxiety": 0.12,
    },
    "frustration": {
        "frustration": 0.15,
    },
    "boredom": {
        "boredom": 0.15,
        "tiredness": 0.20,
        "interest_low": 0.15,
    },
    "confusion": {
        # confusion alone is effectively disabled; doubt drives this detector
        "confusion": 1.0,
        "doubt": 0.15,
    },
    "engagement": {
        "interest": 0.06,
        "joy": 0.06,
        "determination": 0.06,
        "enthusiasm": 0.06,
        "excitement": 0.06,
        "ecstasy": 0.08,
        "triumph": 0.08,
        "awe": 0.08,
        "admiration": 0.08,
        "amusement": 0.07,
        "entrancement": 0.07,
    },
    "serenity": {
        "calmness": 0.08,
        "contentment": 0.08,
        "relief": 0.08,
        "satisfaction": 0.08,
    },
    "connection": {
        "affection": 0.07,
        "empathic pain": 0.07,
        "love": 0.07,
        "sympathy": 0.07,
    },
    "sadness": {
        "sadness": 0.10,
        "disappointment": 0.10,
        "guilt": 0.12,
        "shame": 0.12,
        "embarrassment": 0.12,
        "disapproval": 0.08,
        "grief": 0.11,
        "loneliness": 0.10,
        "melancholy": 0.10,
        "regret": 0.12,
        "sorrow": 0.10,
        "despair": 0.11,
    },
    "mental_state": {
        "concentration": 0.10,
        "contemplation": 0.10,
        "awkwardness": 0.08,
        "envy": 0.08,
        "pain": 0.12,
        "pride": 0.09,
        "realization": 0.07,
        "nostalgia": 0.10,
        "desire": 0.10,
        "surprise": 0.10,
        "neutral": 0.15,
        "curiosity": 0.09,
        "anticipation": 0.09,
        "hope": 0.10,
        "relief": 0.08,
        "satisfaction": 0.08,
        "calmness": 0.08,
        "contentment": 0.08,
        "interest": 0.10,
        "confusion": 0.08,
        "doubt": 0.08,
        "boredom": 0.10,
    },
}

# Anti-spam over recently emitted primary feedback
RECENT_COUNT_WINDOW_MS: int = 30_000
RECENT_COUNT_LIMIT: int = 3
RECENT_OVERLAP_WINDOW_MS: int = 20_000
CONTEXT_MESSAGE_WINDOW_MS: int = 60_000
EMOTION_TREND_WINDOW_MS: int = 10_000
MIN_HOSTILITY_THRESHOLD: float = 0.08

# ============================================================================
# LAYER 2: META-STATES
# ============================================================================
META: Dict[str, Dict[str, float]] = {
    "frustration_trend": {
        "arousal_delta": 0.25,
        "valence_delta": -0.2,
        "min_speech_samples": 8,
        "min_observations": 12,
    },
    "post_interruption": {
        "valence_delta": -0.2,
        "min_coverage": 0.2,
        "window_min": 6_000,
        "window_max": 30_000,
    },
    "polarization": {
        "valence_negative": -0.2,
        "valence_positive": 0.2,
        "difference": 0.5,
        "min_participants": 3,
    },
}

# ============================================================================
# LAYER 3: PROSODY
# ============================================================================
PROSODY: Dict[str, Dict[str, float]] = {
    "volume": {
        "low": -38,
        "low_critical": -44,
        "high": -10,
        "high_critical": -6,
        "min_samples": 5,
    },
    "arousal": {
        "low": -0.4,
        "low_info": -0.2,
        "high": 0.5,
        "high_warning": 0.7,
    },
    "valence": {
        "negative_severe": -0.6,
        "negative_info": -0.35,
    },
    "monotony": {
        "stdev_warning": 0.06,
        "stdev_info": 0.1,
        "min_speech_samples": 8,
        "min_arousal_samples": 8,
        "arousal_high": 0.4,
        "arousal_low": -0.2,
    },
    "pace_accelerated": {
        "switches_per_sec": 1.0,
        "min_segments": 6,
        "warning_threshold": 1.5,
        "blocking_arousal": -0.4,
    },
    "pace_paused": {
        "longest_silence": 5.0,
        "warning_threshold": 7.0,
        "min_coverage": 0.10,
        "blocking_arousal": 0.5,
    },
    "group_energy": {
        "low": -0.3,
        "low_warning": -0.5,
    },
}
PROSODY_MIN_SAMPLES: int = 8

# ============================================================================
# LAYER 4: LONG-TERM
# ============================================================================
LONGTERM: Dict[str, Dict[str, float]] = {
    "silence": {
        "window_ms": 60_000,
        "speech_coverage": 0.05,
        "rms_threshold": -50,
        "min_samples": 20,
        "blocking_arousal": 0.5,
        "low_arousal": 0.2,
    },
    "overlap": {
        "min_participants": 2,
        "min_coverage": 0.15,
    },
    "interruptions": {
        "window_ms": 60_000,
        "min_count": 5,
        "throttle_ms": 2_000,
        "speaking_coverage": 0.2,
        "warning_rate_per_min": 5,
        "max_candidates": 10,
    },
    "speaker_tracking": {
        "dominant_coverage": 0.5,
        "runner_up_max": 0.2,
    },
}

# ============================================================================
# COOLDOWNS (ms)
# ============================================================================
COOLDOWNS: Dict[str, int] = {
    # primary
    "hostility": 30_000,
    "frustration": 25_000,
    "sadness": 40_000,
    "boredom": 25_000,
    "confusion": 25_000,
    "engagement": 60_000,
    "serenity": 90_000,
    "connection": 75_000,
    "mental_state": 60_000,
    # meta
    "frustration_trend": 25_000,
    "post_interruption": 25_000,
    "polarization": 45_000,
    # prosody
    "volume": 15_000,
    "monotony": 20_000,
    "pace_accelerated": 20_000,
    "pace_paused": 60_000,
    "arousal": 20_000,
    "valence": 20_000,
    "valence_severe": 25_000,
    "group_energy": 30_000,
    # long-term
    "silence": 30_000,
    "overlap": 20_000,
    "interruptions": 30_000,
}

# ============================================================================
# TEXT / SALES
# ============================================================================
INDECISION_CATEGORIES = ("stalling", "objection_soft")
INDECISION_WINDOW_MS: int = 60_000
INDECISION_MAX_PHRASES: int = 5
INDECISION_PHRASE_MIN_CONFIDENCE: float = 0.1
SNIPPET_MAX_LEN: int = 180
TEXT_HISTORY_MAX: int = 20

# Minimum explanation strength to admit a turn into the solution context
SOLUTION_CONTEXT_MIN_STRENGTH: Dict[str, float] = {
    "host": 0.5,
    "unknown": 0.85,
    "guest": 0.95,
}
SOLUTION_MIN_SIMILARITY: float = 0.6
SOLUTION_MIN_SIMILARITY_NO_OVERLAP: float = 0.72

# Sales signals read from the upstream classification of each turn
SALES_SIGNAL_GATE: Dict[str, float] = {
    "min_confidence": 0.6,
    "min_intensity": 0.6,
    "max_ambiguity": 0.7,
    "min_stability": 0.5,
    "unstable_min_confidence": 0.8,
}
SALES_SIGNALS: Dict[str, Dict[str, float]] = {
    "price_window": {"window_ms": 30_000, "cooldown_ms": 30_000},
    "decision_signal": {"window_ms": 30_000, "cooldown_ms": 30_000},
    "ready_to_close": {"window_ms": 30_000, "cooldown_ms": 30_000, "min_stage": 4},
    "objection_escalating": {"window_ms": 60_000, "cooldown_ms": 60_000},
    "conversation_stalling": {"window_ms": 60_000, "cooldown_ms": 120_000, "min_trend_strength": 0.9},
    "category_transition": {"window_ms": 30_000, "cooldown_ms": 60_000, "min_confidence": 0.7,
                            "min_stage_difference": 2},
}
