"""
Layer 2: meta-state detectors.

Evaluated only when the primary layer produced nothing. These look at how
signals move over time or across participants rather than at a single
emotion score:

  - frustration trend: early/late halves of the 20s trend window
  - post-interruption: valence drop of someone who was just cut off
  - polarization: non-host participants split into clearly positive and
    clearly negative camps (meeting-scoped cooldown)
"""

import numpy as np

from utils.feedback_types import GROUP_PARTICIPANT_ID, SEVERITY_INFO, SEVERITY_WARNING
from utils.thresholds import COOLDOWNS, GATES, META, SIGNIFICANT_EMOTION, WINDOWS


def detect_frustration_trend(state, ctx):
    """
    Fallback for participants without significant emotion scores.

    Arousal rising OR valence falling between the two halves of the trend
    window is enough to fire; both together make it a warning.
    """
    if any(v > SIGNIFICANT_EMOTION for v in state.ema.emotions.values()):
        return None

    t = META["frustration_trend"]
    now = ctx.now
    trend_ms = WINDOWS["trend"]
    start = now - trend_ms
    midpoint = now - trend_ms / 2

    early_arousal, late_arousal, early_valence, late_valence = [], [], [], []
    speech_n = 0
    total = 0
    for s in reversed(state.samples):
        if s.ts < start:
            break
        total += 1
        if s.speech:
            speech_n += 1
        early = s.ts < midpoint
        if s.arousal is not None:
            (early_arousal if early else late_arousal).append(s.arousal)
        if s.valence is not None:
            (early_valence if early else late_valence).append(s.valence)

    observations = len(early_arousal) + len(late_arousal) + len(early_valence) + len(late_valence)
    if speech_n < t["min_speech_samples"] or observations < t["min_observations"]:
        return None
    if not (early_arousal and late_arousal and early_valence and late_valence):
        return None

    coverage = speech_n / total if total else 0.0
    if coverage < GATES["min_speech_meta"]:
        return None

    arousal_delta = float(np.mean(late_arousal) - np.mean(early_arousal))
    valence_delta = float(np.mean(late_valence) - np.mean(early_valence))
    arousal_up = arousal_delta >= t["arousal_delta"]
    valence_down = valence_delta <= t["valence_delta"]
    if not (arousal_up or valence_down):
        return None

    ftype = "frustracao_crescente"
    if ctx.in_cooldown(state, ftype):
        return None
    ctx.set_cooldown(state, ftype, COOLDOWNS["frustration_trend"])

    name = ctx.display_name()
    if arousal_up and valence_down:
        severity = SEVERITY_WARNING
        message = f"{name}: indícios de frustração crescente."
    else:
        severity = SEVERITY_INFO
        reason = "energia aumentando" if arousal_up else "tom diminuindo"
        message = f"{name}: possível frustração ({reason})."

    window = ctx.window(state, trend_ms)
    return ctx.feedback(
        ftype, severity, window, message,
        ["Reduza o ritmo e cheque entendimento", "Valide objeções antes de avançar"],
        {
            "arousalEMA": state.ema.arousal,
            "valenceEMA": state.ema.valence,
            "speechCoverage": coverage,
            "arousalDelta": round(arousal_delta, 3),
            "valenceDelta": round(valence_delta, 3),
        },
    )


def detect_post_interruption(state, ctx):
    candidates = ctx.post_interruption_candidates()
    if not candidates:
        return None

    t = META["post_interruption"]
    now = ctx.now
    pending = []
    for i, rec in enumerate(candidates):
        age = now - rec.ts
        if age < t["window_min"]:
            pending.append(rec)
            continue
        if age > t["window_max"]:
            continue

        interrupted = ctx.participant_state(rec.interrupted_id)
        if interrupted is None or interrupted.ema.valence is None or rec.valence_before is None:
            pending.append(rec)
            continue

        delta = interrupted.ema.valence - rec.valence_before
        w = ctx.window(interrupted, WINDOWS["long"])
        coverage = w.speech_coverage
        if delta > t["valence_delta"] or coverage < t["min_coverage"]:
            pending.append(rec)
            continue

        ftype = "efeito_pos_interrupcao"
        if ctx.in_cooldown(interrupted, ftype):
            # already addressed recently; the candidate is consumed
            continue

        ctx.set_cooldown(interrupted, ftype, COOLDOWNS["post_interruption"])
        ctx.update_post_interruption_candidates(pending + list(candidates[i + 1:]))
        name = ctx.display_name(rec.interrupted_id)
        window = ctx.window(interrupted, now - rec.ts)
        return ctx.feedback(
            ftype, SEVERITY_WARNING, window,
            f"{name}: queda de ânimo após interrupção.",
            ["Convide a concluir a ideia interrompida", "Garanta espaço de fala"],
            {
                "valenceEMA": interrupted.ema.valence,
                "valenceBefore": rec.valence_before,
                "speechCoverage": coverage,
            },
            participant_id=rec.interrupted_id,
        )

    ctx.update_post_interruption_candidates(pending)
    return None


def detect_polarization(state, ctx):
    t = META["polarization"]
    long_ms = WINDOWS["long"]
    negative = []
    positive = []
    qualifying = 0
    for pid, st in ctx.participants_for_meeting():
        if ctx.participant_role(pid) == "host":
            continue
        w = ctx.window(st, long_ms)
        if w.samples_count == 0 or w.speech_coverage < GATES["min_speech_meta"]:
            continue
        v = st.ema.valence
        if v is None:
            continue
        qualifying += 1
        if v <= t["valence_negative"]:
            negative.append(v)
        if v >= t["valence_positive"]:
            positive.append(v)

    if qualifying < t["min_participants"] or not negative or not positive:
        return None

    neg_mean = float(np.mean(negative))
    pos_mean = float(np.mean(positive))
    gap = pos_mean - neg_mean
    if gap < t["difference"]:
        return None

    ftype = "polarizacao_emocional"
    if ctx.in_cooldown_meeting(ftype):
        return None
    ctx.set_cooldown_meeting(ftype, COOLDOWNS["polarization"])

    if len(negative) >= 2 and len(positive) >= 2:
        severity = SEVERITY_WARNING
        message = "Polarização emocional no grupo (opiniões muito divergentes)."
    else:
        severity = SEVERITY_INFO
        message = "Polarização emocional leve detectada no grupo."

    window = ctx.window(state, long_ms)
    return ctx.feedback(
        ftype, severity, window, message,
        ["Reconheça pontos de ambos os lados", "Estabeleça objetivos comuns antes de decidir"],
        {
            "valenceEMA": round((pos_mean + neg_mean) / 2, 3),
            "valenceGap": round(gap, 3),
            "negativeCount": len(negative),
            "positiveCount": len(positive),
        },
        participant_id=GROUP_PARTICIPANT_ID,
    )


META_LAYER = [
    ("frustration_trend", detect_frustration_trend),
    ("post_interruption", detect_post_interruption),
    ("polarization", detect_polarization),
]
