"""
Layer 3: prosodic detectors.

Audio-level signals that do not depend on the emotion model: loudness,
intonation variance, speech/silence rhythm and the arousal/valence EMAs.
The arousal and valence detectors are fallbacks that only run for
participants with no EMA emotions at all.
"""

import numpy as np

from utils.feedback_types import GROUP_PARTICIPANT_ID, SEVERITY_CRITICAL, SEVERITY_INFO, SEVERITY_WARNING
from utils.thresholds import COOLDOWNS, GATES, PROSODY, PROSODY_MIN_SAMPLES, WINDOWS


def detect_volume(state, ctx):
    t = PROSODY["volume"]
    w = ctx.window(state, WINDOWS["short"])
    if w.samples_count < t["min_samples"]:
        return None
    coverage = w.speech_coverage
    if coverage < GATES["min_speech_prosodic_volume"]:
        return None

    level = w.mean_rms_dbfs if w.mean_rms_dbfs is not None else state.ema.rms
    if level is None:
        return None

    is_low = level <= t["low"]
    is_high = level >= t["high"]
    if is_low and is_high:
        return None
    if not (is_low or is_high):
        return None

    name = ctx.display_name()
    if is_low:
        ftype = "volume_baixo"
        if ctx.in_cooldown(state, ftype) or ctx.in_global_cooldown(state):
            return None
        if level <= t["low_critical"]:
            severity = SEVERITY_CRITICAL
            message = f"{name}: quase inaudível ({level:.1f} dBFS); aumente o ganho imediatamente."
            tips = ["Aumente o ganho de entrada", "Aproxime-se do microfone"]
        else:
            severity = SEVERITY_WARNING
            message = f"{name}: volume baixo ({level:.1f} dBFS); aproxime-se do microfone."
            tips = ["Verifique entrada de áudio", "Desative redução agressiva de ruído"]
    else:
        ftype = "volume_alto"
        if ctx.in_cooldown(state, ftype) or ctx.in_global_cooldown(state):
            return None
        if level >= t["high_critical"]:
            severity = SEVERITY_CRITICAL
            message = f"{name}: áudio clipando ({level:.1f} dBFS); reduza o ganho."
        else:
            severity = SEVERITY_WARNING
            message = f"{name}: volume alto ({level:.1f} dBFS); afaste-se um pouco."
        tips = ["Reduza sensibilidade do microfone"]

    ctx.set_cooldown(state, ftype, COOLDOWNS["volume"])
    return ctx.feedback(
        ftype, severity, w, message, tips,
        {"rmsDbfs": level, "speechCoverage": coverage},
    )


def detect_monotony(state, ctx):
    """Flat intonation: low population stdev of arousal over the long window."""
    t = PROSODY["monotony"]
    long_ms = WINDOWS["long"]
    start = ctx.now - long_ms

    speech_n = 0
    arousal_values = []
    for s in reversed(state.samples):
        if s.ts < start:
            break
        if s.speech:
            speech_n += 1
        if s.arousal is not None:
            arousal_values.append(s.arousal)

    if speech_n < t["min_speech_samples"] or len(arousal_values) < t["min_arousal_samples"]:
        return None
    w = ctx.window(state, long_ms)
    coverage = w.speech_coverage
    if coverage < GATES["min_speech_prosodic"]:
        return None

    ema_arousal = state.ema.arousal
    if ema_arousal is not None and (ema_arousal >= t["arousal_high"] or ema_arousal <= t["arousal_low"]):
        return None

    stdev = float(np.std(arousal_values))
    if stdev >= t["stdev_info"]:
        return None

    ftype = "monotonia_prosodica"
    if ctx.in_cooldown(state, ftype):
        return None
    ctx.set_cooldown(state, ftype, COOLDOWNS["monotony"])

    name = ctx.display_name()
    if stdev < t["stdev_warning"]:
        severity = SEVERITY_WARNING
        message = f"{name}: fala monótona; varie entonação e pausas."
    else:
        severity = SEVERITY_INFO
        message = f"{name}: pouca variação de entonação."
    return ctx.feedback(
        ftype, severity, w, message,
        ["Use pausas e ênfases para destacar pontos"],
        {"arousalEMA": ema_arousal, "speechCoverage": coverage},
    )


def _speech_segments(samples, now):
    """
    Walk speech/silence runs in chronological order.

    Returns (switches, speech_segments, longest_silence_seconds). The run
    still open at the end is measured up to `now`.
    """
    switches = 0
    segments = 0
    longest_silence = 0.0
    current_is_speech = None
    current_start = None
    last_ts = None

    for s in samples:
        if current_is_speech is None:
            current_is_speech = s.speech
            current_start = s.ts
            last_ts = s.ts
            continue
        if not current_is_speech:
            longest_silence = max(longest_silence, (s.ts - last_ts) / 1000)
        if s.speech != current_is_speech:
            switches += 1
            if current_is_speech:
                segments += 1
            else:
                longest_silence = max(longest_silence, (s.ts - current_start) / 1000)
            current_is_speech = s.speech
            current_start = s.ts
        last_ts = s.ts

    if current_is_speech is None:
        return 0, 0, 0.0
    if current_is_speech:
        segments += 1
    else:
        longest_silence = max(longest_silence, (now - current_start) / 1000)
    return switches, segments, longest_silence


def detect_pace(state, ctx):
    long_ms = WINDOWS["long"]
    now = ctx.now
    start = now - long_ms
    samples = [s for s in state.samples if s.ts >= start]
    if len(samples) < PROSODY_MIN_SAMPLES or not state.has_spoken():
        return None

    switches, segments, longest_silence = _speech_segments(samples, now)
    switches_per_sec = switches / (long_ms / 1000)
    w = ctx.window(state, long_ms)
    coverage = w.speech_coverage

    accel = PROSODY["pace_accelerated"]
    paused = PROSODY["pace_paused"]
    is_accelerated = switches_per_sec >= accel["switches_per_sec"] and segments >= accel["min_segments"]
    is_paused = longest_silence >= paused["longest_silence"] and coverage < paused["min_coverage"]
    if is_accelerated and is_paused:
        return None

    arousal = state.ema.arousal
    if arousal is not None:
        if is_accelerated and arousal <= accel["blocking_arousal"]:
            return None
        if is_paused and arousal >= paused["blocking_arousal"]:
            return None

    name = ctx.display_name()
    if is_accelerated:
        ftype = "ritmo_acelerado"
        if ctx.in_cooldown(state, ftype) or ctx.in_global_cooldown(state):
            return None
        ctx.set_cooldown(state, ftype, COOLDOWNS["pace_accelerated"])
        if switches_per_sec >= accel["warning_threshold"]:
            severity = SEVERITY_WARNING
            message = f"{name}: ritmo acelerado; desacelere para melhor entendimento."
        else:
            severity = SEVERITY_INFO
            message = f"{name}: ritmo rápido; considere pausas curtas."
        return ctx.feedback(
            ftype, severity, w, message,
            ["Faça pausas para respiração", "Enuncie com clareza"],
            {"speechCoverage": coverage},
        )

    if is_paused:
        ftype = "ritmo_pausado"
        if ctx.in_cooldown(state, ftype) or ctx.in_global_cooldown(state):
            return None
        ctx.set_cooldown(state, ftype, COOLDOWNS["pace_paused"])
        if longest_silence >= paused["warning_threshold"]:
            severity = SEVERITY_WARNING
            message = (f"{name}: pausas muito longas (≥{longest_silence:.1f}s); "
                       "tente manter um ritmo mais constante.")
        else:
            severity = SEVERITY_INFO
            message = f"{name}: ritmo lento; considere reduzir pausas longas."
        return ctx.feedback(
            ftype, severity, w, message,
            ["Reduza pausas longas", "Mantenha frases mais curtas"],
            {"speechCoverage": coverage},
        )

    return None


def _fallback_window(state, ctx):
    """Shared gate for the arousal/valence fallbacks; returns the long window or None."""
    if state.ema.emotions:
        return None
    w = ctx.window(state, WINDOWS["long"])
    if w.samples_count < PROSODY_MIN_SAMPLES or w.speech_coverage < GATES["min_speech_prosodic"]:
        return None
    return w


def detect_arousal(state, ctx):
    arousal = state.ema.arousal
    if arousal is None:
        return None
    w = _fallback_window(state, ctx)
    if w is None:
        return None

    t = PROSODY["arousal"]
    valence = state.ema.valence
    name = ctx.display_name()
    metadata = {"arousalEMA": arousal, "valenceEMA": valence, "speechCoverage": w.speech_coverage}

    if arousal >= t["high"]:
        positive = valence is not None and valence > 0
        ftype = "entusiasmo_alto" if positive else "tendencia_emocional_negativa"
        if ctx.in_cooldown(state, ftype):
            return None
        ctx.set_cooldown(state, ftype, COOLDOWNS["arousal"])
        if positive:
            if arousal >= t["high_warning"]:
                severity = SEVERITY_WARNING
                message = f"{name}: energia muito alta; canalize em próximos passos."
            else:
                severity = SEVERITY_INFO
                message = f"{name}: entusiasmo alto; ótimo momento para direcionar ações."
            tips = ["Direcione para decisões e próximos passos"]
        else:
            severity = SEVERITY_WARNING
            message = f"{name}: sinais de estresse (energia alta com tom negativo)."
            tips = ["Reduza o ritmo", "Valide objeções antes de avançar"]
        return ctx.feedback(ftype, severity, w, message, tips, metadata)

    if arousal <= t["low_info"]:
        ftype = "engajamento_baixo"
        if ctx.in_cooldown(state, ftype):
            return None
        ctx.set_cooldown(state, ftype, COOLDOWNS["arousal"])
        if arousal <= t["low"]:
            severity = SEVERITY_WARNING
            message = f"{name}: engajamento baixo (tom desanimado)."
        else:
            severity = SEVERITY_INFO
            message = f"{name}: energia baixa. Um pouco mais de ênfase pode ajudar."
        return ctx.feedback(
            ftype, severity, w, message,
            ["Fale com mais variação de tom", "Projete a voz mais próxima do microfone"],
            metadata,
        )

    return None


def detect_valence(state, ctx):
    valence = state.ema.valence
    if valence is None:
        return None
    w = _fallback_window(state, ctx)
    if w is None:
        return None

    t = PROSODY["valence"]
    ftype = "tendencia_emocional_negativa"
    arousal = state.ema.arousal
    name = ctx.display_name()
    metadata = {"valenceEMA": valence, "arousalEMA": arousal, "speechCoverage": w.speech_coverage}
    soften = ["Mostre concordância antes de divergir", "Evite frases muito secas"]

    if valence <= t["negative_severe"]:
        if ctx.in_cooldown(state, ftype):
            return None
        ctx.set_cooldown(state, ftype, COOLDOWNS["valence_severe"])
        if arousal is not None and arousal >= PROSODY["arousal"]["high"]:
            message = f"{name}: sinais de tensão (tom negativo com energia alta)."
            tips = ["Reduza o ritmo", "Valide objeções antes de avançar", soften[0]]
        elif arousal is not None and arousal <= PROSODY["arousal"]["low_info"]:
            message = f"{name}: sinais de desânimo (tom negativo com energia baixa)."
            tips = soften + ["Fale com mais variação de tom"]
        else:
            message = f"{name}: tom negativo perceptível. Considere suavizar a comunicação."
            tips = soften
        return ctx.feedback(ftype, SEVERITY_WARNING, w, message, tips, metadata)

    if valence <= t["negative_info"]:
        if ctx.in_cooldown(state, ftype):
            return None
        ctx.set_cooldown(state, ftype, COOLDOWNS["valence"])
        return ctx.feedback(
            ftype, SEVERITY_INFO, w,
            f"{name}: tendência emocional negativa. Tente um tom mais positivo.",
            soften, metadata,
        )

    return None


def detect_group_energy(state, ctx):
    """Mean arousal of the non-host participants who are actually talking."""
    t = PROSODY["group_energy"]
    long_ms = WINDOWS["long"]
    values = []
    for pid, st in ctx.participants_for_meeting():
        if ctx.participant_role(pid) == "host":
            continue
        w = ctx.window(st, long_ms)
        if w.samples_count == 0 or w.speech_coverage < GATES["min_speech_meta"]:
            continue
        if st.ema.arousal is None:
            continue
        values.append(st.ema.arousal)

    if not values:
        return None
    group_arousal = float(np.mean(values))
    if group_arousal > t["low"]:
        return None

    ftype = "energia_grupo_baixa"
    if ctx.in_cooldown_meeting(ftype):
        return None
    ctx.set_cooldown_meeting(ftype, COOLDOWNS["group_energy"])

    if group_arousal <= t["low_warning"]:
        severity = SEVERITY_WARNING
        message = "Energia do grupo baixa. Considere perguntas diretas ou mudança de dinâmica."
    else:
        severity = SEVERITY_INFO
        message = "Energia do grupo em queda. Estimule participação."
    return ctx.feedback(
        ftype, severity, ctx.window(state, long_ms), message,
        ["Convide pessoas específicas a opinar", "Introduza uma pergunta aberta"],
        {"arousalEMA": round(group_arousal, 3)},
        participant_id=GROUP_PARTICIPANT_ID,
    )


PROSODY_LAYER = [
    ("volume", detect_volume),
    ("monotony", detect_monotony),
    ("pace", detect_pace),
    ("arousal", detect_arousal),
    ("valence", detect_valence),
    ("group_energy", detect_group_energy),
]
