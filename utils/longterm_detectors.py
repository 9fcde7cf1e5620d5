"""
Layer 4: long-term detectors (lowest priority).

  - silence: participant who used to talk has gone quiet for 60s
  - overlap: two or more people keep talking over each other
  - interruptions: overlap events sampled every 2s; five inside a minute
    fire a group alert. Each recorded event also queues a
    post-interruption candidate for the meta layer.
"""

from services.state_registry import PostInterruptionCandidate
from utils.feedback_types import GROUP_PARTICIPANT_ID, SEVERITY_INFO, SEVERITY_WARNING
from utils.thresholds import COOLDOWNS, LONGTERM, WINDOWS


def detect_silence(state, ctx):
    t = LONGTERM["silence"]
    w = ctx.window(state, t["window_ms"])
    if w.samples_count < t["min_samples"]:
        return None
    coverage = w.speech_coverage
    if coverage >= t["speech_coverage"]:
        return None
    if not state.has_spoken():
        return None

    arousal = state.ema.arousal
    if arousal is not None and arousal >= t["blocking_arousal"]:
        return None

    rms = w.mean_rms_dbfs
    mic_muted = rms is None or rms <= t["rms_threshold"]
    quiet_with_mic = not mic_muted and arousal is not None and arousal < t["low_arousal"]
    if not (mic_muted or quiet_with_mic):
        return None

    ftype = "silencio_prolongado"
    if ctx.in_cooldown(state, ftype) or ctx.in_global_cooldown(state):
        return None
    ctx.set_cooldown(state, ftype, COOLDOWNS["silence"])

    name = ctx.display_name()
    if mic_muted:
        severity = SEVERITY_WARNING
        rms_text = f"{rms:.1f}" if rms is not None else "N/A"
        seconds = t["window_ms"] // 1000
        message = (f"{name}: sem áudio há {seconds}s ({coverage * 100:.1f}% de fala, {rms_text} dBFS); "
                   "microfone pode estar desconectado.")
        tips = [
            "Verifique se o microfone está conectado",
            "Cheque as permissões de áudio",
            "Teste o microfone nas configurações do sistema",
        ]
    else:
        if arousal < 0.0:
            severity = SEVERITY_WARNING
            message = f"{name}: silêncio prolongado e energia baixa. Considere convidar à participação."
        else:
            severity = SEVERITY_INFO
            message = f"{name}: silêncio prolongado detectado. Considere convidar à participação."
        tips = [
            "Faça uma pergunta direta",
            "Convide a pessoa a compartilhar sua opinião",
            "Mude o tópico brevemente para reengajar",
        ]

    return ctx.feedback(
        ftype, severity, w, message, tips,
        {"speechCoverage": coverage, "rmsDbfs": rms, "arousalEMA": arousal},
    )


def detect_overlap(state, ctx):
    """Prefer the current participant as the target, else the most talkative one."""
    t = LONGTERM["overlap"]
    long_ms = WINDOWS["long"]
    participants = ctx.participants_for_meeting()
    if len(participants) < t["min_participants"]:
        return None

    speaking = []
    for pid, st in participants:
        w = ctx.window(st, long_ms)
        if w.samples_count == 0:
            continue
        if w.speech_coverage >= t["min_coverage"]:
            speaking.append((pid, w.speech_coverage, st))
    if len(speaking) < t["min_participants"]:
        return None

    target = next((s for s in speaking if s[0] == ctx.participant_id), None)
    if target is None:
        target = max(speaking, key=lambda s: s[1])
    target_id, target_coverage, target_state = target

    ftype = "overlap_fala"
    if ctx.in_cooldown(target_state, ftype):
        return None
    ctx.set_cooldown(target_state, ftype, COOLDOWNS["overlap"])

    others = [ctx.display_name(pid) for pid, _, _ in speaking if pid != target_id][:2]
    others_text = f" (com {' e '.join(others)})" if others else ""
    return ctx.feedback(
        ftype, SEVERITY_WARNING, ctx.window(target_state, long_ms),
        f"{ctx.display_name(target_id)}{others_text} falando ao mesmo tempo com frequência "
        f"({target_coverage * 100:.1f}% de fala).",
        [
            "Combine turnos de fala",
            "Use levantar a mão antes de falar",
            "Aguarde a pessoa terminar antes de começar",
        ],
        {"speechCoverage": target_coverage},
        participant_id=target_id,
    )


def _record_overlap(ctx, states, covers):
    """Append a throttled overlap event and queue the displaced speaker as a candidate."""
    t = LONGTERM["interruptions"]
    now = ctx.now
    last_at = ctx.last_overlap_sample_at() or 0
    if now - last_at < t["throttle_ms"]:
        return
    ctx.set_last_overlap_sample_at(now)

    cutoff = now - t["window_ms"]
    history = [ts for ts in ctx.overlap_history() if ts >= cutoff]
    history.append(now)
    ctx.update_overlap_history(history)

    last_speaker = ctx.last_speaker()
    if not last_speaker:
        return
    if not any(pid != last_speaker and cov >= t["speaking_coverage"] for pid, cov in covers):
        return
    displaced = states.get(last_speaker)
    before = displaced.ema.valence if displaced is not None else None
    candidates = ctx.post_interruption_candidates()
    candidates.append(PostInterruptionCandidate(ts=now, interrupted_id=last_speaker, valence_before=before))
    ctx.update_post_interruption_candidates(candidates[-t["max_candidates"]:])


def detect_interruptions(state, ctx):
    t = LONGTERM["interruptions"]
    now = ctx.now
    participants = ctx.participants_for_meeting()
    if len(participants) < 2:
        return None
    states = dict(participants)

    covers = []
    speaking = 0
    for pid, st in participants:
        w = ctx.window(st, WINDOWS["short"])
        if w.samples_count == 0:
            continue
        covers.append((pid, w.speech_coverage))
        if w.speech_coverage >= t["speaking_coverage"]:
            speaking += 1

    if speaking >= 2:
        _record_overlap(ctx, states, covers)

    history = ctx.overlap_history()
    if len(history) < t["min_count"]:
        return None

    ftype = "interrupcoes_frequentes"
    if ctx.in_cooldown_meeting(ftype):
        return None
    ctx.set_cooldown_meeting(ftype, COOLDOWNS["interruptions"])

    per_minute = len(history) * 60_000 / t["window_ms"]
    severity = SEVERITY_WARNING if per_minute >= t["warning_rate_per_min"] else SEVERITY_INFO

    ranked = sorted(
        ((pid, ctx.window(states[pid], WINDOWS["long"]).speech_coverage) for pid, _ in covers),
        key=lambda item: item[1],
        reverse=True,
    )[:2]
    names = [ctx.display_name(pid) for pid, _ in ranked]
    who = f" ({' e '.join(names)})" if names else ""

    window = ctx.window(state, t["window_ms"])
    return ctx.feedback(
        ftype, severity, window,
        f"Interrupções frequentes nos últimos 60s ({per_minute:.1f} por minuto){who}. Combine turnos de fala.",
        [
            "Use levantar a mão antes de falar",
            "Defina ordem de fala",
            "Aguarde a pessoa terminar antes de começar",
            "Use sinais visuais para indicar que quer falar",
        ],
        participant_id=GROUP_PARTICIPANT_ID,
    )


LONGTERM_LAYER = [
    ("silence", detect_silence),
    ("overlap", detect_overlap),
    ("interruptions", detect_interruptions),
]

