"""
Layer 1: primary emotion detectors.

Each detector reads the participant's EMA emotion map and either returns a
FeedbackEventPayload or None. They share one shape:

  1. anti-spam: 3+ same-type detections in the last 30s blocks
  2. gate: >= 6 samples in the long window, non-empty EMA emotions,
     speech coverage >= 18%
  3. absolute blocks from contradicting emotions
  4. thresholds (adjusted by tension level and emotion trend where the
     family calls for it) and relative-intensity tie-breaks
  5. near-duplicate suppression (same type within 20s, not 20% stronger)
  6. participant cooldown and global debounce
  7. severity grading, cooldown, templated message naming the dominant emotion

Detectors are evaluated in PRIMARY_LAYER order; the first hit wins.
"""

from typing import Callable, Dict, Optional, Sequence

import config

from utils.context_adjustments import (
    TENSION_HIGH,
    connection_threshold,
    deep_sadness_threshold,
    engagement_threshold,
    has_consistent_trend,
    has_recent_overlap,
    hostility_threshold,
    serenity_threshold,
    threat_threshold,
    threshold_by_trend,
)
from utils.feedback_types import SEVERITY_INFO, SEVERITY_WARNING
from utils.message_contextualizer import contextualize_message
from utils.thresholds import (
    CONTEXT_MESSAGE_WINDOW_MS,
    COOLDOWNS,
    EMOTION_TREND_WINDOW_MS,
    GATES,
    MIN_HOSTILITY_THRESHOLD,
    PRIMARY,
    PRIMARY_MIN_SAMPLES,
    RECENT_COUNT_LIMIT,
    RECENT_COUNT_WINDOW_MS,
    RECENT_OVERLAP_WINDOW_MS,
    WINDOWS,
)

ACTIVE_HOSTILITY = ("anger", "disgust", "distress", "rage", "contempt")
THREAT = ("fear", "horror", "terror", "anxiety")
HOSTILITY_OR_FEAR = ACTIVE_HOSTILITY + THREAT
HOT_HOSTILITY = ("rage", "anger", "contempt")
SADNESS_KIND = ("sadness", "despair", "grief", "sorrow")
EXTREME = ("rage", "contempt", "terror", "horror")


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------
def _any_above(e: Callable[[str], float], names: Sequence[str], limit: float) -> bool:
    return any(e(n) > limit for n in names)


def _max_of(e: Callable[[str], float], names: Sequence[str]) -> float:
    return max(e(n) for n in names)


def _negative_scores(e: Callable[[str], float]):
    """(hostility, sadness) composite scores used by the relative-intensity checks."""
    hostility = max(_max_of(e, ACTIVE_HOSTILITY), _max_of(e, THREAT))
    sadness = max(_max_of(e, ("despair", "grief", "sorrow")), _max_of(e, ("sadness", "melancholy")))
    return hostility, sadness


def _dominant(e: Callable[[str], float], names: Sequence[str], thresholds: Dict[str, float]) -> Optional[str]:
    """The member above its threshold and strictly above every sibling."""
    for n in names:
        v = e(n)
        if v > thresholds[n] and all(v > e(o) for o in names if o != n):
            return n
    return None


def _gate(state, ctx, feedback_type: str):
    recent = ctx.recent_emotions(state, RECENT_COUNT_WINDOW_MS)
    if sum(1 for r in recent if r.type == feedback_type) >= RECENT_COUNT_LIMIT:
        return None
    w = ctx.window(state, WINDOWS["long"])
    if w.samples_count < PRIMARY_MIN_SAMPLES or not state.ema.emotions:
        return None
    if w.speech_coverage < GATES["min_speech_primary"]:
        return None
    return w


def _overlaps_recent(state, ctx, feedback_type: str, score: float) -> bool:
    recent = ctx.recent_emotions(state, RECENT_COUNT_WINDOW_MS)
    return has_recent_overlap(recent, feedback_type, score, RECENT_OVERLAP_WINDOW_MS, ctx.now)


def _trending(state, ctx, feedback_type: str) -> bool:
    recent = ctx.recent_emotions(state, RECENT_COUNT_WINDOW_MS)
    return has_consistent_trend(recent, feedback_type, RECENT_COUNT_WINDOW_MS, ctx.now)


def _cooling(state, ctx, feedback_type: str) -> bool:
    return ctx.in_cooldown(state, feedback_type) or ctx.in_global_cooldown(state)


def _trend(state, ctx, emotion: str) -> str:
    return ctx.emotion_trend(state, emotion, EMOTION_TREND_WINDOW_MS)


def _contextualize(state, ctx, message, tips, feedback_type, relative_intensity=None):
    recent = ctx.recent_emotions(state, CONTEXT_MESSAGE_WINDOW_MS)
    return contextualize_message(message, tips, feedback_type, recent, ctx.now, relative_intensity)


def _emit(state, ctx, feedback_type, cooldown_key, severity, w, message, tips, score, **metadata):
    ctx.set_cooldown(state, feedback_type, COOLDOWNS[cooldown_key])
    metadata["speechCoverage"] = w.speech_coverage
    metadata["score"] = score
    return ctx.feedback(feedback_type, severity, w, message, tips, metadata)


# ---------------------------------------------------------------------------
# Hostility
# ---------------------------------------------------------------------------
_THREAT_MESSAGES = {
    "terror": ("pânico extremo detectado. Priorize acalmar o ambiente.",
               ["Crie um espaço seguro", "Valide o medo expresso", "Reduza a pressão imediatamente"]),
    "horror": ("horror detectado. Ambiente precisa de acalmação urgente.",
               ["Crie um espaço seguro", "Valide o sentimento", "Considere fazer uma pausa"]),
    "fear": ("medo detectado. Considere criar um ambiente mais seguro.",
             ["Valide o medo expresso", "Crie um espaço seguro", "Reduza a pressão"]),
}
_ACTIVE_MESSAGES = {
    "rage": ("raiva explosiva detectada. Priorize desescalar a situação.",
             ["Não reaja com raiva", "Respire fundo", "Considere fazer uma pausa"]),
    "contempt": ("desprezo detectado. Considere validar o ponto do outro.",
                 ["Evite julgamentos", "Valide diferentes perspectivas", "Mantenha respeito"]),
}


def _first_at_max(e, names, thresholds, group_max) -> Optional[str]:
    for n in names:
        if e(n) > thresholds[n] and e(n) == group_max:
            return n
    return None


def detect_hostility(state, ctx):
    ftype = "hostilidade"
    w = _gate(state, ctx, ftype)
    if w is None:
        return None

    e = state.ema.emotion
    active = _max_of(e, ACTIVE_HOSTILITY)
    threat = _max_of(e, THREAT)
    score = max(active, threat)
    arousal = state.ema.arousal
    valence = state.ema.valence

    tension = ctx.tension_level(state)
    t = PRIMARY["hostility"]
    adjusted = {}
    for n in ACTIVE_HOSTILITY:
        base = hostility_threshold(t[n], tension)
        adjusted[n] = max(MIN_HOSTILITY_THRESHOLD, threshold_by_trend(base, _trend(state, ctx, n), "negative"))
    for n in THREAT:
        base = threat_threshold(t[n], tension)
        adjusted[n] = max(MIN_HOSTILITY_THRESHOLD, threshold_by_trend(base, _trend(state, ctx, n), "negative"))

    has_active = any(e(n) > adjusted[n] for n in ACTIVE_HOSTILITY)
    has_threat = any(e(n) > adjusted[n] for n in THREAT)
    if not has_active and not has_threat:
        return None

    if _overlaps_recent(state, ctx, ftype, score):
        return None
    if _trending(state, ctx, ftype):
        adjusted = {n: max(MIN_HOSTILITY_THRESHOLD, v * 0.9) for n, v in adjusted.items()}

    # Hostility or fear without energy is a false positive
    if arousal is not None and arousal < 0.25:
        return None
    if has_active and not has_threat and valence is not None and valence > 0.0:
        return None

    positive = _max_of(e, ("joy", "interest", "enthusiasm", "excitement", "amusement"))
    if positive > score * 0.4:
        return None
    if positive >= 0.08 and score < 0.15:
        return None
    if score < 0.12:
        if arousal is not None and arousal < 0.35:
            return None
        if valence is not None and valence > -0.15:
            return None
        if positive > 0.05:
            return None

    anxiety = e("anxiety")
    if has_threat and not has_active and anxiety > adjusted["anxiety"]:
        if valence is not None and valence > 0.0:
            return None
        if positive > anxiety * 0.7:
            return None

    if _cooling(state, ctx, ftype):
        return None

    if any(e(n) > adjusted[n] for n in ("terror", "horror", "rage")):
        severity = SEVERITY_WARNING
    elif e("fear") > 0.10 or anxiety > 0.10:
        severity = SEVERITY_WARNING
    elif arousal is not None and arousal >= 0.3:
        severity = SEVERITY_WARNING
    else:
        severity = SEVERITY_INFO

    if not has_active:
        if score < 0.15:
            return None
        if arousal is not None and arousal < 0.35:
            return None
        if valence is not None and valence > -0.2:
            return None
    elif score < 0.12:
        return None

    clear_dominant = (
        (threat > active and _first_at_max(e, ("terror", "horror", "fear", "anxiety"), adjusted, threat) is not None)
        or (active > threat and _first_at_max(e, ("rage", "contempt"), adjusted, active) is not None)
    )
    if not clear_dominant and score < 0.15:
        return None

    name = ctx.display_name()
    message = None
    tips = None
    if threat > active:
        dominant = _first_at_max(e, ("terror", "horror", "fear", "anxiety"), adjusted, threat)
        if dominant == "anxiety":
            if anxiety < 0.15:
                message = "parece haver alguma tensão ou ansiedade. Considere criar um ambiente mais acolhedor."
                tips = ["Valide a ansiedade", "Reduza a pressão", "Crie um espaço seguro"]
                severity = SEVERITY_INFO
            else:
                message = "ansiedade detectada. Considere reduzir a pressão."
                tips = ["Valide a ansiedade", "Reduza a pressão", "Crie um ambiente mais acolhedor"]
        elif dominant is not None:
            message, tips = _THREAT_MESSAGES[dominant]
    elif active > threat:
        dominant = _first_at_max(e, ("rage", "contempt"), adjusted, active)
        if dominant is not None:
            message, tips = _ACTIVE_MESSAGES[dominant]

    if message is None:
        use_default = (
            (has_active and score >= 0.15)
            or (has_threat and not has_active and score >= 0.15
                and arousal is not None and arousal >= 0.4
                and valence is not None and valence <= -0.25)
        )
        if not use_default:
            return None
        message = "a conversa esquentou. Considere validar o ponto do outro antes de prosseguir."
        tips = ["Respire fundo", 'Use frases como "Entendo seu ponto..."', "Evite interrupções agora"]

    return _emit(state, ctx, ftype, "hostility", severity, w, f"{name}: {message}", tips, score,
                 valenceEMA=valence, arousalEMA=arousal)


# ---------------------------------------------------------------------------
# Frustration
# ---------------------------------------------------------------------------
def detect_frustration(state, ctx):
    ftype = "frustracao_crescente"
    w = _gate(state, ctx, ftype)
    if w is None:
        return None

    frustration = state.ema.emotion("frustration")
    threshold = threshold_by_trend(PRIMARY["frustration"]["frustration"],
                                   _trend(state, ctx, "frustration"), "negative")
    if _overlaps_recent(state, ctx, ftype, frustration):
        return None
    if _trending(state, ctx, ftype):
        threshold *= 0.9
    if frustration <= threshold:
        return None
    if _cooling(state, ctx, ftype):
        return None

    name = ctx.display_name()
    return _emit(
        state, ctx, ftype, "frustration", SEVERITY_WARNING, w,
        f"{name}: parece haver um bloqueio ou frustração.",
        ["Reconheça a dificuldade", 'Pergunte: "O que está impedindo nosso progresso?"'],
        frustration,
        valenceEMA=state.ema.valence,
    )


# ---------------------------------------------------------------------------
# Sadness
# ---------------------------------------------------------------------------
_SADNESS_MESSAGES = {
    "despair": ("desespero detectado. Momento crítico que requer atenção imediata.",
                ["Priorize acolhimento", "Valide o sofrimento profundo", "Considere suporte profissional se apropriado"]),
    "grief": ("luto detectado. Momento de perda profunda que requer espaço e validação.",
              ["Valide o luto", "Crie espaço para expressão", "Respeite o tempo de processamento"]),
    "loneliness": ("solidão detectada. Considere criar conexão e validação.",
                   ["Crie espaço para conexão", "Valide a solidão", "Ofereça presença e acolhimento"]),
    "melancholy": ("melancolia detectada. Ambiente de tristeza profunda e reflexiva.",
                   ["Valide a melancolia", "Crie espaço para expressão", "Respeite o momento de reflexão"]),
    "regret": ("arrependimento detectado. Considere criar espaço para expressão e validação.",
               ["Valide o arrependimento", "Evite julgamentos", "Ofereça perspectiva se apropriado"]),
    "shame": ("vergonha detectada. Ambiente precisa de acolhimento e validação.",
              ["Crie um espaço seguro", "Valide sem julgamento", "Evite minimizar o sentimento"]),
    "guilt": ("culpa detectada. Considere criar espaço para expressão e validação.",
              ["Valide o sentimento", "Evite julgamentos", "Ofereça perspectiva se apropriado"]),
    "embarrassment": ("constrangimento detectado. Considere criar um ambiente mais acolhedor.",
                      ["Reduza a pressão", "Crie um espaço seguro", "Valide o desconforto"]),
    "sorrow": ("pesar detectado. Considere validar sentimentos e criar espaço para expressão.",
               ["Valide o pesar", "Crie espaço para diálogo", "Ofereça suporte se apropriado"]),
    "sadness": ("tristeza detectada. Considere validar sentimentos e criar espaço para expressão.",
                ["Valide a tristeza", "Crie espaço para diálogo", "Ofereça suporte se apropriado"]),
    "disappointment": ("decepção detectada. Considere validar expectativas e criar espaço para expressão.",
                       ["Valide a decepção", "Reconheça expectativas não atendidas", "Crie espaço para diálogo"]),
    "disapproval": ("desaprovação detectada. Considere explorar diferentes perspectivas.",
                    ["Explore diferentes pontos de vista", "Valide preocupações", "Evite polarização"]),
}
_SELF_EVALUATION = ("regret", "shame", "guilt", "embarrassment")
_DIRECT_SADNESS = ("sorrow", "sadness", "disappointment")


def detect_sadness(state, ctx):
    ftype = "tristeza"
    w = _gate(state, ctx, ftype)
    if w is None:
        return None

    e = state.ema.emotion
    valence = state.ema.valence
    if valence is not None and valence > 0.1:
        return None
    if _any_above(e, ACTIVE_HOSTILITY + ("fear", "horror", "terror"), 0.10):
        return None
    if e("frustration") > 0.15:
        return None

    tension = ctx.tension_level(state)
    t = dict(PRIMARY["sadness"])
    for n in ("grief", "despair"):
        t[n] = threshold_by_trend(deep_sadness_threshold(t[n], tension), _trend(state, ctx, n), "negative")
    if _trending(state, ctx, ftype):
        t["grief"] *= 0.9
        t["despair"] *= 0.9

    direct = _max_of(e, _DIRECT_SADNESS)
    self_eval = _max_of(e, _SELF_EVALUATION)
    judgment = e("disapproval")
    deep_loss = max(e("grief"), e("despair"))
    isolation = max(e("loneliness"), e("melancholy"))
    score = max(direct, self_eval, judgment, deep_loss, isolation)

    if _overlaps_recent(state, ctx, ftype, score):
        return None

    has_direct = direct > t["sadness"]
    has_self = self_eval > t["guilt"]
    has_judgment = judgment > t["disapproval"]
    has_deep_loss = deep_loss > t["grief"]
    has_isolation = isolation > t["loneliness"]
    if not (has_direct or has_self or has_judgment or has_deep_loss or has_isolation):
        return None
    if _cooling(state, ctx, ftype):
        return None

    severity_cut = 0.12 if tension == TENSION_HIGH else 0.15
    severity = SEVERITY_INFO
    if any(e(n) >= severity_cut for n in ("despair", "grief", "shame", "guilt", "embarrassment", "regret")):
        severity = SEVERITY_WARNING

    message = "tom negativo detectado. Considere validar sentimentos e criar espaço para expressão."
    tips = ["Valide os sentimentos expressos", "Crie espaço para diálogo", "Considere fazer uma pausa se necessário"]
    dominant = None
    if has_deep_loss and deep_loss == score:
        dominant = _dominant(e, ("despair", "grief"), t)
        if dominant is not None:
            severity = SEVERITY_WARNING if e(dominant) >= 0.15 else SEVERITY_INFO
    elif has_isolation and isolation == score:
        dominant = _dominant(e, ("loneliness", "melancholy"), t)
    elif has_self and self_eval == score:
        dominant = _dominant(e, _SELF_EVALUATION, t)
        if dominant is not None and severity != SEVERITY_WARNING and e(dominant) >= 0.15:
            severity = SEVERITY_WARNING
    elif has_direct and direct == score:
        dominant = _dominant(e, _DIRECT_SADNESS, t)
    elif has_judgment and judgment == score:
        dominant = "disapproval"
    if dominant is not None:
        message, tips = _SADNESS_MESSAGES[dominant]

    name = ctx.display_name()
    message, tips = _contextualize(state, ctx, f"{name}: {message}", tips, ftype)
    return _emit(state, ctx, ftype, "sadness", severity, w, message, tips, score,
                 valenceEMA=valence, arousalEMA=state.ema.arousal)


# ---------------------------------------------------------------------------
# Boredom / confusion
# ---------------------------------------------------------------------------
def detect_boredom(state, ctx):
    ftype = "tedio"
    w = _gate(state, ctx, ftype)
    if w is None:
        return None

    e = state.ema.emotion
    frustration = e("frustration")
    if frustration > 0.05:
        return None
    if _any_above(e, EXTREME, 0.10):
        return None

    t = PRIMARY["boredom"]
    boredom = e("boredom")
    tiredness = e("tiredness")
    has_boredom = boredom > t["boredom"]
    has_tiredness = tiredness > t["tiredness"]
    if not (has_boredom or has_tiredness) or e("interest") >= t["interest_low"]:
        return None

    score = max(boredom if has_boredom else 0.0, tiredness if has_tiredness else 0.0)
    if _overlaps_recent(state, ctx, ftype, score):
        return None
    if _cooling(state, ctx, ftype):
        return None

    severity = SEVERITY_INFO if frustration > 0.03 else SEVERITY_WARNING
    name = ctx.display_name()
    if has_boredom and (not has_tiredness or boredom > tiredness):
        message = f"{name}: tédio detectado. O grupo parece desinteressado."
        tips = ["Varie a dinâmica", "Engaje de forma diferente", "Considere fazer uma pausa"]
    elif has_tiredness and (not has_boredom or tiredness > boredom):
        message = f"{name}: cansaço detectado. O grupo parece estar cansado."
        tips = ["Considere fazer uma pausa", "Reduza o ritmo", "Ofereça um momento de descanso"]
    else:
        message = f"{name}: energia baixa detectada. Que tal trazer um novo ponto de vista?"
        tips = ["Mude a entonação", "Faça uma pergunta aberta ao grupo"]
    return _emit(state, ctx, ftype, "boredom", severity, w, message, tips, score,
                 arousalEMA=state.ema.arousal)


def detect_confusion(state, ctx):
    ftype = "confusao"
    w = _gate(state, ctx, ftype)
    if w is None:
        return None

    e = state.ema.emotion
    valence = state.ema.valence
    if valence is not None and valence > 0.2:
        return None
    if _any_above(e, EXTREME, 0.10):
        return None
    if e("frustration") > 0.12:
        return None

    t = PRIMARY["confusion"]
    confusion = e("confusion")
    doubt = e("doubt")
    has_confusion = confusion > t["confusion"]
    has_doubt = doubt > t["doubt"]
    if not has_confusion and not has_doubt:
        return None

    score = max(confusion if has_confusion else 0.0, doubt if has_doubt else 0.0)
    if _overlaps_recent(state, ctx, ftype, score):
        return None
    if _cooling(state, ctx, ftype):
        return None

    severity = SEVERITY_WARNING if valence is not None and valence <= 0.0 else SEVERITY_INFO
    name = ctx.display_name()
    if has_confusion and (not has_doubt or confusion > doubt):
        message = f"{name}: confusão detectada. O grupo parece estar confuso."
        tips = ["Esclareça pontos confusos", "Faça perguntas abertas", "Valide a confusão"]
    elif has_doubt and (not has_confusion or doubt > confusion):
        message = f"{name}: dúvida detectada. O grupo parece ter dúvidas."
        tips = ["Explore a dúvida", "Valide preocupações", "Ofereça clareza"]
    else:
        message = f"{name}: pontos de dúvida detectados. Seria bom checar o entendimento."
        tips = ['Pergunte: "Isso faz sentido?"', "Ofereça um exemplo prático"]
    return _emit(state, ctx, ftype, "confusion", severity, w, message, tips, score)


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------
_MODERATE = ("interest", "joy", "determination", "enthusiasm", "excitement")
_INTENSE = ("ecstasy", "triumph", "awe", "admiration")
_PLAYFUL = ("amusement", "entrancement")

_ENGAGEMENT_MESSAGES = {
    "ecstasy": ("euforia extrema detectada! Momento de alta energia positiva.",
                ["Aproveite o momento de euforia", "Canalize a energia para ações produtivas"]),
    "triumph": ("sensação de vitória detectada! Momento de celebração.",
                ["Celebre a conquista", "Reconheça o esforço do grupo"]),
    "awe": ("assombro ou admiração profunda detectada. Momento especial.",
            ["Reconheça o momento especial", "Aproveite para reflexão profunda"]),
    "admiration": ("admiração detectada. Ambiente de respeito e apreciação.",
                   ["Reconheça o que está sendo admirado", "Mantenha o ambiente positivo"]),
    "amusement": ("humor leve detectado. Ambiente descontraído e positivo.",
                  ["Aproveite o momento de leveza", "Mantenha o tom positivo"]),
    "entrancement": ("absorção profunda detectada. Momento de atenção focada.",
                     ["Aproveite o momento de foco", "Evite interrupções desnecessárias"]),
    "enthusiasm": ("entusiasmo detectado! Energia positiva e motivada.",
                   ["Canalize o entusiasmo", "Aproveite para avançar em objetivos"]),
    "excitement": ("alta excitação detectada! Momento de energia elevada.",
                   ["Aproveite a energia", "Direcione para ações produtivas"]),
    "joy": ("alegria detectada! Ambiente positivo e energizado.",
            ["Mantenha o tom positivo", "Aproveite o momento"]),
    "determination": ("determinação detectada! Momento de foco e propósito.",
                      ["Aproveite a determinação", "Canalize para objetivos claros"]),
}


def detect_engagement(state, ctx):
    """
    High positive engagement, split into moderate, intense and playful
    subcategories. Rejected outright by any meaningful hostility, fear,
    deep sadness or frustration; negative signals co-present at a lower
    level downgrade the severity to info instead.
    """
    ftype = "entusiasmo_alto"
    w = _gate(state, ctx, ftype)
    if w is None:
        return None

    e = state.ema.emotion
    valence = state.ema.valence
    arousal = state.ema.arousal
    frustration = e("frustration")

    if valence is not None and valence <= -0.3:
        return None
    if arousal is not None and arousal < 0.1:
        return None
    if _any_above(e, HOSTILITY_OR_FEAR, 0.05):
        return None
    if _any_above(e, HOT_HOSTILITY, 0.08):
        return None
    if _any_above(e, HOT_HOSTILITY, 0.06) and frustration > 0.08:
        return None
    if e("grief") > 0.10 or e("despair") > 0.10:
        return None
    if _any_above(e, ("despair", "grief", "sorrow"), 0.12):
        return None
    if frustration > 0.12:
        return None
    if _any_above(e, SADNESS_KIND, 0.08) and frustration > 0.08:
        return None
    if _any_above(e, HOT_HOSTILITY, 0.05) and _any_above(e, SADNESS_KIND, 0.08):
        return None
    if _any_above(e, THREAT, 0.08):
        return None

    moderate = _max_of(e, _MODERATE)
    intense = _max_of(e, _INTENSE)
    playful = _max_of(e, _PLAYFUL)
    score = max(moderate, intense, playful)

    if _overlaps_recent(state, ctx, ftype, score):
        return None

    tension = ctx.tension_level(state)
    t = PRIMARY["engagement"]
    reduction = config.ENGAGEMENT_LOW_TENSION_REDUCTION
    adjusted = {n: engagement_threshold(v, tension, reduction) for n, v in t.items()}

    has_moderate = moderate > adjusted["interest"]
    has_intense = intense > adjusted["ecstasy"]
    has_playful = playful > adjusted["amusement"]
    if not (has_moderate or has_intense or has_playful):
        return None

    hostility, sadness = _negative_scores(e)
    if hostility > score * 1.5 or sadness > score * 1.3 or frustration > score * 1.4:
        return None
    if has_intense and max(hostility, sadness, frustration) > intense * 0.8:
        return None
    if has_playful and hostility > playful * 0.7:
        return None

    if _cooling(state, ctx, ftype):
        return None

    moderate_band = (
        e("sadness") > 0.10 or e("melancholy") > 0.10
        or 0.08 < frustration <= 0.12
        or any(0.03 < e(n) <= 0.05 for n in HOT_HOSTILITY)
        or score * 0.6 < hostility <= score * 0.8
        or score * 0.6 < sadness <= score * 0.8
        or score * 0.6 < frustration <= score * 0.8
    )
    severity = SEVERITY_WARNING
    if e("ecstasy") > adjusted["ecstasy"] or e("triumph") > adjusted["triumph"]:
        if moderate_band:
            severity = SEVERITY_INFO
    elif (moderate_band
          or (valence is not None and valence <= -0.1)
          or (arousal is not None and arousal < 0.2)
          or _any_above(e, HOSTILITY_OR_FEAR, 0.03)):
        severity = SEVERITY_INFO

    name = ctx.display_name()
    message, tips = _contextualize(
        state, ctx,
        f"{name}: ótima energia e clareza! O grupo parece engajado.",
        ["Mantenha esse tom", "Aproveite para definir próximos passos"],
        ftype,
        hostility / score if hostility > 0 else None,
    )

    dominant = None
    if intense > moderate and intense > playful and has_intense:
        dominant = _dominant(e, _INTENSE, adjusted)
    elif playful > moderate and playful > intense and has_playful:
        dominant = _dominant(e, _PLAYFUL, adjusted)
    elif has_moderate:
        # interest alone keeps the generic wording
        dominant = _dominant(e, _MODERATE, t)
        if dominant == "interest":
            dominant = None
    if dominant is not None:
        text, tips = _ENGAGEMENT_MESSAGES[dominant]
        message = f"{name}: {text}"

    return _emit(state, ctx, ftype, "engagement", severity, w, message, tips, score,
                 valenceEMA=valence, arousalEMA=arousal)


# ---------------------------------------------------------------------------
# Serenity
# ---------------------------------------------------------------------------
_SERENITY = ("calmness", "contentment", "relief", "satisfaction")
_SERENITY_MESSAGES = {
    "calmness": ("calma detectada. Ambiente tranquilo e sereno.",
                 ["Aproveite a calma", "Mantenha o ambiente tranquilo", "Respeite o momento de paz"]),
    "contentment": ("contentamento detectado. Ambiente de satisfação leve e bem-estar.",
                    ["Reconheça o contentamento", "Mantenha o tom positivo", "Aproveite o momento"]),
    "relief": ("alívio detectado. Momento de relaxamento após tensão.",
               ["Reconheça o alívio", "Aproveite o momento de calma", "Mantenha o ambiente positivo"]),
    "satisfaction": ("satisfação detectada. Ambiente de contentamento e realização.",
                     ["Reconheça a satisfação", "Celebre o momento", "Mantenha o tom positivo"]),
}


def detect_serenity(state, ctx):
    ftype = "serenidade"
    w = _gate(state, ctx, ftype)
    if w is None:
        return None

    e = state.ema.emotion
    valence = state.ema.valence
    arousal = state.ema.arousal
    frustration = e("frustration")

    if arousal is not None and arousal > 0.4:
        return None
    if valence is not None and valence < 0.0:
        return None
    if _any_above(e, HOSTILITY_OR_FEAR, 0.05) or _any_above(e, HOT_HOSTILITY, 0.04):
        return None
    if frustration > 0.08:
        return None
    if e("despair") > 0.12 or e("grief") > 0.12:
        return None
    if _any_above(e, ("sorrow", "sadness", "melancholy"), 0.10):
        return None
    if _any_above(e, SADNESS_KIND, 0.08) and frustration > 0.06:
        return None
    if _any_above(e, THREAT, 0.04):
        return None
    if e("sadness") > 0.08 or e("melancholy") > 0.08:
        return None

    score = _max_of(e, _SERENITY)
    if _overlaps_recent(state, ctx, ftype, score):
        return None

    tension = ctx.tension_level(state)
    t = {n: serenity_threshold(PRIMARY["serenity"][n], tension) for n in _SERENITY}
    if score <= t["calmness"]:
        return None

    hostility, sadness = _negative_scores(e)
    worst = max(hostility, sadness, frustration)
    if e("relief") > t["relief"] or e("satisfaction") > t["satisfaction"]:
        if worst > max(e("relief"), e("satisfaction")) * 0.8:
            return None
    elif e("calmness") > t["calmness"] or e("contentment") > t["contentment"]:
        if worst > max(e("calmness"), e("contentment")) * 0.6:
            return None
    if hostility >= score or sadness > score * 0.8 or frustration > score * 0.6:
        return None

    if _cooling(state, ctx, ftype):
        return None

    name = ctx.display_name()
    dominant = _dominant(e, _SERENITY, t)
    if dominant is not None:
        text, tips = _SERENITY_MESSAGES[dominant]
    else:
        text = "ambiente tranquilo detectado. Bom momento para reflexão ou síntese."
        tips = ["Aproveite o momento de calma", "Considere fazer uma síntese do que foi discutido"]
    message, tips = _contextualize(state, ctx, f"{name}: {text}", tips, ftype,
                                   sadness / score if sadness > 0 else None)
    return _emit(state, ctx, ftype, "serenity", SEVERITY_INFO, w, message, tips, score,
                 valenceEMA=valence, arousalEMA=arousal)


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------
_CONNECTION = ("love", "affection", "sympathy", "empathic pain")
_CONNECTION_MESSAGES = {
    "love": ("vínculo profundo detectado. Momento de conexão emocional intensa.",
             ["Reconheça o vínculo", "Aproveite para fortalecer relacionamentos", "Crie espaço para expressão"]),
    "affection": ("carinho leve detectado. Ambiente de cuidado e atenção.",
                  ["Aproveite o momento de carinho", "Mantenha o ambiente acolhedor", "Valide os sentimentos expressos"]),
    "sympathy": ("compaixão detectada. Ambiente de empatia e compreensão.",
                 ["Reconheça a compaixão", "Valide os sentimentos", "Crie espaço para expressão"]),
    "empathic pain": ("sofrimento empático detectado. Momento de conexão através da dor compartilhada.",
                      ["Valide o sofrimento", "Crie espaço para expressão", "Ofereça suporte se apropriado"]),
}


def detect_connection(state, ctx):
    ftype = "conexao"
    w = _gate(state, ctx, ftype)
    if w is None:
        return None

    e = state.ema.emotion
    valence = state.ema.valence
    arousal = state.ema.arousal
    frustration = e("frustration")

    if valence is not None and valence < -0.2:
        return None
    if arousal is not None and (arousal < 0.1 or arousal > 0.6):
        return None
    if _any_above(e, HOSTILITY_OR_FEAR, 0.05):
        return None
    if frustration > 0.10:
        return None
    if _any_above(e, ("despair", "grief", "sorrow"), 0.12):
        return None
    if _any_above(e, SADNESS_KIND, 0.08) and frustration > 0.08:
        return None
    if e("sadness") > 0.10 or e("melancholy") > 0.10:
        return None

    score = _max_of(e, _CONNECTION)
    if _overlaps_recent(state, ctx, ftype, score):
        return None

    tension = ctx.tension_level(state)
    t = {n: connection_threshold(PRIMARY["connection"][n], tension) for n in _CONNECTION}
    if score <= t["affection"]:
        return None

    hostility, sadness = _negative_scores(e)
    worst = max(hostility, sadness, frustration)
    if e("love") > t["love"] or e("empathic pain") > t["empathic pain"]:
        if worst > max(e("love"), e("empathic pain")) * 1.5:
            return None
    elif e("affection") > t["affection"] or e("sympathy") > t["sympathy"]:
        if worst > max(e("affection"), e("sympathy")) * 1.3:
            return None
    if frustration > score * 1.4 or hostility > score * 1.3 or sadness > score * 1.2:
        return None

    if _cooling(state, ctx, ftype):
        return None

    name = ctx.display_name()
    dominant = _dominant(e, _CONNECTION, t)
    if dominant is not None:
        text, tips = _CONNECTION_MESSAGES[dominant]
    else:
        text = "conexão emocional detectada. Ambiente propício para diálogo profundo."
        tips = ["Aproveite o momento de conexão", "Considere explorar temas mais profundos"]
    message, tips = _contextualize(state, ctx, f"{name}: {text}", tips, ftype,
                                   worst / score if worst > 0 else None)
    return _emit(state, ctx, ftype, "connection", SEVERITY_INFO, w, message, tips, score,
                 valenceEMA=valence, arousalEMA=arousal)


# ---------------------------------------------------------------------------
# Mental state (generic)
# ---------------------------------------------------------------------------
# (member emotions, threshold key) in message priority order
_MENTAL_STATE_GROUPS = (
    (("pain",), "pain"),
    (("awkwardness", "envy"), "awkwardness"),
    (("boredom",), "boredom"),
    (("confusion", "doubt"), "confusion"),
    (("curiosity", "anticipation"), "curiosity"),
    (("hope",), "hope"),
    (("relief", "satisfaction", "calmness", "contentment"), "relief"),
    (("interest",), "interest"),
    (("concentration", "contemplation"), "concentration"),
    (("realization",), "realization"),
    (("pride",), "pride"),
    (("nostalgia",), "nostalgia"),
    (("desire",), "desire"),
    (("surprise",), "surprise"),
    (("neutral",), "neutral"),
)
_POSITIVE_GROUPS = ("curiosity", "hope", "relief")
_NEUTRAL_GROUPS = ("concentration", "neutral", "interest")

_MENTAL_STATE_MESSAGES = {
    "pain": ("sofrimento detectado. Considere criar espaço para expressão.",
             ["Valide o sofrimento expresso", "Ofereça suporte se apropriado"]),
    "awkwardness": ("desconforto social detectado. Considere facilitar a interação.",
                    ["Crie um ambiente mais acolhedor", "Facilite a participação", "Reduza a pressão"]),
    "envy": ("inveja detectada. Considere criar espaço para validação.",
             ["Valide sentimentos", "Crie espaço para expressão", "Evite comparações"]),
    "boredom": ("tédio detectado. Considere variar a dinâmica.",
                ["Varie a dinâmica", "Engaje de forma diferente", "Considere fazer uma pausa"]),
    "confusion": ("confusão detectada. Considere esclarecer pontos.",
                  ["Esclareça pontos confusos", "Faça perguntas abertas", "Valide a confusão"]),
    "doubt": ("dúvida detectada. Considere explorar e validar.",
              ["Explore a dúvida", "Valide preocupações", "Ofereça clareza"]),
    "curiosity": ("curiosidade detectada. Bom momento para explorar e aprender.",
                  ["Aproveite a curiosidade", "Explore temas interessantes", "Faça perguntas abertas"]),
    "anticipation": ("antecipação detectada. Ambiente de expectativa positiva.",
                     ["Aproveite a antecipação", "Mantenha o engajamento", "Prepare para o que vem"]),
    "hope": ("esperança detectada. Ambiente positivo e otimista.",
             ["Reconheça a esperança", "Mantenha o tom positivo", "Aproveite o momento"]),
    "relief": ("alívio detectado. Momento de relaxamento após tensão.",
               ["Reconheça o alívio", "Aproveite o momento de calma", "Mantenha o ambiente positivo"]),
    "satisfaction": ("satisfação detectada. Ambiente de contentamento.",
                     ["Reconheça a satisfação", "Celebre o momento", "Mantenha o tom positivo"]),
    "calmness": ("calma detectada. Ambiente tranquilo e sereno.",
                 ["Aproveite a calma", "Mantenha o ambiente tranquilo", "Respeite o momento"]),
    "contentment": ("contentamento detectado. Ambiente de satisfação leve.",
                    ["Reconheça o contentamento", "Mantenha o tom positivo", "Aproveite o momento"]),
    "interest": ("interesse detectado. Bom momento para engajamento.",
                 ["Aproveite o interesse", "Explore temas relevantes", "Mantenha o engajamento"]),
    "concentration": ("concentração detectada. Bom momento para trabalho profundo.",
                      ["Aproveite o momento de foco", "Evite interrupções desnecessárias", "Respeite o foco"]),
    "contemplation": ("contemplação detectada. Momento de reflexão profunda.",
                      ["Respeite o momento de reflexão", "Evite interrupções", "Aproveite para insights"]),
    "realization": ("insight ou realização detectada. Considere explorar o momento.",
                    ["Explore o insight compartilhado", "Faça perguntas abertas", "Aproveite o momento"]),
    "pride": ("orgulho ou autoafirmação detectada. Reconheça a conquista.",
              ["Reconheça a conquista", "Celebre o momento", "Valide o orgulho"]),
    "nostalgia": ("nostalgia detectada. Momento de memória afetiva.",
                  ["Valide a nostalgia", "Crie espaço para compartilhar", "Respeite o momento"]),
    "desire": ("desejo ou motivação detectada. Ambiente de propósito.",
               ["Aproveite a motivação", "Canalize para objetivos", "Mantenha o engajamento"]),
    "surprise": ("surpresa detectada. Momento de quebra de expectativa.",
                 ["Valide a surpresa", "Explore o momento", "Adapte conforme necessário"]),
    "neutral": ("estado neutro detectado. Ambiente equilibrado.",
                ["Observe o estado emocional", "Adapte a abordagem conforme necessário"]),
}


def detect_mental_state(state, ctx):
    ftype = "estado_mental"
    w = _gate(state, ctx, ftype)
    if w is None:
        return None

    e = state.ema.emotion
    frustration = e("frustration")
    if _any_above(e, HOSTILITY_OR_FEAR, 0.10):
        return None
    if _any_above(e, ("despair", "grief", "sorrow"), 0.12) or frustration > 0.12:
        return None

    t = PRIMARY["mental_state"]
    positive_hint = e("curiosity") > 0.09 or e("hope") > 0.10 or e("anticipation") > 0.09
    if positive_hint:
        hot = _any_above(e, HOT_HOSTILITY, 0.06)
        sad = _any_above(e, SADNESS_KIND, 0.08)
        if (_any_above(e, HOT_HOSTILITY, 0.08)
                or (hot and frustration > 0.08)
                or (sad and frustration > 0.08)
                or (hot and sad)
                or _any_above(e, THREAT, 0.08)):
            return None

    group_scores = {}
    present = {}
    for members, key in _MENTAL_STATE_GROUPS:
        group_scores[key] = _max_of(e, members)
        present[key] = group_scores[key] > t[key]
    if not any(present.values()):
        return None
    score = max(group_scores.values())

    hostility = max(_max_of(e, ACTIVE_HOSTILITY), _max_of(e, THREAT))
    sadness = max(_max_of(e, ("despair", "grief", "sorrow")), e("sadness"), e("disappointment"))
    worst = max(hostility, sadness, frustration)
    has_positive = any(present[k] for k in _POSITIVE_GROUPS)
    if has_positive and worst > score * 1.3:
        return None
    if not has_positive and any(present[k] for k in _NEUTRAL_GROUPS) and worst > score * 1.4:
        return None
    if present["curiosity"] and worst > group_scores["curiosity"] * 0.7:
        return None
    if present["hope"] and worst > group_scores["hope"] * 0.8:
        return None
    if present["relief"] and worst > group_scores["relief"] * 0.9:
        return None

    if _overlaps_recent(state, ctx, ftype, score):
        return None
    if _cooling(state, ctx, ftype):
        return None

    severity = SEVERITY_WARNING if e("pain") >= 0.15 or e("awkwardness") >= 0.12 else SEVERITY_INFO

    text = "estado mental contextual detectado."
    tips = []
    matched = None
    for members, key in _MENTAL_STATE_GROUPS:
        if present[key] and group_scores[key] == score:
            matched = members
            break
    if matched is None:
        tips = ["Observe o estado emocional", "Adapte a abordagem conforme necessário"]
    else:
        dominant = _dominant(e, matched, t)
        if dominant is not None:
            text, tips = _MENTAL_STATE_MESSAGES[dominant]
        elif matched == ("awkwardness", "envy"):
            text = _MENTAL_STATE_MESSAGES["awkwardness"][0]
            tips = _MENTAL_STATE_MESSAGES["awkwardness"][1][:2]

    name = ctx.display_name()
    return _emit(state, ctx, ftype, "mental_state", severity, w, f"{name}: {text}", tips, score,
                 valenceEMA=state.ema.valence, arousalEMA=state.ema.arousal)


PRIMARY_LAYER = [
    ("hostility", detect_hostility),
    ("frustration", detect_frustration),
    ("sadness", detect_sadness),
    ("boredom", detect_boredom),
    ("confusion", detect_confusion),
    ("engagement", detect_engagement),
    ("serenity", detect_serenity),
    ("connection", detect_connection),
    ("mental_state", detect_mental_state),
]
