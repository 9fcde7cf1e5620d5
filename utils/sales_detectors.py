"""
Text-analysis (sales) detectors.

These run on transcribed turns rather than audio samples, independently of
the four emotional/prosodic layers, so a sales alert and an emotional alert
can both be published for the same turn. Two groups, each first-hit-wins:

  SALES_SIGNAL_LAYER  price window, decision signal, ready to close,
                      objection escalating, stalling, category transition
  TEXT_LAYER          client indecision, then solution understood
"""

import logging

import config
from utils.embeddings import clamp01, cosine_similarity, keyword_overlap, mean_embedding, normalize_keywords, snippet
from utils.feedback_types import SEVERITY_INFO, SEVERITY_WARNING
from utils.thresholds import (
    INDECISION_CATEGORIES,
    INDECISION_MAX_PHRASES,
    INDECISION_PHRASE_MIN_CONFIDENCE,
    INDECISION_WINDOW_MS,
    SALES_SIGNAL_GATE,
    SALES_SIGNALS,
    SNIPPET_MAX_LEN,
    SOLUTION_MIN_SIMILARITY,
    SOLUTION_MIN_SIMILARITY_NO_OVERLAP,
)

logger = logging.getLogger(__name__)

# Substrings that mark a keyword as conditional / open-ended language.
CONDITIONAL_KEYWORDS = (
    "talvez",
    "pensar",
    "avaliar",
    "depois",
    "ver",
    "consultar",
    "depende",
    "preciso",
    "vou ver",
    "deixa",
    "analisar",
    "considerar",
    "refletir",
    "avaliar melhor",
    "pensar melhor",
)

REFORMULATION_MARKERS = (
    "deixa eu ver se entendi",
    "só pra confirmar",
    "se eu entendi",
    "entendi então",
    "entendi que",
    "então vocês",
    "então o que você está dizendo é",
    "quer dizer que",
    "ou seja",
    "resumindo",
    "em resumo",
    "na prática então",
    "basicamente",
)

PATTERN_NAMES = ("decision_postponement", "conditional_language", "lack_of_commitment")

SALES_CATEGORY_NAMES = {
    "price_interest": "interesse em preço",
    "value_exploration": "exploração de valor",
    "objection_soft": "objeção leve",
    "objection_hard": "objeção forte",
    "decision_signal": "sinal de decisão",
    "information_gathering": "coleta de informações",
    "stalling": "protelando",
    "closing_readiness": "pronto para fechar",
}

STRONG_FLAGS = ("price_window_open", "decision_signal_strong", "ready_to_close")


# ============================================================================
# Sales signals
# ============================================================================

def category_display_name(category):
    if not category:
        return "desconhecida"
    return SALES_CATEGORY_NAMES.get(category, category)


def sales_signal_gate(state, ctx):
    """
    Shared admission check for the sales-signal detectors.

    Strong upstream flags always pass (after the global debounce). Otherwise
    the classification must be confident, intense, unambiguous and, when an
    aggregate is present, stable enough not to be noise.
    """
    ta = state.text_analysis
    if ta is None or not ta.sales_category:
        return False
    if ctx.in_global_cooldown(state):
        return False
    flags = ta.sales_category_flags
    if any(flags.get(f) for f in STRONG_FLAGS):
        return True

    g = SALES_SIGNAL_GATE
    confidence = ta.sales_category_confidence or 0.0
    intensity = ta.sales_category_intensity or 0.0
    if confidence < g["min_confidence"] or intensity < g["min_intensity"]:
        return False
    ambiguity = ta.sales_category_ambiguity
    if (1.0 if ambiguity is None else ambiguity) > g["max_ambiguity"]:
        return False
    aggregated = ta.sales_category_aggregated
    if aggregated:
        stability = aggregated.get("stability") or 0.0
        if stability < g["min_stability"] and confidence < g["unstable_min_confidence"]:
            return False
    return True


def _signal(state, ctx, ftype, key, severity, message, tips, metadata):
    t = SALES_SIGNALS[key]
    ctx.set_cooldown(state, ftype, t["cooldown_ms"])
    return ctx.feedback(ftype, severity, ctx.window(state, t["window_ms"]), message, tips, metadata)


def detect_price_window_open(state, ctx):
    ftype = "sales_price_window_open"
    if not sales_signal_gate(state, ctx) or ctx.in_cooldown(state, ftype):
        return None
    ta = state.text_analysis
    if not (ta.sales_category_flags.get("price_window_open") and ta.sales_category_trend.get("trend") == "advancing"):
        return None
    return _signal(
        state, ctx, ftype, "price_window", SEVERITY_INFO,
        "Agora é o momento ideal para apresentar o preço",
        [
            "Cliente demonstrou interesse consistente em saber o preço",
            "Conversa progredindo positivamente",
            "Momento oportuno para discussão de valores",
        ],
        {
            "sales_category": ta.sales_category,
            "sales_category_confidence": ta.sales_category_confidence,
            "sales_category_intensity": ta.sales_category_intensity,
        },
    )


def detect_decision_signal(state, ctx):
    ftype = "sales_decision_signal"
    if not sales_signal_gate(state, ctx) or ctx.in_cooldown(state, ftype):
        return None
    ta = state.text_analysis
    if not ta.sales_category_flags.get("decision_signal_strong"):
        return None
    return _signal(
        state, ctx, ftype, "decision_signal", SEVERITY_INFO,
        "Cliente demonstra sinais claros de prontidão para decidir",
        [
            "Considere acelerar o processo de fechamento",
            "Apresente os próximos passos com clareza",
        ],
        {
            "sales_category": ta.sales_category,
            "sales_category_confidence": ta.sales_category_confidence,
        },
    )


def detect_ready_to_close(state, ctx):
    ftype = "sales_ready_to_close"
    if not sales_signal_gate(state, ctx) or ctx.in_cooldown(state, ftype):
        return None
    ta = state.text_analysis
    stage = ta.sales_category_trend.get("current_stage") or 0
    if not ta.sales_category_flags.get("ready_to_close") or stage < SALES_SIGNALS["ready_to_close"]["min_stage"]:
        return None
    return _signal(
        state, ctx, ftype, "ready_to_close", SEVERITY_INFO,
        "Cliente demonstra prontidão para fechar o negócio; acelere o processo",
        [
            "Momento ideal para a proposta final",
            "Evite adicionar complexidade desnecessária",
        ],
        {
            "sales_category": ta.sales_category,
            "sales_category_confidence": ta.sales_category_confidence,
            "current_stage": stage,
        },
    )


def detect_objection_escalating(state, ctx):
    ftype = "sales_objection_escalating"
    if not sales_signal_gate(state, ctx) or ctx.in_cooldown(state, ftype):
        return None
    transition = state.text_analysis.sales_category_transition
    if not (transition.get("transition_type") == "regressing"
            and transition.get("from_category") == "objection_soft"
            and transition.get("to_category") == "objection_hard"):
        return None
    return _signal(
        state, ctx, ftype, "objection_escalating", SEVERITY_WARNING,
        "Objeção do cliente está piorando; mude a abordagem",
        [
            "Foque em entender as preocupações específicas",
            "Evite ser defensivo ou insistente",
        ],
        {
            "from_category": transition.get("from_category"),
            "to_category": transition.get("to_category"),
            "transition_confidence": transition.get("confidence"),
        },
    )


def detect_conversation_stalling(state, ctx):
    ftype = "sales_conversation_stalling"
    if not sales_signal_gate(state, ctx) or ctx.in_cooldown(state, ftype):
        return None
    ta = state.text_analysis
    trend = ta.sales_category_trend
    strength = trend.get("trend_strength") or 0.0
    if not (ta.sales_category == "stalling" and trend.get("trend") == "stable"
            and strength > SALES_SIGNALS["conversation_stalling"]["min_trend_strength"]):
        return None
    return _signal(
        state, ctx, ftype, "conversation_stalling", SEVERITY_INFO,
        "Conversa estagnada; considere criar urgência",
        [
            "Ofereça um incentivo ou um prazo",
            "Identifique os bloqueadores específicos",
        ],
        {"sales_category": ta.sales_category, "trend_strength": strength},
    )


def detect_category_transition(state, ctx):
    """Report a confident jump of two or more stages forward in the sales funnel."""
    ftype = "sales_category_transition"
    if not sales_signal_gate(state, ctx) or ctx.in_cooldown(state, ftype):
        return None
    t = SALES_SIGNALS["category_transition"]
    transition = state.text_analysis.sales_category_transition
    confidence = transition.get("confidence") or 0.0
    stage_difference = transition.get("stage_difference") or 0
    if not (transition.get("transition_type") == "advancing"
            and confidence > t["min_confidence"]
            and stage_difference >= t["min_stage_difference"]):
        return None
    from_name = category_display_name(transition.get("from_category"))
    to_name = category_display_name(transition.get("to_category"))
    return _signal(
        state, ctx, ftype, "category_transition", SEVERITY_INFO,
        f"Cliente progrediu de {from_name} para {to_name}",
        [
            "Aproveite o momento de progresso",
            "Mantenha o ritmo da conversa",
        ],
        {
            "from_category": transition.get("from_category"),
            "to_category": transition.get("to_category"),
            "transition_confidence": confidence,
            "stage_difference": stage_difference,
        },
    )


# ============================================================================
# Client indecision
# ============================================================================

def _indecision_share(aggregated):
    distribution = aggregated.get("category_distribution") or {}
    return sum(float(distribution.get(c) or 0) for c in INDECISION_CATEGORIES)


def detect_indecision_patterns(ta):
    """Three boolean signals read from the upstream analysis of the latest turn."""
    aggregated = ta.sales_category_aggregated
    trend = ta.sales_category_trend
    flags = ta.sales_category_flags
    metrics = ta.indecision_metrics
    ambiguity = ta.sales_category_ambiguity or 0.0
    is_stable = trend.get("trend") == "stable"

    velocity = trend.get("velocity")
    contextual_postponement = (
        aggregated.get("dominant_category") == "stalling"
        and is_stable
        and (velocity if velocity is not None else 1.0) < 0.1
    )
    decision_postponement = bool(
        flags.get("decision_postponement_signal")
        or contextual_postponement
        or (metrics.get("postponement_likelihood") or 0) >= 0.6
    )

    has_conditional_keywords = bool(ta.conditional_keywords_detected) or any(
        ck in kw.lower() for kw in ta.keywords for ck in CONDITIONAL_KEYWORDS
    )
    conditional_language = bool(
        flags.get("conditional_language_signal")
        or (ambiguity > 0.7 and has_conditional_keywords)
        or (metrics.get("conditional_language_score") or 0) >= 0.4
    )

    stability = aggregated.get("stability") or 0.0
    lack_of_commitment = bool(
        flags.get("indecision_detected")
        or (stability < 0.5 and _indecision_share(aggregated) > 0.6)
        or (metrics.get("indecision_score") or 0) >= 0.6
    )

    return {
        "decision_postponement": decision_postponement,
        "conditional_language": conditional_language,
        "lack_of_commitment": lack_of_commitment,
    }


def temporal_consistency(ta, now, window_ms=INDECISION_WINDOW_MS):
    """
    True when the indecision pattern held for the whole recent window:
    at least 70% of recent turns are confident stalling/soft-objection,
    the dominant category is stable and the trend is flat.
    """
    cutoff = now - window_ms
    recent = [e for e in ta.text_history if e.timestamp >= cutoff]
    if not recent:
        return False
    indecisive = [
        e for e in recent
        if e.sales_category in INDECISION_CATEGORIES and (e.sales_category_confidence or 0) >= 0.6
    ]
    if len(indecisive) / len(recent) < 0.7:
        return False
    if (ta.sales_category_aggregated.get("stability") or 0) < 0.5:
        return False
    return ta.sales_category_trend.get("trend") == "stable"


def indecision_confidence(ta, patterns, consistent):
    aggregated = ta.sales_category_aggregated
    metrics = ta.indecision_metrics
    patterns_score = sum(1 for v in patterns.values() if v) / 3.0
    metrics_score = max(
        metrics.get("indecision_score") or 0,
        metrics.get("postponement_likelihood") or 0,
        metrics.get("conditional_language_score") or 0,
    )
    volume_score = min(1.0, (aggregated.get("chunks_with_category") or 0) / 10.0)
    confidence = (
        patterns_score * 0.30
        + metrics_score * 0.25
        + (aggregated.get("stability") or 0) * 0.15
        + (ta.sales_category_trend.get("trend_strength") or 0) * 0.10
        + volume_score * 0.10
        + _indecision_share(aggregated) * 0.05
        + (1.0 if consistent else 0.0) * 0.05
    )
    return clamp01(confidence)


def representative_phrases(ta, now, window_ms=INDECISION_WINDOW_MS, max_phrases=INDECISION_MAX_PHRASES,
                           min_confidence=INDECISION_PHRASE_MIN_CONFIDENCE):
    cutoff = now - window_ms
    candidates = [
        e for e in ta.text_history
        if e.timestamp >= cutoff
        and e.sales_category in INDECISION_CATEGORIES
        and (e.sales_category_confidence or 0) >= min_confidence
    ]
    candidates.sort(key=lambda e: e.sales_category_confidence or 0, reverse=True)
    return [e.text for e in candidates[:max_phrases]]


def _indecision_message(patterns):
    if patterns["decision_postponement"] and patterns["lack_of_commitment"]:
        return "⏳ Cliente adiando e evitando compromisso"
    if patterns["decision_postponement"]:
        return "⏳ Cliente adiando a decisão"
    if patterns["lack_of_commitment"]:
        return "🤔 Cliente hesitante"
    if patterns["conditional_language"]:
        return "💭 Indecisão detectada"
    return "⚠️ Sinais de indecisão"


def _indecision_tips(patterns, consistent):
    tips = []
    if patterns["decision_postponement"]:
        tips.append("Crie urgência ou ofereça incentivo")
    elif patterns["lack_of_commitment"]:
        tips.append("Pergunte o que está travando")
    elif patterns["conditional_language"]:
        tips.append("Descubra a condição real")
    tips.append("Mude a abordagem" if consistent else "Proponha próximo passo concreto")
    return tips


def detect_client_indecision(state, ctx):
    if not config.SALES_CLIENT_INDECISION_ENABLED:
        return None
    ta = state.text_analysis
    if ta is None:
        return None

    ftype = "sales_client_indecision"
    cooldown_ms = config.SALES_CLIENT_INDECISION_COOLDOWN_MS
    # a zero cooldown also ignores whatever cooldown state is left over
    if cooldown_ms > 0 and ctx.in_cooldown(state, ftype):
        logger.debug("Indecision: %s in cooldown", ctx.participant_id)
        return None

    aggregated = ta.sales_category_aggregated
    if (aggregated.get("chunks_with_category") or 0) < 1:
        return None

    patterns = detect_indecision_patterns(ta)
    if not any(patterns.values()):
        return None

    now = ctx.now
    consistent = temporal_consistency(ta, now)
    confidence = indecision_confidence(ta, patterns, consistent)
    if confidence < config.SALES_CLIENT_INDECISION_MIN_CONFIDENCE:
        logger.debug("Indecision: confidence %.2f below %.2f for %s",
                     confidence, config.SALES_CLIENT_INDECISION_MIN_CONFIDENCE, ctx.participant_id)
        return None

    phrases = representative_phrases(ta, now)
    if not phrases and ta.latest_text.strip():
        phrases = [snippet(ta.latest_text, SNIPPET_MAX_LEN)]

    if cooldown_ms > 0:
        ctx.set_cooldown(state, ftype, cooldown_ms)

    return ctx.feedback(
        ftype, SEVERITY_WARNING, ctx.window(state, INDECISION_WINDOW_MS),
        _indecision_message(patterns),
        _indecision_tips(patterns, consistent),
        {
            "confidence": round(confidence, 2),
            "semantic_patterns_detected": [name for name in PATTERN_NAMES if patterns[name]],
            "representative_phrases": phrases,
            "temporal_consistency": consistent,
            "sales_category": ta.sales_category,
            "sales_category_confidence": ta.sales_category_confidence,
            "sales_category_aggregated": aggregated or None,
            "indecision_metrics": ta.indecision_metrics or None,
            "conditional_keywords_detected": ta.conditional_keywords_detected or None,
        },
    )


# ============================================================================
# Solution understood
# ============================================================================

def reformulation_markers(text):
    t = text.lower()
    return [m for m in REFORMULATION_MARKERS if m in t]


def _speech_act_score(speech_act):
    if speech_act in ("agreement", "confirmation"):
        return 1.0
    if speech_act == "ask_info":
        return 0.5
    return 0.0


def detect_solution_understood(state, ctx):
    """
    A non-host participant restates, in their own words, what was explained
    to them a moment ago. Compares the turn embedding with the centroid of
    recent explanation turns from other participants.
    """
    if not config.SALES_SOLUTION_UNDERSTOOD_ENABLED:
        return None
    ta = state.text_analysis
    if ta is None:
        return None
    debug = config.SALES_SOLUTION_UNDERSTOOD_DEBUG

    text = ta.latest_text.strip()
    embedding = ta.embedding
    if not text or not embedding:
        return None
    if ctx.participant_role() == "host":
        return None

    ftype = "sales_solution_understood"
    cooldown_ms = config.SALES_SOLUTION_UNDERSTOOD_COOLDOWN_MS
    if cooldown_ms > 0 and ctx.in_cooldown(state, ftype):
        return None

    markers = reformulation_markers(text)
    if not markers:
        return None
    if len(text) < config.SALES_SOLUTION_UNDERSTOOD_MIN_REFORMULATION_CHARS:
        if debug:
            logger.debug("Solution understood: text too short (%d chars)", len(text))
        return None

    now = ctx.now
    cutoff = now - config.SALES_SOLUTION_CONTEXT_WINDOW_MS
    entries = [
        e for e in ctx.solution_context_entries()
        if e.ts >= cutoff and e.participant_id != ctx.participant_id and e.role in ("host", "unknown")
    ]
    if not entries:
        if debug:
            logger.debug("Solution understood: no solution context for %s", ctx.participant_id)
        return None

    centroid = mean_embedding([e.embedding for e in entries])
    if centroid is None:
        return None
    similarity = cosine_similarity(embedding, centroid)
    if similarity < SOLUTION_MIN_SIMILARITY:
        if debug:
            logger.debug("Solution understood: similarity %.3f too low", similarity)
        return None

    context_keywords = normalize_keywords(k for e in entries for k in e.keywords)
    overlap = keyword_overlap(ta.keywords, context_keywords)
    if overlap == 0 and similarity < SOLUTION_MIN_SIMILARITY_NO_OVERLAP:
        if debug:
            logger.debug("Solution understood: no keyword overlap and similarity %.3f", similarity)
        return None

    context_strength = sum(e.strength for e in entries) / len(entries)
    confidence = (
        clamp01((similarity - 0.55) / 0.25) * 0.45
        + clamp01(len(markers) / 2) * 0.20
        + clamp01(overlap / 3) * 0.15
        + clamp01(context_strength) * 0.15
        + _speech_act_score(ta.speech_act) * 0.05
    )
    threshold = config.SALES_SOLUTION_UNDERSTOOD_THRESHOLD
    if confidence < threshold:
        if debug:
            logger.debug("Solution understood: confidence %.2f below %.2f", confidence, threshold)
        return None

    if cooldown_ms > 0:
        ctx.set_cooldown(state, ftype, cooldown_ms)

    best = max(entries, key=lambda e: e.strength)
    return ctx.feedback(
        ftype, SEVERITY_INFO, ctx.window(state, INDECISION_WINDOW_MS),
        "Cliente reformulou sua solução; parece que entendeu.",
        ["Confirme: “Perfeito, é isso mesmo.”", "Valide o próximo passo: “Faz sentido avançarmos?”"],
        {
            "confidence": round(confidence, 2),
            "similarity_raw": round(similarity, 3),
            "markers_detected": markers,
            "keyword_overlap": overlap,
            "solution_context_excerpt": snippet(best.text, SNIPPET_MAX_LEN),
            "client_reformulation_excerpt": snippet(text, SNIPPET_MAX_LEN),
        },
    )


SALES_SIGNAL_LAYER = [
    ("price_window_open", detect_price_window_open),
    ("decision_signal", detect_decision_signal),
    ("ready_to_close", detect_ready_to_close),
    ("objection_escalating", detect_objection_escalating),
    ("conversation_stalling", detect_conversation_stalling),
    ("category_transition", detect_category_transition),
]

TEXT_LAYER = [
    ("client_indecision", detect_client_indecision),
    ("solution_understood", detect_solution_understood),
]
