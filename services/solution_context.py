"""
Rolling per-meeting buffer of "explanation-like" turns.

Each transcribed turn is scored for how much it sounds like someone
explaining the solution (length, explanatory phrases, sales category,
question penalty). Turns above the speaker's role floor are appended to
MeetingState.solution_context, which the solution-understood detector later
compares client reformulations against.

Callers hold the meeting lock.
"""

import logging
from typing import Optional

import config
from services.state_registry import MeetingState, SolutionContextEntry
from utils.embeddings import clamp01
from utils.feedback_types import TextAnalysisEvent
from utils.thresholds import SOLUTION_CONTEXT_MIN_STRENGTH

logger = logging.getLogger(__name__)

EXPLANATION_PHRASES = (
    "funciona assim",
    "na prática",
    "o fluxo",
    "a gente faz",
    "o que a gente faz",
    "a solução",
    "basicamente",
    "em resumo",
    "resumindo",
    "o passo a passo",
    "você vai conseguir",
    "você consegue",
    "a ideia é",
)

_EXPLANATORY_CATEGORIES = ("value_exploration", "information_gathering", "price_interest")
_INDECISION_CATEGORIES = ("stalling", "objection_soft")


def explanation_strength(text: str, sales_category: Optional[str], speech_act: Optional[str]) -> float:
    """Score 0..1 of how much a turn reads like an explanation of the offer."""
    t = (text or "").strip().lower()
    if not t:
        return 0.0

    length_score = clamp01((len(t) - 40) / 120)
    hits = sum(1 for p in EXPLANATION_PHRASES if p in t)
    phrase_score = clamp01(hits / 2)

    if sales_category in _EXPLANATORY_CATEGORIES:
        category_score = 1.0
    elif sales_category in _INDECISION_CATEGORIES:
        category_score = 0.0
    else:
        category_score = 0.5

    penalty = 0.3 if speech_act == "question" else 0.0
    return clamp01(length_score * 0.4 + phrase_score * 0.35 + category_score * 0.25 - penalty)


def update_from_turn(meeting: MeetingState, event: TextAnalysisEvent, role: str, now: int) -> Optional[SolutionContextEntry]:
    """
    Admit the turn into the meeting's solution context if it is strong enough.

    Returns the new entry, or None when the turn was rejected (feature off,
    missing text or embedding, or strength below the role floor).
    """
    if not config.SALES_SOLUTION_UNDERSTOOD_ENABLED:
        return None
    debug = config.SALES_SOLUTION_UNDERSTOOD_DEBUG

    text = (event.text or "").strip()
    embedding = event.embedding
    if not text or not embedding:
        if debug:
            logger.debug("Solution context: skipping turn without text or embedding (%s)", event.participant_id)
        return None

    analysis = event.analysis
    strength = explanation_strength(text, analysis.get("sales_category"), analysis.get("speech_act"))
    floor = SOLUTION_CONTEXT_MIN_STRENGTH.get(role, SOLUTION_CONTEXT_MIN_STRENGTH["unknown"])
    if strength < floor:
        if debug:
            logger.debug("Solution context: rejected %s turn, strength %.2f < %.2f", role, strength, floor)
        return None

    entry = SolutionContextEntry(
        ts=now,
        participant_id=event.participant_id,
        role=role,
        text=text,
        embedding=embedding,
        keywords=event.keywords,
        strength=strength,
    )
    cutoff = now - config.SALES_SOLUTION_CONTEXT_WINDOW_MS
    entries = [e for e in meeting.solution_context if e.ts >= cutoff]
    entries.append(entry)
    meeting.solution_context = entries[-config.SALES_SOLUTION_CONTEXT_MAX_ENTRIES:]

    if debug:
        logger.debug("Solution context: added %s turn from %s (strength %.2f, %d entries)",
                     role, event.participant_id, strength, len(meeting.solution_context))
    return entry
