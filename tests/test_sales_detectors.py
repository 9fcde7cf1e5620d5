"""
Text-analysis detector tests: sales signals, client indecision, the
solution context buffer and solution-understood reformulation matching.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest
from unittest.mock import patch

from services import solution_context
from services.feedback_aggregator import FeedbackAggregator
from services.feedback_pipeline import run_sales_signals
from services.state_registry import StateRegistry
from utils.embeddings import cosine_similarity, keyword_overlap, mean_embedding, snippet
from utils.feedback_types import TextAnalysisEvent
from utils.sales_detectors import (
    category_display_name,
    detect_category_transition,
    detect_client_indecision,
    detect_conversation_stalling,
    detect_decision_signal,
    detect_indecision_patterns,
    detect_objection_escalating,
    detect_price_window_open,
    detect_ready_to_close,
    detect_solution_understood,
    reformulation_markers,
    sales_signal_gate,
)
from tests.fixtures.synthetic_samples import (
    CLIENT_REFORMULATION,
    HOST_EXPLANATION,
    INDECISION_ANALYSIS,
    MEETING,
    NOW,
    index_with,
    make_ctx,
    text_event,
)

HOST_VECTOR = [1.0, 0.0, 0.0, 0.0]
CLIENT_VECTOR = [0.95, 0.1, 0.0, 0.05]
ORTHOGONAL_VECTOR = [0.0, 1.0, 0.0, 0.0]
KEYWORDS = ["crm", "funil", "painel"]


def _client_turn(registry, pid="c1", text="Acho que preciso pensar melhor e ver isso depois com o time.",
                 timestamp=NOW, analysis=None):
    state = registry.get_or_create(MEETING, pid)
    registry.update_text_analysis(state, text, timestamp, dict(analysis if analysis is not None else INDECISION_ANALYSIS))
    return state


class TestEmbeddingHelpers(unittest.TestCase):
    """Vector and keyword helpers."""

    def test_cosine_edge_cases(self):
        """Empty, mismatched and zero vectors compare as 0."""
        self.assertEqual(cosine_similarity([], [1.0]), 0.0)
        self.assertEqual(cosine_similarity([1.0, 0.0], [1.0]), 0.0)
        self.assertEqual(cosine_similarity([0.0, 0.0], [1.0, 0.0]), 0.0)
        self.assertAlmostEqual(cosine_similarity([1.0, 0.0], [2.0, 0.0]), 1.0)

    def test_mean_embedding(self):
        """Centroid of equal-length vectors; None on mismatch."""
        self.assertEqual(mean_embedding([[1.0, 0.0], [0.0, 1.0]]), [0.5, 0.5])
        self.assertIsNone(mean_embedding([[1.0], [1.0, 2.0]]))
        self.assertIsNone(mean_embedding([]))

    def test_keyword_overlap_is_case_insensitive(self):
        """Keywords are compared after trimming and lower-casing."""
        self.assertEqual(keyword_overlap(["CRM ", "Painel", "preço"], ["crm", "painel"]), 2)

    def test_snippet(self):
        """Long text is cut with an ellipsis inside the limit."""
        self.assertEqual(snippet("abcdefghij", 8), "abcde...")
        self.assertEqual(snippet("  curto ", 8), "curto")


class TestClientIndecision(unittest.TestCase):
    """Indecision from the upstream sales classification."""

    def test_patterns(self):
        """Postponement and lack of commitment are read from flags."""
        registry = StateRegistry()
        state = _client_turn(registry)
        patterns = detect_indecision_patterns(state.text_analysis)
        self.assertTrue(patterns["decision_postponement"])
        self.assertTrue(patterns["lack_of_commitment"])
        self.assertFalse(patterns["conditional_language"])

    def test_fires_with_metadata(self):
        """A confident stalling turn yields a warning with its phrases and patterns."""
        registry = StateRegistry()
        state = _client_turn(registry)
        result = detect_client_indecision(state, make_ctx(registry, "c1"))
        self.assertIsNotNone(result)
        self.assertEqual(result.type, "sales_client_indecision")
        self.assertEqual(result.severity, "warning")
        self.assertIn("adiando", result.message)
        self.assertEqual(result.metadata["semantic_patterns_detected"],
                         ["decision_postponement", "lack_of_commitment"])
        self.assertTrue(result.metadata["temporal_consistency"])
        self.assertEqual(len(result.metadata["representative_phrases"]), 1)
        self.assertGreaterEqual(result.metadata["confidence"], 0.5)

    def test_repeat_within_cooldown_suppressed(self):
        """The default two-minute cooldown blocks a repeat."""
        registry = StateRegistry()
        state = _client_turn(registry)
        self.assertIsNotNone(detect_client_indecision(state, make_ctx(registry, "c1")))
        state = _client_turn(registry, timestamp=NOW + 10_000)
        self.assertIsNone(detect_client_indecision(state, make_ctx(registry, "c1", now=NOW + 10_000)))

    def test_zero_cooldown_ignores_stale_state(self):
        """With the cooldown set to 0 a leftover cooldown entry does not block."""
        registry = StateRegistry()
        state = _client_turn(registry)
        state.cooldown_until_by_type["sales_client_indecision"] = NOW + 600_000
        with patch("config.SALES_CLIENT_INDECISION_COOLDOWN_MS", 0):
            self.assertIsNotNone(detect_client_indecision(state, make_ctx(registry, "c1")))
            self.assertIsNotNone(detect_client_indecision(state, make_ctx(registry, "c1", now=NOW + 1)))

    def test_disabled(self):
        """The feature switch turns the detector off."""
        registry = StateRegistry()
        state = _client_turn(registry)
        with patch("config.SALES_CLIENT_INDECISION_ENABLED", False):
            self.assertIsNone(detect_client_indecision(state, make_ctx(registry, "c1")))

    def test_low_confidence(self):
        """A raised minimum confidence rejects the same turn."""
        registry = StateRegistry()
        state = _client_turn(registry)
        with patch("config.SALES_CLIENT_INDECISION_MIN_CONFIDENCE", 0.95):
            self.assertIsNone(detect_client_indecision(state, make_ctx(registry, "c1")))

    def test_no_category_chunks(self):
        """Without classified chunks there is nothing to judge."""
        registry = StateRegistry()
        state = _client_turn(registry, analysis={"sales_category": "stalling"})
        self.assertIsNone(detect_client_indecision(state, make_ctx(registry, "c1")))


class TestSolutionContext(unittest.TestCase):
    """Admission of explanation turns into the meeting buffer."""

    def _event(self, pid, text, ts=NOW, **analysis):
        return TextAnalysisEvent.from_dict(text_event(pid, text, ts, **analysis))

    def test_host_explanation_admitted(self):
        """A long explanatory host turn clears the host floor."""
        registry = StateRegistry()
        meeting = registry.meeting(MEETING)
        evt = self._event("h", HOST_EXPLANATION, embedding=HOST_VECTOR, keywords=KEYWORDS,
                          sales_category="value_exploration")
        entry = solution_context.update_from_turn(meeting, evt, "host", NOW)
        self.assertIsNotNone(entry)
        self.assertGreaterEqual(entry.strength, 0.5)
        self.assertEqual(len(meeting.solution_context), 1)

    def test_guest_floor_is_higher(self):
        """A mid-strength turn passes for a host but not for a guest."""
        registry = StateRegistry()
        meeting = registry.meeting(MEETING)
        text = "Funciona assim: vocês mandam a planilha e a gente devolve o relatório pronto."
        evt = self._event("x", text, embedding=HOST_VECTOR, sales_category="value_exploration")
        self.assertIsNone(solution_context.update_from_turn(meeting, evt, "guest", NOW))
        self.assertIsNotNone(solution_context.update_from_turn(meeting, evt, "host", NOW))

    def test_missing_embedding(self):
        """Turns without an embedding are never stored."""
        registry = StateRegistry()
        meeting = registry.meeting(MEETING)
        evt = self._event("h", HOST_EXPLANATION, sales_category="value_exploration")
        self.assertIsNone(solution_context.update_from_turn(meeting, evt, "host", NOW))

    def test_window_and_cap(self):
        """Old entries fall out of the window and the buffer is capped."""
        registry = StateRegistry()
        meeting = registry.meeting(MEETING)
        evt = self._event("h", HOST_EXPLANATION, embedding=HOST_VECTOR, sales_category="value_exploration")
        solution_context.update_from_turn(meeting, evt, "host", NOW - 100_000)
        solution_context.update_from_turn(meeting, evt, "host", NOW)
        self.assertEqual([e.ts for e in meeting.solution_context], [NOW])
        for i in range(20):
            solution_context.update_from_turn(meeting, evt, "host", NOW + i)
        self.assertEqual(len(meeting.solution_context), 12)


class TestSolutionUnderstood(unittest.TestCase):
    """Client reformulation matched against the recent explanation."""

    def _meeting(self, host_ts=NOW - 20_000, client_vector=CLIENT_VECTOR, client_text=CLIENT_REFORMULATION):
        registry = StateRegistry()
        evt = TextAnalysisEvent.from_dict(text_event(
            "h", HOST_EXPLANATION, host_ts,
            embedding=HOST_VECTOR, keywords=KEYWORDS + ["integração"], sales_category="value_exploration",
        ))
        solution_context.update_from_turn(registry.meeting(MEETING), evt, "host", host_ts)
        state = registry.get_or_create(MEETING, "c1")
        registry.update_text_analysis(state, client_text, NOW, {"embedding": client_vector, "keywords": KEYWORDS})
        idx = index_with({"h": "host", "c1": "guest"})
        return registry, state, make_ctx(registry, "c1", index=idx)

    def test_markers(self):
        """Reformulation markers are matched case-insensitively."""
        self.assertEqual(reformulation_markers("OU SEJA, resumindo..."), ["ou seja", "resumindo"])

    def test_fires(self):
        """A close paraphrase with markers and shared keywords is recognized."""
        registry, state, ctx = self._meeting()
        result = detect_solution_understood(state, ctx)
        self.assertIsNotNone(result)
        self.assertEqual(result.type, "sales_solution_understood")
        self.assertEqual(result.severity, "info")
        self.assertEqual(result.metadata["keyword_overlap"], 3)
        self.assertIn("ou seja", result.metadata["markers_detected"])
        self.assertGreaterEqual(result.metadata["confidence"], 0.7)
        self.assertTrue(result.metadata["solution_context_excerpt"].startswith("Funciona assim"))

    def test_orthogonal_embedding(self):
        """Talking about something else is not understanding."""
        registry, state, ctx = self._meeting(client_vector=ORTHOGONAL_VECTOR)
        self.assertIsNone(detect_solution_understood(state, ctx))

    def test_expired_context(self):
        """An explanation older than the context window no longer counts."""
        registry, state, ctx = self._meeting(host_ts=NOW - 120_000)
        self.assertIsNone(detect_solution_understood(state, ctx))

    def test_no_marker(self):
        """Without a reformulation marker the turn is ignored."""
        text = "Vocês conectam no nosso CRM e a gente vê o funil inteiro num painel só, certo?"
        registry, state, ctx = self._meeting(client_text=text)
        self.assertIsNone(detect_solution_understood(state, ctx))

    def test_host_turn_ignored(self):
        """The host restating their own pitch is not a client reformulation."""
        registry, state, _ = self._meeting()
        ctx = make_ctx(registry, "c1", index=index_with({"c1": "host"}))
        self.assertIsNone(detect_solution_understood(state, ctx))

    def test_cooldown(self):
        """A second reformulation right after is suppressed."""
        registry, state, ctx = self._meeting()
        self.assertIsNotNone(detect_solution_understood(state, ctx))
        again = make_ctx(registry, "c1", now=NOW + 5000, index=index_with({"h": "host", "c1": "guest"}))
        self.assertIsNone(detect_solution_understood(state, again))


CONFIDENT_TURN = {
    "sales_category": "closing_readiness",
    "sales_category_confidence": 0.85,
    "sales_category_intensity": 0.7,
    "sales_category_ambiguity": 0.2,
}


def _signal_turn(registry, pid="c1", timestamp=NOW, **overrides):
    analysis = dict(CONFIDENT_TURN)
    analysis.update(overrides)
    return _client_turn(registry, pid, "Certo, vamos ver os próximos passos.", timestamp, analysis)


class TestSalesSignalGate(unittest.TestCase):
    """Admission rules shared by the sales-signal detectors."""

    def test_needs_category(self):
        """A turn without a sales category is never considered."""
        registry = StateRegistry()
        state = _signal_turn(registry, sales_category=None)
        self.assertFalse(sales_signal_gate(state, make_ctx(registry, "c1")))

    def test_confident_turn_passes(self):
        """Confidence and intensity at 0.6 or more with low ambiguity pass."""
        registry = StateRegistry()
        state = _signal_turn(registry)
        self.assertTrue(sales_signal_gate(state, make_ctx(registry, "c1")))

    def test_weak_or_ambiguous_turn_rejected(self):
        """Low intensity, missing ambiguity or high ambiguity all reject."""
        registry = StateRegistry()
        ctx = make_ctx(registry, "c1")
        self.assertFalse(sales_signal_gate(_signal_turn(registry, sales_category_intensity=0.5), ctx))
        self.assertFalse(sales_signal_gate(_signal_turn(registry, sales_category_ambiguity=None), ctx))
        self.assertFalse(sales_signal_gate(_signal_turn(registry, sales_category_ambiguity=0.75), ctx))

    def test_strong_flag_bypasses_confidence(self):
        """A strong upstream flag is enough even for a weak classification."""
        registry = StateRegistry()
        state = _signal_turn(registry, sales_category_confidence=0.3, sales_category_intensity=0.1,
                             sales_category_flags={"decision_signal_strong": True})
        self.assertTrue(sales_signal_gate(state, make_ctx(registry, "c1")))

    def test_unstable_history(self):
        """An unstable aggregate needs confidence of at least 0.8."""
        registry = StateRegistry()
        ctx = make_ctx(registry, "c1")
        unstable = {"stability": 0.3}
        self.assertFalse(sales_signal_gate(
            _signal_turn(registry, sales_category_confidence=0.7, sales_category_aggregated=unstable), ctx))
        self.assertTrue(sales_signal_gate(
            _signal_turn(registry, sales_category_confidence=0.85, sales_category_aggregated=unstable), ctx))

    def test_global_debounce(self):
        """Any feedback in the last two seconds blocks the signals."""
        registry = StateRegistry()
        state = _signal_turn(registry, sales_category_flags={"decision_signal_strong": True})
        state.last_feedback_at = NOW - 1000
        self.assertFalse(sales_signal_gate(state, make_ctx(registry, "c1")))


class TestSalesSignals(unittest.TestCase):
    """Price window, decision, closing, objection, stalling and transition alerts."""

    def test_price_window_needs_advancing_trend(self):
        """The price window only opens while the conversation advances."""
        registry = StateRegistry()
        flags = {"price_window_open": True}
        state = _signal_turn(registry, sales_category="price_interest", sales_category_flags=flags,
                             sales_category_trend={"trend": "stable"})
        self.assertIsNone(detect_price_window_open(state, make_ctx(registry, "c1")))

        state = _signal_turn(registry, sales_category="price_interest", sales_category_flags=flags,
                             sales_category_trend={"trend": "advancing"})
        result = detect_price_window_open(state, make_ctx(registry, "c1"))
        self.assertEqual(result.type, "sales_price_window_open")
        self.assertEqual(result.severity, "info")
        self.assertEqual(result.metadata["sales_category"], "price_interest")
        self.assertEqual(result.window_start, NOW - 30_000)

    def test_decision_signal(self):
        """A strong decision flag is reported and then cools down."""
        registry = StateRegistry()
        state = _signal_turn(registry, sales_category="decision_signal",
                             sales_category_flags={"decision_signal_strong": True})
        result = detect_decision_signal(state, make_ctx(registry, "c1"))
        self.assertEqual(result.type, "sales_decision_signal")
        self.assertIsNone(detect_decision_signal(state, make_ctx(registry, "c1", now=NOW + 10_000)))
        self.assertIsNotNone(detect_decision_signal(state, make_ctx(registry, "c1", now=NOW + 30_000)))

    def test_ready_to_close_needs_stage_four(self):
        """Closing readiness below stage 4 is not enough."""
        registry = StateRegistry()
        flags = {"ready_to_close": True}
        state = _signal_turn(registry, sales_category_flags=flags, sales_category_trend={"current_stage": 3})
        self.assertIsNone(detect_ready_to_close(state, make_ctx(registry, "c1")))

        state = _signal_turn(registry, sales_category_flags=flags, sales_category_trend={"current_stage": 4})
        result = detect_ready_to_close(state, make_ctx(registry, "c1"))
        self.assertEqual(result.type, "sales_ready_to_close")
        self.assertEqual(result.metadata["current_stage"], 4)

    def test_objection_escalating(self):
        """Soft to hard objection is a warning with a one-minute cooldown."""
        registry = StateRegistry()
        transition = {"transition_type": "regressing", "from_category": "objection_soft",
                      "to_category": "objection_hard", "confidence": 0.8}
        state = _signal_turn(registry, sales_category="objection_hard", sales_category_transition=transition)
        result = detect_objection_escalating(state, make_ctx(registry, "c1"))
        self.assertEqual(result.type, "sales_objection_escalating")
        self.assertEqual(result.severity, "warning")
        self.assertEqual(result.metadata["transition_confidence"], 0.8)
        self.assertEqual(result.window_start, NOW - 60_000)
        self.assertIsNone(detect_objection_escalating(state, make_ctx(registry, "c1", now=NOW + 59_999)))
        self.assertIsNotNone(detect_objection_escalating(state, make_ctx(registry, "c1", now=NOW + 60_000)))

    def test_other_regression_ignored(self):
        """Only the soft to hard objection path counts as escalation."""
        registry = StateRegistry()
        transition = {"transition_type": "regressing", "from_category": "decision_signal",
                      "to_category": "objection_soft"}
        state = _signal_turn(registry, sales_category="objection_soft", sales_category_transition=transition)
        self.assertIsNone(detect_objection_escalating(state, make_ctx(registry, "c1")))

    def test_conversation_stalling(self):
        """Stalling on a strongly stable trend; 0.9 exactly is not enough."""
        registry = StateRegistry()
        state = _signal_turn(registry, sales_category="stalling",
                             sales_category_trend={"trend": "stable", "trend_strength": 0.9})
        self.assertIsNone(detect_conversation_stalling(state, make_ctx(registry, "c1")))

        state = _signal_turn(registry, sales_category="stalling",
                             sales_category_trend={"trend": "stable", "trend_strength": 0.95})
        result = detect_conversation_stalling(state, make_ctx(registry, "c1"))
        self.assertEqual(result.type, "sales_conversation_stalling")
        self.assertEqual(result.metadata["trend_strength"], 0.95)

    def test_category_transition(self):
        """A confident jump of two stages names both categories."""
        registry = StateRegistry()
        transition = {"transition_type": "advancing", "from_category": "objection_soft",
                      "to_category": "closing_readiness", "confidence": 0.8, "stage_difference": 3}
        state = _signal_turn(registry, sales_category_transition=transition)
        result = detect_category_transition(state, make_ctx(registry, "c1"))
        self.assertEqual(result.type, "sales_category_transition")
        self.assertEqual(result.message, "Cliente progrediu de objeção leve para pronto para fechar")
        self.assertEqual(result.metadata["stage_difference"], 3)

    def test_small_or_uncertain_transition(self):
        """One stage, or confidence of exactly 0.7, is not reported."""
        registry = StateRegistry()
        ctx = make_ctx(registry, "c1")
        base = {"transition_type": "advancing", "from_category": "stalling", "to_category": "decision_signal"}
        state = _signal_turn(registry, sales_category_transition=dict(base, confidence=0.9, stage_difference=1))
        self.assertIsNone(detect_category_transition(state, ctx))
        state = _signal_turn(registry, sales_category_transition=dict(base, confidence=0.7, stage_difference=2))
        self.assertIsNone(detect_category_transition(state, ctx))

    def test_display_names(self):
        """Unknown categories are shown as-is; missing ones as unknown."""
        self.assertEqual(category_display_name("stalling"), "protelando")
        self.assertEqual(category_display_name("custom"), "custom")
        self.assertEqual(category_display_name(None), "desconhecida")

    def test_first_signal_wins(self):
        """With several flags set only the highest-priority signal is emitted."""
        registry = StateRegistry()
        state = _signal_turn(registry, sales_category_flags={"price_window_open": True, "decision_signal_strong": True},
                             sales_category_trend={"trend": "advancing"})
        result = run_sales_signals(state, make_ctx(registry, "c1"))
        self.assertEqual(result.type, "sales_price_window_open")
        self.assertNotIn("sales_decision_signal", state.cooldown_until_by_type)

    def test_signal_and_indecision_on_same_turn(self):
        """A turn can carry both a sales signal and the indecision alert."""
        aggregator = FeedbackAggregator()
        analysis = dict(INDECISION_ANALYSIS)
        analysis["sales_category_flags"] = dict(INDECISION_ANALYSIS["sales_category_flags"], decision_signal_strong=True)
        evt = TextAnalysisEvent.from_dict(text_event("c1", "Acho que preciso pensar melhor.", NOW, **analysis))
        emitted = aggregator.handle_text_analysis(evt)
        self.assertEqual([p.type for p in emitted], ["sales_decision_signal", "sales_client_indecision"])


if __name__ == "__main__":
    unittest.main()
