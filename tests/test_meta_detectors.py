"""
Meta-state detector tests: frustration trend, post-interruption effect and
group polarization.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

from services.state_registry import PostInterruptionCandidate, StateRegistry
from utils.meta_detectors import detect_frustration_trend, detect_polarization, detect_post_interruption
from tests.fixtures.synthetic_samples import MEETING, NOW, feed, index_with, make_ctx

EARLY = 9
LATE = 11


class TestFrustrationTrend(unittest.TestCase):
    """Early/late comparison over the 20 s trend window."""

    def test_rising_arousal_alone_is_info(self):
        """Arousal up by 0.5 with flat valence gives an info alert."""
        registry = StateRegistry()
        state = feed(registry, "p1", 20, arousal=[0.0] * EARLY + [0.5] * LATE, valence=0.0)
        result = detect_frustration_trend(state, make_ctx(registry, "p1"))
        self.assertIsNotNone(result)
        self.assertEqual(result.type, "frustracao_crescente")
        self.assertEqual(result.severity, "info")
        self.assertIn("energia aumentando", result.message)
        self.assertAlmostEqual(result.metadata["arousalDelta"], 0.5)

    def test_falling_valence_alone_is_info(self):
        """Valence dropping is enough on its own."""
        registry = StateRegistry()
        state = feed(registry, "p1", 20, arousal=0.1, valence=[0.2] * EARLY + [-0.2] * LATE)
        result = detect_frustration_trend(state, make_ctx(registry, "p1"))
        self.assertEqual(result.severity, "info")
        self.assertIn("tom diminuindo", result.message)

    def test_both_is_warning(self):
        """Rising arousal together with falling valence is a warning."""
        registry = StateRegistry()
        state = feed(registry, "p1", 20, arousal=[0.0] * EARLY + [0.5] * LATE,
                     valence=[0.2] * EARLY + [-0.2] * LATE)
        result = detect_frustration_trend(state, make_ctx(registry, "p1"))
        self.assertEqual(result.severity, "warning")

    def test_significant_emotions_skip(self):
        """Participants with a meaningful emotion score are left to the primary layer."""
        registry = StateRegistry()
        state = feed(registry, "p1", 20, arousal=[0.0] * EARLY + [0.5] * LATE, valence=0.0,
                     emotions={"interest": 0.2})
        self.assertIsNone(detect_frustration_trend(state, make_ctx(registry, "p1")))

    def test_flat_signals(self):
        """No movement, no alert."""
        registry = StateRegistry()
        state = feed(registry, "p1", 20, arousal=0.2, valence=0.1)
        self.assertIsNone(detect_frustration_trend(state, make_ctx(registry, "p1")))


class TestPostInterruption(unittest.TestCase):
    """Valence drop of a participant after being cut off."""

    def _setup(self, candidate_age_ms, valence_after=-0.3):
        registry = StateRegistry()
        feed(registry, "p2", 10, valence=valence_after)
        state = feed(registry, "p1", 10)
        registry.meeting(MEETING).post_interruption_candidates = [
            PostInterruptionCandidate(ts=NOW - candidate_age_ms, interrupted_id="p2", valence_before=0.2),
        ]
        return registry, state

    def test_fires_for_interrupted_participant(self):
        """A drop of 0.5 inside the 6-30 s window is reported against the interrupted person."""
        registry, state = self._setup(10_000)
        result = detect_post_interruption(state, make_ctx(registry, "p1"))
        self.assertIsNotNone(result)
        self.assertEqual(result.type, "efeito_pos_interrupcao")
        self.assertEqual(result.participant_id, "p2")
        self.assertEqual(registry.meeting(MEETING).post_interruption_candidates, [])

    def test_too_early_candidate_is_kept(self):
        """Candidates younger than 6 s stay pending."""
        registry, state = self._setup(3_000)
        self.assertIsNone(detect_post_interruption(state, make_ctx(registry, "p1")))
        self.assertEqual(len(registry.meeting(MEETING).post_interruption_candidates), 1)

    def test_expired_candidate_is_dropped(self):
        """Candidates older than 30 s are discarded."""
        registry, state = self._setup(40_000)
        self.assertIsNone(detect_post_interruption(state, make_ctx(registry, "p1")))
        self.assertEqual(registry.meeting(MEETING).post_interruption_candidates, [])

    def test_small_drop_is_kept(self):
        """A drop under 0.2 does not fire and the candidate survives."""
        registry, state = self._setup(10_000, valence_after=0.1)
        self.assertIsNone(detect_post_interruption(state, make_ctx(registry, "p1")))
        self.assertEqual(len(registry.meeting(MEETING).post_interruption_candidates), 1)


class TestPolarization(unittest.TestCase):
    """Divergent valence camps among non-host participants."""

    def _meeting(self, valences):
        registry = StateRegistry()
        for pid, v in valences.items():
            feed(registry, pid, 10, valence=v)
        return registry

    def test_single_negative_is_info(self):
        """Two positives against one negative is mild polarization."""
        registry = self._meeting({"p1": 0.5, "p2": 0.4, "p3": -0.4})
        result = detect_polarization(registry.get(MEETING, "p1"), make_ctx(registry, "p1"))
        self.assertIsNotNone(result)
        self.assertEqual(result.type, "polarizacao_emocional")
        self.assertEqual(result.severity, "info")
        self.assertEqual(result.participant_id, "group")
        self.assertIsNone(result.participant_name)

    def test_two_per_side_is_warning(self):
        """Two or more on each side is a warning."""
        registry = self._meeting({"p1": 0.5, "p2": 0.4, "p3": -0.4, "p4": -0.5})
        result = detect_polarization(registry.get(MEETING, "p1"), make_ctx(registry, "p1"))
        self.assertEqual(result.severity, "warning")
        self.assertEqual(result.metadata["negativeCount"], 2)

    def test_needs_three_participants(self):
        """Two people disagreeing is not group polarization."""
        registry = self._meeting({"p1": 0.5, "p3": -0.4})
        self.assertIsNone(detect_polarization(registry.get(MEETING, "p1"), make_ctx(registry, "p1")))

    def test_host_excluded(self):
        """The host does not count toward the camps."""
        registry = self._meeting({"host": 0.6, "p2": 0.4, "p3": -0.4})
        idx = index_with({"host": "host", "p2": "guest", "p3": "guest"})
        self.assertIsNone(detect_polarization(registry.get(MEETING, "p2"), make_ctx(registry, "p2", index=idx)))

    def test_meeting_cooldown(self):
        """A second evaluation, even from another participant, is suppressed."""
        registry = self._meeting({"p1": 0.5, "p2": 0.4, "p3": -0.4})
        self.assertIsNotNone(detect_polarization(registry.get(MEETING, "p1"), make_ctx(registry, "p1")))
        self.assertIsNone(detect_polarization(registry.get(MEETING, "p3"), make_ctx(registry, "p3", now=NOW + 1000)))


if __name__ == "__main__":
    unittest.main()
