"""
Prosodic detector tests: volume, monotony, pace, arousal/valence fallbacks
and group energy.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

from services.state_registry import StateRegistry
from utils.prosody_detectors import (
    detect_arousal,
    detect_group_energy,
    detect_monotony,
    detect_pace,
    detect_valence,
    detect_volume,
)
from tests.fixtures.synthetic_samples import NOW, feed, index_with, make_ctx


class TestVolume(unittest.TestCase):
    """Short-window loudness bands."""

    def _volume(self, rms):
        registry = StateRegistry()
        state = feed(registry, "p1", 8, step_ms=500, rms_dbfs=rms)
        return detect_volume(state, make_ctx(registry, "p1"))

    def test_nearly_inaudible_is_critical(self):
        """At or below -44 dBFS the low-volume alert is critical."""
        result = self._volume(-48.0)
        self.assertEqual(result.type, "volume_baixo")
        self.assertEqual(result.severity, "critical")
        self.assertAlmostEqual(result.metadata["rmsDbfs"], -48.0)

    def test_low_is_warning(self):
        """Between -44 and -38 dBFS the alert is a warning."""
        result = self._volume(-40.0)
        self.assertEqual(result.type, "volume_baixo")
        self.assertEqual(result.severity, "warning")

    def test_clipping_is_critical(self):
        """At or above -6 dBFS the signal is clipping."""
        result = self._volume(-5.0)
        self.assertEqual(result.type, "volume_alto")
        self.assertEqual(result.severity, "critical")

    def test_normal_level(self):
        """A comfortable level produces nothing."""
        self.assertIsNone(self._volume(-25.0))

    def test_needs_speech(self):
        """Silence is not judged for loudness."""
        registry = StateRegistry()
        state = feed(registry, "p1", 8, step_ms=500, speech=False, rms_dbfs=-48.0)
        self.assertIsNone(detect_volume(state, make_ctx(registry, "p1")))


class TestMonotony(unittest.TestCase):
    """Arousal variance over the long window."""

    def test_flat_arousal_is_warning(self):
        """Standard deviation under 0.06 with enough speech is a warning."""
        registry = StateRegistry()
        state = feed(registry, "p1", 12, arousal=[0.10, 0.12] * 6)
        result = detect_monotony(state, make_ctx(registry, "p1"))
        self.assertIsNotNone(result)
        self.assertEqual(result.type, "monotonia_prosodica")
        self.assertEqual(result.severity, "warning")

    def test_mild_variation_is_info(self):
        """Standard deviation between 0.06 and 0.1 is info."""
        registry = StateRegistry()
        state = feed(registry, "p1", 12, arousal=[0.03, 0.19] * 6)
        result = detect_monotony(state, make_ctx(registry, "p1"))
        self.assertEqual(result.severity, "info")

    def test_varied_arousal(self):
        """Lively intonation never fires."""
        registry = StateRegistry()
        state = feed(registry, "p1", 12, arousal=[-0.1, 0.3] * 6)
        self.assertIsNone(detect_monotony(state, make_ctx(registry, "p1")))

    def test_high_energy_blocks(self):
        """A steady but energetic voice is not monotone."""
        registry = StateRegistry()
        state = feed(registry, "p1", 12, arousal=0.5)
        self.assertIsNone(detect_monotony(state, make_ctx(registry, "p1")))


class TestPace(unittest.TestCase):
    """Speech/silence rhythm."""

    def test_rapid_switching_is_accelerated(self):
        """Many short speech bursts per second read as a rushed pace."""
        registry = StateRegistry()
        state = feed(registry, "p1", 40, step_ms=250, speech=[True, False] * 20)
        result = detect_pace(state, make_ctx(registry, "p1"))
        self.assertIsNotNone(result)
        self.assertEqual(result.type, "ritmo_acelerado")
        self.assertEqual(result.severity, "warning")

    def test_long_silence_is_paused(self):
        """A 9 s gap after speaking, with little speech overall, reads as a slow pace."""
        registry = StateRegistry()
        state = feed(registry, "p1", 11, speech=[True] + [False] * 10)
        result = detect_pace(state, make_ctx(registry, "p1"))
        self.assertIsNotNone(result)
        self.assertEqual(result.type, "ritmo_pausado")
        self.assertEqual(result.severity, "warning")

    def test_rushed_and_paused_at_once_is_ambiguous(self):
        """Six quick bursts followed by a long gap match both readings, so neither is reported."""
        registry = StateRegistry()
        state = feed(registry, "p1", 100, step_ms=100, speech=[True, False] * 6 + [False] * 88)
        self.assertIsNone(detect_pace(state, make_ctx(registry, "p1")))

    def test_high_arousal_blocks_paused(self):
        """Pauses from an energetic speaker are not a slow pace."""
        registry = StateRegistry()
        state = feed(registry, "p1", 11, speech=[True] + [False] * 10, arousal=0.6)
        self.assertIsNone(detect_pace(state, make_ctx(registry, "p1")))

        registry = StateRegistry()
        state = feed(registry, "p1", 11, speech=[True] + [False] * 10, arousal=0.4)
        self.assertEqual(detect_pace(state, make_ctx(registry, "p1")).type, "ritmo_pausado")

    def test_low_arousal_blocks_accelerated(self):
        """Rapid switching from a flat, low-energy speaker is not a rushed pace."""
        registry = StateRegistry()
        state = feed(registry, "p1", 40, step_ms=250, speech=[True, False] * 20, arousal=-0.5)
        self.assertIsNone(detect_pace(state, make_ctx(registry, "p1")))

        registry = StateRegistry()
        state = feed(registry, "p1", 40, step_ms=250, speech=[True, False] * 20, arousal=0.0)
        self.assertEqual(detect_pace(state, make_ctx(registry, "p1")).type, "ritmo_acelerado")

    def test_never_spoke(self):
        """Someone who never spoke has no pace."""
        registry = StateRegistry()
        state = feed(registry, "p1", 11, speech=False)
        self.assertIsNone(detect_pace(state, make_ctx(registry, "p1")))


class TestArousalValenceFallback(unittest.TestCase):
    """EMA-only fallbacks for participants without emotion scores."""

    def test_high_positive_energy(self):
        """High arousal with positive valence is enthusiasm."""
        registry = StateRegistry()
        state = feed(registry, "p1", 10, arousal=0.6, valence=0.3)
        result = detect_arousal(state, make_ctx(registry, "p1"))
        self.assertEqual(result.type, "entusiasmo_alto")
        self.assertEqual(result.severity, "info")

    def test_high_negative_energy(self):
        """High arousal with negative valence is stress."""
        registry = StateRegistry()
        state = feed(registry, "p1", 10, arousal=0.6, valence=-0.3)
        result = detect_arousal(state, make_ctx(registry, "p1"))
        self.assertEqual(result.type, "tendencia_emocional_negativa")
        self.assertEqual(result.severity, "warning")

    def test_low_energy(self):
        """Very low arousal is low engagement."""
        registry = StateRegistry()
        state = feed(registry, "p1", 10, arousal=-0.5)
        result = detect_arousal(state, make_ctx(registry, "p1"))
        self.assertEqual(result.type, "engajamento_baixo")
        self.assertEqual(result.severity, "warning")

    def test_skipped_when_emotions_present(self):
        """Any EMA emotion at all hands the participant to the primary layer."""
        registry = StateRegistry()
        state = feed(registry, "p1", 10, arousal=0.6, valence=-0.7, emotions={"interest": 0.01})
        ctx = make_ctx(registry, "p1")
        self.assertIsNone(detect_arousal(state, ctx))
        self.assertIsNone(detect_valence(state, ctx))

    def test_severe_negative_valence(self):
        """Valence at or below -0.6 is a warning."""
        registry = StateRegistry()
        state = feed(registry, "p1", 10, arousal=0.0, valence=-0.7)
        result = detect_valence(state, make_ctx(registry, "p1"))
        self.assertEqual(result.type, "tendencia_emocional_negativa")
        self.assertEqual(result.severity, "warning")

    def test_mild_negative_valence(self):
        """Valence between -0.6 and -0.35 is info."""
        registry = StateRegistry()
        state = feed(registry, "p1", 10, arousal=0.0, valence=-0.4)
        result = detect_valence(state, make_ctx(registry, "p1"))
        self.assertEqual(result.severity, "info")


class TestGroupEnergy(unittest.TestCase):
    """Mean arousal of talking non-host participants."""

    def test_low_group_energy_ignores_host(self):
        """A lively host does not mask a flat audience."""
        registry = StateRegistry()
        feed(registry, "p1", 10, arousal=-0.6)
        feed(registry, "p2", 10, arousal=-0.6)
        host = feed(registry, "h", 10, arousal=0.8)
        idx = index_with({"p1": "guest", "p2": "guest", "h": "host"})
        result = detect_group_energy(host, make_ctx(registry, "h", index=idx))
        self.assertIsNotNone(result)
        self.assertEqual(result.type, "energia_grupo_baixa")
        self.assertEqual(result.severity, "warning")
        self.assertEqual(result.participant_id, "group")
        self.assertAlmostEqual(result.metadata["arousalEMA"], -0.6)

        again = detect_group_energy(host, make_ctx(registry, "h", now=NOW + 1000, index=idx))
        self.assertIsNone(again)

    def test_normal_energy(self):
        """A neutral group produces nothing."""
        registry = StateRegistry()
        state = feed(registry, "p1", 10, arousal=0.1)
        feed(registry, "p2", 10, arousal=0.0)
        self.assertIsNone(detect_group_energy(state, make_ctx(registry, "p1")))


if __name__ == "__main__":
    unittest.main()
