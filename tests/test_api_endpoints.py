"""
API endpoint tests.

Uses Flask test client. Does not require a running server. The shared
FeedbackAggregator is reset before each test so meetings do not leak.
"""

import sys
import os

# Ensure project root is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest
from unittest.mock import patch, MagicMock

from services.feedback_aggregator import reset_feedback_aggregator
from tests.fixtures.synthetic_samples import MEETING, NOW, ingestion_event, ingestion_series, text_event


def get_app_client():
    """Create Flask app and test client. Lazy to avoid import-time side effects."""
    from app import app
    app.config["TESTING"] = True
    return app.test_client()


def _engaged_batch(count=6):
    return {"events": ingestion_series("p1", count, arousal=0.3, valence=0.2, emotions={"interest": 0.08},
                                       name="Ana")}


class TestHealthAndConfig(unittest.TestCase):
    """Health and config endpoints."""

    def setUp(self):
        self.client = get_app_client()

    def test_health(self):
        """GET /health should return ok."""
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.get_json(), {"status": "ok"})

    def test_config_all_returns_json(self):
        """GET /config/all should return every settings group."""
        r = self.client.get("/config/all")
        self.assertEqual(r.status_code, 200)
        self.assertIn("application/json", r.content_type)
        data = r.get_json()
        for key in ("feedback", "salesClientIndecision", "salesSolutionUnderstood", "engagement", "server"):
            self.assertIn(key, data)
        self.assertEqual(data["feedback"]["globalCooldownMs"], 2000)

    @patch("config.SALES_CLIENT_INDECISION_ENABLED", False)
    def test_config_reflects_patched_values(self):
        """Config is read at request time."""
        r = self.client.get("/config/all")
        self.assertFalse(r.get_json()["salesClientIndecision"]["enabled"])


class TestIngestionEndpoint(unittest.TestCase):
    """POST /feedback/ingestion."""

    def setUp(self):
        reset_feedback_aggregator()
        self.client = get_app_client()

    def tearDown(self):
        reset_feedback_aggregator()

    def test_requires_json(self):
        """Non-JSON bodies are rejected."""
        r = self.client.post("/feedback/ingestion", data="text", content_type="text/plain")
        self.assertEqual(r.status_code, 400)

    def test_invalid_event(self):
        """A missing meetingId is a 400 with details."""
        evt = ingestion_event("p1")
        del evt["meetingId"]
        r = self.client.post("/feedback/ingestion", json=evt)
        self.assertEqual(r.status_code, 400)
        data = r.get_json()
        self.assertEqual(data["error"], "Invalid ingestion event")
        self.assertIn("meetingId", data["details"])

    def test_single_event(self):
        """One event is processed without feedback."""
        r = self.client.post("/feedback/ingestion", json=ingestion_event("p1"))
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.get_json(), {"processed": 1, "feedback": []})

    def test_batch_emits_engagement(self):
        """Six engaged samples yield exactly one alert in wire form."""
        r = self.client.post("/feedback/ingestion", json=_engaged_batch())
        self.assertEqual(r.status_code, 200)
        data = r.get_json()
        self.assertEqual(data["processed"], 6)
        self.assertEqual(len(data["feedback"]), 1)
        fb = data["feedback"][0]
        self.assertEqual(fb["type"], "entusiasmo_alto")
        self.assertEqual(fb["meetingId"], MEETING)
        self.assertEqual(fb["participantName"], "Ana")
        self.assertEqual(fb["window"]["end"], NOW)

    def test_events_must_be_list(self):
        """A non-list events field is rejected."""
        r = self.client.post("/feedback/ingestion", json={"events": "nope"})
        self.assertEqual(r.status_code, 400)

    @patch("routes.get_feedback_aggregator")
    def test_internal_error_returns_500(self, mock_get):
        """Unexpected failures are reported as 500."""
        mock_agg = MagicMock()
        mock_agg.handle_ingestion.side_effect = RuntimeError("boom")
        mock_get.return_value = mock_agg
        r = self.client.post("/feedback/ingestion", json=ingestion_event("p1"))
        self.assertEqual(r.status_code, 500)
        self.assertIn("boom", r.get_json()["details"])


class TestTextAnalysisEndpoint(unittest.TestCase):
    """POST /feedback/text-analysis."""

    def setUp(self):
        reset_feedback_aggregator()
        self.client = get_app_client()

    def tearDown(self):
        reset_feedback_aggregator()

    def test_requires_participant(self):
        """A turn without participantId is a 400."""
        evt = text_event("p1", "oi")
        del evt["participantId"]
        r = self.client.post("/feedback/text-analysis", json=evt)
        self.assertEqual(r.status_code, 400)

    def test_plain_turn(self):
        """A turn with no signals returns an empty list."""
        r = self.client.post("/feedback/text-analysis", json=text_event("p1", "Bom dia a todos."))
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.get_json(), {"feedback": []})


class TestFeedbackHistoryAndEviction(unittest.TestCase):
    """GET /feedback/<meeting_id> and DELETE /meetings/<meeting_id>."""

    def setUp(self):
        reset_feedback_aggregator()
        self.client = get_app_client()
        self.client.post("/feedback/ingestion", json=_engaged_batch())

    def tearDown(self):
        reset_feedback_aggregator()

    def test_history(self):
        """Delivered feedback is returned for the meeting."""
        r = self.client.get(f"/feedback/{MEETING}")
        self.assertEqual(r.status_code, 200)
        data = r.get_json()
        self.assertEqual(data["meetingId"], MEETING)
        self.assertEqual([f["type"] for f in data["feedback"]], ["entusiasmo_alto"])

    def test_history_limit(self):
        """limit=0 returns nothing; a bad limit is a 400."""
        self.assertEqual(self.client.get(f"/feedback/{MEETING}?limit=0").get_json()["feedback"], [])
        self.assertEqual(self.client.get(f"/feedback/{MEETING}?limit=abc").status_code, 400)
        self.assertEqual(self.client.get(f"/feedback/{MEETING}?limit=-1").status_code, 400)

    def test_unknown_meeting(self):
        """Unknown meetings have an empty history."""
        self.assertEqual(self.client.get("/feedback/nope").get_json()["feedback"], [])

    def test_evict(self):
        """Eviction removes participants and delivered feedback."""
        r = self.client.delete(f"/meetings/{MEETING}")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.get_json(), {"meetingId": MEETING, "participantsRemoved": 1})
        self.assertEqual(self.client.get(f"/feedback/{MEETING}").get_json()["feedback"], [])


if __name__ == "__main__":
    unittest.main()
