"""
Flask routes for the meeting feedback engine.

Handles prosody ingestion, text-analysis turns, delivered-feedback retrieval,
meeting eviction, config and health. All handlers go through the shared
FeedbackAggregator (see services/feedback_aggregator.py).
"""

import logging

from flask import Blueprint, Flask, jsonify, request

from config import build_config_response
from services.feedback_aggregator import get_feedback_aggregator
from utils.feedback_types import IngestionEvent, TextAnalysisEvent

logger = logging.getLogger(__name__)

# Create a blueprint for better organization
api = Blueprint('api', __name__)


@api.route("/health", methods=["GET"])
def health():
    """Liveness check."""
    return jsonify({"status": "ok"})


@api.route("/config/all", methods=["GET"])
def get_all_config():
    """
    Get all runtime-tunable configuration in one endpoint.

    Returns:
        JSON: feedback core, sales detector, engagement and server settings
    """
    return jsonify(build_config_response())


@api.route("/feedback/ingestion", methods=["POST"])
def feedback_ingestion():
    """
    Ingest one prosody sample, or a batch, and run the layered pipeline.

    Request Body:
        {
            "meetingId": "m1",
            "participantId": "p1",
            "participantRole": "guest",
            "participantName": "Ana",
            "ts": 1700000000000,
            "prosody": {"speechDetected": true, "valence": 0.1, "arousal": 0.2,
                        "emotions": {"interest": 0.08}},
            "signal": {"rmsDbfs": -20}
        }
        or {"events": [<event>, ...]} (processed in order)

    Returns:
        JSON: {
            "processed": <number of events>,
            "feedback": [<FeedbackEventPayload>, ...]
        }
    """
    if not request.is_json:
        return jsonify({"error": "Request must be JSON"}), 400

    data = request.get_json(silent=True)
    raw_events = data.get("events") if isinstance(data, dict) and "events" in data else [data]
    if not isinstance(raw_events, list):
        return jsonify({"error": "events must be a list"}), 400

    try:
        events = [IngestionEvent.from_dict(e) for e in raw_events]
    except ValueError as e:
        return jsonify({"error": "Invalid ingestion event", "details": str(e)}), 400

    try:
        aggregator = get_feedback_aggregator()
        emitted = []
        for event in events:
            payload = aggregator.handle_ingestion(event)
            if payload is not None:
                emitted.append(payload.to_dict())
        return jsonify({"processed": len(events), "feedback": emitted})
    except Exception as e:
        logger.warning("Ingestion failed: %s", e, exc_info=True)
        return jsonify({"error": "Failed to process ingestion event", "details": str(e)}), 500


@api.route("/feedback/text-analysis", methods=["POST"])
def feedback_text_analysis():
    """
    Ingest one transcribed turn with its NLP analysis.

    Request Body:
        {
            "meetingId": "m1",
            "participantId": "p1",
            "text": "Ou seja, vocês integram com o CRM...",
            "timestamp": 1700000000000,
            "analysis": {"embedding": [...], "keywords": [...], "speech_act": "...",
                         "sales_category": "...", ...}
        }

    Returns:
        JSON: {
            "feedback": [<FeedbackEventPayload>, ...]  (at most two)
        }
    """
    if not request.is_json:
        return jsonify({"error": "Request must be JSON"}), 400

    try:
        event = TextAnalysisEvent.from_dict(request.get_json(silent=True))
    except ValueError as e:
        return jsonify({"error": "Invalid text-analysis event", "details": str(e)}), 400

    try:
        emitted = get_feedback_aggregator().handle_text_analysis(event)
        return jsonify({"feedback": [p.to_dict() for p in emitted]})
    except Exception as e:
        logger.warning("Text analysis failed: %s", e, exc_info=True)
        return jsonify({"error": "Failed to process text analysis", "details": str(e)}), 500


@api.route("/feedback/<meeting_id>", methods=["GET"])
def get_meeting_feedback(meeting_id):
    """
    Recently delivered feedback for a meeting, oldest first.

    Query: limit (optional, non-negative int) keeps only the last N.
    """
    limit = request.args.get("limit")
    if limit is not None:
        try:
            limit = int(limit)
        except ValueError:
            return jsonify({"error": "limit must be an integer"}), 400
        if limit < 0:
            return jsonify({"error": "limit must be non-negative"}), 400

    payloads = get_feedback_aggregator().recent_feedback(meeting_id, limit)
    return jsonify({"meetingId": meeting_id, "feedback": [p.to_dict() for p in payloads]})


@api.route("/meetings/<meeting_id>", methods=["DELETE"])
def evict_meeting(meeting_id):
    """Drop all state kept for a meeting (participants, cooldowns, context, delivered feedback)."""
    try:
        removed = get_feedback_aggregator().evict_meeting(meeting_id)
        return jsonify({"meetingId": meeting_id, "participantsRemoved": removed})
    except Exception as e:
        logger.warning("Eviction of %s failed: %s", meeting_id, e, exc_info=True)
        return jsonify({"error": "Failed to evict meeting", "details": str(e)}), 500


def register_routes(app: Flask) -> None:
    """Attach the API blueprint to the application."""
    app.register_blueprint(api)
