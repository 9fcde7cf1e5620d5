"""
Feedback aggregator: entry point for ingestion and text-analysis events.

Owns the StateRegistry, the ParticipantIndex and the FeedbackDelivery buffer.
Every event for a meeting is handled to completion under that meeting's lock,
so detectors see a consistent view of per-participant and meeting-scoped
state even when the HTTP server runs handlers on several threads.
"""

import logging
from typing import List, Optional

import config
from services import solution_context
from services.detection_context import RegistryDetectionContext
from services.feedback_delivery import FeedbackDelivery
from services.feedback_pipeline import run_pipeline, run_sales_signals, run_text_analysis_pipeline
from services.participant_index import ParticipantIndex
from services.state_registry import Sample, StateRegistry
from utils.feedback_types import GROUP_PARTICIPANT_ID, FeedbackEventPayload, IngestionEvent, TextAnalysisEvent

logger = logging.getLogger(__name__)


class FeedbackAggregator:
    def __init__(self, registry: Optional[StateRegistry] = None, index: Optional[ParticipantIndex] = None,
                 delivery: Optional[FeedbackDelivery] = None):
        self.registry = registry or StateRegistry()
        self.index = index or ParticipantIndex()
        self.delivery = delivery or FeedbackDelivery()

    def _context(self, meeting_id: str, participant_id: str, now: int) -> RegistryDetectionContext:
        return RegistryDetectionContext(self.registry, meeting_id, participant_id, now, self.index)

    def _publish(self, payload: FeedbackEventPayload) -> None:
        if payload.participant_id != GROUP_PARTICIPANT_ID:
            target = self.registry.get(payload.meeting_id, payload.participant_id)
            if target is not None:
                self.registry.record_emotion(target, payload.type, payload.ts, payload.metadata.get("score"))
        self.delivery.publish(payload)
        logger.info("Feedback %s (%s) for %s/%s: %s", payload.type, payload.severity,
                    payload.meeting_id, payload.participant_id, payload.message)

    def handle_ingestion(self, event: IngestionEvent) -> Optional[FeedbackEventPayload]:
        """
        Fold one prosody sample into state and run the four-layer pipeline.

        Returns the emitted payload, or None when nothing fired or the event
        was ignored (no participant id, or host audio while hosts are excluded).
        """
        pid = event.participant_id
        if not pid:
            logger.debug("Ignoring ingestion event without participantId (meeting %s)", event.meeting_id)
            return None
        # role and name are learned even for host events that are dropped below
        self.index.update(event.meeting_id, pid, event.participant_role, event.participant_name)
        if event.participant_role == "host" and not config.FEEDBACK_INCLUDE_HOST:
            return None

        sample = Sample(
            ts=event.ts,
            speech=event.speech_detected,
            valence=event.valence,
            arousal=event.arousal,
            rms_dbfs=event.rms_dbfs,
            emotions=dict(event.emotions),
        )
        with self.registry.meeting_lock(event.meeting_id):
            state = self.registry.apply_sample(event.meeting_id, pid, sample)
            self.registry.update_speaker_tracking(event.meeting_id, event.ts)
            payload = run_pipeline(state, self._context(event.meeting_id, pid, event.ts))
            if payload is not None:
                self._publish(payload)
        return payload

    def handle_text_analysis(self, event: TextAnalysisEvent) -> List[FeedbackEventPayload]:
        """
        Store the turn's analysis, feed the solution context, then run the
        layered pipeline, the sales signals and the text layer. Up to three
        payloads per turn.
        """
        mid, pid, now = event.meeting_id, event.participant_id, event.timestamp
        emitted: List[FeedbackEventPayload] = []
        with self.registry.meeting_lock(mid):
            state = self.registry.get_or_create(mid, pid)
            self.registry.update_text_analysis(state, event.text, now, event.analysis)
            solution_context.update_from_turn(self.registry.meeting(mid), event, self.index.get_role(mid, pid), now)

            ctx = self._context(mid, pid, now)
            for run in (run_pipeline, run_sales_signals, run_text_analysis_pipeline):
                payload = run(state, ctx)
                if payload is not None:
                    self._publish(payload)
                    emitted.append(payload)
        return emitted

    def recent_feedback(self, meeting_id: str, limit: Optional[int] = None) -> List[FeedbackEventPayload]:
        return self.delivery.recent(meeting_id, limit)

    def evict_meeting(self, meeting_id: str) -> int:
        with self.registry.meeting_lock(meeting_id):
            removed = self.registry.evict_meeting(meeting_id)
        self.index.forget_meeting(meeting_id)
        self.delivery.clear_meeting(meeting_id)
        return removed


_aggregator: Optional[FeedbackAggregator] = None


def get_feedback_aggregator() -> FeedbackAggregator:
    global _aggregator
    if _aggregator is None:
        _aggregator = FeedbackAggregator()
    return _aggregator


def reset_feedback_aggregator() -> None:
    """Drop the shared aggregator (tests)."""
    global _aggregator
    _aggregator = None
