"""
Layered feedback pipeline.

Four layers evaluated in strict priority order; each layer is an ordered
list of (name, detector) pairs and yields at most one payload. The first
layer that produces something ends the tick, so an ingestion event results
in zero or one alert:

    primary emotions -> meta-states -> prosody -> long-term

The two text/sales layers are separate entry points so sales alerts never
compete with the emotional ones or with each other.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from services.detection_context import DetectionContext
from services.state_registry import ParticipantState
from utils.feedback_types import FeedbackEventPayload
from utils.longterm_detectors import LONGTERM_LAYER
from utils.meta_detectors import META_LAYER
from utils.primary_detectors import PRIMARY_LAYER
from utils.prosody_detectors import PROSODY_LAYER
from utils.sales_detectors import SALES_SIGNAL_LAYER, TEXT_LAYER

logger = logging.getLogger(__name__)

Detector = Callable[[ParticipantState, DetectionContext], Optional[FeedbackEventPayload]]
Layer = Sequence[Tuple[str, Detector]]

LAYERS: List[Tuple[str, Layer]] = [
    ("primary", PRIMARY_LAYER),
    ("meta", META_LAYER),
    ("prosody", PROSODY_LAYER),
    ("longterm", LONGTERM_LAYER),
]


def run_layer(layer: Layer, state: ParticipantState, ctx: DetectionContext) -> Optional[FeedbackEventPayload]:
    """Run detectors in order and return the first payload."""
    for name, detect in layer:
        payload = detect(state, ctx)
        if payload is not None:
            logger.debug("Detector %s fired %s for %s/%s", name, payload.type, ctx.meeting_id, ctx.participant_id)
            return payload
    return None


def run_pipeline(state: ParticipantState, ctx: DetectionContext,
                 layers: Sequence[Tuple[str, Layer]] = LAYERS) -> Optional[FeedbackEventPayload]:
    for _, layer in layers:
        payload = run_layer(layer, state, ctx)
        if payload is not None:
            return payload
    return None


def run_sales_signals(state: ParticipantState, ctx: DetectionContext) -> Optional[FeedbackEventPayload]:
    return run_layer(SALES_SIGNAL_LAYER, state, ctx)


def run_text_analysis_pipeline(state: ParticipantState, ctx: DetectionContext) -> Optional[FeedbackEventPayload]:
    return run_layer(TEXT_LAYER, state, ctx)
