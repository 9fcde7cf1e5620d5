"""
Wire types for the feedback engine.

FeedbackEventPayload is the immutable value every detector returns. The two
inbound event types (IngestionEvent, TextAnalysisEvent) are parsed from the
camelCase JSON the transport layer delivers; from_dict raises ValueError on
malformed required fields so the HTTP layer can answer 400.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"
SEVERITIES = frozenset({SEVERITY_INFO, SEVERITY_WARNING, SEVERITY_CRITICAL})

GROUP_PARTICIPANT_ID = "group"

FEEDBACK_TYPES = frozenset({
    "volume_baixo",
    "volume_alto",
    "silencio_prolongado",
    "tendencia_emocional_negativa",
    "engajamento_baixo",
    "overlap_fala",
    "frustracao_crescente",
    "entusiasmo_alto",
    "monotonia_prosodica",
    "energia_grupo_baixa",
    "interrupcoes_frequentes",
    "polarizacao_emocional",
    "efeito_pos_interrupcao",
    "ritmo_acelerado",
    "ritmo_pausado",
    "hostilidade",
    "tedio",
    "confusao",
    "serenidade",
    "conexao",
    "tristeza",
    "estado_mental",
    "sales_client_indecision",
    "sales_solution_understood",
    "sales_price_window_open",
    "sales_decision_signal",
    "sales_ready_to_close",
    "sales_objection_escalating",
    "sales_conversation_stalling",
    "sales_category_transition",
})

PARTICIPANT_ROLES = ("host", "guest", "unknown")


@dataclass(frozen=True)
class FeedbackEventPayload:
    """A single coaching alert. Never mutated after construction."""
    id: str
    type: str
    severity: str
    ts: int
    meeting_id: str
    participant_id: str
    window_start: int
    window_end: int
    message: str
    tips: Tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)
    participant_name: Optional[str] = None

    def __post_init__(self):
        # copied and exposed read-only
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
        object.__setattr__(self, "tips", tuple(self.tips))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "ts": self.ts,
            "meetingId": self.meeting_id,
            "participantId": self.participant_id,
            "window": {"start": self.window_start, "end": self.window_end},
            "message": self.message,
            "tips": list(self.tips),
            "metadata": {k: v for k, v in self.metadata.items() if v is not None},
        }
        if self.participant_name:
            out["participantName"] = self.participant_name
        return out


def _opt_float(value: Any, name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    return float(value)


def _required_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Missing {key}")
    return value.strip()


def _required_ts(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Missing {key}")
    return int(value)


def _emotion_map(raw: Any) -> Dict[str, float]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("prosody.emotions must be an object")
    out: Dict[str, float] = {}
    for name, score in raw.items():
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            continue
        out[str(name).lower()] = float(score)
    return out


@dataclass
class IngestionEvent:
    """One audio frame worth of prosody for a participant."""
    meeting_id: str
    participant_id: Optional[str]
    participant_role: str
    ts: int
    speech_detected: bool
    valence: Optional[float] = None
    arousal: Optional[float] = None
    emotions: Dict[str, float] = field(default_factory=dict)
    rms_dbfs: Optional[float] = None
    participant_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IngestionEvent":
        if not isinstance(data, dict):
            raise ValueError("Event must be an object")
        prosody = data.get("prosody")
        if not isinstance(prosody, dict):
            raise ValueError("Missing prosody")
        signal = data.get("signal") or {}
        if not isinstance(signal, dict):
            raise ValueError("signal must be an object")
        participant_id = data.get("participantId")
        if participant_id is not None and not isinstance(participant_id, str):
            raise ValueError("participantId must be a string")
        role = data.get("participantRole") or "unknown"
        if role not in PARTICIPANT_ROLES:
            role = "unknown"
        name = data.get("participantName")
        return cls(
            meeting_id=_required_str(data, "meetingId"),
            participant_id=participant_id or None,
            participant_role=role,
            ts=_required_ts(data, "ts"),
            speech_detected=bool(prosody.get("speechDetected", False)),
            valence=_opt_float(prosody.get("valence"), "prosody.valence"),
            arousal=_opt_float(prosody.get("arousal"), "prosody.arousal"),
            emotions=_emotion_map(prosody.get("emotions")),
            rms_dbfs=_opt_float(signal.get("rmsDbfs"), "signal.rmsDbfs"),
            participant_name=name if isinstance(name, str) and name.strip() else None,
        )


@dataclass
class TextAnalysisEvent:
    """One transcribed utterance plus the NLP service's analysis of it."""
    meeting_id: str
    participant_id: str
    text: str
    timestamp: int
    analysis: Dict[str, Any] = field(default_factory=dict)

    @property
    def embedding(self) -> List[float]:
        raw = self.analysis.get("embedding")
        if not isinstance(raw, (list, tuple)):
            return []
        return [float(v) for v in raw if isinstance(v, (int, float)) and not isinstance(v, bool)]

    @property
    def keywords(self) -> List[str]:
        raw = self.analysis.get("keywords")
        if not isinstance(raw, (list, tuple)):
            return []
        return [str(k) for k in raw if k is not None]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TextAnalysisEvent":
        if not isinstance(data, dict):
            raise ValueError("Event must be an object")
        analysis = data.get("analysis") or {}
        if not isinstance(analysis, dict):
            raise ValueError("analysis must be an object")
        text = data.get("text") or ""
        if not isinstance(text, str):
            raise ValueError("text must be a string")
        return cls(
            meeting_id=_required_str(data, "meetingId"),
            participant_id=_required_str(data, "participantId"),
            text=text,
            timestamp=_required_ts(data, "timestamp"),
            analysis=analysis,
        )
