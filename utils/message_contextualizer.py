"""
Rewrites primary-detector messages based on what happened just before.

Engagement after hostility, serenity after hostility/frustration and
sadness after engagement get wording that acknowledges the shift. When a
conflicting negative signal sits at 60-80% of the detected emotion, the
message mentions the residual tension and extra tips are appended.
"""

from typing import List, Optional, Tuple

_TENSION_SUFFIX = ", mas há alguma tensão no ambiente"
_CONNECTION_PHRASES = (
    "conexão emocional detectada",
    "vínculo profundo detectado",
    "carinho leve detectado",
    "compaixão detectada",
    "sofrimento empático detectado",
)


def has_recent_emotion(recent, emotion_type: str, window_ms: int = 60_000, now: int = 0) -> bool:
    cutoff = now - window_ms
    return any(e.type == emotion_type and e.ts >= cutoff for e in (recent or ()))


def contextualize_engagement_message(message: str, recent, now: int) -> str:
    if has_recent_emotion(recent, "hostilidade", now=now):
        return message.replace(
            "O grupo parece engajado.",
            "O grupo parece engajado após o momento anterior.",
        )
    return message


def contextualize_serenity_message(message: str, recent, now: int) -> str:
    if has_recent_emotion(recent, "hostilidade", now=now) or has_recent_emotion(recent, "frustracao_crescente", now=now):
        for phrase in ("tranquilidade detectada", "calma detectada"):
            if phrase in message:
                return message.replace(phrase, phrase + ". O ambiente parece estar se acalmando")
    return message


def contextualize_sadness_message(message: str, recent, now: int) -> str:
    if has_recent_emotion(recent, "entusiasmo_alto", now=now):
        if "tristeza detectada" in message:
            return message.replace(
                "tristeza detectada",
                "tristeza detectada. O grupo parece ter perdido o engajamento anterior",
            )
        if "desanimado" in message:
            return message.replace("desanimado", "desanimado após o engajamento anterior")
    return message


def contextualize_message_by_intensity(message: str, current_type: str,
                                       relative_intensity: Optional[float]) -> Tuple[str, List[str]]:
    tips: List[str] = []
    if relative_intensity is None or not 0.6 <= relative_intensity <= 0.8:
        return message, tips

    if current_type == "entusiasmo_alto":
        message = message.replace(
            "ótima energia e clareza! O grupo parece engajado.",
            "ótima energia e clareza! O grupo parece engajado" + _TENSION_SUFFIX + ".",
        )
        tips += ["Considere abordar a tensão sutilmente", "Mantenha o tom positivo mas seja sensível"]
    elif current_type == "serenidade":
        message = message.replace(
            "tranquilidade detectada",
            "tranquilidade detectada, mas há uma leve melancolia",
        )
        tips += ["Considere elevar sutilmente o humor", "Mantenha a calma mas seja empático"]
    elif current_type == "conexao":
        for phrase in _CONNECTION_PHRASES:
            if phrase in message:
                message = message.replace(phrase, phrase + _TENSION_SUFFIX)
                tips += ["Considere abordar a tensão com empatia", "Mantenha o ambiente acolhedor mas seja sensível"]
                break
    return message, tips


def contextualize_message(message: str, tips: List[str], current_type: str, recent, now: int,
                          relative_intensity: Optional[float] = None) -> Tuple[str, List[str]]:
    tips = list(tips)
    if current_type == "entusiasmo_alto":
        message = contextualize_engagement_message(message, recent, now)
    elif current_type == "serenidade":
        message = contextualize_serenity_message(message, recent, now)
    elif current_type == "tristeza":
        message = contextualize_sadness_message(message, recent, now)

    message, extra = contextualize_message_by_intensity(message, current_type, relative_intensity)
    return message, tips + extra
