"""
User-facing copy for session failures.

Permission failures are reported verbatim with actionable copy; an
unsupported capability gets a non-retriable message; everything else gets a
generic retry message.
"""

from __future__ import annotations

from coordinator.enums.mode import Mode
from i18n.language import Language, translate
from session.status import ErrorReason


def error_notice(reason: ErrorReason, mode: Mode, language: Language) -> str:
    """Copy shown to the user when a session enters ERROR."""
    if reason is ErrorReason.PERMISSION_DENIED:
        return translate(
            language,
            "Microphone access is required. Please allow microphone permissions and try again.",
            "Se requiere acceso al micrófono. Por favor permita los permisos del micrófono e intente de nuevo.",
        )

    if reason is ErrorReason.CAPABILITY_UNSUPPORTED:
        return translate(
            language,
            "Voice chat is not supported on this device. Please use text chat instead.",
            "El chat de voz no es compatible con este dispositivo. Por favor use el chat de texto.",
        )

    if reason is ErrorReason.CONNECTION_FAILURE:
        return translate(
            language,
            "Could not connect to Hope. Please try again.",
            "No se pudo conectar con Hope. Por favor intente de nuevo.",
        )

    if mode is Mode.VOICE:
        return translate(
            language,
            "Something went wrong starting voice chat. Please try again.",
            "Algo salió mal al iniciar el chat de voz. Por favor intente de nuevo.",
        )
    return translate(
        language,
        "Something went wrong starting the chat. Please try again.",
        "Algo salió mal al iniciar el chat. Por favor intente de nuevo.",
    )


def is_retriable(reason: ErrorReason) -> bool:
    """An unsupported capability will fail the same way every time."""
    return reason is not ErrorReason.CAPABILITY_UNSUPPORTED
