"""
Quick-reply suggestions.

The suggestion set is static configuration: it is never generated from, or
reordered by, transcript content. Visibility is a pure function of the
coordinator mode, the transcript and the visibility flags.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from coordinator.enums.mode import Mode
from i18n.language import Language, translate
from transcript.message_log import ChatMessage, Role


@dataclass(frozen=True)
class Suggestion:
    """One canned prompt, authored in both languages."""
    prompt_en: str
    prompt_es: str

    def resolve(self, language: Language) -> str:
        return translate(language, self.prompt_en, self.prompt_es)


@dataclass(frozen=True)
class TranscriptVisibilityFlags:
    """
    Flags reset together with the message log.

    show_suggestions:
        False once any user text (typed or picked) has been sent since the
        last reset.

    chat_ended:
        True after the user ended a text chat; the send input is replaced
        by a "start new chat" control while set.
    """
    show_suggestions: bool = True
    chat_ended: bool = False


SUGGESTIONS: tuple[Suggestion, ...] = (
    Suggestion(
        prompt_en="I need a place to stay tonight",
        prompt_es="Necesito un lugar para quedarme esta noche",
    ),
    Suggestion(
        prompt_en="Where can I get food nearby?",
        prompt_es="Donde puedo conseguir comida cerca?",
    ),
    Suggestion(
        prompt_en="I need medical help",
        prompt_es="Necesito ayuda medica",
    ),
    Suggestion(
        prompt_en="Help me find legal aid",
        prompt_es="Ayudame a encontrar asistencia legal",
    ),
)


def should_show(
    mode: Mode,
    messages: Sequence[ChatMessage],
    flags: TranscriptVisibilityFlags,
) -> bool:
    """
    Suggestions are visible iff:
    - the surface is in text mode
    - the agent has said something
    - the user has not sent anything since the last reset
    - the chat has not been ended
    """
    return (
        mode is Mode.TEXT
        and any(m.role is Role.AGENT for m in messages)
        and flags.show_suggestions
        and not flags.chat_ended
    )


def resolve_prompts(language: Language) -> tuple[str, ...]:
    """Language-resolved prompt texts, in display order."""
    return tuple(s.resolve(language) for s in SUGGESTIONS)


def prompt_at(index: int, language: Language) -> str | None:
    """Resolve a suggestion by display index; None if out of range."""
    if 0 <= index < len(SUGGESTIONS):
        return SUGGESTIONS[index].resolve(language)
    return None
