"""
Display language for user-facing copy.

Only two languages are supported; every string pair is authored inline as
(english, spanish) at its point of use.
"""

from __future__ import annotations

from enum import Enum


class Language(str, Enum):
    """Language of a mounted assistant surface."""

    EN = "en"
    ES = "es"


def parse_language(value: str | None, default: Language = Language.EN) -> Language:
    """Parse a host-supplied language code, falling back to `default`."""
    if not value:
        return default
    try:
        return Language(value.strip().lower())
    except ValueError:
        return default


def translate(language: Language, en: str, es: str) -> str:
    """Pick the string for `language`."""
    return en if language is Language.EN else es
