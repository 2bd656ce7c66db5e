"""
Interaction mode enumeration.

Modes are orthogonal to session status:
- Status answers: "Is a channel live?"
- Mode answers:   "Which surface is the user interacting through?"
"""

from __future__ import annotations

from enum import Enum


class Mode(str, Enum):
    """
    Interaction mode of an assistant surface. Mutually exclusive.

    VOICE:
        Microphone in, agent speech out. Sessions start only on an explicit
        user gesture.

    TEXT:
        Typed messages in, agent text out with speech muted. A session
        starts automatically on entering the mode.
    """

    VOICE = "voice"
    TEXT = "text"
