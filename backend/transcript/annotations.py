"""
Annotation-token filter for agent text.

The agent may prefix or interleave its replies with non-verbal markers such
as "[neutral]" or "[laughs-softly]". These are delivery hints for speech
synthesis and are never shown in the transcript.
"""

from __future__ import annotations

import re

# A bracketed run of word characters / hyphens, plus any whitespace after it.
_ANNOTATION_RE = re.compile(r"\[[\w-]+\]\s*")


def strip_annotations(text: str) -> str:
    """
    Remove every annotation token and trim the result.

    Returns "" when the text consisted solely of annotations/whitespace.
    """
    return _ANNOTATION_RE.sub("", text).strip()
