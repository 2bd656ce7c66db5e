"""
Audio frame primitives.

Pure data containers only.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class AudioFrame:
    """
    One 20ms mic frame as received from the host UI.

    sequence_num:
        Monotonic sequence number provided by the client.
        Used for gap detection and debugging only.

    pcm_bytes:
        Raw PCM16 audio bytes (constants.AUDIO_BYTES_PER_FRAME_PCM long).

    ts_ms:
        Wall-clock receive time in milliseconds. Observability only.
    """
    sequence_num: int
    pcm_bytes: bytes
    ts_ms: int
