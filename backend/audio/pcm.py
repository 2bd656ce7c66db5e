"""PCM16 utilities: volume scaling and 20ms frame alignment."""

from __future__ import annotations

import numpy as np

from constants import AUDIO_BYTES_PER_FRAME_PCM, AUDIO_BYTES_PER_SECOND


def scale_pcm16(pcm_bytes: bytes, volume: float) -> bytes:
    """
    Scale PCM16 little-endian mono audio by `volume` (clamped to [0, 1]).

    volume >= 1 returns the input unchanged; volume <= 0 returns silence of
    the same length. Odd trailing bytes are dropped.
    """
    if len(pcm_bytes) % 2 != 0:
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    if volume >= 1.0:
        return pcm_bytes
    if volume <= 0.0:
        return bytes(len(pcm_bytes))

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")
    scaled = np.clip(audio_i16.astype(np.float32) * volume, -32768, 32767)
    return scaled.astype("<i2").tobytes()


def pcm16_duration_s(pcm_bytes: bytes, sample_rate_hz: int | None = None) -> float:
    """Playback duration of mono PCM16 audio."""
    if sample_rate_hz is None:
        return len(pcm_bytes) / AUDIO_BYTES_PER_SECOND
    return len(pcm_bytes) / (sample_rate_hz * 2)


class FrameAligner:
    """Rechunk audio to exact 20ms boundaries without loss."""

    def __init__(self, frame_size: int = AUDIO_BYTES_PER_FRAME_PCM) -> None:
        self._frame_size = frame_size
        self._buffer = b""

    def add(self, pcm16_bytes: bytes) -> list[bytes]:
        """Add audio and return complete frames."""
        self._buffer += pcm16_bytes
        frames: list[bytes] = []

        while len(self._buffer) >= self._frame_size:
            frames.append(self._buffer[:self._frame_size])
            self._buffer = self._buffer[self._frame_size:]

        return frames

    def clear_buffer(self) -> None:
        """Drop any partial frame (e.g. on agent interruption)."""
        self._buffer = b""

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)
