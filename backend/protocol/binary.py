"""
Binary framing helpers for audio transport.

- Client → Server (mic):
    4 bytes  seq_num    (u32, little-endian)
    640 bytes PCM16 audio

- Server → Client (agent audio):
    4 bytes  seq_num    (u32, little-endian)
    4 bytes  generation (u32, little-endian)
    640 bytes PCM16 audio

The generation is the session generation that produced the audio; the
client drops playback for any generation other than the latest it has seen.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from audio.frames import AudioFrame
from constants import (
    AUDIO_BYTES_PER_FRAME_PCM,
    C2S_FRAME_BYTES_TOTAL,
    C2S_SEQ_NUM_BYTES,
    S2C_FRAME_BYTES_TOTAL,
    SEQ_NUM_MAX,
    SEQ_NUM_START,
)


# -------------------------
# Exceptions
# -------------------------

class BinaryProtocolError(Exception):
    """Base class for binary protocol errors."""


class InvalidFrameLength(BinaryProtocolError):
    """Frame or PCM payload has the wrong byte length."""


class InvalidSequenceNumber(BinaryProtocolError):
    """Sequence number or generation outside 1..2**32-1."""


# -------------------------
# Low-level helpers
# -------------------------

def _u32_le(value: int) -> bytes:
    return struct.pack("<I", value)


def _read_u32_le(buf: bytes, offset: int = 0) -> int:
    return struct.unpack_from("<I", buf, offset)[0]


def is_seq_next(prev: int, current: int) -> bool:
    """
    Return True if `current` is the expected next sequence number
    after `prev`, accounting for wraparound.
    """
    if prev == SEQ_NUM_MAX:
        return current == SEQ_NUM_START
    return current == prev + 1


def next_seq(seq: int) -> int:
    """Sequence number following `seq` (u32 wraparound, skipping 0)."""
    if seq >= SEQ_NUM_MAX:
        return SEQ_NUM_START
    return seq + 1


# -------------------------
# Client → Server (mic)
# -------------------------

def decode_c2s_frame(payload: bytes, *, ts_ms: int) -> AudioFrame:
    """Decode a client→server mic audio frame."""
    if len(payload) != C2S_FRAME_BYTES_TOTAL:
        raise InvalidFrameLength(
            f"C2S frame length {len(payload)} != {C2S_FRAME_BYTES_TOTAL}"
        )

    seq = _read_u32_le(payload, 0)

    if seq < SEQ_NUM_START or seq > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid seq_num: {seq}")

    return AudioFrame(
        sequence_num=seq,
        pcm_bytes=payload[C2S_SEQ_NUM_BYTES:],
        ts_ms=ts_ms,
    )


# -------------------------
# Server → Client (agent audio)
# -------------------------

def encode_s2c_frame(
    *,
    sequence_num: int,
    generation: int,
    pcm_bytes: bytes,
) -> bytes:
    """Encode a server→client agent audio frame."""
    if sequence_num < SEQ_NUM_START or sequence_num > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid seq_num: {sequence_num}")

    # Generations start at 1; 0 means no session was ever started.
    if generation < 1 or generation > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid generation: {generation}")

    if len(pcm_bytes) != AUDIO_BYTES_PER_FRAME_PCM:
        raise InvalidFrameLength(
            f"PCM length {len(pcm_bytes)} != {AUDIO_BYTES_PER_FRAME_PCM}"
        )

    payload = _u32_le(sequence_num) + _u32_le(generation) + pcm_bytes

    if len(payload) != S2C_FRAME_BYTES_TOTAL:
        raise InvalidFrameLength(
            f"S2C frame length {len(payload)} != {S2C_FRAME_BYTES_TOTAL}"
        )

    return payload


# -------------------------
# Sequence gap detection
# -------------------------

@dataclass(frozen=True)
class SeqCheckResult:
    """Result of a sequence continuity check."""
    gap: bool
    expected: int
    actual: int

    @property
    def gap_size(self) -> int:
        """Number of frames skipped (0 if no gap). Handles wraparound."""
        if not self.gap:
            return 0

        if self.actual > self.expected:
            return self.actual - self.expected

        return (SEQ_NUM_MAX - self.expected + 1) + (self.actual - SEQ_NUM_START)


def check_sequence_gap(
    *,
    last_seq: Optional[int],
    current_seq: int,
) -> SeqCheckResult:
    """
    Check whether `current_seq` follows `last_seq`.

    Pure function; never raises.
    """
    if last_seq is None or is_seq_next(last_seq, current_seq):
        return SeqCheckResult(
            gap=False,
            expected=current_seq,
            actual=current_seq,
        )

    return SeqCheckResult(
        gap=True,
        expected=next_seq(last_seq),
        actual=current_seq,
    )
