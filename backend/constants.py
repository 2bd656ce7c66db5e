"""
Behavioral constants for the assistant backend.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (keys, agent ids) live in config.py instead.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Audio Format (PCM16 mono @ 16kHz, 20ms frames)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)
AUDIO_FRAME_MS: Final[int] = 20

AUDIO_SAMPLES_PER_FRAME: Final[int] = (AUDIO_SAMPLE_RATE_HZ * AUDIO_FRAME_MS) // 1000
AUDIO_BYTES_PER_FRAME_PCM: Final[int] = AUDIO_SAMPLES_PER_FRAME * AUDIO_SAMPLE_WIDTH_BYTES
AUDIO_BYTES_PER_SECOND: Final[int] = AUDIO_SAMPLE_RATE_HZ * AUDIO_SAMPLE_WIDTH_BYTES

# =============================================================================
# Binary WebSocket Frame Formats
# =============================================================================
# Client → Server (mic audio): 4B seq_num + PCM frame
C2S_SEQ_NUM_BYTES: Final[int] = 4
C2S_FRAME_BYTES_TOTAL: Final[int] = C2S_SEQ_NUM_BYTES + AUDIO_BYTES_PER_FRAME_PCM

# Server → Client (agent audio): 4B seq_num + 4B generation + PCM frame
S2C_SEQ_NUM_BYTES: Final[int] = 4
S2C_GENERATION_BYTES: Final[int] = 4
S2C_FRAME_BYTES_TOTAL: Final[int] = (
    S2C_SEQ_NUM_BYTES + S2C_GENERATION_BYTES + AUDIO_BYTES_PER_FRAME_PCM
)

SEQ_NUM_START: Final[int] = 1
SEQ_NUM_MAX: Final[int] = 2**32 - 1  # u32 wraparound

# =============================================================================
# Session lifecycle timing
# =============================================================================

# Bounded wait for a channel stuck in CONNECTING.
CONNECT_TIMEOUT_S: Final[float] = 15.0

# Graceful close is abandoned after this long; the channel is dropped anyway.
DISCONNECT_TIMEOUT_S: Final[float] = 5.0

# The browser permission prompt is user-paced, so this is generous.
PERMISSION_REPLY_TIMEOUT_S: Final[float] = 60.0

# Speaking indicator stays on this long past the end of buffered agent audio.
SPEAKING_TAIL_S: Final[float] = 0.25

# =============================================================================
# Conversational agent
# =============================================================================

CONVAI_BASE_URL: Final[str] = "wss://api.elevenlabs.io/v1/convai/conversation"
DEFAULT_AGENT_ID: Final[str] = "agent_2701kh4p4ehpe03a94h8pmhbxxa6"
CHANNEL_TRANSPORT_WEBSOCKET: Final[str] = "websocket"

# =============================================================================
# Volume
# =============================================================================

VOLUME_MIN: Final[float] = 0.0
VOLUME_MAX: Final[float] = 1.0
TEXT_MODE_VOLUME: Final[float] = 0.0
VOICE_MODE_VOLUME: Final[float] = 1.0
