"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No coordination logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    CONNECT_TIMEOUT_S,
    CONVAI_BASE_URL,
    DEFAULT_AGENT_ID,
    DISCONNECT_TIMEOUT_S,
    PERMISSION_REPLY_TIMEOUT_S,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the gateway, which hands the relevant pieces to each
    assistant surface.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    host: str
    port: int

    # ------------------------------------------------------------------
    # Conversational agent
    # ------------------------------------------------------------------

    agent_id: str
    convai_base_url: str

    # Only needed for private agents (signed URL flow).
    elevenlabs_api_key: str | None

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    connect_timeout_s: float
    disconnect_timeout_s: float
    permission_reply_timeout_s: float

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    default_language: str

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric variable cannot be parsed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8000")),

            agent_id=os.environ.get("ELEVENLABS_AGENT_ID", DEFAULT_AGENT_ID),
            convai_base_url=os.environ.get("CONVAI_BASE_URL", CONVAI_BASE_URL),
            elevenlabs_api_key=os.environ.get("ELEVENLABS_API_KEY"),

            connect_timeout_s=float(
                os.environ.get("CONNECT_TIMEOUT_S", CONNECT_TIMEOUT_S)
            ),
            disconnect_timeout_s=float(
                os.environ.get("DISCONNECT_TIMEOUT_S", DISCONNECT_TIMEOUT_S)
            ),
            permission_reply_timeout_s=float(
                os.environ.get("PERMISSION_REPLY_TIMEOUT_S", PERMISSION_REPLY_TIMEOUT_S)
            ),

            default_language=os.environ.get("DEFAULT_LANGUAGE", "en"),

            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
        )
