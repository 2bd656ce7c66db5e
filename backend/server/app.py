"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Configure process-wide logging
- Register routes
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adapters.channel.base import ChannelFactory
from config import AppConfig
from observability import logger

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    channel_factory: ChannelFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations (and a fake channel)
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    logger.configure(enabled=config.enable_json_logs)

    app = FastAPI(title="Hope Assistant API")

    app.state.config = config
    # None means one ElevenLabs ConvAI channel per session start.
    app.state.channel_factory = channel_factory

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
