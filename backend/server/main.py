"""
Development entry point (the `hope-assistant` console script).

Production deployments point uvicorn at server.asgi:app directly.
"""

from __future__ import annotations

from dotenv import load_dotenv

from config import AppConfig


def main() -> None:
    """Run the API under uvicorn with settings from the environment."""
    import uvicorn

    load_dotenv()
    config = AppConfig.load_from_env()

    uvicorn.run(
        "server.asgi:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        reload=config.env == "dev",  # Dev mode only
    )


if __name__ == "__main__":
    main()
