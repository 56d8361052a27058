#!/usr/bin/env python3
"""Main entry point for Kick Chat Relay."""

import logging
import sys

from aiohttp import web

from .core.settings import Settings


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Suppress noisy third-party loggers
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("socketio").setLevel(logging.WARNING)
    logging.getLogger("engineio").setLevel(logging.WARNING)


def main() -> int:
    """Main entry point."""
    settings = Settings.load()
    setup_logging(settings.server.log_level)

    from .server.app import create_app

    app = create_app(settings)
    logging.getLogger(__name__).info(
        f"Starting relay on {settings.server.host}:{settings.server.port}"
    )
    web.run_app(app, host=settings.server.host, port=settings.server.port, print=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
