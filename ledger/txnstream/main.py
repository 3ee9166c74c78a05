"""
txnstream server - Main entry point.

This module starts the HTTP/WebSocket API on top of the record store.

Usage:
    python -m ledger.txnstream.main
    txnstream-server

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The store is open before the first request is served
    - Shutdown closes every subscription before closing the store

How to change safely:
    - Test the shutdown sequence with live subscribers connected
"""

from __future__ import annotations

import asyncio
import logging
import sys

import json_log_formatter
import uvicorn

from .api import create_app
from .config import ServerConfig

logger = logging.getLogger(__name__)

def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

class Server:
    """txnstream server orchestrator.

    Owns the uvicorn server; the FastAPI lifespan owns the store and the
    subscriptions.

    Example:
        >>> server = Server()
        >>> await server.start()  # returns once uvicorn exits on SIGINT/SIGTERM
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        self.config = config or ServerConfig.from_env()
        self._uvicorn: uvicorn.Server | None = None

    async def start(self) -> None:
        """Serve until shutdown is requested."""
        logger.info("Starting txnstream server")
        self.config.log_config()

        app = create_app(self.config)
        self._uvicorn = uvicorn.Server(
            uvicorn.Config(
                app,
                host=self.config.http.host,
                port=self.config.http.port,
                log_config=None,
                lifespan="on",
            )
        )
        logger.info(f"Listening on http://{self.config.http.listen_addr}")

        try:
            await self._uvicorn.serve()
        except Exception as e:
            logger.error(f"Server failed: {e}", exc_info=True)
            raise
        finally:
            logger.info("txnstream server stopped")


def main() -> None:
    """Main entry point.

    uvicorn installs its own SIGINT/SIGTERM handlers while serving and
    drains the app's lifespan on either signal.
    """
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    server = Server(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()

if __name__ == "__main__":
    main()
