"""Standalone chat relay server.

Usage::

    poetry run chat-relay

    # Custom port / in-memory ledger:
    PORT=9000 RELAY_LEDGER=memory poetry run chat-relay

Environment variables (see chat_relay.config.RelayConfig):
    HOST, PORT              — Listen address (default: 0.0.0.0:8080)
    RELAY_LEDGER            — sql | memory | mongodb | none (default: sql)
    RELAY_SQL_URL           — SQLAlchemy URL for the sql ledger (default: in-memory SQLite)
    MONGODB_CONNECTION      — MongoDB URI for the mongodb ledger
    RELAY_COOKIE_NAME       — Identity cookie name (default: userId)
    RELAY_SHUTDOWN_TIMEOUT  — Seconds to wait for ledger writes on shutdown
    LOG_LEVEL               — Logging level (default: INFO)

Loads .env from the current working directory or any parent directory.
"""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from chat_relay.config import RelayConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def create_app(config: Optional["RelayConfig"] = None, ledger=None):
    """Create the FastAPI application.

    :param config: Settings; read from the environment when omitted.
    :param ledger: Ledger backend to use instead of the configured one.
    """
    from fastapi import FastAPI

    from chat_relay.config import RelayConfig, load_env
    from chat_relay.ledger import create_ledger
    from chat_relay.lifecycle import LifecycleCoordinator
    from chat_relay.server import build_router

    if config is None:
        load_env()
        config = RelayConfig.from_env()
    if ledger is None:
        ledger = create_ledger(config)

    coordinator = LifecycleCoordinator(ledger, shutdown_timeout=config.shutdown_timeout)

    @asynccontextmanager
    async def lifespan(_a):
        logger.info(f"Chat relay ready (ledger: {ledger.name if ledger else 'disabled'})")
        yield
        await coordinator.shutdown()
        logger.info("Chat relay stopped")

    _app = FastAPI(title="Chat Relay", docs_url=None, redoc_url=None, lifespan=lifespan)
    _app.state.coordinator = coordinator
    _app.state.config = config
    _app.include_router(build_router(coordinator, cookie_name=config.cookie_name))
    return _app


def main():
    """Load .env, configure logging, and start the server."""
    from chat_relay.config import RelayConfig, load_env
    load_env()

    import uvicorn

    config = RelayConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )

    print(f"\n  chat relay → http://localhost:{config.port}\n")
    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
