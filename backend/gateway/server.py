"""Server bootstrap — runs the gateway under uvicorn on HOSTNAME:PORT.

uvicorn handles SIGTERM/SIGINT: it stops accepting connections, drains in-flight
requests, runs the lifespan shutdown and exits 0.
"""

import logging

import uvicorn

from gateway.config import get_settings
from gateway.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    logger.info(f"Starting anime API gateway on {settings.hostname}:{settings.port}")
    uvicorn.run(
        "gateway.main:app",
        host=settings.hostname,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
