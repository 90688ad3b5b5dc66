"""Process-wide logging setup (stdlib logging, one call at startup)."""

from __future__ import annotations

import logging

from knowledge_factory.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Chatty client libraries: keep them at WARNING unless debugging
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "asyncio")


def configure_logging(level: str | None = None) -> None:
    resolved = "DEBUG" if settings.debug else (level or settings.log_level).upper()

    logging.basicConfig(level=resolved, format=LOG_FORMAT)

    if not settings.debug:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
