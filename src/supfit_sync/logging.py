"""Logging setup for the sync core and its maintenance scripts."""

from __future__ import annotations

import logging

import structlog

# Transport and ORM loggers emit a line per request or statement.
CHATTY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelNamesMapping().get(level.strip().upper())
    if resolved is None:
        raise ValueError(f"unknown log level: {level!r}")
    return resolved


def configure_logging(level: int | str = logging.INFO, *, json_output: bool = True) -> None:
    """Send stdlib and structlog events through the root logger.

    Sync events are rendered as JSON lines unless ``json_output`` is off, in
    which case the console renderer is used for interactive script runs.
    Chatty third-party loggers never drop below WARNING.
    """

    numeric_level = resolve_level(level)
    logging.basicConfig(level=numeric_level, format="%(message)s")
    logging.getLogger().setLevel(numeric_level)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


__all__ = ["CHATTY_LOGGERS", "configure_logging", "resolve_level"]
