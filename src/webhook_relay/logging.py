"""Structured logging for the webhook relay.

Relay components log through structlog with keyword context. Output goes
to a single stdout handler on the ``webhook_relay`` logger, so configuring
the relay never touches the host application's root logger.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

    from webhook_relay.config import Settings

RELAY_LOGGER_NAME = "webhook_relay"

_configured = False
_handler: logging.Handler | None = None


def _processors(format: str) -> list[Processor]:
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if format.lower() == "json":
        return [
            *shared,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [*shared, structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging(level: str = "INFO", format: str = "json") -> None:
    """Configure relay logging.

    Calling it again replaces the previous level, handler and renderer.

    Args:
        level: Log level name. Unknown names fall back to INFO.
        format: "json" for production, "text" for a coloured console.
    """
    global _configured, _handler

    relay_logger = logging.getLogger(RELAY_LOGGER_NAME)
    if _handler is not None:
        relay_logger.removeHandler(_handler)
    _handler = logging.StreamHandler(sys.stdout)
    _handler.setFormatter(logging.Formatter("%(message)s"))
    relay_logger.addHandler(_handler)
    relay_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    relay_logger.propagate = False

    structlog.configure(
        processors=_processors(format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def configure_from_settings(settings: Settings) -> None:
    """Apply ``settings.log_level`` and ``settings.log_format``."""
    configure_logging(level=settings.log_level, format=settings.log_format)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring defaults on first use.

    Example:
        ```python
        logger = get_logger(__name__)
        logger.info("Delivery sent", delivery_id="dlv_123", status_code=200)
        ```
    """
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Tag every log line emitted by the current task with ``kwargs``.

    The delivery queue binds the delivery and webhook ids around each
    handler call.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
