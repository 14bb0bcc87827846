"""structlog setup for the RoomArb pipeline.

Every analysis request binds its request id and hotel / city scope into
context variables, so agent, pricing and finder log lines can be joined
back to the request that produced them. Output is JSON lines unless the
effective level is DEBUG, which switches to the console renderer.
"""

import logging
import sys
from typing import TextIO

import structlog

from src.config.settings import get_settings

QUIET_LOGGERS = ("httpx", "httpcore", "langgraph")


def _renderer(level_name: str) -> structlog.types.Processor:
    if level_name == "DEBUG":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(level: str | None = None, stream: TextIO | None = None) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        level: Level name overriding `Settings.log_level`.
        stream: Destination stream; defaults to stdout. Command-line tools
            pass stderr so their report output stays machine-readable.
    """
    level_name = (level or get_settings().log_level).upper()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(level_name),
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_analysis_context(**values: object) -> None:
    """Replace the request context; None values are dropped."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        **{k: v for k, v in values.items() if v is not None}
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
