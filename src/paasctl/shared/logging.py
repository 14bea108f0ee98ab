"""Logging configuration for paasctl.

structlog on top of the standard library. Interactive runs log to stderr
in a readable form, beside the rich progress output on stdout; with
--log-file every event is written as one JSON object per line.

The installer binds the current deployment unit with
structlog.contextvars, so events logged inside a unit carry
`deployment=<id>` without each module passing it.
"""

import logging
import sys
from pathlib import Path

import structlog

# Libraries that log every HTTP request at debug level
NOISY_LOGGERS = ("kubernetes", "urllib3")


def _handler(level: int, log_file: str | Path | None) -> logging.Handler:
    if log_file:
        handler: logging.Handler = logging.FileHandler(str(log_file), encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    return handler


def configure_logging(
    level: str = "warning",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Configure standard logging and structlog, once per process.

    Args:
        level: Log level name (debug, info, warning, error, critical)
        log_file: Write here instead of stderr
        json_output: Render events as JSON lines
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    logging.basicConfig(
        level=log_level,
        handlers=[_handler(log_level, log_file)],
        format="%(message)s",
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=log_file is None and sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return the structlog logger for a module (pass __name__)."""
    return structlog.get_logger(name)
