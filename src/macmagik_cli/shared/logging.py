"""Logging configuration for macmagik.

Events are rendered per handler: plain console lines on stderr, JSON lines
in the optional ``--log-file``. With a log file, stderr still receives
warnings and errors so a failed step is never only in the file.
"""

import logging
import sys
from pathlib import Path

import structlog

SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _handler(handler: logging.Handler, renderer: structlog.types.Processor) -> logging.Handler:
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=SHARED_PROCESSORS,
        )
    )
    return handler


def configure_logging(level: str = "warning", log_file: str | Path | None = None) -> None:
    """Configure stdlib logging and structlog.

    Args:
        level: Log level (debug, info, warning, error, critical)
        log_file: Optional JSON log file; stderr then only shows warnings and up
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    console = _handler(
        logging.StreamHandler(sys.stderr), structlog.dev.ConsoleRenderer(colors=False)
    )
    handlers: list[logging.Handler] = [console]
    if log_file:
        console.setLevel(max(log_level, logging.WARNING))
        json_file = _handler(
            logging.FileHandler(str(log_file)), structlog.processors.JSONRenderer()
        )
        json_file.setLevel(log_level)
        handlers.append(json_file)
    else:
        console.setLevel(log_level)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *SHARED_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def verbosity_to_level(verbose: int, default: str = "warning") -> str:
    """Map repeated -v flags to a level name."""
    if verbose >= 2:
        return "debug"
    if verbose == 1:
        return "info"
    return default
