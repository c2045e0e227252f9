import logging
import sys
from typing import Optional

import structlog
from pythonjsonlogger import jsonlogger

_configured = False


def setup_logging(level: str = "INFO", json_output: bool = False):
    """Structured logging setup. Safe to call more than once."""
    global _configured

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not _configured:
        handler = logging.StreamHandler(sys.stdout)
        if json_output:
            handler.setFormatter(jsonlogger.JsonFormatter(
                fmt="%(asctime)s %(name)s %(levelname)s %(message)s"
            ))
        else:
            handler.setFormatter(logging.Formatter('%(levelname)-8s %(name)s: %(message)s'))
        root.addHandler(handler)
        _configured = True

    return structlog.get_logger()


def get_logger(name: Optional[str] = None):
    return structlog.get_logger(name)
