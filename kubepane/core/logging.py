"""
Logging configuration for kubepane.

Configures the stdlib root logger (coloured console output, optional rotating
file) and routes structlog events through it, rendered either as key/value
pairs or as JSON.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, MutableMapping, Optional

import structlog

from kubepane.config import get_settings

_CONFIGURED = False

REDACT_KEYS = {"password", "passwd", "secret", "token", "authorization", "client_key", "key_data", "fernet_key"}


class ColoredFormatter(logging.Formatter):
    """Colour the level name for console output."""

    COLORS = {
        "DEBUG": "\033[36m",  # cyan
        "INFO": "\033[32m",  # green
        "WARNING": "\033[33m",  # yellow
        "ERROR": "\033[31m",  # red
        "CRITICAL": "\033[35m",  # magenta
    }
    RESET = "\033[0m"

    def format(self, record):
        log_color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{log_color}{record.levelname}{self.RESET}"
        return super().format(record)


def redact_sensitive(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """structlog processor masking values of sensitive keys."""
    for key in list(event_dict):
        if str(key).lower() in REDACT_KEYS and event_dict[key]:
            event_dict[key] = "***REDACTED***"
    return event_dict


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    use_color: bool = True,
) -> structlog.stdlib.BoundLogger:
    """Configure the root logger and structlog once.

    Args:
        level: log level name, defaults to settings.log_level
        log_file: optional file path, defaults to settings.log_file
        use_color: colour the console level names when attached to a TTY

    Returns:
        the package logger
    """
    global _CONFIGURED
    if _CONFIGURED:
        return get_logger("kubepane")

    settings = get_settings()
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    # drop default handlers so records are not emitted twice
    for h in list(root.handlers):
        root.removeHandler(h)

    console_handler = logging.StreamHandler(sys.stdout)
    if settings.log_json:
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    elif use_color and sys.stdout.isatty():
        console_handler.setFormatter(ColoredFormatter(settings.log_format, datefmt=settings.log_date_format))
    else:
        console_handler.setFormatter(logging.Formatter(settings.log_format, datefmt=settings.log_date_format))
    root.addHandler(console_handler)

    file_path = log_file or settings.log_file
    if file_path:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        if settings.log_json:
            file_handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            file_handler.setFormatter(logging.Formatter(settings.log_format, datefmt=settings.log_date_format))
        root.addHandler(file_handler)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        redact_sensitive,
        structlog.processors.format_exc_info,
    ]
    if settings.log_json:
        # the stdlib formatter only emits %(message)s in JSON mode
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True))

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    # quiet the kubernetes client's urllib3 chatter unless debugging
    logging.getLogger("urllib3").setLevel(logging.DEBUG if settings.is_debug else logging.WARNING)

    _CONFIGURED = True
    return get_logger("kubepane")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
