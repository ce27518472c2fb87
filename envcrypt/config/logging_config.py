"""Logging configuration for envcrypt."""

import logging
import logging.config
import re
import sys
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

import structlog

REDACTED = "[REDACTED]"

# Event keys whose values must never reach a log sink
SENSITIVE_KEY_PATTERN = re.compile(
    r"(password|passwd|secret|plaintext|token|salt|ciphertext|nonce|credential|key)$",
    re.IGNORECASE,
)

# Keys that match the pattern above but only ever carry safe metadata
SAFE_KEYS = frozenset({"key_fingerprint", "fingerprint", "logger", "event"})

ENVELOPE_PATTERN = re.compile(r"enc:v\d+:[A-Za-z0-9_\-=]*:[A-Za-z0-9_\-=]*:[A-Za-z0-9_\-=]*")


def redact_sensitive_values(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Structlog processor that scrubs secret material from an event."""
    for key in list(event_dict.keys()):
        if key in SAFE_KEYS:
            continue
        value = event_dict[key]
        if SENSITIVE_KEY_PATTERN.search(key):
            event_dict[key] = REDACTED
        elif isinstance(value, str) and ENVELOPE_PATTERN.search(value):
            event_dict[key] = ENVELOPE_PATTERN.sub(REDACTED, value)

    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict["event"] = ENVELOPE_PATTERN.sub(REDACTED, event)
    return event_dict


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure structured logging with rich console output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
    """
    level = level.upper()
    interactive = sys.stderr.isatty()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            redact_sensitive_values,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer() if interactive else structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if interactive:
        console_handler: Dict[str, Any] = {
            "class": "rich.logging.RichHandler",
            "level": level,
            "formatter": "plain",
            "rich_tracebacks": True,
            "markup": False,
            "show_path": False,
        }
    else:
        console_handler = {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "plain",
            "stream": "ext://sys.stderr",
        }

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(message)s"},
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {"console": console_handler},
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        "loggers": {
            "envcrypt": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "detailed",
            "filename": str(log_path),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }
        logging_config["root"]["handlers"].append("file")
        logging_config["loggers"]["envcrypt"]["handlers"].append("file")

    logging.config.dictConfig(logging_config)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structured logger
    """
    return structlog.get_logger(name)
