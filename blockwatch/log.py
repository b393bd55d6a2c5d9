import logging.config
from pathlib import Path
from typing import Any, Dict

import structlog


def configure_logging(log_level: str = "INFO", log_file: str | None = None) -> None:
    """Configure structured JSON logging.

    The terminal belongs to the dashboard, so records go to ``log_file`` when
    one is given and are dropped otherwise.
    """
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler: Dict[str, Any] = {
            "level": log_level,
            "class": "logging.FileHandler",
            "filename": log_file,
            "formatter": "json",
        }
    else:
        handler = {"level": log_level, "class": "logging.NullHandler"}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.processors.JSONRenderer(),
            },
        },
        "handlers": {"default": handler},
        "loggers": {
            "": {
                "handlers": ["default"],
                "level": log_level,
                "propagate": True,
            },
        },
    })

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def log_error(logger: Any, error: Exception, context: Dict[str, Any] | None = None) -> None:
    """Standardized error logging."""
    error_details = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **(context or {}),
    }
    logger.error("error_occurred", **error_details)
