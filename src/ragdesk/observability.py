"""
Structured logging utilities.
Routes structlog events through stdlib logging into a JSON-lines file.
"""
from __future__ import annotations

import logging
from pathlib import Path

import structlog


_CONFIGURED = False


def configure_logging(log_path: str | Path, level: int = logging.INFO):
    """Configures process-wide structured logging to a file."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)

    formatter = logging.Formatter("%(message)s")
    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True


def get_logger(name: str):
    return structlog.get_logger(name)
