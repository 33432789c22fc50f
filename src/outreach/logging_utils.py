"""Logging setup for the outreach pipeline.

Pipeline code attaches lead context through ``extra``::

    logger.info("Draft generated", extra={"company_id": lead.id, "batch": "process"})

Those fields (see ``LEAD_FIELDS``) are emitted as top-level keys in JSON
output and as a ``key=value`` suffix in the development format, so a
single company can be followed through a batch run.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SERVICE_NAME = "outreach"

LEAD_FIELDS = ("batch", "company_id", "pipeline_state")

# LogRecord attributes that are never user-supplied extras
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, with lead context at the top level."""

    def __init__(self, service_name: str = SERVICE_NAME, include_extra: bool = True):
        """
        Args:
            service_name: Value of the ``service`` key.
            include_extra: Whether non-lead extras go under ``extra``.
        """
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.lineno}",
        }

        extras = _extras(record)
        for key in LEAD_FIELDS:
            if key in extras:
                entry[key] = extras.pop(key)

        if self.include_extra and extras:
            entry["extra"] = {
                key: value if _is_json(value) else str(value)
                for key, value in extras.items()
            }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _is_json(value: Any) -> bool:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return False
    return True


class HumanReadableFormatter(logging.Formatter):
    """Single-line format for development, coloured on a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        line = f"{stamp} {level} {record.name}: {record.getMessage()}"

        extras = _extras(record)
        context = " ".join(f"{key}={extras[key]}" for key in LEAD_FIELDS if key in extras)
        if context:
            line = f"{line} [{context}]"

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: Optional[str] = None,
    structured: Optional[bool] = None,
    service_name: str = SERVICE_NAME,
) -> logging.Logger:
    """Install a single stdout handler on the root logger.

    Args:
        level: Level name; defaults to ``LOG_LEVEL`` or INFO.
        structured: JSON output; defaults to on unless ``APP_ENV`` is ``dev``.
        service_name: Service name in JSON output.

    Returns:
        The ``outreach`` package logger.
    """
    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    if structured is None:
        structured = os.environ.get("APP_ENV", "dev") != "dev"

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(
        StructuredFormatter(service_name=service_name)
        if structured
        else HumanReadableFormatter()
    )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    _quiet_provider_loggers(log_level)

    logger = logging.getLogger(SERVICE_NAME)
    logger.debug("Logging initialized (level=%s, structured=%s)", level_name, structured)
    return logger


def _quiet_provider_loggers(log_level: int) -> None:
    """HTTP, SDK and SQL loggers stay at WARNING unless running at DEBUG."""
    level = log_level if log_level <= logging.DEBUG else logging.WARNING
    for name in (
        "urllib3",
        "httpx",
        "httpcore",
        "openai",
        "python_http_client",
        "sqlalchemy.engine",
        "aiosqlite",
    ):
        logging.getLogger(name).setLevel(level)
