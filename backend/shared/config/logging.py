"""
Structured logging for the payments backend.

Production writes one JSON object per line; development writes coloured,
human-readable lines. Keyword arguments passed to a logger call become
structured fields:

    logger.info("Notification stored", notification_id=12, event_code="CAPTURE")

The request id and, while a notification is being applied, its
pspReference are added to every record by CorrelationIdFilter.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

# Libraries that are chatty at INFO
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}


def _context(record: logging.LogRecord) -> dict[str, str]:
    context = {}
    request_id = getattr(record, "request_id", None)
    if request_id and request_id != "-":
        context["request_id"] = request_id
    psp_reference = getattr(record, "psp_reference", None)
    if psp_reference:
        context["psp_reference"] = psp_reference
    return context


class StructuredFormatter(logging.Formatter):
    """JSON lines for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }

        fields = getattr(record, "fields", None)
        if fields:
            entry["data"] = fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            entry["source"] = f"{record.filename}:{record.lineno}"

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Coloured single-line output for a terminal."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime("%H:%M:%S")

        tags = ""
        context = _context(record)
        if "request_id" in context:
            tags += f"[{context['request_id'][:8]}]"
        if "psp_reference" in context:
            tags += f"[psp {context['psp_reference']}]"
        if tags:
            tags = f"{self.DIM}{tags}{self.RESET} "

        line = (
            f"{color}[{timestamp}] {record.levelname:8}{self.RESET} "
            f"{tags}{record.name}: {record.getMessage()}"
        )

        fields = getattr(record, "fields", None)
        if fields:
            line += " (" + ", ".join(f"{key}={value}" for key, value in fields.items()) + ")"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger(logging.Logger):
    """Logger whose methods accept structured fields as keyword arguments."""

    def _log_fields(self, level: int, msg: str, args: tuple, fields: dict[str, Any]) -> None:
        if not self.isEnabledFor(level):
            return
        exc_info = fields.pop("exc_info", None)
        extra = fields.pop("extra", None) or {}
        extra["fields"] = fields or None
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_fields(logging.DEBUG, msg, args, fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_fields(logging.INFO, msg, args, fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_fields(logging.WARNING, msg, args, fields)

    def error(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_fields(logging.ERROR, msg, args, fields)

    def critical(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log_fields(logging.CRITICAL, msg, args, fields)


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """Install the stdout handler on the root logger. Called once from the lifespan."""
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    if settings.environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore[return-value]


def mask_reference(reference: str | None) -> str:
    """
    Mask a stored card or shopper reference for logging.

    Shows only the last 4 characters: "8415698462516992" -> "***6992".
    """
    if not reference:
        return "<none>"
    if len(reference) <= 4:
        return "***"
    return f"***{reference[-4:]}"


api_logger = get_logger("payments_api")
notification_logger = get_logger("payments_api.notifications")
gateway_logger = get_logger("payments_api.gateway")
checkout_logger = get_logger("payments_api.checkout")
