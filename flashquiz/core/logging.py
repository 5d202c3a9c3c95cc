import logging
import os
from typing import Any, Optional


DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEFAULT_FORMAT = os.getenv(
    "LOG_FORMAT", "%(asctime)s | %(levelname)s | %(name)s | %(provider)s | %(message)s"
)

# Request/response lines from the HTTP client drown out pipeline logs at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


class ContextFilter(logging.Filter):
    """Fills ``provider`` and ``card_id`` so formats may always reference them."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "provider"):
            record.provider = "-"
        if not hasattr(record, "card_id"):
            record.card_id = "-"
        return True


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Initialize root logger with the pipeline formatter and context filter."""
    resolved_level = getattr(logging, (level or DEFAULT_LEVEL).upper(), logging.INFO)
    formatter = logging.Formatter(fmt or DEFAULT_FORMAT)

    root = logging.getLogger()
    root.setLevel(resolved_level)

    # Clear existing handlers to avoid duplicate logs in reloads
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a module logger; ensure root is initialized."""
    if not logging.getLogger().handlers:
        setup_logging()
    return logging.getLogger(name)


def bind(logger: logging.Logger, **context: Any) -> logging.LoggerAdapter:
    """Logger that stamps ``context`` (e.g. ``provider="gemini"``) on every record."""
    return logging.LoggerAdapter(logger, context)
