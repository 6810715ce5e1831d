import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

_LOGGER_NAME = "roger"

_LEVEL_SYMBOLS: Dict[int, str] = {
    logging.DEBUG: "(?)",
    logging.INFO: "(*)",
    logging.WARNING: "(!)",
    logging.ERROR: "(x)",
    logging.CRITICAL: "(X)",
}

# Library default: silent unless the application configures logging.
logging.getLogger(_LOGGER_NAME).addHandler(logging.NullHandler())


class _RogerFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        timestamp = created.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        symbol = getattr(record, "symbol", _LEVEL_SYMBOLS.get(record.levelno, "(?)"))
        category = getattr(record, "category", record.name)
        event = getattr(record, "event", "")
        message = record.getMessage()
        fields: Mapping[str, Any] = getattr(record, "fields", {})

        parts = [
            timestamp,
            f"{record.levelname:<8}",
            str(category),
        ]
        if event:
            parts.append(f"{symbol} {event}")
            if message:
                parts.append(message)
        elif message:
            parts.append(f"{symbol} {message}")

        parts.extend(f"{key}: {value}" for key, value in fields.items())

        return " | ".join(parts)


class BoundLogger:
    """Logger bound to a category; records carry an event name and key/value fields."""

    def __init__(self, category: str) -> None:
        self._category = category

    def debug(self, event: str, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, event, message, **fields)

    def _log(
        self,
        severity: int,
        event: str,
        message: str,
        **fields: Any,
    ) -> None:
        logging.getLogger(_LOGGER_NAME).log(
            severity,
            message,
            extra={
                "category": self._category,
                "event": event,
                "symbol": _LEVEL_SYMBOLS.get(severity, "(?)"),
                "fields": fields,
            },
        )


def configure_logging(log_level: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(_RogerFormatter())

    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False


def get_logger(category: str) -> BoundLogger:
    return BoundLogger(category)
