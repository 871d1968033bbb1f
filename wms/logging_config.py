"""Logging setup for the portal (stdlib logging, optional JSON lines)."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

# Attributes present on every LogRecord; anything else came in through extra=.
_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message and extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(app) -> logging.Logger:
    """
    Attach a single stream handler to the "wms" logger.

    Safe to call once per app instance; an existing handler installed by a
    previous call is replaced so test apps do not stack handlers.
    """
    logger = logging.getLogger("wms")
    logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    for handler in list(logger.handlers):
        if getattr(handler, "_wms_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._wms_handler = True
    if app.config.get("LOG_JSON"):
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
    logger.addHandler(handler)
    return logger
