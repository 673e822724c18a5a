"""indexer.core.log

Logging bootstrap.

Messages are event names (``block_processed``, ``malformed_event_log``); the
context rides in ``extra=``. Text for humans, one JSON object per line for
machines.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from indexer.core.config import LoggingConfig

LOGGER_NAME = "indexer"

# Attributes every LogRecord has; anything else came in through `extra=`.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED and not k.startswith("_")}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        row: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        row.update(_extras(record))
        if record.exc_info:
            row["exc"] = self.formatException(record.exc_info)
        return json.dumps(row, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-7s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extras(record)
        if not extras:
            return base
        kv = " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
        head, sep, tail = base.partition("\n")
        return f"{head} {kv}{sep}{tail}"


def configure_logging(cfg: LoggingConfig) -> logging.Logger:
    """Install a single stderr handler on the ``indexer`` logger."""

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(cfg.level)
    for h in list(logger.handlers):
        logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if cfg.json_output else TextFormatter())
    logger.addHandler(handler)
    return logger
