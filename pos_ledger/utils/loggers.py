"""
utils/loggers.py

Console logger for the package plus structured JSON-lines events for ledger
operations.

Public API
----------
- get_logger(name) -> logging.Logger
- get_event_logger(file_path=None) -> logging.Logger
- log_event(logger, op, phase, message, extra: dict = {})
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

__all__ = ["get_logger", "get_event_logger", "log_event"]

_EVENT_LOGGER_NAME = "pos_ledger.events"


def get_logger(name="pos_ledger"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.INFO)
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        logger.addHandler(ch)
    return logger


class _JsonLineFormatter(logging.Formatter):
    """
    Minimal JSON-lines formatter:
      {"ts":"2025-09-16T12:00:01.123Z","level":"INFO","name":"pos_ledger.events","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload = {
            "ts": ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_event_logger(file_path: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Logger for ledger events. Writes JSON lines to `file_path` when given,
    otherwise only propagates to the package logger. Reuses existing handlers.
    """
    logger = logging.getLogger(_EVENT_LOGGER_NAME)
    logger.setLevel(level)
    if file_path is None or logger.handlers:
        return logger

    log_file = Path(file_path)
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), mode="a", encoding="utf-8", delay=True)
    except OSError:
        get_logger().warning("Event log %s unavailable; writing events to stderr.", log_file)
        sh = logging.StreamHandler()
        sh.setFormatter(_JsonLineFormatter())
        logger.addHandler(sh)
        return logger

    fh.setFormatter(_JsonLineFormatter())
    logger.addHandler(fh)
    return logger


def log_event(
    logger: logging.Logger,
    op: str,
    phase: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """
    Log a structured event line.

    Args:
        logger: Usually from get_event_logger().
        op: Operation name, e.g. "process_sale" or "refund".
        phase: "commit" or "rejected".
        message: Human-readable short message.
        extra: Optional additional key/values (ids, totals, counts).
        level: Logging level (default INFO).
    """
    extra_payload = {"op": op, "phase": phase}
    if extra:
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v
    logger.log(level, message, extra={"extra_payload": extra_payload})
