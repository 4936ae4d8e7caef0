# src/logging/logger.py — v1
"""Log formatting and setup for the ``shipflow`` logger tree.

Every record is stamped with the active run context (run_id, revision,
stage) from shipflow.logging.context. Stages may attach structured fields
through ``extra={"data": {...}}`` and a failure class through
``extra={"error_kind": ErrorKind.X}``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any

from shipflow.logging.context import get_context

ROOT_LOGGER = "shipflow"


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, suitable for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = get_context().as_dict()
        if context:
            entry["context"] = context

        error_kind = getattr(record, "error_kind", None)
        if error_kind is not None:
            entry["error_kind"] = getattr(error_kind, "value", error_kind)
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Terminal format: ``time LEVEL logger [run_id rev] (stage) message``."""

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_context()
        parts = [
            _timestamp(record).strftime("%Y-%m-%d %H:%M:%S"),
            f"{record.levelname:<7}",
            record.name.removeprefix(f"{ROOT_LOGGER}."),
        ]
        if ctx.run_id:
            run = ctx.run_id
            if ctx.revision:
                run += f" {ctx.revision[:7]}"
            parts.append(f"[{run}]")
        if ctx.stage:
            parts.append(f"({ctx.stage})")
        parts.append(record.getMessage())

        line = " ".join(parts)
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 30,
    stream: IO[str] | None = None,
) -> None:
    """Configure the ``shipflow`` logger.

    Safe to call repeatedly; handlers from a previous call are replaced.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: "json" or "text".
        log_file: Optional log file, written in the same format.
        rotation: Max file size before rotation (e.g. "10MB", "0" = never).
        retention: Number of rotated files to keep.
        stream: Console stream (default stderr, so CLI output stays clean).
    """
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else TextFormatter()

    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        from shipflow.logging.handlers import create_rotating_handler

        file_handler = create_rotating_handler(log_file, rotation=rotation, retention=retention)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Request-level chatter from the registry and ArgoCD clients
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
