"""Structured logging helpers."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

JSON_LOGS_ENV = "EPHYS_METADATA_JSON_LOGS"


def _json_logs_enabled(json_logs: bool | None) -> bool:
    if json_logs is None:
        return os.getenv(JSON_LOGS_ENV, "false").lower() == "true"
    return json_logs


def configure_logging(level: str = "INFO", json_logs: bool | None = None) -> None:
    """Configure global logging. Respects EPHYS_METADATA_JSON_LOGS env override."""

    json_logs = _json_logs_enabled(json_logs)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s" if json_logs else "%(levelname)s:%(name)s:%(message)s",
    )


def log_event(logger: logging.Logger, event: str, *, json_logs: bool | None = None, **fields: Any) -> None:
    """Emit a structured log event."""

    payload = {"event": event, **fields}
    if _json_logs_enabled(json_logs):
        logger.info(json.dumps(payload, default=str, sort_keys=True))
    else:
        logger.info(payload)
