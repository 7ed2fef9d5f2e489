"""
Structured Logging Utilities

Logging setup for the artifact core: console output for operators plus
rotating JSON-lines files whose records carry the ``stage`` and artifact
fields attached through ``extra=`` by every module in the package.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from .cache import default_working_dir
from .settings import LoggingConfiguration

__all__ = ["setup_logging", "mask_sensitive_data", "JSONFormatter", "LOGGER_NAME"]

LOGGER_NAME = "Gtctl.Artifacts"

# Attributes present on every LogRecord; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """
    sensitive_keys = {"authorization", "token", "github_token", "secret", "password"}
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in sensitive_keys:
            masked[key] = "***masked***"
        elif isinstance(value, str) and value.lower().startswith("bearer "):
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting JSON structured logs.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stage": getattr(record, "stage", None),
        }
        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key in log_obj:
                continue
            log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def _cleanup_logs(log_dir: Path, retention_days: int) -> None:
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("gtctl-*.jsonl*"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            file.unlink(missing_ok=True)


def setup_logging(
    config: Optional[LoggingConfiguration] = None, log_dir: Optional[Path] = None
) -> logging.Logger:
    """Configure structured logging handlers for the artifact core.

    Args:
        config: Level, rotation size, and retention; defaults apply when omitted.
        log_dir: Directory for JSON log files; defaults to ``~/.gtctl/logs``.

    Returns:
        The ``Gtctl.Artifacts`` logger.

    Examples:
        >>> logger = setup_logging(LoggingConfiguration(level="INFO"), Path("/tmp/gtctl-logs"))
        >>> logger.name
        'Gtctl.Artifacts'
    """
    cfg = config or LoggingConfiguration()
    log_dir = Path(log_dir) if log_dir is not None else default_working_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    _cleanup_logs(log_dir, cfg.retention_days)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_gtctl_managed", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._gtctl_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    file_handler = RotatingFileHandler(
        log_dir / f"gtctl-{today}.jsonl",
        maxBytes=int(cfg.max_log_size_mb * 1024 * 1024),
        backupCount=5,
    )
    file_handler.setFormatter(JSONFormatter())
    file_handler._gtctl_managed = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    logger.propagate = True
    return logger
