"""Structured logging: JSON formatting, masking, and handler management."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from Gtctl.Artifacts.logging_config import (
    LOGGER_NAME,
    JSONFormatter,
    mask_sensitive_data,
    setup_logging,
)
from Gtctl.Artifacts.settings import LoggingConfiguration


@pytest.fixture
def managed_logger():
    logger = logging.getLogger(LOGGER_NAME)
    before = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in list(logger.handlers):
        if handler not in before:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)


def test_json_formatter_includes_extra_fields() -> None:
    record = logging.makeLogRecord(
        {
            "name": "Gtctl.Artifacts.download",
            "levelname": "INFO",
            "msg": "downloading %s",
            "args": ("greptimedb",),
            "stage": "download",
            "artifact": "greptimedb",
            "path": Path("/tmp/pkg"),
        }
    )

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "downloading greptimedb"
    assert payload["stage"] == "download"
    assert payload["artifact"] == "greptimedb"
    assert payload["path"] == "/tmp/pkg"
    assert payload["timestamp"].endswith("Z")
    assert "msg" not in payload


def test_mask_sensitive_data() -> None:
    masked = mask_sensitive_data(
        {"Authorization": "Bearer abc", "header": "bearer xyz", "github_token": "ghp", "url": "https://x"}
    )
    assert masked == {
        "Authorization": "***masked***",
        "header": "***masked***",
        "github_token": "***masked***",
        "url": "https://x",
    }


def test_setup_logging_writes_jsonl(managed_logger: logging.Logger, tmp_path: Path) -> None:
    logger = setup_logging(LoggingConfiguration(level="debug"), tmp_path)

    logging.getLogger("Gtctl.Artifacts.cache").info(
        "working directory removed", extra={"stage": "cache", "path": "/tmp/x"}
    )
    for handler in logger.handlers:
        handler.flush()

    assert logger is managed_logger
    assert logger.level == logging.DEBUG
    files = list(tmp_path.glob("gtctl-*.jsonl"))
    assert len(files) == 1
    lines = [json.loads(line) for line in files[0].read_text().splitlines()]
    assert lines[-1]["stage"] == "cache"
    assert lines[-1]["logger"] == "Gtctl.Artifacts.cache"


def test_setup_logging_replaces_its_handlers(managed_logger: logging.Logger, tmp_path: Path) -> None:
    setup_logging(log_dir=tmp_path)
    setup_logging(log_dir=tmp_path)

    managed = [h for h in managed_logger.handlers if getattr(h, "_gtctl_managed", False)]
    assert len(managed) == 2
