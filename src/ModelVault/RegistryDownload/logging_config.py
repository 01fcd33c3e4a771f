"""
Structured Logging Utilities

This module centralizes structured logging setup for the registry downloader.
It provides helpers for masking sensitive fields, emitting JSON log records,
managing correlation identifiers, and rolling log files to maintain a clean
retention window.
"""

from __future__ import annotations

import gzip
import json
import logging
import shutil
import sys
import uuid
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

import platformdirs

from .settings import LOGGER_NAME, LoggingConfiguration

_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password"}

# Attributes present on every LogRecord; anything else came from ``extra=``.
_RESERVED_RECORD_FIELDS = set(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs that may contain credentials such as
            the model server API key.

    Returns:
        Copy of the payload where common secret fields are replaced with
        `***masked***`.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, str) and value.lower().startswith("bearer "):
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


def generate_correlation_id() -> str:
    """Create a short-lived identifier that links related log entries.

    Returns:
        Twelve character hexadecimal identifier suitable for correlating log
        events across one download session.

    Examples:
        >>> cid = generate_correlation_id()
        >>> len(cid)
        12
    """
    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """Formatter emitting JSON structured logs.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        """Serialize a logging record into a JSON line.

        Args:
            record: Log record emitted by the download components.

        Returns:
            JSON string with masked secrets and correlation context.
        """
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "model": getattr(record, "model", None),
            "stage": getattr(record, "stage", None),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_FIELDS or key in log_obj:
                continue
            if not isinstance(value, (str, int, float, bool, type(None))):
                value = str(value)
            log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj))


def _compress_old_log(path: Path) -> None:
    """Compress a log file in-place using gzip to reclaim disk space."""
    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        shutil.copyfileobj(source, target)
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> None:
    """Compress logs older than the retention window and delete stale archives.

    Args:
        log_dir: Directory containing daily log files.
        retention_days: Number of days to keep logs before compressing them,
            and compressed logs before deleting them.
    """
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("*.jsonl"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            _compress_old_log(file)
    for file in log_dir.glob("*.jsonl.gz"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > 2 * retention_delta:
            file.unlink(missing_ok=True)


def default_log_dir() -> Path:
    """Return the per-user log directory."""

    return Path(platformdirs.user_log_dir("modelvault"))


def setup_logging(
    config: LoggingConfiguration,
    log_dir: Optional[Path] = None,
    *,
    console_level: Optional[str] = None,
) -> logging.Logger:
    """Configure structured logging handlers for registry downloads.

    Args:
        config: Logging configuration containing level, size, and retention.
        log_dir: Optional directory override for log file placement.
        console_level: Level for the stderr handler; defaults to ``config.level``.

    Returns:
        Configured logger instance scoped to the registry downloader.

    Examples:
        >>> logger = setup_logging(LoggingConfiguration(level="INFO"), Path("/tmp/mv-logs"))
        >>> logger.name
        'ModelVault.RegistryDownload'
    """
    log_dir = log_dir or config.log_dir or default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    _cleanup_logs(log_dir, config.retention_days)

    file_level = getattr(logging, config.level.upper(), logging.INFO)
    stream_level = getattr(logging, (console_level or config.level).upper(), file_level)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(min(file_level, stream_level))

    for handler in list(logger.handlers):
        if getattr(handler, "_modelvault_managed", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(stream_level)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._modelvault_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    file_handler = RotatingFileHandler(
        log_dir / f"modelvault-{today}.jsonl",
        maxBytes=int(config.max_log_size_mb * 1024 * 1024),
        backupCount=5,
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(JSONFormatter())
    file_handler._modelvault_managed = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    logger.propagate = True

    return logger


__all__ = [
    "setup_logging",
    "mask_sensitive_data",
    "generate_correlation_id",
    "default_log_dir",
    "JSONFormatter",
]
