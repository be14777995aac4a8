"""
Structured Logging Utilities

Logging setup for the Azure mover process: a console handler for operators
and a rotating JSONL file whose records carry the structured ``extra=`` fields
the engine attaches (object name, key, action id).  Shared-access tokens must
never reach a log sink, so the formatter masks secret-looking fields and
strips SAS query strings from messages.
"""

from __future__ import annotations

import gzip
import json
import logging
import re
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from .settings import LoggingConfiguration

LOGGER_NAME = "LemurHSM"

_SENSITIVE_KEYS = {"sas", "sas_token", "sig", "signature", "token", "secret", "authorization"}
_SAS_IN_TEXT = re.compile(r"(\?|&)(sv|sig|se|sp|st|spr|srt|ss|sr|skoid|sktid)=[^\s\"']*")

# Attributes every LogRecord has; anything else came from ``extra=``.
_RECORD_FIELDS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def redact_text(text: str) -> str:
    """Remove SAS query parameters from free text.

    Examples:
        >>> redact_text("GET https://a.blob.core.windows.net/c/x?sv=2021&sig=abc failed")
        'GET https://a.blob.core.windows.net/c/x failed'
    """
    return _SAS_IN_TEXT.sub("", text)


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Examples:
        >>> mask_sensitive_data({"sas_token": "?sv=1&sig=x", "status": "ok"})
        {'sas_token': '***masked***', 'status': 'ok'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, str) and "sig=" in value.lower():
            masked[key] = redact_text(value)
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record.

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
            "message": redact_text(record.getMessage()),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_FIELDS and not key.startswith("_"):
                log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = redact_text(self.formatException(record.exc_info))
        return json.dumps(mask_sensitive_data(log_obj), default=str)


class _RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return redact_text(super().format(record))


def _compress_old_log(path: Path) -> None:
    compressed_path = path.with_suffix(path.suffix + ".gz")
    with path.open("rb") as source, gzip.open(compressed_path, "wb") as target:
        target.write(source.read())
    path.unlink(missing_ok=True)


def _cleanup_logs(log_dir: Path, retention_days: int) -> None:
    """Compress JSONL logs older than the retention window, delete old archives."""
    now = datetime.now(timezone.utc)
    retention_delta = timedelta(days=retention_days)
    for file in log_dir.glob("*.jsonl"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            _compress_old_log(file)
    for file in log_dir.glob("*.jsonl.gz"):
        mtime = datetime.fromtimestamp(file.stat().st_mtime, tz=timezone.utc)
        if now - mtime > retention_delta:
            file.unlink(missing_ok=True)


def setup_logging(
    config: Optional[LoggingConfiguration] = None, log_dir: Optional[Path] = None
) -> logging.Logger:
    """Configure the ``LemurHSM`` logger.

    Calling it again replaces the handlers installed by a previous call and
    leaves any other handlers alone.

    Args:
        config: Level, rotation size, retention, and optional log directory.
        log_dir: Overrides ``config.log_dir``; without either, only the console
            handler is installed.

    Returns:
        The configured package logger.
    """
    config = config or LoggingConfiguration()
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_lhsm_managed", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(_RedactingFormatter("%(levelname)s: %(message)s"))
    stream_handler._lhsm_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    log_dir = log_dir or config.log_dir
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        _cleanup_logs(log_dir, config.retention_days)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"lhsm-az-core-{today}.jsonl",
            maxBytes=int(config.max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._lhsm_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


__all__ = ["JSONFormatter", "LOGGER_NAME", "mask_sensitive_data", "redact_text", "setup_logging"]
