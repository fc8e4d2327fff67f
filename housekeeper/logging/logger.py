# housekeeper/logging/logger.py
"""
Purpose: Centralized structured logging for the housekeeper.

- Plain or JSON lines on stderr (GITLAB_LOG_JSON)
- WARNING+ to housekeeper.log, INFO+ to rotating housekeeper_debug.log under log_dir
- Log files (and their directory) are only created once a record reaches them
- Event helpers for API failures, per-job expiry decisions and run summaries
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from housekeeper.config.settings import get_settings


class SafeJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime, Path and anything else via str()."""

    def default(self, o: Any) -> Any:
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, Path):
            return str(o)
        try:
            return str(o)
        except (TypeError, ValueError):
            return f"<unserializable:{type(o).__name__}>"


class StructuredFormatter(logging.Formatter):
    """Custom formatter that handles structured logging with extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage()
        }

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info)

        return json.dumps(log_data, cls=SafeJSONEncoder)


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds structured fields to log records."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get('extra', {}))
        kwargs['extra'] = {'extra_fields': extra}
        return msg, kwargs


class _DeferredDirMixin:
    """Create the log directory when the file is first opened (handlers are built with delay=True)."""

    def _open(self):
        Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        return super()._open()


class DeferredFileHandler(_DeferredDirMixin, logging.FileHandler):
    pass


class DeferredRotatingFileHandler(_DeferredDirMixin, logging.handlers.RotatingFileHandler):
    pass


_logger_cache: Dict[str, StructuredLoggerAdapter] = {}
_shared_warning_handler: Optional[logging.Handler] = None
_shared_debug_handler: Optional[logging.Handler] = None


def _build_stderr_handler(json_logs: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)

    if json_logs:
        handler.setFormatter(StructuredFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s"
        )
        handler.setFormatter(formatter)

    return handler


def _build_warning_handler(log_dir: Path) -> logging.Handler:
    """Build WARNING+ handler → housekeeper.log."""
    global _shared_warning_handler
    if _shared_warning_handler is not None:
        return _shared_warning_handler

    handler = DeferredFileHandler(str(log_dir / "housekeeper.log"), encoding="utf-8", delay=True)
    handler.setLevel(logging.WARNING)
    handler.setFormatter(StructuredFormatter())
    _shared_warning_handler = handler
    return handler


def _build_debug_handler(log_dir: Path) -> logging.Handler:
    """Build INFO+ handler → housekeeper_debug.log (RotatingFileHandler, 5 MB × 3)."""
    global _shared_debug_handler
    if _shared_debug_handler is not None:
        return _shared_debug_handler

    handler = DeferredRotatingFileHandler(
        str(log_dir / "housekeeper_debug.log"),
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(StructuredFormatter())
    _shared_debug_handler = handler
    return handler


def get_logger(name: str = "housekeeper") -> StructuredLoggerAdapter:
    """
    Get or create logger with given name.

    Loggers live under the "housekeeper." namespace so pytest's caplog and
    any embedding application can capture them by prefix.
    """
    if name in _logger_cache:
        return _logger_cache[name]

    settings = get_settings()

    qualified = name if name.startswith("housekeeper") else f"housekeeper.{name}"
    base_logger = logging.getLogger(qualified)
    base_logger.setLevel(settings.log_level.upper())

    root = logging.getLogger("housekeeper")
    if not root.handlers:
        root.addHandler(_build_stderr_handler(settings.log_json))
        root.addHandler(_build_warning_handler(settings.log_dir))
        root.addHandler(_build_debug_handler(settings.log_dir))

    adapter = StructuredLoggerAdapter(base_logger, {})
    _logger_cache[name] = adapter
    return adapter


def log_api_error(
    logger: StructuredLoggerAdapter,
    message: str,
    error: Exception,
    **fields: Any,
) -> None:
    """Log a failed GitLab call with the response status and body when available."""
    logger.error(f"{message}: {error}", extra={
        **fields,
        "error": str(error),
        "status_code": getattr(error, "status_code", None),
        "response_body": getattr(error, "body", None),
    })


def log_job_decision(
    logger: StructuredLoggerAdapter,
    level: int,
    project_id: int,
    job_id: Any,
    expires_at: Optional[datetime],
    expiry_source: Optional[str],
    expired: bool,
) -> None:
    """Standard log format for a per-job expiration decision."""
    if expires_at is None:
        msg = f"Job {job_id} has no artifacts_expire_at or created_at. Skipping."
    elif expired:
        msg = (
            f"Job {job_id} in project {project_id} has artifacts expiring at "
            f"{expires_at.isoformat()}, which is past the retention window."
        )
    else:
        msg = f"Job {job_id} artifacts expire at {expires_at.isoformat()}, not past the retention window."
    logger.log(level, msg, extra={
        "project_id": project_id,
        "job_id": job_id,
        "expires_at": expires_at,
        "expiry_source": expiry_source,
        "expired": expired,
    })


def log_deletion_complete(
    logger: StructuredLoggerAdapter,
    project_id: int,
    dry_run: bool,
    jobs_scanned: int,
    jobs_expired: int,
    artifacts_deleted: int,
    delete_failures: int,
    jobs_undecidable: int,
) -> None:
    """Standard log format for artifact deletion completion."""
    logger.info(f"Deletion of old GitLab job artifacts for project ID: {project_id} completed.", extra={
        "project_id": project_id,
        "dry_run": dry_run,
        "jobs_scanned": jobs_scanned,
        "jobs_expired": jobs_expired,
        "artifacts_deleted": artifacts_deleted,
        "delete_failures": delete_failures,
        "jobs_undecidable": jobs_undecidable,
    })


def log_reconcile_complete(
    logger: StructuredLoggerAdapter,
    projects_seen: int,
    projects_skipped: int,
    projects_fetched: int,
    fetch_failures: int,
    summary_size: int,
) -> None:
    """Standard log format for reconciliation completion."""
    logger.info("Reconciliation complete", extra={
        "projects_seen": projects_seen,
        "projects_skipped": projects_skipped,
        "projects_fetched": projects_fetched,
        "fetch_failures": fetch_failures,
        "summary_size": summary_size,
    })
