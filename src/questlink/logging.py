"""Centralized logging configuration for questlink.

All entry points (CLI, embedding applications) should call configure_logging()
early. Library modules only create loggers with ``logging.getLogger(__name__)``.

Logging Levels:
- DEBUG: Sidecar stderr, non-protocol stdout lines, parsed record counts
- INFO: Sidecar spawn/initialize/exit, completed syncs
- WARNING: Skipped report records, unmatched responses, failed pending calls
- ERROR: Sidecar startup failures
"""

import json
import logging
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TextIO

DEFAULT_LOG_RETENTION_DAYS = 7

LOG_LEVEL_ENV_VAR = "QUESTLINK_LOG_LEVEL"

# Attributes every LogRecord carries; anything else came from ``extra=``
_RECORD_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "component"}


def _component(name: str) -> str:
    parts = name.split(".")
    if len(parts) >= 2 and parts[0] == "questlink":
        return parts[1]
    return parts[0]


def prune_old_logs(
    logs_dir: Path,
    retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    suffix: str = ".jsonl",
) -> int:
    """Delete log files older than retention period.

    Returns:
        Number of files deleted.
    """
    if not logs_dir.exists():
        return 0

    cutoff = datetime.now(UTC) - timedelta(days=retention_days)
    deleted = 0

    for entry in logs_dir.iterdir():
        if not entry.is_file() or not entry.name.endswith(suffix):
            continue
        try:
            mtime = datetime.fromtimestamp(entry.stat().st_mtime, UTC)
            if mtime < cutoff:
                entry.unlink()
                deleted += 1
        except OSError:
            continue

    return deleted


class JSONLHandler(logging.Handler):
    """Handler that writes structured log entries to daily JSONL files.

    Logs are written to <logs_dir>/YYYY-MM-DD.jsonl with one JSON object per
    line. Fields passed through ``extra=`` are kept under ``"extra"``.
    """

    def __init__(
        self,
        logs_dir: Path,
        retention_days: int = DEFAULT_LOG_RETENTION_DAYS,
    ):
        super().__init__()
        self._logs_dir = logs_dir
        self._logs_dir.mkdir(parents=True, exist_ok=True)
        self._retention_days = retention_days
        self._current_date: str | None = None
        self._file: TextIO | None = None

    def _get_log_file(self) -> TextIO:
        """Get the current log file, rotating daily."""
        today = datetime.now(UTC).strftime("%Y-%m-%d")
        if self._current_date != today or self._file is None:
            if self._file:
                self._file.close()
            self._current_date = today
            self._file = (self._logs_dir / f"{today}.jsonl").open(
                "a", encoding="utf-8"
            )
            prune_old_logs(self._logs_dir, self._retention_days)
        return self._file

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict = {
                "ts": datetime.now(UTC).isoformat(),
                "level": record.levelname,
                "component": _component(record.name),
                "logger": record.name,
                "message": record.getMessage(),
            }
            if record.exc_info:
                formatter = self.formatter or logging.Formatter()
                entry["exception"] = formatter.formatException(record.exc_info)
            extra = {
                key: value
                for key, value in record.__dict__.items()
                if key not in _RECORD_ATTRS and not key.startswith("_")
            }
            if extra:
                entry["extra"] = json.loads(json.dumps(extra, default=str))

            log_file = self._get_log_file()
            log_file.write(json.dumps(entry) + "\n")
            log_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None
        super().close()


class ComponentFormatter(logging.Formatter):
    """Formatter that exposes a short component name.

    - questlink.rpc.client -> rpc
    - questlink.spatial.parser -> spatial
    """

    def format(self, record: logging.LogRecord) -> str:
        record.component = _component(record.name)
        return super().format(record)


def configure_logging(
    level: str | None = None,
    use_rich: bool = False,
    log_to_file: bool = False,
    logs_dir: Path | None = None,
) -> None:
    """Configure logging for questlink.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
            If None, uses QUESTLINK_LOG_LEVEL env var or INFO.
        use_rich: Use Rich handler for colorful console output.
        log_to_file: Also write logs to JSONL files.
        logs_dir: Directory for JSONL files (default: ~/.questlink/logs).
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper()
    level = level.upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        level = "INFO"
    log_level = getattr(logging, level)

    handlers: list[logging.Handler] = []

    if use_rich:
        from rich.logging import RichHandler

        console_handler: logging.Handler = RichHandler(
            rich_tracebacks=False,
            show_path=False,
            show_time=True,
            markup=False,
        )
        console_handler.setFormatter(ComponentFormatter("%(component)s | %(message)s"))
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            ComponentFormatter(
                "%(asctime)s | %(levelname)-8s | %(component)s | %(message)s",
                datefmt="%H:%M:%S",
            )
        )
    handlers.append(console_handler)

    if log_to_file:
        if logs_dir is None:
            from questlink.config.paths import get_logs_path

            logs_dir = get_logs_path()
        file_handler = JSONLHandler(logs_dir)
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # asyncio logs every slow callback at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)
