"""Process-wide logging for the API and its background dispatch."""

import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from provenance_engine.config import Settings

LOG_LINE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Client libraries that log every request or poll at DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore", "google.auth", "google.api_core", "urllib3", "aiosqlite", "asyncio")
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")

_log_file: Path | None = None
_initialized = False


class TruncatedFormatter(logging.Formatter):
  """Keep the first and last frames of a traceback on the console."""

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    if len(lines) > 6:
      return "".join(lines[:1] + ["    ...\n"] + lines[-5:])
    return "".join(lines)


def _rotated_name(default_name: str) -> str:
  """Name backups provenance.log-1 instead of provenance.log.1."""
  base_filename, _, num = default_name.rpartition(".")
  if num.isdigit() and base_filename:
    return f"{base_filename}-{num}"
  return default_name


def _file_handler(settings: Settings, log_dir: Path) -> tuple[logging.Handler, Path]:
  log_dir.mkdir(parents=True, exist_ok=True)
  log_path = log_dir / f"provenance_{settings.environment}_{time.strftime('%Y%m%d_%H%M%S')}.log"
  handler = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count, delay=True)
  handler.namer = _rotated_name
  handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  return handler, log_path


def setup_logging(settings: Settings, log_dir: Path | None = None) -> Path | None:
  """Route root, uvicorn and FastAPI loggers to stdout and, outside tests, a rotating file.

  Returns the log file path, or None when only the console is used.
  """
  console = logging.StreamHandler(sys.stdout)
  console.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  handlers: list[logging.Handler] = [console]

  log_path: Path | None = None
  if settings.environment != "test":
    try:
      file_handler, log_path = _file_handler(settings, log_dir or Path.cwd() / "logs")
      handlers.append(file_handler)
    except OSError as exc:
      raise RuntimeError(f"Failed to prepare log directory: {exc}") from exc

  level = logging.DEBUG if settings.debug else logging.INFO
  logging.basicConfig(level=level, handlers=handlers, force=True)
  for name in _SERVER_LOGGERS:
    server_logger = logging.getLogger(name)
    server_logger.handlers = list(handlers)
    server_logger.propagate = False
  for name in _QUIET_LOGGERS:
    logging.getLogger(name).setLevel(logging.WARNING)
  return log_path


def initialize_logging(settings: Settings) -> Path | None:
  """Configure logging once per process and record the active backends."""
  global _log_file, _initialized
  if _initialized:
    return _log_file
  _log_file = setup_logging(settings)
  _initialized = True
  logger = logging.getLogger("provenance_engine.core.logging")
  logger.info("Logging initialized file=%s level=%s", _log_file or "<console only>", "DEBUG" if settings.debug else "INFO")
  logger.info("Backends env=%s job_store=%s storage=%s tasks=%s ledger=%s", settings.environment, settings.job_store, settings.storage_provider, settings.task_service_provider, settings.ledger_provider)
  return _log_file
