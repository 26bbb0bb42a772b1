"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from provenance_engine.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_JOB_STORES = {"memory", "postgres"}
_STORAGE_PROVIDERS = {"gcs", "local"}
_TASK_PROVIDERS = {"local-http", "gcp"}
_LEDGER_PROVIDERS = {"memory", "http"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the provenance service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  analysis_types: tuple[str, ...]
  max_upload_bytes: int
  job_store: str
  pg_dsn: str | None
  pg_connect_timeout: int
  storage_provider: str
  input_bucket: str
  artifact_bucket: str
  artifact_password: str | None
  local_storage_dir: str
  public_blob_base_url: str | None
  gcs_storage_host: str | None
  gcp_project_id: str | None
  task_service_provider: str
  cloud_tasks_queue_path: str | None
  executor_url: str | None
  base_url: str | None
  worker_secret: str | None
  orphan_timeout_seconds: int
  max_dispatch_attempts: int
  ledger_provider: str
  ledger_url: str | None
  ledger_token: str | None
  ledger_poll_seconds: float
  ledger_finalize_timeout_seconds: float
  ledger_max_attempts: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_csv(raw: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
  if not raw:
    return default
  items = tuple(item.strip().lower() for item in raw.split(",") if item.strip())
  return items or default


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:5173",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if "*" in origins:
    raise ValueError("PROVENANCE_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


def _choice(name: str, default: str, allowed: set[str]) -> str:
  value = (os.getenv(name) or default).strip().lower()
  if value not in allowed:
    raise ValueError(f"{name} must be one of: {', '.join(sorted(allowed))}.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("PROVENANCE_ENV", "development").lower()

  log_backup_count = int(os.getenv("PROVENANCE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("PROVENANCE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  job_store = _choice("PROVENANCE_JOB_STORE", "memory", _JOB_STORES)
  pg_dsn = _optional_str(os.getenv("PROVENANCE_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))
  # The Postgres store cannot start without a DSN.
  if job_store == "postgres" and not pg_dsn:
    raise ValueError("PROVENANCE_PG_DSN must be set when PROVENANCE_JOB_STORE=postgres.")

  task_service_provider = _choice("PROVENANCE_TASK_SERVICE_PROVIDER", "local-http", _TASK_PROVIDERS)
  cloud_tasks_queue_path = _optional_str(os.getenv("PROVENANCE_CLOUD_TASKS_QUEUE_PATH"))
  if task_service_provider == "gcp" and not cloud_tasks_queue_path:
    raise ValueError("PROVENANCE_CLOUD_TASKS_QUEUE_PATH must be set when PROVENANCE_TASK_SERVICE_PROVIDER=gcp.")

  ledger_provider = _choice("PROVENANCE_LEDGER_PROVIDER", "memory", _LEDGER_PROVIDERS)
  ledger_url = _optional_str(os.getenv("PROVENANCE_LEDGER_URL"))
  if ledger_provider == "http" and not ledger_url:
    raise ValueError("PROVENANCE_LEDGER_URL must be set when PROVENANCE_LEDGER_PROVIDER=http.")

  return Settings(
    environment=environment,
    debug=_parse_bool(os.getenv("PROVENANCE_DEBUG")),
    allowed_origins=_parse_origins(os.getenv("PROVENANCE_ALLOWED_ORIGINS")),
    log_max_bytes=_positive_int("PROVENANCE_LOG_MAX_BYTES", "5242880"),
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("PROVENANCE_LOG_HTTP_4XX")),
    analysis_types=_parse_csv(os.getenv("PROVENANCE_ANALYSIS_TYPES"), ("ld50", "nmr", "gcms")),
    max_upload_bytes=_positive_int("PROVENANCE_MAX_UPLOAD_BYTES", str(100 * 1024 * 1024)),
    job_store=job_store,
    pg_dsn=pg_dsn,
    pg_connect_timeout=_positive_int("PROVENANCE_PG_CONNECT_TIMEOUT", "5"),
    storage_provider=_choice("PROVENANCE_STORAGE_PROVIDER", "local", _STORAGE_PROVIDERS),
    input_bucket=os.getenv("PROVENANCE_INPUT_BUCKET", "provenance-inputs"),
    artifact_bucket=os.getenv("PROVENANCE_ARTIFACT_BUCKET", "provenance-artifacts"),
    artifact_password=_optional_str(os.getenv("PROVENANCE_ARTIFACT_PASSWORD")),
    local_storage_dir=os.getenv("PROVENANCE_LOCAL_STORAGE_DIR", "./blobs").strip(),
    public_blob_base_url=_optional_str(os.getenv("PROVENANCE_PUBLIC_BLOB_BASE_URL")),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    task_service_provider=task_service_provider,
    cloud_tasks_queue_path=cloud_tasks_queue_path,
    executor_url=_optional_str(os.getenv("PROVENANCE_EXECUTOR_URL")),
    base_url=_optional_str(os.getenv("PROVENANCE_BASE_URL")),
    worker_secret=_optional_str(os.getenv("PROVENANCE_WORKER_SECRET")),
    orphan_timeout_seconds=_positive_int("PROVENANCE_ORPHAN_TIMEOUT_SECONDS", "900"),
    max_dispatch_attempts=_positive_int("PROVENANCE_MAX_DISPATCH_ATTEMPTS", "3"),
    ledger_provider=ledger_provider,
    ledger_url=ledger_url,
    ledger_token=_optional_str(os.getenv("PROVENANCE_LEDGER_TOKEN")),
    ledger_poll_seconds=_positive_float("PROVENANCE_LEDGER_POLL_SECONDS", "1.0"),
    ledger_finalize_timeout_seconds=_positive_float("PROVENANCE_LEDGER_FINALIZE_TIMEOUT_SECONDS", "120"),
    ledger_max_attempts=_positive_int("PROVENANCE_LEDGER_MAX_ATTEMPTS", "3"),
  )
