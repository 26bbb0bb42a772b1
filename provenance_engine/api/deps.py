"""Shared FastAPI dependencies that wire the service collaborators."""

from __future__ import annotations

import logging
import secrets
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncEngine

from provenance_engine.config import Settings, get_settings
from provenance_engine.core.database import build_engine, build_session_factory
from provenance_engine.ledger.appender import LedgerLogAppender
from provenance_engine.ledger.http import HttpLedgerClient
from provenance_engine.ledger.interface import LedgerClient
from provenance_engine.ledger.memory import InMemoryLedger
from provenance_engine.services.content_store import ContentStore
from provenance_engine.services.jobs import JobGateway
from provenance_engine.services.provenance import ProvenanceService
from provenance_engine.services.storage_client import BlobStore, build_storage_client
from provenance_engine.services.tasks.factory import get_task_enqueuer
from provenance_engine.services.tasks.interface import TaskEnqueuer
from provenance_engine.storage.jobs_repo import InMemoryJobStore, JobStore
from provenance_engine.storage.postgres_jobs_repo import PostgresJobStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_db_engine() -> AsyncEngine | None:
  """Return the shared engine when the Postgres job store is selected."""
  settings = get_settings()
  if settings.job_store != "postgres":
    return None
  return build_engine(settings)


@lru_cache(maxsize=1)
def _job_store() -> JobStore:
  engine = get_db_engine()
  if engine is None:
    logger.info("Using in-memory job store")
    return InMemoryJobStore()
  return PostgresJobStore(build_session_factory(engine))


@lru_cache(maxsize=1)
def _input_blob_store() -> BlobStore:
  settings = get_settings()
  return build_storage_client(settings, settings.input_bucket)


@lru_cache(maxsize=1)
def _artifact_blob_store() -> BlobStore:
  settings = get_settings()
  return build_storage_client(settings, settings.artifact_bucket)


@lru_cache(maxsize=1)
def _ledger() -> LedgerClient:
  settings = get_settings()
  # Settings refuse the http provider without a URL.
  if settings.ledger_provider == "http" and settings.ledger_url:
    return HttpLedgerClient(settings.ledger_url, token=settings.ledger_token)
  return InMemoryLedger()


def reset_dependency_caches() -> None:
  """Drop cached collaborators so the next request rebuilds them from settings."""
  for factory in (get_db_engine, _job_store, _input_blob_store, _artifact_blob_store, _ledger):
    factory.cache_clear()


def get_job_store() -> JobStore:
  return _job_store()


def get_input_blob_store() -> BlobStore:
  return _input_blob_store()


def get_artifact_blob_store() -> BlobStore:
  return _artifact_blob_store()


def get_enqueuer(settings: Settings = Depends(get_settings)) -> TaskEnqueuer:  # noqa: B008
  return get_task_enqueuer(settings)


def get_ledger() -> LedgerClient:
  return _ledger()


def get_gateway(  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  store: JobStore = Depends(get_job_store),  # noqa: B008
  blobs: BlobStore = Depends(get_input_blob_store),  # noqa: B008
  enqueuer: TaskEnqueuer = Depends(get_enqueuer),  # noqa: B008
) -> JobGateway:
  return JobGateway(store, blobs, enqueuer, settings)


def get_content_store(blobs: BlobStore = Depends(get_artifact_blob_store)) -> ContentStore:  # noqa: B008
  return ContentStore(blobs)


def get_appender(settings: Settings = Depends(get_settings), ledger: LedgerClient = Depends(get_ledger)) -> LedgerLogAppender:  # noqa: B008
  return LedgerLogAppender(ledger, poll_interval_seconds=settings.ledger_poll_seconds, finalize_timeout_seconds=settings.ledger_finalize_timeout_seconds, max_attempts=settings.ledger_max_attempts)


def get_provenance_service(  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
  gateway: JobGateway = Depends(get_gateway),  # noqa: B008
  content_store: ContentStore = Depends(get_content_store),  # noqa: B008
  ledger: LedgerClient = Depends(get_ledger),  # noqa: B008
  appender: LedgerLogAppender = Depends(get_appender),  # noqa: B008
) -> ProvenanceService:
  return ProvenanceService(gateway, content_store, ledger, appender, artifact_password=settings.artifact_password)


async def require_worker_secret(settings: Settings = Depends(get_settings), x_worker_secret: str | None = Header(default=None)) -> None:  # noqa: B008
  """Reject executor callbacks that do not carry the shared secret."""
  # Secure-by-default: internal endpoints stay closed until a secret is configured.
  if not settings.worker_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Worker authentication is not configured.")
  if not secrets.compare_digest(x_worker_secret or "", settings.worker_secret):
    logger.warning("Unauthorized executor callback attempt")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
