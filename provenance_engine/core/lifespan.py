import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from provenance_engine.config import get_settings
from provenance_engine.core.database import create_tables
from provenance_engine.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging, storage buckets and the job table before serving."""
  from provenance_engine.api.deps import get_artifact_blob_store, get_db_engine, get_input_blob_store

  settings = get_settings()
  logger = logging.getLogger("provenance_engine.core.lifespan")

  try:
    initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:
    # Log initialization failures but allow the app to continue starting.
    logger.warning("Initial logging setup failed.", exc_info=True)

  for blob_store in (get_input_blob_store(), get_artifact_blob_store()):
    try:
      await blob_store.ensure_bucket()
      logger.info("Bucket ensured: %s", blob_store.bucket_name)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to ensure bucket %s at startup: %s", blob_store.bucket_name, exc)

  engine = get_db_engine()
  if engine is not None:
    logger.info("Preparing job table on %s", _redact_dsn(settings.pg_dsn))
    await create_tables(engine)

  yield

  if engine is not None:
    await engine.dispose()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
