"""Object storage for raw job inputs and packaged artifacts."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, urlparse, urlunparse

from google.api_core import exceptions as gcs_exceptions
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from provenance_engine.config import Settings

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
  """Bucket-scoped blob storage."""

  @property
  def bucket_name(self) -> str: ...

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing in local/dev flows."""

  async def upload(self, object_name: str, data: bytes, content_type: str = "application/octet-stream") -> str:
    """Store bytes and return a public locator for them."""

  async def download(self, object_name: str) -> bytes:
    """Return the stored bytes; raises FileNotFoundError when absent."""

  async def exists(self, object_name: str) -> bool:
    """Return True when the object exists."""

  def public_url(self, object_name: str) -> str:
    """Return the public locator for an object name."""


class GcsStorageClient(BlobStore):
  """Thin wrapper over GCS and emulator access for uploads and downloads."""

  def __init__(self, settings: Settings, bucket_name: str) -> None:
    self._bucket_name = bucket_name
    self._storage_host = settings.gcs_storage_host
    self._public_base_url = settings.public_blob_base_url
    # Ensure emulator endpoint is visible to the SDK in local development.
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    # Keep production startup side-effect free; only auto-create in emulator mode.
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def upload(self, object_name: str, data: bytes, content_type: str = "application/octet-stream") -> str:
    blob = self._client.bucket(self._bucket_name).blob(object_name)
    blob.content_type = content_type
    await run_in_threadpool(blob.upload_from_string, data, content_type)
    return self.public_url(object_name)

  async def download(self, object_name: str) -> bytes:
    blob = self._client.bucket(self._bucket_name).blob(object_name)
    try:
      return await run_in_threadpool(blob.download_as_bytes)
    except gcs_exceptions.NotFound as exc:
      raise FileNotFoundError(object_name) from exc

  async def exists(self, object_name: str) -> bool:
    blob = self._client.bucket(self._bucket_name).blob(object_name)
    return bool(await run_in_threadpool(blob.exists))

  def public_url(self, object_name: str) -> str:
    if self._public_base_url:
      return f"{self._public_base_url.rstrip('/')}/{quote(object_name)}"
    if self._storage_host:
      return f"{_normalize_emulator_endpoint(self._storage_host)}/{self._bucket_name}/{quote(object_name)}"
    return f"https://storage.googleapis.com/{self._bucket_name}/{quote(object_name)}"


class LocalStorageClient(BlobStore):
  """Filesystem-backed blob store for local development."""

  def __init__(self, root: str | Path, bucket_name: str, public_base_url: str | None = None) -> None:
    self._bucket_name = bucket_name
    self._root = Path(root) / bucket_name
    self._public_base_url = public_base_url

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  def _path(self, object_name: str) -> Path:
    candidate = (self._root / object_name).resolve()
    # Object names come from user filenames; keep them inside the bucket root.
    if self._root.resolve() not in candidate.parents:
      raise ValueError(f"Unsafe object name: {object_name}")
    return candidate

  async def ensure_bucket(self) -> None:
    await asyncio.to_thread(self._root.mkdir, parents=True, exist_ok=True)

  async def upload(self, object_name: str, data: bytes, content_type: str = "application/octet-stream") -> str:
    path = self._path(object_name)

    def _write() -> None:
      path.parent.mkdir(parents=True, exist_ok=True)
      path.write_bytes(data)

    await asyncio.to_thread(_write)
    return self.public_url(object_name)

  def public_url(self, object_name: str) -> str:
    if self._public_base_url:
      return f"{self._public_base_url.rstrip('/')}/{self._bucket_name}/{quote(object_name)}"
    return self._path(object_name).as_uri()

  async def download(self, object_name: str) -> bytes:
    return await asyncio.to_thread(self._path(object_name).read_bytes)

  async def exists(self, object_name: str) -> bool:
    return await asyncio.to_thread(self._path(object_name).is_file)


def build_storage_client(settings: Settings, bucket_name: str) -> BlobStore:
  """Create a blob store for one bucket using the configured provider."""
  if settings.storage_provider == "gcs":
    return GcsStorageClient(settings, bucket_name)
  return LocalStorageClient(settings.local_storage_dir, bucket_name, settings.public_blob_base_url)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
