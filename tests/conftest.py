"""Shared fixtures: in-memory collaborators wired into the FastAPI app."""

from __future__ import annotations

import os

# Settings are read at import time by provenance_engine.main.
os.environ.setdefault("PROVENANCE_ENV", "test")
os.environ.setdefault("PROVENANCE_WORKER_SECRET", "test-worker-secret")
os.environ.setdefault("PROVENANCE_EXECUTOR_URL", "http://executor.test")
os.environ.setdefault("PROVENANCE_BASE_URL", "http://test")

from dataclasses import replace  # noqa: E402
from urllib.parse import quote  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from provenance_engine.api import deps  # noqa: E402
from provenance_engine.config import Settings, get_settings  # noqa: E402
from provenance_engine.ledger.memory import InMemoryLedger  # noqa: E402
from provenance_engine.main import app  # noqa: E402
from provenance_engine.services.jobs import JobGateway  # noqa: E402
from provenance_engine.services.tasks.interface import ExecutionRequest  # noqa: E402
from provenance_engine.storage.jobs_repo import InMemoryJobStore  # noqa: E402

class MemoryBlobStore:
  """Dict-backed blob store with switchable upload failures."""

  def __init__(self, bucket_name: str) -> None:
    self._bucket_name = bucket_name
    self.objects: dict[str, bytes] = {}
    self.fail_uploads = False

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    return None

  async def upload(self, object_name: str, data: bytes, content_type: str = "application/octet-stream") -> str:
    if self.fail_uploads:
      raise OSError("blob storage unavailable")
    self.objects[object_name] = bytes(data)
    return self.public_url(object_name)

  async def download(self, object_name: str) -> bytes:
    if object_name not in self.objects:
      raise FileNotFoundError(object_name)
    return self.objects[object_name]

  async def exists(self, object_name: str) -> bool:
    return object_name in self.objects

  def public_url(self, object_name: str) -> str:
    return f"https://blobs.test/{self._bucket_name}/{quote(object_name)}"


class RecordingEnqueuer:
  """Captures execution requests instead of calling an executor."""

  def __init__(self) -> None:
    self.requests: list[ExecutionRequest] = []
    self.fail = False

  async def enqueue(self, request: ExecutionRequest) -> None:
    if self.fail:
      raise ConnectionError("queue unavailable")
    self.requests.append(request)


@pytest.fixture
def settings() -> Settings:
  return replace(get_settings(), worker_secret="test-worker-secret", executor_url="http://executor.test", base_url="http://test", ledger_poll_seconds=0.01, ledger_finalize_timeout_seconds=1.0)


@pytest.fixture
def job_store() -> InMemoryJobStore:
  return InMemoryJobStore()


@pytest.fixture
def input_blobs() -> MemoryBlobStore:
  return MemoryBlobStore("provenance-inputs")


@pytest.fixture
def artifact_blobs() -> MemoryBlobStore:
  return MemoryBlobStore("provenance-artifacts")


@pytest.fixture
def enqueuer() -> RecordingEnqueuer:
  return RecordingEnqueuer()


@pytest.fixture
def ledger() -> InMemoryLedger:
  return InMemoryLedger()


@pytest.fixture
def gateway(job_store, input_blobs, enqueuer, settings) -> JobGateway:
  return JobGateway(job_store, input_blobs, enqueuer, settings)


@pytest.fixture
async def async_client(settings, job_store, input_blobs, artifact_blobs, enqueuer, ledger):
  app.dependency_overrides[get_settings] = lambda: settings
  app.dependency_overrides[deps.get_job_store] = lambda: job_store
  app.dependency_overrides[deps.get_input_blob_store] = lambda: input_blobs
  app.dependency_overrides[deps.get_artifact_blob_store] = lambda: artifact_blobs
  app.dependency_overrides[deps.get_enqueuer] = lambda: enqueuer
  app.dependency_overrides[deps.get_ledger] = lambda: ledger
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"
