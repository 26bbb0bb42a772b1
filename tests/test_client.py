import asyncio

import pytest
from httpx import ASGITransport

from provenance_engine.client import ProvenanceClient
from provenance_engine.core.errors import ExecutionError, JobNotFoundError, StorageError, ValidationError
from provenance_engine.jobs.poller import HttpStatusSource, StatusPoller
from provenance_engine.main import app

WORKER_HEADERS = {"x-worker-secret": "test-worker-secret"}


@pytest.fixture
async def sdk(async_client):
  # async_client installs the in-memory dependency overrides on the app.
  async with ProvenanceClient("http://test", transport=ASGITransport(app=app)) as client:
    yield client


@pytest.mark.anyio
async def test_submit_and_read_job(sdk, enqueuer):
  job_id = await sdk.submit_job(b"dose,response\n1,2\n", "sample.csv", "ld50", content_type="text/csv")
  record = await sdk.get_job(job_id)

  assert record.job_id == job_id
  assert record.status == "queued"
  assert record.original_filename == "sample.csv"
  assert enqueuer.requests[0].job_id == job_id


@pytest.mark.anyio
async def test_client_maps_errors(sdk, input_blobs):
  with pytest.raises(ValidationError):
    await sdk.submit_job(b"data", "sample.csv", "unknown")
  with pytest.raises(JobNotFoundError):
    await sdk.get_job("job_0_missing")

  input_blobs.fail_uploads = True
  with pytest.raises(StorageError) as excinfo:
    await sdk.submit_job(b"data", "sample.csv", "ld50")
  assert excinfo.value.job_id


@pytest.mark.anyio
async def test_poller_follows_job_over_http(sdk, async_client):
  job_id = await sdk.submit_job(b"dose,response\n1,2\n", "sample.csv", "ld50")
  terminal: list[str] = []
  poller = StatusPoller(HttpStatusSource(sdk), interval_seconds=0.01, on_terminal=lambda job: terminal.append(job.status))
  poller.watch(job_id, "job_0_missing")

  await poller.tick()
  assert poller.status_of(job_id) == "queued"
  assert poller.status_of("job_0_missing") == "not_found"

  await async_client.post("/internal/jobs/update", json={"jobId": job_id, "status": "completed", "result": {"ld50": 0.4}}, headers=WORKER_HEADERS)
  tracked = await poller.run()

  assert tracked[job_id].status == "completed"
  assert tracked[job_id].record.result == {"ld50": 0.4}
  assert terminal == ["completed"]


@pytest.mark.anyio
async def test_wait_for_job_returns_completed_record(sdk, async_client):
  job_id = await sdk.submit_job(b"dose,response\n1,2\n", "sample.csv", "ld50")
  waiting = asyncio.create_task(sdk.wait_for_job(job_id, interval_seconds=0.01, timeout_seconds=5))
  await async_client.post("/internal/jobs/update", json={"jobId": job_id, "status": "processing"}, headers=WORKER_HEADERS)
  await async_client.post("/internal/jobs/update", json={"jobId": job_id, "status": "completed", "result": {"ld50": 0.4}}, headers=WORKER_HEADERS)

  record = await waiting
  assert record.status == "completed"
  assert record.history == ["queued", "processing", "completed"]


@pytest.mark.anyio
async def test_wait_for_job_raises_for_failures(sdk, async_client):
  job_id = await sdk.submit_job(b"\x00\x01", "fid", "nmr")
  await async_client.post("/internal/jobs/update", json={"jobId": job_id, "status": "failed", "error": "R script exited with status 1"}, headers=WORKER_HEADERS)

  with pytest.raises(ExecutionError) as excinfo:
    await sdk.wait_for_job(job_id, interval_seconds=0.01, timeout_seconds=5)
  assert excinfo.value.reason == "R script exited with status 1"
  with pytest.raises(JobNotFoundError):
    await sdk.wait_for_job("job_0_missing", interval_seconds=0.01, timeout_seconds=5)


@pytest.mark.anyio
async def test_wait_for_job_times_out(sdk):
  job_id = await sdk.submit_job(b"dose,response\n1,2\n", "sample.csv", "ld50")
  with pytest.raises(TimeoutError):
    await sdk.wait_for_job(job_id, interval_seconds=0.01, timeout_seconds=0.05)
