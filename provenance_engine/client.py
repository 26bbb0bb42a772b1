"""Async HTTP client for the job submission and status endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from provenance_engine.core.errors import ExecutionError, JobNotFoundError, ProvenanceError, StorageError, ValidationError
from provenance_engine.jobs.models import JobRecord
from provenance_engine.jobs.poller import HttpStatusSource, StatusPoller

logger = logging.getLogger(__name__)


class ProvenanceClient:
  """Submit jobs and read their status over HTTP.

  Pass ``transport`` to route requests through an in-process app in tests.
  """

  def __init__(self, base_url: str, *, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport, trust_env=False)

  async def __aenter__(self) -> ProvenanceClient:
    return self

  async def __aexit__(self, *exc_info: Any) -> None:
    await self.aclose()

  async def aclose(self) -> None:
    await self._client.aclose()

  async def submit_job(self, file_bytes: bytes, filename: str, analysis_type: str, *, input_data_hash: str | None = None, content_type: str = "application/octet-stream") -> str:
    """Submit a file for analysis and return the new job id."""
    data = {"type": analysis_type}
    if input_data_hash:
      data["inputDataHash"] = input_data_hash
    response = await self._client.post("/v1/jobs", data=data, files={"file": (filename, file_bytes, content_type)})
    payload = _json_or_empty(response)
    if response.status_code == 400:
      raise ValidationError(str(payload.get("error") or "Submission rejected."))
    if response.status_code == 503:
      raise StorageError(str(payload.get("error") or "Submission could not be stored."), job_id=payload.get("jobId"))
    if response.status_code != 202:
      raise ProvenanceError(f"Unexpected response {response.status_code} from job submission.")
    job_id = payload.get("jobId")
    if not job_id:
      raise ProvenanceError("Job submission response did not include a jobId.")
    return str(job_id)

  async def get_job(self, job_id: str) -> JobRecord:
    """Fetch the current job record; raises JobNotFoundError on 404."""
    response = await self._client.get(f"/v1/jobs/{job_id}")
    if response.status_code == 404:
      raise JobNotFoundError(job_id)
    response.raise_for_status()
    return JobRecord.from_dict(response.json())

  async def wait_for_job(self, job_id: str, *, interval_seconds: float = 1.5, timeout_seconds: float | None = None) -> JobRecord:
    """Poll until the job settles and return the completed record.

    Raises ExecutionError when the executor reported a failure, JobNotFoundError
    for unknown ids and TimeoutError if ``timeout_seconds`` elapses first.
    """
    poller = StatusPoller(HttpStatusSource(self), interval_seconds=interval_seconds)
    poller.watch(job_id)
    try:
      tracked = (await asyncio.wait_for(poller.run(), timeout_seconds))[job_id]
    finally:
      poller.cancel()
    if tracked.status == "not_found" or tracked.record is None:
      raise JobNotFoundError(job_id)
    if tracked.record.status == "failed":
      raise ExecutionError(job_id, tracked.record.error or "Execution failed.")
    return tracked.record


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
  try:
    payload = response.json()
  except ValueError:
    logger.warning("Non-JSON response status=%s", response.status_code)
    return {}
  return payload if isinstance(payload, dict) else {}
