from __future__ import annotations

import logging

import httpx

from provenance_engine.config import Settings
from provenance_engine.services.tasks.interface import ExecutionRequest, TaskEnqueuer

logger = logging.getLogger(__name__)


class LocalHttpEnqueuer(TaskEnqueuer):
  """Dispatches execution requests by POSTing directly to the executor."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings

  def _build_client(self) -> httpx.AsyncClient:
    # Never trust environment proxy variables for internal task dispatch.
    return httpx.AsyncClient(trust_env=False)

  def _task_headers(self) -> dict[str, str]:
    """Build the shared-secret header the executor checks."""
    if not self.settings.worker_secret:
      raise RuntimeError("Worker secret not configured.")
    return {"x-worker-secret": self.settings.worker_secret}

  async def enqueue(self, request: ExecutionRequest) -> None:
    """Enqueue a job by POSTing to the executor's process endpoint."""
    if not self.settings.executor_url:
      raise RuntimeError("Executor URL not configured, strictly required for LocalHttpEnqueuer.")

    url = f"{self.settings.executor_url.rstrip('/')}/process-job"

    try:
      async with self._build_client() as client:
        logger.info("Dispatching job %s locally to %s", request.job_id, url)
        response = await client.post(url, json=request.to_payload(), headers=self._task_headers(), timeout=30.0)
        response.raise_for_status()

    except httpx.HTTPStatusError as e:
      logger.error("Local task dispatch returned %s for job %s: %s", e.response.status_code, request.job_id, e.response.text)
      raise
    except httpx.RequestError as e:
      logger.error("Failed to dispatch local task for job %s: %s", request.job_id, e)
      raise
