from __future__ import annotations

import json
import logging

from google.cloud import tasks_v2
from starlette.concurrency import run_in_threadpool

from provenance_engine.config import Settings
from provenance_engine.services.tasks.interface import ExecutionRequest, TaskEnqueuer

logger = logging.getLogger(__name__)


class CloudTasksEnqueuer(TaskEnqueuer):
  """Enqueues execution requests to Google Cloud Tasks."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings
    self.client = tasks_v2.CloudTasksClient()

  async def enqueue(self, request: ExecutionRequest) -> None:
    """Enqueue a job to Cloud Tasks as an HTTP task targeting the executor."""
    if not self.settings.cloud_tasks_queue_path:
      raise RuntimeError("Cloud Tasks queue path not configured.")

    if not self.settings.executor_url:
      raise RuntimeError("Executor URL not configured.")

    headers = {"Content-Type": "application/json"}
    if self.settings.worker_secret:
      headers["x-worker-secret"] = self.settings.worker_secret

    task = {
      "http_request": {
        "http_method": tasks_v2.HttpMethod.POST,
        "url": f"{self.settings.executor_url.rstrip('/')}/process-job",
        "headers": headers,
        "body": json.dumps(request.to_payload()).encode(),
      }
    }

    try:
      response = await run_in_threadpool(self.client.create_task, request={"parent": self.settings.cloud_tasks_queue_path, "task": task})
      logger.info("Enqueued task %s for job %s", response.name, request.job_id)
    except Exception:
      logger.error("Failed to enqueue task for job %s", request.job_id, exc_info=True)
      raise
