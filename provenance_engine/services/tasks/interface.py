from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ExecutionRequest:
  """Work item handed to the external executor."""

  job_id: str
  analysis_type: str
  file_locator: str
  original_filename: str
  callback_secret: str | None
  callback_url: str | None

  def to_payload(self) -> dict[str, Any]:
    return {
      "jobId": self.job_id,
      "analysisType": self.analysis_type,
      "fileLocator": self.file_locator,
      "originalFilename": self.original_filename,
      "callbackSecret": self.callback_secret,
      "callbackUrl": self.callback_url,
    }


class TaskEnqueuer(Protocol):
  """Interface for enqueuing execution requests."""

  async def enqueue(self, request: ExecutionRequest) -> None:
    """Enqueue a job for execution; raises on failure."""
    ...
