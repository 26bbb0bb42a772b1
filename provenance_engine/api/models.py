from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel

from provenance_engine.jobs.models import JobStatus


class CamelModel(BaseModel):
  """Wire models use camelCase keys; Python code uses snake_case attributes."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobSubmitResponse(CamelModel):
  message: str
  job_id: str


class JobUpdateRequest(CamelModel):
  """Status report sent by the executor."""

  job_id: StrictStr = Field(min_length=1)
  status: JobStatus
  result: dict[str, Any] | None = None
  error: str | None = None


class JobUpdateResponse(CamelModel):
  job_id: str
  status: JobStatus


class ReconcileRequest(CamelModel):
  job_ids: list[StrictStr] = Field(min_length=1, max_length=100)


class ReconcileItem(CamelModel):
  job_id: str
  action: str
  status: str | None = None
  detail: str | None = None


class ReconcileResponse(CamelModel):
  results: list[ReconcileItem]


class ProjectCreateRequest(CamelModel):
  name: StrictStr = Field(min_length=1)
  summary: StrictStr = ""
  content_address: StrictStr = ""
  owner: StrictStr = Field(min_length=1)
  investigator: str | None = None
  run_hash: str | None = None


class TransferRequest(CamelModel):
  recipient: StrictStr = Field(min_length=1)


class AnchorRequest(CamelModel):
  job_id: StrictStr = Field(min_length=1)
  title: str | None = None
  description: str | None = None


class LogEntryResponse(CamelModel):
  agent: str
  title: str
  description: str
  content_address: str
  timestamp: str


class AnchorResponse(CamelModel):
  transaction_id: str
  content_address: str
  locator: str
  log_length: int
  entry: LogEntryResponse


class VerificationResponse(CamelModel):
  match: bool
  expected_hash: str
  calculated_hash: str
  mode: str
  filename: str | None = None
