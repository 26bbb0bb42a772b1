"""Domain models for asynchronous analysis jobs."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

JobStatus = Literal["queued", "processing", "completed", "failed"]
DisplayStatus = Literal["queued", "processing", "completed", "failed", "logged", "not_found"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})
JOB_STATUSES: tuple[str, ...] = ("queued", "processing", "completed", "failed")

# Allowed forward moves; anything else is a regression or crosses terminal states.
_TRANSITIONS: dict[str, frozenset[str]] = {
  "queued": frozenset({"processing", "completed", "failed"}),
  "processing": frozenset({"completed", "failed"}),
  "completed": frozenset(),
  "failed": frozenset(),
}

# Wire (camelCase) names for fields that differ from attribute names.
_WIRE_NAMES = {
  "job_id": "jobId",
  "analysis_type": "analysisType",
  "input_data_hash": "inputDataHash",
  "original_filename": "originalFilename",
  "created_at": "createdAt",
  "updated_at": "updatedAt",
  "file_locator": "fileLocator",
  "completed_at": "completedAt",
  "dispatch_attempts": "dispatchAttempts",
  "dispatched_at": "dispatchedAt",
}
_ATTRIBUTE_NAMES = {wire: attribute for attribute, wire in _WIRE_NAMES.items()}


def is_terminal(status: str | None) -> bool:
  return status in TERMINAL_STATUSES


def can_transition(current: str, requested: str) -> bool:
  """Return True when moving from ``current`` to ``requested`` keeps the status monotonic."""
  return requested in _TRANSITIONS.get(current, frozenset())


def status_rank(status: str) -> int:
  """Order statuses along the lifecycle; both terminal states share the last rank."""
  if status in TERMINAL_STATUSES:
    return 2
  return JOB_STATUSES.index(status)


@dataclass
class JobRecord:
  """Represents one submitted analysis job."""

  job_id: str
  status: JobStatus
  analysis_type: str
  input_data_hash: str
  original_filename: str
  created_at: str
  updated_at: str
  file_locator: str | None = None
  result: dict[str, Any] | None = None
  error: str | None = None
  completed_at: str | None = None
  dispatch_attempts: int = 0
  dispatched_at: str | None = None
  history: list[str] = field(default_factory=list)

  def to_dict(self) -> dict[str, Any]:
    """Serialize using the camelCase wire names."""
    return {_WIRE_NAMES.get(key, key): value for key, value in asdict(self).items()}

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> JobRecord:
    """Rebuild a record from its wire form, ignoring unknown keys."""
    known = set(cls.__dataclass_fields__)
    values = {}
    for key, value in payload.items():
      attribute = _ATTRIBUTE_NAMES.get(key, key)
      if attribute in known:
        values[attribute] = value
    return cls(**values)
