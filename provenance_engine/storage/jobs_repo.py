"""Storage interface for analysis jobs."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable
from typing import Protocol

from provenance_engine.jobs.models import JobRecord

# Receives the current record and returns the record to store. Returning the
# same object leaves the stored record untouched; raising aborts the write.
RecordMutation = Callable[[JobRecord], JobRecord]


class JobStore(Protocol):
  """Key/value persistence of job records by id."""

  async def set(self, record: JobRecord) -> None:
    """Create or overwrite the record stored under ``record.job_id``."""

  async def get(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier, or None when unknown."""

  async def update(self, job_id: str, mutate: RecordMutation) -> JobRecord | None:
    """Atomically read, mutate and write one record; None when unknown."""


class InMemoryJobStore(JobStore):
  """Process-local job store used for development and tests."""

  def __init__(self) -> None:
    self._records: dict[str, JobRecord] = {}
    self._locks: dict[str, asyncio.Lock] = {}

  async def set(self, record: JobRecord) -> None:
    # Store a copy so callers cannot mutate persisted state in place.
    self._records[record.job_id] = copy.deepcopy(record)

  async def get(self, job_id: str) -> JobRecord | None:
    record = self._records.get(job_id)
    return copy.deepcopy(record) if record is not None else None

  async def update(self, job_id: str, mutate: RecordMutation) -> JobRecord | None:
    # Writers for the same job queue on its lock; reads stay lock-free.
    lock = self._locks.setdefault(job_id, asyncio.Lock())
    async with lock:
      current = await self.get(job_id)
      if current is None:
        return None
      updated = mutate(current)
      if updated is not current:
        await self.set(updated)
      return updated
