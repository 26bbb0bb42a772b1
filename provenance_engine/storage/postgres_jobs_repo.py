"""Postgres-backed job store using SQLAlchemy."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from provenance_engine.jobs.models import JobRecord
from provenance_engine.schema.jobs import Job
from provenance_engine.storage.jobs_repo import JobStore, RecordMutation


class PostgresJobStore(JobStore):
  """Persist job records as JSON rows keyed by job id."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def set(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      row = await session.get(Job, record.job_id)
      payload = record.to_dict()
      if row is None:
        session.add(Job(job_id=record.job_id, status=record.status, record_json=payload, created_at=record.created_at, updated_at=record.updated_at))
      else:
        row.status = record.status
        row.record_json = payload
        row.updated_at = record.updated_at
      await session.commit()

  async def get(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Job, job_id)
      if row is None:
        return None
      return JobRecord.from_dict(dict(row.record_json))

  async def update(self, job_id: str, mutate: RecordMutation) -> JobRecord | None:
    async with self._session_factory() as session, session.begin():
      # The row lock serializes concurrent executor reports for the same job.
      row = (await session.execute(select(Job).where(Job.job_id == job_id).with_for_update())).scalar_one_or_none()
      if row is None:
        return None
      current = JobRecord.from_dict(dict(row.record_json))
      updated = mutate(current)
      if updated is not current:
        row.status = updated.status
        row.record_json = updated.to_dict()
        row.updated_at = updated.updated_at
      return updated
