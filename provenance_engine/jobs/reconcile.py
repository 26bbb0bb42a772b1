"""Recovery for jobs stranded in ``queued`` after a partial submission."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from provenance_engine.core.errors import DispatchError
from provenance_engine.services.jobs import JobGateway

logger = logging.getLogger(__name__)

ReconcileAction = Literal["noop", "redispatched", "failed"]
NEVER_DISPATCHED_REASON = "Job was never dispatched to an executor."


@dataclass(frozen=True)
class ReconcileOutcome:
  job_id: str
  action: ReconcileAction
  status: str
  detail: str | None = None


def _parse_timestamp(raw: str) -> datetime:
  return datetime.fromisoformat(raw.replace("Z", "+00:00"))


async def reconcile_job(job_id: str, gateway: JobGateway, *, orphan_timeout_seconds: int, max_dispatch_attempts: int, now: datetime | None = None) -> ReconcileOutcome:
  """Re-enqueue or fail one stale queued job.

  Safe to call repeatedly for the same id: jobs that have moved past
  ``queued`` or are still inside the grace window are left untouched.
  Raises JobNotFoundError for unknown ids.
  """
  record = await gateway.get_job(job_id)
  if record.status != "queued":
    return ReconcileOutcome(job_id=job_id, action="noop", status=record.status)

  moment = now or gateway.now()
  # Measure staleness from the last dispatch attempt, falling back to creation.
  reference = _parse_timestamp(record.dispatched_at or record.created_at)
  age_seconds = (moment.astimezone(UTC) - reference).total_seconds()
  if age_seconds < orphan_timeout_seconds:
    return ReconcileOutcome(job_id=job_id, action="noop", status=record.status, detail="within grace period")

  if record.file_locator and record.dispatch_attempts < max_dispatch_attempts:
    try:
      await gateway.dispatch(record)
    except DispatchError as exc:
      logger.warning("Re-dispatch of job %s failed: %s", job_id, exc)
      return ReconcileOutcome(job_id=job_id, action="noop", status=record.status, detail="re-dispatch failed")
    logger.info("Re-dispatched stale job %s", job_id)
    return ReconcileOutcome(job_id=job_id, action="redispatched", status="queued")

  updated = await gateway.apply_update(job_id, "failed", error=NEVER_DISPATCHED_REASON)
  logger.warning("Marked orphaned job %s failed attempts=%d", job_id, record.dispatch_attempts)
  return ReconcileOutcome(job_id=job_id, action="failed", status=updated.status, detail=NEVER_DISPATCHED_REASON)
