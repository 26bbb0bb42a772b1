"""Internal endpoints called by the executor and by operators."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from provenance_engine.api.deps import get_gateway, require_worker_secret
from provenance_engine.api.models import JobUpdateRequest, JobUpdateResponse, ReconcileItem, ReconcileRequest, ReconcileResponse
from provenance_engine.config import Settings, get_settings
from provenance_engine.core.errors import JobNotFoundError
from provenance_engine.jobs.reconcile import reconcile_job
from provenance_engine.services.jobs import JobGateway

router = APIRouter(prefix="/jobs", dependencies=[Depends(require_worker_secret)])
logger = logging.getLogger(__name__)


@router.post("/update", response_model=JobUpdateResponse)
async def update_job(payload: JobUpdateRequest, gateway: JobGateway = Depends(get_gateway)) -> JobUpdateResponse:  # noqa: B008
  """Record a status report from the executor."""
  logger.info("Executor reported job %s status=%s", payload.job_id, payload.status)
  record = await gateway.apply_update(payload.job_id, payload.status, result=payload.result, error=payload.error)
  return JobUpdateResponse(job_id=record.job_id, status=record.status)


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_jobs(  # noqa: B008
  payload: ReconcileRequest,
  gateway: JobGateway = Depends(get_gateway),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> ReconcileResponse:
  """Re-dispatch or fail stale queued jobs, one outcome per id."""
  results: list[ReconcileItem] = []
  # Dedupe while keeping request order.
  for job_id in dict.fromkeys(payload.job_ids):
    try:
      outcome = await reconcile_job(job_id, gateway, orphan_timeout_seconds=settings.orphan_timeout_seconds, max_dispatch_attempts=settings.max_dispatch_attempts)
    except JobNotFoundError:
      results.append(ReconcileItem(job_id=job_id, action="not_found"))
      continue
    results.append(ReconcileItem(job_id=job_id, action=outcome.action, status=outcome.status, detail=outcome.detail))
  return ReconcileResponse(results=results)
