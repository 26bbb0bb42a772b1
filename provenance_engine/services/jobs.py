"""Job submission gateway and executor write path."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import PurePath
from typing import Any

from provenance_engine.artifacts.hashing import hash_mode_for_analysis_type, hash_payload, is_sha256_hex
from provenance_engine.config import Settings
from provenance_engine.core.errors import DispatchError, InvalidTransitionError, JobNotFoundError, StorageError, ValidationError
from provenance_engine.jobs.models import JOB_STATUSES, JobRecord, can_transition, is_terminal
from provenance_engine.services.storage_client import BlobStore
from provenance_engine.services.tasks.interface import ExecutionRequest, TaskEnqueuer
from provenance_engine.storage.jobs_repo import JobStore
from provenance_engine.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_DEFAULT_FAILURE_REASON = "Execution failed."


def _now_iso(now: datetime | None = None) -> str:
  moment = now or datetime.now(UTC)
  return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _safe_filename(filename: str) -> str:
  """Keep only the final path component of a client-supplied filename."""
  name = PurePath(filename.replace("\\", "/")).name.strip()
  if not name or name in {".", ".."}:
    raise ValidationError("Uploaded file must have a filename.")
  return name


class JobGateway:
  """Validates submissions, persists jobs, uploads inputs, and hands work to the executor."""

  def __init__(self, store: JobStore, blobs: BlobStore, enqueuer: TaskEnqueuer, settings: Settings, *, clock: Callable[[], datetime] | None = None) -> None:
    self._store = store
    self._blobs = blobs
    self._enqueuer = enqueuer
    self._settings = settings
    self._clock = clock or (lambda: datetime.now(UTC))

  @property
  def store(self) -> JobStore:
    return self._store

  def now(self) -> datetime:
    return self._clock()

  def _validate(self, file_bytes: bytes | None, filename: str | None, analysis_type: str | None, input_data_hash: str | None) -> tuple[bytes, str, str]:
    """Return the upload bytes, normalized analysis type and safe filename."""
    # Reject before any state exists so failed submissions leave nothing behind.
    if not analysis_type or not analysis_type.strip() or not file_bytes:
      raise ValidationError("Missing or empty file, or analysis type.")
    if len(file_bytes) > self._settings.max_upload_bytes:
      raise ValidationError(f"File exceeds the {self._settings.max_upload_bytes} byte upload limit.")
    normalized_type = analysis_type.strip().lower()
    if normalized_type not in self._settings.analysis_types:
      raise ValidationError(f"Unsupported analysis type '{analysis_type}'.")
    if input_data_hash is not None and not is_sha256_hex(input_data_hash):
      raise ValidationError("inputDataHash must be 64 lowercase hex characters.")
    return file_bytes, normalized_type, _safe_filename(filename or "")

  async def submit(self, *, file_bytes: bytes | None, filename: str | None, analysis_type: str | None, input_data_hash: str | None = None, content_type: str | None = None) -> str:
    """Accept a job and return its id without waiting for execution.

    Raises ValidationError before anything is persisted. StorageError or
    DispatchError after persisting leave a ``queued`` job for reconciliation.
    """
    payload, normalized_type, safe_name = self._validate(file_bytes, filename, analysis_type, input_data_hash)

    # The hash must be computed exactly as the verifier will later compute it.
    calculated_hash = hash_payload(payload, hash_mode_for_analysis_type(normalized_type))
    if input_data_hash is not None and input_data_hash != calculated_hash:
      raise ValidationError("inputDataHash does not match the uploaded file.")

    job_id = generate_job_id()
    timestamp = _now_iso(self.now())
    record = JobRecord(
      job_id=job_id,
      status="queued",
      analysis_type=normalized_type,
      input_data_hash=calculated_hash,
      original_filename=safe_name,
      created_at=timestamp,
      updated_at=timestamp,
      history=["queued"],
    )
    await self._store.set(record)
    logger.info("Job %s queued analysis_type=%s bytes=%d", job_id, normalized_type, len(payload))

    try:
      locator = await self._blobs.upload(f"inputs/{job_id}/{safe_name}", payload, content_type or "application/octet-stream")
    except Exception as exc:
      logger.error("Input upload failed for job %s; job left queued for reconciliation", job_id, exc_info=True)
      raise StorageError(f"Failed to upload input for job {job_id}.", job_id=job_id) from exc

    record = await self._store.update(job_id, lambda current: replace(current, file_locator=locator, updated_at=_now_iso(self.now())))
    if record is None:
      raise JobNotFoundError(job_id)
    await self.dispatch(record)
    return job_id

  async def dispatch(self, record: JobRecord) -> JobRecord:
    """Enqueue an execution request for a stored job and record the attempt.

    The attempt is written onto the freshest stored record, so an executor
    callback that lands while enqueueing is never overwritten.
    """
    if not record.file_locator:
      raise DispatchError(f"Job {record.job_id} has no uploaded input to dispatch.", job_id=record.job_id)

    callback_url = f"{self._settings.base_url.rstrip('/')}/internal/jobs/update" if self._settings.base_url else None
    request = ExecutionRequest(
      job_id=record.job_id,
      analysis_type=record.analysis_type,
      file_locator=record.file_locator,
      original_filename=record.original_filename,
      callback_secret=self._settings.worker_secret,
      callback_url=callback_url,
    )
    try:
      await self._enqueuer.enqueue(request)
    except Exception as exc:
      failed = await self._store.update(record.job_id, lambda current: replace(current, dispatch_attempts=current.dispatch_attempts + 1, updated_at=_now_iso(self.now())))
      logger.error("Enqueue failed for job %s attempt=%s", record.job_id, failed.dispatch_attempts if failed else "?", exc_info=True)
      raise DispatchError(f"Failed to enqueue job {record.job_id}.", job_id=record.job_id) from exc

    def _record_dispatch(current: JobRecord) -> JobRecord:
      timestamp = _now_iso(self.now())
      return replace(current, dispatch_attempts=current.dispatch_attempts + 1, dispatched_at=timestamp, updated_at=timestamp)

    dispatched = await self._store.update(record.job_id, _record_dispatch)
    if dispatched is None:
      raise JobNotFoundError(record.job_id)
    logger.info("Job %s dispatched attempt=%d status=%s", record.job_id, dispatched.dispatch_attempts, dispatched.status)
    return dispatched

  async def get_job(self, job_id: str) -> JobRecord:
    record = await self._store.get(job_id)
    if record is None:
      raise JobNotFoundError(job_id)
    return record

  async def apply_update(self, job_id: str, status: str, *, result: dict[str, Any] | None = None, error: str | None = None) -> JobRecord:
    """Apply an executor status report, keeping the lifecycle monotonic.

    The check and the write happen in one store update, so concurrent reports
    for the same job cannot both pass validation against a stale status.
    Re-reporting the current status is a no-op so executor retries stay safe.
    """
    if status not in JOB_STATUSES:
      raise ValidationError(f"Unknown job status '{status}'.")

    def _transition(record: JobRecord) -> JobRecord:
      if record.status == status:
        logger.info("Job %s already %s; ignoring repeated report", job_id, status)
        return record
      if not can_transition(record.status, status):
        raise InvalidTransitionError(job_id, record.status, status)
      timestamp = _now_iso(self.now())
      updated = replace(record, status=status, updated_at=timestamp, history=[*record.history, status])
      if status == "completed":
        return replace(updated, result=result or {}, error=None, completed_at=timestamp)
      if status == "failed":
        return replace(updated, result=None, error=error or _DEFAULT_FAILURE_REASON, completed_at=timestamp)
      return updated

    updated = await self._store.update(job_id, _transition)
    if updated is None:
      raise JobNotFoundError(job_id)
    if is_terminal(status) and updated.status == status:
      logger.info("Job %s reached terminal status %s", job_id, status)
    return updated
