"""Client-side status polling for submitted jobs."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from provenance_engine.core.errors import JobNotFoundError
from provenance_engine.jobs.models import DisplayStatus, JobRecord, is_terminal, status_rank
from provenance_engine.ledger.models import LogEntry
from provenance_engine.storage.jobs_repo import JobStore

if TYPE_CHECKING:
  from provenance_engine.client import ProvenanceClient

logger = logging.getLogger(__name__)

UpdateHandler = Callable[[JobRecord], Awaitable[Any] | Any]

_INPUT_HASH_MARKER = "input hash: "


class JobStatusSource(Protocol):
  """Where the poller reads job records from."""

  async def fetch(self, job_id: str) -> JobRecord:
    """Return the current record; raise JobNotFoundError for unknown ids."""


class StoreStatusSource:
  """Read job state directly from a Job Store."""

  def __init__(self, store: JobStore) -> None:
    self._store = store

  async def fetch(self, job_id: str) -> JobRecord:
    record = await self._store.get(job_id)
    if record is None:
      raise JobNotFoundError(job_id)
    return record


class HttpStatusSource:
  """Read job state through the public status endpoint."""

  def __init__(self, client: ProvenanceClient) -> None:
    self._client = client

  async def fetch(self, job_id: str) -> JobRecord:
    return await self._client.get_job(job_id)


@dataclass
class TrackedJob:
  job_id: str
  status: DisplayStatus | None = None
  record: JobRecord | None = None
  terminal_notified: bool = False

  @property
  def settled(self) -> bool:
    return self.status == "not_found" or is_terminal(self.status)


async def _call_handler(handler: UpdateHandler | None, record: JobRecord) -> None:
  if handler is None:
    return
  outcome = handler(record)
  if inspect.isawaitable(outcome):
    await outcome


class StatusPoller:
  """Poll a set of jobs on a fixed interval until each settles or the caller cancels.

  Each tick reads every unsettled job concurrently. Results that arrive after
  ``cancel()`` are dropped, regressions are ignored, and ``on_terminal`` runs
  at most once per job.
  """

  def __init__(self, source: JobStatusSource, interval_seconds: float = 1.5, on_update: UpdateHandler | None = None, on_terminal: UpdateHandler | None = None) -> None:
    if interval_seconds <= 0:
      raise ValueError("interval_seconds must be positive.")
    self._source = source
    self._interval = interval_seconds
    self._on_update = on_update
    self._on_terminal = on_terminal
    self._jobs: dict[str, TrackedJob] = {}
    self._cancelled = False
    self._generation = 0
    self._wake = asyncio.Event()

  @property
  def cancelled(self) -> bool:
    return self._cancelled

  @property
  def jobs(self) -> dict[str, TrackedJob]:
    return dict(self._jobs)

  def status_of(self, job_id: str) -> DisplayStatus | None:
    tracked = self._jobs.get(job_id)
    return tracked.status if tracked else None

  def pending_ids(self) -> list[str]:
    return [job_id for job_id, tracked in self._jobs.items() if not tracked.settled]

  def watch(self, *job_ids: str) -> None:
    for job_id in job_ids:
      self._jobs.setdefault(job_id, TrackedJob(job_id=job_id))

  def cancel(self) -> None:
    """Stop scheduling; in-flight reads still resolve but are never applied."""
    self._cancelled = True
    self._generation += 1
    self._wake.set()

  async def tick(self) -> None:
    if self._cancelled:
      return
    pending = self.pending_ids()
    if not pending:
      return

    generation = self._generation
    results = await asyncio.gather(*(self._source.fetch(job_id) for job_id in pending), return_exceptions=True)
    if self._cancelled or generation != self._generation:
      logger.debug("Discarding %d poll results that resolved after cancellation", len(results))
      return

    for job_id, outcome in zip(pending, results, strict=True):
      await self._apply(job_id, outcome)

  async def _apply(self, job_id: str, outcome: JobRecord | BaseException) -> None:
    tracked = self._jobs[job_id]
    if tracked.settled:
      return

    if isinstance(outcome, JobNotFoundError):
      tracked.status = "not_found"
      logger.info("Job %s not found; no longer tracking", job_id)
      return
    if isinstance(outcome, asyncio.CancelledError):
      raise outcome
    if isinstance(outcome, BaseException):
      logger.warning("Polling job %s failed; retrying next tick: %s", job_id, outcome)
      return

    if tracked.status is not None and status_rank(outcome.status) < status_rank(tracked.status):
      logger.debug("Ignoring regressed status for job %s: %s after %s", job_id, outcome.status, tracked.status)
      return

    changed = tracked.status != outcome.status
    tracked.status = outcome.status
    tracked.record = outcome
    if changed:
      await _call_handler(self._on_update, outcome)

    if is_terminal(outcome.status) and not tracked.terminal_notified:
      tracked.terminal_notified = True
      await _call_handler(self._on_terminal, outcome)

  async def run(self) -> dict[str, TrackedJob]:
    """Tick until every watched job settles or ``cancel()`` is called."""
    while not self._cancelled and self.pending_ids():
      await self.tick()
      if self._cancelled or not self.pending_ids():
        break
      try:
        await asyncio.wait_for(self._wake.wait(), timeout=self._interval)
      except TimeoutError:
        pass
    return self.jobs


def resolve_display_status(record: JobRecord | None, log_entries: Iterable[LogEntry] = ()) -> DisplayStatus:
  """Layer the ``logged`` state over a stored job status.

  A completed job counts as logged once any log entry's description records
  its input hash.
  """
  if record is None:
    return "not_found"
  if record.status != "completed":
    return record.status
  marker = f"{_INPUT_HASH_MARKER}{record.input_data_hash}"
  for entry in log_entries:
    if marker in entry.description:
      return "logged"
  return record.status
