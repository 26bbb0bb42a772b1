"""Domain error taxonomy shared by the gateway, poller, ledger and verifier."""

from __future__ import annotations


class ProvenanceError(Exception):
  """Base class for all domain failures raised by this package."""


class ValidationError(ProvenanceError):
  """Input rejected before any state was created."""


class StorageError(ProvenanceError):
  """Blob or content storage failed.

  When raised during submission the job record already exists and stays
  ``queued``; ``job_id`` lets callers hand it to reconciliation.
  """

  def __init__(self, message: str, *, job_id: str | None = None) -> None:
    super().__init__(message)
    self.job_id = job_id


class DispatchError(StorageError):
  """The execution request could not be enqueued."""


class ExecutionError(ProvenanceError):
  """The external executor reported a failure for a job."""

  def __init__(self, job_id: str, reason: str) -> None:
    super().__init__(f"Job {job_id} failed: {reason}")
    self.job_id = job_id
    self.reason = reason


class NotFoundError(ProvenanceError):
  """A requested entity does not exist."""


class JobNotFoundError(NotFoundError):
  """A job id is unknown to the Job Store."""

  def __init__(self, job_id: str) -> None:
    super().__init__(f"Job {job_id} not found.")
    self.job_id = job_id


class InvalidTransitionError(ProvenanceError):
  """A status update would move a job backwards or across terminal states."""

  def __init__(self, job_id: str, current: str, requested: str) -> None:
    super().__init__(f"Job {job_id} cannot move from {current} to {requested}.")
    self.job_id = job_id
    self.current = current
    self.requested = requested


class TransactionError(ProvenanceError):
  """A ledger transaction was rejected or never finalized; the log is unchanged."""

  def __init__(self, message: str, *, transaction_id: str | None = None, retryable: bool = False) -> None:
    super().__init__(message)
    self.transaction_id = transaction_id
    self.retryable = retryable


class LedgerConflictError(TransactionError):
  """The log grew between reading its length and sealing the append."""

  def __init__(self, message: str, *, transaction_id: str | None = None) -> None:
    super().__init__(message, transaction_id=transaction_id, retryable=True)


class HashMismatchError(ProvenanceError):
  """A recomputed digest differs from the recorded one."""

  def __init__(self, expected_hash: str, calculated_hash: str) -> None:
    super().__init__(f"Hash mismatch: expected {expected_hash}, calculated {calculated_hash}.")
    self.expected_hash = expected_hash
    self.calculated_hash = calculated_hash
