"""Append entries to a project's log and wait for the write to seal."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from provenance_engine.core.errors import LedgerConflictError, TransactionError
from provenance_engine.ledger.interface import LedgerClient
from provenance_engine.ledger.models import LogEntry, TransactionState, TransactionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppendResult:
  transaction_id: str
  log_length: int
  entry: LogEntry
  attempts: int


class LedgerLogAppender:
  """Submit-then-seal log appends with expected-position conflict retries.

  Success is reported only after the transaction seals. A conflict means the
  log grew between reading its length and sealing; the append is retried
  against the new length with exponential backoff.
  """

  def __init__(self, ledger: LedgerClient, *, poll_interval_seconds: float = 1.0, finalize_timeout_seconds: float = 120.0, max_attempts: int = 3, backoff_seconds: float = 0.5) -> None:
    if max_attempts < 1:
      raise ValueError("max_attempts must be at least 1.")
    self._ledger = ledger
    self._poll_interval = poll_interval_seconds
    self._finalize_timeout = finalize_timeout_seconds
    self._max_attempts = max_attempts
    self._backoff = backoff_seconds

  async def append(self, project_id: int, *, agent: str, title: str, description: str, content_address: str) -> AppendResult:
    last_conflict: LedgerConflictError | None = None
    for attempt in range(1, self._max_attempts + 1):
      prior_length = len(await self._ledger.get_log(project_id))
      try:
        transaction_id = await self._ledger.submit_append(
          project_id,
          agent=agent,
          title=title,
          description=description,
          content_address=content_address,
          expected_length=prior_length,
        )
        await self._wait_for_seal(transaction_id)
      except LedgerConflictError as exc:
        last_conflict = exc
        logger.warning("Append to project %s conflicted at length %d (attempt %d/%d)", project_id, prior_length, attempt, self._max_attempts)
        if attempt < self._max_attempts:
          await asyncio.sleep(self._backoff * (2 ** (attempt - 1)))
        continue

      log = await self._ledger.get_log(project_id)
      if len(log) <= prior_length:
        raise TransactionError(f"Transaction {transaction_id} sealed but the log did not grow.", transaction_id=transaction_id)
      entry = log[prior_length]
      logger.info("Appended entry to project %s tx=%s length=%d", project_id, transaction_id, len(log))
      return AppendResult(transaction_id=transaction_id, log_length=len(log), entry=entry, attempts=attempt)

    raise TransactionError(
      f"Append to project {project_id} kept conflicting after {self._max_attempts} attempts.",
      transaction_id=last_conflict.transaction_id if last_conflict else None,
      retryable=True,
    )

  async def _wait_for_seal(self, transaction_id: str) -> TransactionState:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + self._finalize_timeout
    while True:
      state = await self._ledger.get_transaction_status(transaction_id)
      if state.status == TransactionStatus.SEALED:
        return state
      if state.status == TransactionStatus.ERROR:
        message = state.error_message or "Transaction failed."
        if state.conflict:
          raise LedgerConflictError(message, transaction_id=transaction_id)
        # Rejected appends leave the log unchanged, so resubmitting is safe.
        raise TransactionError(f"Transaction failed: {message}", transaction_id=transaction_id, retryable=True)
      if loop.time() >= deadline:
        raise TransactionError(f"Transaction {transaction_id} was not sealed within {self._finalize_timeout}s.", transaction_id=transaction_id, retryable=True)
      await asyncio.sleep(self._poll_interval)
