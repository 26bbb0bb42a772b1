"""In-process ledger used for local development and tests."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from provenance_engine.core.errors import NotFoundError, ValidationError
from provenance_engine.ledger.interface import LedgerClient
from provenance_engine.ledger.models import LogEntry, ProjectAsset, ProjectSpec, TransactionState, TransactionStatus, ViewKind
from provenance_engine.utils.ids import generate_transaction_id

logger = logging.getLogger(__name__)


@dataclass
class _PendingAppend:
  project_id: int
  agent: str
  title: str
  description: str
  content_address: str
  expected_length: int
  reads: int = 0
  state: TransactionState | None = None


def _display_view(asset: ProjectAsset) -> dict[str, Any]:
  return {"name": asset.name, "description": asset.summary, "thumbnail": asset.content_address}


def _story_view(asset: ProjectAsset) -> dict[str, Any]:
  return {"projectName": asset.name, "story": [entry.to_dict() for entry in asset.log]}


def _serial_view(asset: ProjectAsset) -> dict[str, Any]:
  return {"serial": asset.project_id}


_VIEW_RESOLVERS: dict[ViewKind, Callable[[ProjectAsset], dict[str, Any]]] = {
  ViewKind.DISPLAY: _display_view,
  ViewKind.STORY: _story_view,
  ViewKind.SERIAL: _serial_view,
}


def _now_iso() -> str:
  return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class InMemoryLedger(LedgerClient):
  """Ledger with exclusive ownership and deferred sealing.

  Each project lives in exactly one owner's collection. Append transactions
  stay ``pending`` for ``seal_after_reads`` status reads, then seal only if the
  log length still equals the position the submitter expected.
  """

  def __init__(self, *, seal_after_reads: int = 1, clock: Callable[[], str] | None = None) -> None:
    if seal_after_reads < 1:
      raise ValueError("seal_after_reads must be at least 1.")
    self._seal_after_reads = seal_after_reads
    self._clock = clock or _now_iso
    self._collections: dict[str, dict[int, ProjectAsset]] = {}
    self._owner_of: dict[int, str] = {}
    self._transactions: dict[str, _PendingAppend] = {}
    self._rejections: list[str] = []
    self._next_id = 1

  def reject_next_append(self, reason: str) -> None:
    """Make the next append that reaches sealing fail with ``reason``."""
    self._rejections.append(reason)

  def _asset(self, project_id: int) -> ProjectAsset:
    owner = self._owner_of.get(project_id)
    if owner is None:
      raise NotFoundError(f"Project {project_id} not found.")
    return self._collections[owner][project_id]

  async def create_project(self, spec: ProjectSpec) -> ProjectAsset:
    if not spec.owner:
      raise ValidationError("Project owner is required.")
    if not spec.name.strip():
      raise ValidationError("Project name is required.")
    project_id = self._next_id
    self._next_id += 1
    asset = ProjectAsset(
      project_id=project_id,
      owner=spec.owner,
      name=spec.name,
      summary=spec.summary,
      content_address=spec.content_address,
      created_at=self._clock(),
      investigator=spec.investigator,
      run_hash=spec.run_hash,
    )
    self._collections.setdefault(spec.owner, {})[project_id] = asset
    self._owner_of[project_id] = spec.owner
    logger.info("Created project %s for owner %s", project_id, spec.owner)
    return replace(asset, log=list(asset.log))

  async def get_project(self, project_id: int) -> ProjectAsset:
    asset = self._asset(project_id)
    return replace(asset, log=list(asset.log))

  async def get_log(self, project_id: int) -> list[LogEntry]:
    return list(self._asset(project_id).log)

  async def submit_append(self, project_id: int, *, agent: str, title: str, description: str, content_address: str, expected_length: int) -> str:
    self._asset(project_id)
    transaction_id = generate_transaction_id()
    self._transactions[transaction_id] = _PendingAppend(
      project_id=project_id,
      agent=agent,
      title=title,
      description=description,
      content_address=content_address,
      expected_length=expected_length,
    )
    logger.debug("Submitted append %s to project %s at position %d", transaction_id, project_id, expected_length)
    return transaction_id

  async def get_transaction_status(self, transaction_id: str) -> TransactionState:
    pending = self._transactions.get(transaction_id)
    if pending is None:
      raise NotFoundError(f"Transaction {transaction_id} not found.")
    if pending.state is not None:
      return pending.state

    pending.reads += 1
    if pending.reads < self._seal_after_reads:
      return TransactionState(transaction_id=transaction_id, status=TransactionStatus.PENDING)

    pending.state = self._seal(transaction_id, pending)
    return pending.state

  def _seal(self, transaction_id: str, pending: _PendingAppend) -> TransactionState:
    asset = self._asset(pending.project_id)
    if self._rejections:
      reason = self._rejections.pop(0)
      return TransactionState(transaction_id=transaction_id, status=TransactionStatus.ERROR, error_message=reason)
    if len(asset.log) != pending.expected_length:
      message = f"Log length is {len(asset.log)}, expected {pending.expected_length}."
      return TransactionState(transaction_id=transaction_id, status=TransactionStatus.ERROR, error_message=message, conflict=True)

    asset.log.append(LogEntry(agent=pending.agent, title=pending.title, description=pending.description, content_address=pending.content_address, timestamp=self._clock()))
    logger.info("Sealed append %s; project %s log length %d", transaction_id, pending.project_id, len(asset.log))
    return TransactionState(transaction_id=transaction_id, status=TransactionStatus.SEALED)

  async def list_owned(self, owner: str) -> list[int]:
    return sorted(self._collections.get(owner, {}))

  async def transfer(self, project_id: int, recipient: str) -> None:
    if not recipient:
      raise ValidationError("Transfer recipient is required.")
    owner = self._owner_of.get(project_id)
    if owner is None:
      raise NotFoundError(f"Project {project_id} not found.")
    # Remove before insert so the asset is never held by two owners.
    asset = self._collections[owner].pop(project_id)
    asset.owner = recipient
    self._collections.setdefault(recipient, {})[project_id] = asset
    self._owner_of[project_id] = recipient

  async def resolve_view(self, project_id: int, kind: ViewKind) -> dict[str, Any]:
    try:
      resolver = _VIEW_RESOLVERS[ViewKind(kind)]
    except ValueError as exc:
      raise ValidationError(f"Unknown view kind '{kind}'.") from exc
    return resolver(self._asset(project_id))
