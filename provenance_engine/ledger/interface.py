from __future__ import annotations

from typing import Any, Protocol

from provenance_engine.ledger.models import LogEntry, ProjectAsset, ProjectSpec, TransactionState, ViewKind


class LedgerClient(Protocol):
  """Operations the service needs from the ledger holding project assets."""

  async def create_project(self, spec: ProjectSpec) -> ProjectAsset:
    """Mint a project asset owned by ``spec.owner``."""
    ...

  async def get_project(self, project_id: int) -> ProjectAsset:
    """Return a project with its log; raises NotFoundError."""
    ...

  async def get_log(self, project_id: int) -> list[LogEntry]:
    """Return the project's log in append order."""
    ...

  async def submit_append(self, project_id: int, *, agent: str, title: str, description: str, content_address: str, expected_length: int) -> str:
    """Submit an append transaction and return its id without waiting for it to seal."""
    ...

  async def get_transaction_status(self, transaction_id: str) -> TransactionState:
    """Return the normalized state of a submitted transaction."""
    ...

  async def list_owned(self, owner: str) -> list[int]:
    """Return ids of the projects held by ``owner``."""
    ...

  async def transfer(self, project_id: int, recipient: str) -> None:
    """Move a project to a new owner."""
    ...

  async def resolve_view(self, project_id: int, kind: ViewKind) -> dict[str, Any]:
    """Return one read projection of a project."""
    ...
