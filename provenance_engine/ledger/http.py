"""httpx client for a ledger gateway that signs and submits transactions."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from provenance_engine.core.errors import LedgerConflictError, NotFoundError, TransactionError, ValidationError
from provenance_engine.ledger.interface import LedgerClient
from provenance_engine.ledger.models import LogEntry, ProjectAsset, ProjectSpec, TransactionState, TransactionStatus, ViewKind

logger = logging.getLogger(__name__)

# Access-node statuses; executed is not final until the block seals.
_STATUS_MAP: dict[str, TransactionStatus] = {
  "UNKNOWN": TransactionStatus.PENDING,
  "PENDING": TransactionStatus.PENDING,
  "FINALIZED": TransactionStatus.PENDING,
  "EXECUTED": TransactionStatus.PENDING,
  "SEALED": TransactionStatus.SEALED,
  "EXPIRED": TransactionStatus.ERROR,
}


def map_transaction_status(raw_status: str | None, error_message: str | None = None) -> TransactionStatus:
  """Normalize an access-node status; any error message makes the transaction failed."""
  if error_message:
    return TransactionStatus.ERROR
  status = _STATUS_MAP.get(str(raw_status or "").upper())
  if status is None:
    raise TransactionError(f"Unrecognized transaction status '{raw_status}'.")
  return status


class HttpLedgerClient(LedgerClient):
  """Talks to the ledger gateway REST API.

  The gateway holds the signing key; this client never sees credentials beyond
  its bearer token.
  """

  def __init__(self, base_url: str, *, token: str | None = None, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport, trust_env=False)

  async def aclose(self) -> None:
    await self._client.aclose()

  async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
    try:
      response = await self._client.request(method, path, **kwargs)
    except httpx.RequestError as exc:
      logger.error("Ledger gateway request failed %s %s: %s", method, path, exc)
      raise TransactionError(f"Ledger gateway unreachable: {exc}", retryable=True) from exc

    if response.status_code == 404:
      raise NotFoundError(_error_message(response) or f"{path} not found.")
    if response.status_code == 400:
      raise ValidationError(_error_message(response) or "Ledger gateway rejected the request.")
    if response.status_code == 409:
      raise LedgerConflictError(_error_message(response) or "Ledger log position conflict.")
    if response.status_code >= 400:
      logger.error("Ledger gateway returned %s for %s %s: %s", response.status_code, method, path, response.text)
      raise TransactionError(_error_message(response) or f"Ledger gateway error {response.status_code}.", retryable=response.status_code >= 500)
    return response

  async def create_project(self, spec: ProjectSpec) -> ProjectAsset:
    body = {
      "name": spec.name,
      "summary": spec.summary,
      "contentAddress": spec.content_address,
      "owner": spec.owner,
      "investigator": spec.investigator,
      "runHash": spec.run_hash,
    }
    response = await self._request("POST", "/v1/projects", json=body)
    return ProjectAsset.from_dict(response.json())

  async def get_project(self, project_id: int) -> ProjectAsset:
    response = await self._request("GET", f"/v1/projects/{project_id}")
    return ProjectAsset.from_dict(response.json())

  async def get_log(self, project_id: int) -> list[LogEntry]:
    project = await self.get_project(project_id)
    return project.log

  async def submit_append(self, project_id: int, *, agent: str, title: str, description: str, content_address: str, expected_length: int) -> str:
    body = {"agent": agent, "title": title, "description": description, "contentAddress": content_address, "expectedLength": expected_length}
    response = await self._request("POST", f"/v1/projects/{project_id}/log", json=body)
    transaction_id = response.json().get("transactionId")
    if not transaction_id:
      raise TransactionError("Ledger gateway did not return a transaction id.")
    return str(transaction_id)

  async def get_transaction_status(self, transaction_id: str) -> TransactionState:
    response = await self._request("GET", f"/v1/transactions/{transaction_id}")
    payload = response.json()
    error_message = payload.get("errorMessage") or None
    return TransactionState(
      transaction_id=transaction_id,
      status=map_transaction_status(payload.get("status"), error_message),
      error_message=error_message,
      conflict=bool(payload.get("conflict")),
    )

  async def list_owned(self, owner: str) -> list[int]:
    response = await self._request("GET", f"/v1/accounts/{owner}/projects")
    payload = response.json()
    ids = payload.get("ids", []) if isinstance(payload, dict) else payload
    return [int(item) for item in ids]

  async def transfer(self, project_id: int, recipient: str) -> None:
    await self._request("POST", f"/v1/projects/{project_id}/transfer", json={"recipient": recipient})

  async def resolve_view(self, project_id: int, kind: ViewKind) -> dict[str, Any]:
    try:
      view = ViewKind(kind)
    except ValueError as exc:
      raise ValidationError(f"Unknown view kind '{kind}'.") from exc
    response = await self._request("GET", f"/v1/projects/{project_id}/views/{view.value}")
    return response.json()


def _error_message(response: httpx.Response) -> str | None:
  try:
    payload = response.json()
  except ValueError:
    return None
  if isinstance(payload, dict):
    message = payload.get("error") or payload.get("errorMessage")
    return str(message) if message else None
  return None
