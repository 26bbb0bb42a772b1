import logging
from typing import Any

from fastapi import APIRouter, Depends, status

from provenance_engine.api.deps import get_ledger, get_provenance_service
from provenance_engine.api.models import AnchorRequest, AnchorResponse, LogEntryResponse, ProjectCreateRequest, TransferRequest
from provenance_engine.core.errors import ValidationError
from provenance_engine.ledger.interface import LedgerClient
from provenance_engine.ledger.models import ProjectSpec, ViewKind
from provenance_engine.services.provenance import ProvenanceService

router = APIRouter()
logger = logging.getLogger("provenance_engine.api.routes.projects")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(payload: ProjectCreateRequest, service: ProvenanceService = Depends(get_provenance_service)) -> dict[str, Any]:  # noqa: B008
  spec = ProjectSpec(name=payload.name, summary=payload.summary, content_address=payload.content_address, owner=payload.owner, investigator=payload.investigator, run_hash=payload.run_hash)
  project = await service.create_project(spec)
  return project.to_dict()


@router.get("/{project_id}")
async def get_project(project_id: int, service: ProvenanceService = Depends(get_provenance_service)) -> dict[str, Any]:  # noqa: B008
  project = await service.get_project(project_id)
  return project.to_dict()


@router.post("/{project_id}/anchor", status_code=status.HTTP_201_CREATED, response_model=AnchorResponse)
async def anchor_job(project_id: int, payload: AnchorRequest, service: ProvenanceService = Depends(get_provenance_service)) -> AnchorResponse:  # noqa: B008
  """Package a completed job, store it, and append it to the project's log."""
  result = await service.anchor_job(payload.job_id, project_id, title=payload.title, description=payload.description)
  entry = result.entry
  return AnchorResponse(
    transaction_id=result.transaction_id,
    content_address=result.content_address,
    locator=result.locator,
    log_length=result.log_length,
    entry=LogEntryResponse(agent=entry.agent, title=entry.title, description=entry.description, content_address=entry.content_address, timestamp=entry.timestamp),
  )


@router.post("/{project_id}/transfer", status_code=status.HTTP_204_NO_CONTENT)
async def transfer_project(project_id: int, payload: TransferRequest, ledger: LedgerClient = Depends(get_ledger)) -> None:  # noqa: B008
  await ledger.transfer(project_id, payload.recipient)


@router.get("/{project_id}/views/{kind}")
async def resolve_project_view(project_id: int, kind: str, ledger: LedgerClient = Depends(get_ledger)) -> dict[str, Any]:  # noqa: B008
  try:
    view = ViewKind(kind)
  except ValueError as exc:
    raise ValidationError(f"Unknown view kind '{kind}'.") from exc
  return await ledger.resolve_view(project_id, view)


accounts_router = APIRouter()


@accounts_router.get("/{owner}/projects")
async def list_owned_projects(owner: str, ledger: LedgerClient = Depends(get_ledger)) -> dict[str, list[int]]:  # noqa: B008
  return {"ids": await ledger.list_owned(owner)}
