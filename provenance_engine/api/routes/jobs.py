import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import JSONResponse, Response

from provenance_engine.api.deps import get_gateway, get_provenance_service
from provenance_engine.api.models import JobSubmitResponse
from provenance_engine.core.errors import JobNotFoundError
from provenance_engine.services.jobs import JobGateway
from provenance_engine.services.provenance import ProvenanceService

router = APIRouter()
logger = logging.getLogger("provenance_engine.api.routes.jobs")

# Optional at the transport layer so missing fields surface as 400 from the gateway.
FILE_FIELD = File(None)
TYPE_FIELD = Form(None)
INPUT_HASH_FIELD = Form(None, alias="inputDataHash")


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=JobSubmitResponse)
async def submit_job(  # noqa: B008
  file: UploadFile | None = FILE_FIELD,
  type: str | None = TYPE_FIELD,  # noqa: A002
  input_data_hash: str | None = INPUT_HASH_FIELD,
  gateway: JobGateway = Depends(get_gateway),  # noqa: B008
) -> JobSubmitResponse:
  """Accept an analysis job; execution happens asynchronously."""
  file_bytes = await file.read() if file is not None else None
  job_id = await gateway.submit(
    file_bytes=file_bytes,
    filename=file.filename if file is not None else None,
    analysis_type=type,
    input_data_hash=input_data_hash or None,
    content_type=file.content_type if file is not None else None,
  )
  return JobSubmitResponse(message="Job accepted and is being processed.", job_id=job_id)


@router.get("/{job_id}")
async def get_job_status(job_id: str, gateway: JobGateway = Depends(get_gateway)) -> JSONResponse:  # noqa: B008
  """Return the stored job record."""
  try:
    record = await gateway.get_job(job_id)
  except JobNotFoundError:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"status": "not_found", "error": "Job not found."})
  return JSONResponse(content=record.to_dict())


@router.get("/{job_id}/artifact")
async def download_job_artifact(job_id: str, service: ProvenanceService = Depends(get_provenance_service)) -> Response:  # noqa: B008
  """Package a completed job and return the zip without storing it."""
  record, packaged = await service.build_artifact(job_id)
  filename = f"{record.job_id}_artifact.zip"
  return Response(content=packaged.archive, media_type="application/zip", headers={"Content-Disposition": f'attachment; filename="{filename}"'})
