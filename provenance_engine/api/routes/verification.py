import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from provenance_engine.api.deps import get_content_store
from provenance_engine.api.models import VerificationResponse
from provenance_engine.artifacts.manifest import parse_manifest
from provenance_engine.artifacts.verifier import verify_artifact, verify_file
from provenance_engine.core.errors import ValidationError
from provenance_engine.services.content_store import ContentStore

router = APIRouter()
logger = logging.getLogger("provenance_engine.api.routes.verification")

MANIFEST_FIELD = File(None)
CANDIDATE_FIELD = File(None)
ARCHIVE_FIELD = File(...)
PASSWORD_FIELD = Form(None)


@router.post("/verify", response_model=VerificationResponse)
async def verify_input_file(manifest: UploadFile | None = MANIFEST_FIELD, file: UploadFile | None = CANDIDATE_FIELD) -> VerificationResponse:
  """Recompute a file's hash and compare it with the manifest's input hash.

  A mismatch is a normal 200 result with ``match`` false.
  """
  if manifest is None or file is None:
    raise ValidationError("Both a manifest and a file are required.")
  parsed = parse_manifest(await manifest.read())
  candidate = await file.read()
  result = await run_in_threadpool(verify_file, parsed, candidate, file.filename)
  logger.info("Verification filename=%s match=%s mode=%s", file.filename, result.match, result.mode.value)
  return VerificationResponse(**result.to_dict())


@router.post("/verify/artifact")
async def verify_artifact_archive(archive: UploadFile = ARCHIVE_FIELD, password: str | None = PASSWORD_FIELD) -> dict:
  """Unpack an artifact and re-check every output against its manifest."""
  inspection = await run_in_threadpool(verify_artifact, await archive.read(), password=password)
  return {
    "ok": inspection.ok,
    "inputDataHash": inspection.manifest.input_data_hash_sha256,
    "analysisAgent": inspection.manifest.analysis_agent,
    "mismatches": inspection.mismatches,
    "missing": inspection.missing,
  }


@router.get("/artifacts/{address}")
async def get_artifact(address: str, content_store: ContentStore = Depends(get_content_store)) -> Response:  # noqa: B008
  """Return stored artifact bytes by content address."""
  data = await content_store.get(address)
  return Response(content=data, media_type="application/zip", headers={"Content-Disposition": f'attachment; filename="{address}.zip"'})
