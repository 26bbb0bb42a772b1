"""Package completed jobs and anchor them in a project's ledger log."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from provenance_engine.artifacts.hashing import agent_label_for
from provenance_engine.artifacts.manifest import ArtifactManifest
from provenance_engine.artifacts.packager import PackagedArtifact, build_job_payloads, package_artifact
from provenance_engine.core.errors import ValidationError
from provenance_engine.jobs.models import JobRecord
from provenance_engine.ledger.appender import LedgerLogAppender
from provenance_engine.ledger.interface import LedgerClient
from provenance_engine.ledger.models import LogEntry, ProjectAsset, ProjectSpec
from provenance_engine.services.content_store import ContentStore
from provenance_engine.services.jobs import JobGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnchorResult:
  job_id: str
  project_id: int
  transaction_id: str
  content_address: str
  locator: str
  log_length: int
  entry: LogEntry
  manifest: ArtifactManifest


def _completed_moment(record: JobRecord) -> datetime | None:
  if not record.completed_at:
    return None
  return datetime.fromisoformat(record.completed_at.replace("Z", "+00:00"))


def describe_job(record: JobRecord, description: str | None = None) -> str:
  """Build the log description; it always ends with the job's input hash."""
  marker = f"input hash: {record.input_data_hash}"
  base = (description or "").strip() or f"{record.analysis_type.upper()} analysis of {record.original_filename}."
  if marker in base:
    return base
  return f"{base} {marker}"


class ProvenanceService:
  def __init__(self, gateway: JobGateway, content_store: ContentStore, ledger: LedgerClient, appender: LedgerLogAppender, *, artifact_password: str | None = None) -> None:
    self._gateway = gateway
    self._content = content_store
    self._ledger = ledger
    self._appender = appender
    self._password = artifact_password

  async def create_project(self, spec: ProjectSpec) -> ProjectAsset:
    return await self._ledger.create_project(spec)

  async def get_project(self, project_id: int) -> ProjectAsset:
    return await self._ledger.get_project(project_id)

  async def build_artifact(self, job_id: str) -> tuple[JobRecord, PackagedArtifact]:
    """Package a completed job's results.

    The manifest timestamp is the job's completion time, so rebuilding a
    plaintext artifact for the same job yields the same bytes and content
    address. Encrypted artifacts carry the same manifest but fresh AES salts,
    so each rebuild is stored under a new address.
    """
    record = await self._gateway.get_job(job_id)
    if record.status != "completed":
      raise ValidationError(f"Job {job_id} is {record.status}; only completed jobs can be packaged.")
    payloads = build_job_payloads(record)
    packaged = package_artifact(record.input_data_hash, agent_label_for(record.analysis_type), payloads, password=self._password, now=_completed_moment(record))
    return record, packaged

  async def anchor_job(self, job_id: str, project_id: int, title: str | None = None, description: str | None = None) -> AnchorResult:
    """Package, store and log a completed job.

    Raises NotFoundError for unknown jobs or projects, ValidationError for jobs
    that have not completed, StorageError if the artifact cannot be stored and
    TransactionError if the log append never seals.
    """
    # Fail on an unknown project before writing anything.
    await self._ledger.get_project(project_id)
    record, packaged = await self.build_artifact(job_id)
    stored = await self._content.put(packaged.archive)
    logger.info("Stored artifact for job %s address=%s size=%d", job_id, stored.address, stored.size)

    appended = await self._appender.append(
      project_id,
      agent=packaged.manifest.analysis_agent,
      title=(title or "").strip() or f"{record.analysis_type.upper()} Analysis",
      description=describe_job(record, description),
      content_address=stored.address,
    )
    return AnchorResult(
      job_id=job_id,
      project_id=project_id,
      transaction_id=appended.transaction_id,
      content_address=stored.address,
      locator=stored.locator,
      log_length=appended.log_length,
      entry=appended.entry,
      manifest=packaged.manifest,
    )
