"""Build and unpack self-verifying artifact archives."""

from __future__ import annotations

import base64
import binascii
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import Any

import pyzipper

from provenance_engine.artifacts.hashing import is_sha256_hex, sha256_hex
from provenance_engine.artifacts.manifest import LEGACY_MANIFEST_FILENAME, MANIFEST_FILENAME, SCHEMA_VERSION, ArtifactManifest, ManifestOutput, parse_manifest
from provenance_engine.core.errors import ValidationError
from provenance_engine.jobs.models import JobRecord

logger = logging.getLogger(__name__)

# Fixed entry timestamp so archive bytes depend only on content.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_RESERVED_NAMES = {MANIFEST_FILENAME, LEGACY_MANIFEST_FILENAME}
RESULTS_FILENAME = "results.json"


@dataclass(frozen=True)
class ArtifactPayload:
  """A named output; text is stored as its UTF-8 bytes."""

  filename: str
  content: bytes | str

  @property
  def data(self) -> bytes:
    if isinstance(self.content, str):
      return self.content.encode("utf-8")
    return bytes(self.content)


@dataclass(frozen=True)
class PackagedArtifact:
  """Manifest plus the zip archive bytes that embed it."""

  manifest: ArtifactManifest
  archive: bytes


@dataclass
class ArtifactInspection:
  """Result of unpacking an archive and re-hashing every declared output."""

  manifest: ArtifactManifest
  files: dict[str, bytes]
  mismatches: list[str] = field(default_factory=list)
  missing: list[str] = field(default_factory=list)

  @property
  def ok(self) -> bool:
    return not self.mismatches and not self.missing


def utc_timestamp(now: datetime | None = None) -> str:
  """Return an ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
  moment = (now or datetime.now(UTC)).astimezone(UTC)
  return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _validate_filename(filename: str, seen: set[str]) -> None:
  if not filename or not filename.strip():
    raise ValidationError("Artifact filenames must not be empty.")
  if "\\" in filename:
    raise ValidationError(f"Artifact filename '{filename}' must use forward slashes.")
  path = PurePosixPath(filename)
  if path.is_absolute() or ".." in path.parts or str(path) != filename:
    raise ValidationError(f"Artifact filename '{filename}' must be a normalized relative path.")
  if filename in _RESERVED_NAMES:
    raise ValidationError(f"Artifact filename '{filename}' is reserved for the manifest.")
  if filename in seen:
    raise ValidationError(f"Artifact filename '{filename}' appears more than once.")
  seen.add(filename)


def _open_writer(buffer: io.BytesIO, password: str | None) -> pyzipper.ZipFile:
  if password:
    archive = pyzipper.AESZipFile(buffer, mode="w", compression=pyzipper.ZIP_DEFLATED, encryption=pyzipper.WZ_AES)
    archive.setpassword(password.encode("utf-8"))
    return archive
  return pyzipper.ZipFile(buffer, mode="w", compression=pyzipper.ZIP_DEFLATED)


def _write_entry(archive: pyzipper.ZipFile, filename: str, data: bytes) -> None:
  # AES archives only accept their own entry type; anything else is treated as a name.
  info = archive.zipinfo_cls(filename, date_time=_ZIP_EPOCH)
  info.compress_type = pyzipper.ZIP_DEFLATED
  info.external_attr = 0o644 << 16
  archive.writestr(info, data)


def package_artifact(input_hash: str, agent: str, payloads: list[ArtifactPayload], *, password: str | None = None, now: datetime | None = None) -> PackagedArtifact:
  """Build a manifest and a zip container holding it plus every payload.

  Each output hash is computed over the exact bytes written into the archive,
  so re-hashing an unpacked file reproduces its manifest entry.
  """
  if not is_sha256_hex(input_hash):
    raise ValidationError("Input hash must be 64 lowercase hex characters.")
  if not agent or not agent.strip():
    raise ValidationError("Analysis agent label is required.")

  seen: set[str] = set()
  outputs: list[ManifestOutput] = []
  for payload in payloads:
    _validate_filename(payload.filename, seen)
    outputs.append(ManifestOutput(filename=payload.filename, hash_sha256=sha256_hex(payload.data)))

  manifest = ArtifactManifest(schema_version=SCHEMA_VERSION, analysis_agent=agent, timestamp_utc=utc_timestamp(now), input_data_hash_sha256=input_hash, outputs=outputs)

  buffer = io.BytesIO()
  with _open_writer(buffer, password) as archive:
    _write_entry(archive, MANIFEST_FILENAME, manifest.to_json().encode("utf-8"))
    for payload in payloads:
      _write_entry(archive, payload.filename, payload.data)

  logger.debug("Packaged artifact agent=%s outputs=%d encrypted=%s", agent, len(outputs), bool(password))
  return PackagedArtifact(manifest=manifest, archive=buffer.getvalue())


def _read_members(archive_bytes: bytes, password: str | None) -> dict[str, bytes]:
  try:
    with pyzipper.AESZipFile(io.BytesIO(archive_bytes)) as archive:
      if password:
        archive.setpassword(password.encode("utf-8"))
      return {info.filename: archive.read(info.filename) for info in archive.infolist() if not info.is_dir()}
  except pyzipper.BadZipFile as exc:
    raise ValidationError(f"Artifact is not a valid zip archive: {exc}") from exc
  except RuntimeError as exc:
    # Raised by the zip reader for encrypted members without the right password.
    raise ValidationError(f"Artifact could not be decrypted: {exc}") from exc


def inspect_artifact(archive_bytes: bytes, *, password: str | None = None) -> ArtifactInspection:
  """Unpack an archive, parse its manifest, and re-hash each declared output."""
  members = _read_members(archive_bytes, password)
  raw_manifest = members.pop(MANIFEST_FILENAME, None)
  if raw_manifest is None:
    raw_manifest = members.pop(LEGACY_MANIFEST_FILENAME, None)
  if raw_manifest is None:
    raise ValidationError("Artifact does not contain a manifest.")

  manifest = parse_manifest(raw_manifest)
  inspection = ArtifactInspection(manifest=manifest, files=members)
  for output in manifest.outputs:
    data = members.get(output.filename)
    if data is None:
      inspection.missing.append(output.filename)
    elif sha256_hex(data) != output.hash_sha256:
      inspection.mismatches.append(output.filename)
  return inspection


def build_job_payloads(record: JobRecord) -> list[ArtifactPayload]:
  """Turn a completed job's result into artifact payloads.

  ``result["files"]`` entries (``{filename, content, encoding}``) become
  individual files, base64 content decoded to bytes. Everything else in the
  result is written to ``results.json``.
  """
  result: dict[str, Any] = dict(record.result or {})
  files = result.pop("files", None) or []
  if not isinstance(files, list):
    raise ValidationError("Job result 'files' must be a list.")

  payloads = [ArtifactPayload(RESULTS_FILENAME, json.dumps(result, indent=2, sort_keys=True))]
  for entry in files:
    if not isinstance(entry, dict) or not isinstance(entry.get("filename"), str) or not isinstance(entry.get("content"), str):
      raise ValidationError("Job result files need string 'filename' and 'content'.")
    encoding = str(entry.get("encoding") or "utf-8").lower()
    if encoding == "base64":
      content = entry["content"]
      # Data URLs carry a media-type prefix before the payload.
      if content.startswith("data:") and "," in content:
        content = content.split(",", 1)[1]
      try:
        payloads.append(ArtifactPayload(entry["filename"], base64.b64decode(content, validate=True)))
      except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"File '{entry['filename']}' is not valid base64.") from exc
    elif encoding in {"utf-8", "utf8", "text"}:
      payloads.append(ArtifactPayload(entry["filename"], entry["content"]))
    else:
      raise ValidationError(f"File '{entry['filename']}' has unsupported encoding '{encoding}'.")
  return payloads
