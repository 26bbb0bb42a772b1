"""Independent re-derivation of artifact hashes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from provenance_engine.artifacts.hashing import HashMode, hash_mode_for_agent, hash_payload
from provenance_engine.artifacts.manifest import ArtifactManifest, parse_manifest
from provenance_engine.artifacts.packager import ArtifactInspection, inspect_artifact
from provenance_engine.core.errors import HashMismatchError


@dataclass(frozen=True)
class VerificationResult:
  match: bool
  expected_hash: str
  calculated_hash: str
  mode: HashMode
  filename: str | None = None

  def to_dict(self) -> dict[str, Any]:
    return {
      "match": self.match,
      "expectedHash": self.expected_hash,
      "calculatedHash": self.calculated_hash,
      "mode": self.mode.value,
      "filename": self.filename,
    }


def verify_file(manifest: ArtifactManifest | bytes | str | dict[str, Any], candidate_bytes: bytes, filename: str | None = None) -> VerificationResult:
  """Hash a candidate input file and compare it with the manifest's recorded input hash.

  The hashing mode follows the manifest's analysis agent so the digest is
  computed the same way it was at submission. A mismatch is returned, not raised.
  """
  parsed = manifest if isinstance(manifest, ArtifactManifest) else parse_manifest(manifest)
  mode = hash_mode_for_agent(parsed.analysis_agent)
  calculated = hash_payload(candidate_bytes, mode)
  expected = parsed.input_data_hash_sha256
  return VerificationResult(match=calculated == expected, expected_hash=expected, calculated_hash=calculated, mode=mode, filename=filename)


def require_match(result: VerificationResult) -> VerificationResult:
  if not result.match:
    raise HashMismatchError(result.expected_hash, result.calculated_hash)
  return result


def verify_artifact(archive_bytes: bytes, *, password: str | None = None) -> ArtifactInspection:
  """Re-check every output in an archive against its manifest."""
  return inspect_artifact(archive_bytes, password=password)
