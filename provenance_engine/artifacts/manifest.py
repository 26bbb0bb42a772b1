"""Versioned artifact manifest schema."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from provenance_engine.artifacts.hashing import is_sha256_hex
from provenance_engine.core.errors import ValidationError

MANIFEST_FILENAME = "manifest.json"
LEGACY_MANIFEST_FILENAME = "metadata.json"
SCHEMA_VERSION = "1.0.0"


def _require_digest(value: str) -> str:
  if not is_sha256_hex(value):
    raise ValueError("must be 64 lowercase hex characters")
  return value


class ManifestOutput(BaseModel):
  """One file inside an artifact and the digest of its stored bytes."""

  filename: StrictStr = Field(min_length=1)
  hash_sha256: StrictStr

  model_config = ConfigDict(extra="forbid")

  @field_validator("hash_sha256")
  @classmethod
  def check_hash(cls, value: str) -> str:
    return _require_digest(value)


class ArtifactManifest(BaseModel):
  """Self-describing record of an artifact's inputs and outputs."""

  schema_version: StrictStr = SCHEMA_VERSION
  analysis_agent: StrictStr = Field(min_length=1)
  timestamp_utc: StrictStr
  input_data_hash_sha256: StrictStr
  outputs: list[ManifestOutput] = Field(default_factory=list)

  # Older artifacts carried extra descriptive keys; keep them readable.
  model_config = ConfigDict(extra="ignore")

  @field_validator("input_data_hash_sha256")
  @classmethod
  def check_input_hash(cls, value: str) -> str:
    return _require_digest(value)

  def to_json(self) -> str:
    """Serialize with stable key order and 2-space indentation."""
    return json.dumps(self.model_dump(mode="json"), indent=2)

  def output_hashes(self) -> dict[str, str]:
    return {output.filename: output.hash_sha256 for output in self.outputs}


def parse_manifest(raw: bytes | str | dict[str, Any]) -> ArtifactManifest:
  """Parse a manifest from JSON text or a mapping, raising ValidationError when malformed."""
  try:
    if isinstance(raw, dict):
      return ArtifactManifest.model_validate(raw)
    if isinstance(raw, bytes):
      raw = raw.decode("utf-8-sig")
    return ArtifactManifest.model_validate(json.loads(raw))
  except (json.JSONDecodeError, UnicodeDecodeError) as exc:
    raise ValidationError(f"Manifest is not valid JSON: {exc}") from exc
  except PydanticValidationError as exc:
    fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
    raise ValidationError(f"Manifest is missing or has invalid fields: {fields}") from exc
