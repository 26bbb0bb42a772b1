"""SHA-256 content digests and per-analysis hashing modes."""

from __future__ import annotations

import hashlib
import re
from enum import Enum

from provenance_engine.core.errors import ValidationError

SHA256_HEX_PATTERN = re.compile(r"^[0-9a-f]{64}$")


class HashMode(str, Enum):
  """How a payload is turned into bytes before hashing."""

  TEXT = "text"
  BINARY = "binary"


# Analysis types whose inputs are hashed over their decoded text content.
_TEXT_ANALYSIS_TYPES = {"ld50"}

# Agent label fragments mapped to the hashing mode of the analysis they ran.
_AGENT_MODES: tuple[tuple[str, HashMode], ...] = (
  ("ld50", HashMode.TEXT),
  ("nmr", HashMode.BINARY),
  ("gc-ms", HashMode.BINARY),
  ("gcms", HashMode.BINARY),
)

AGENT_LABELS = {
  "ld50": "ld50-analysis-agent/1.0",
  "nmr": "nmr-analysis-agent/1.0",
  "gcms": "gc-ms-analysis-agent/1.0",
}


def sha256_hex(payload: bytes | str) -> str:
  """Return the lowercase hex SHA-256 digest of bytes, or of a string's UTF-8 encoding."""
  if isinstance(payload, str):
    data = payload.encode("utf-8")
  elif isinstance(payload, bytes | bytearray | memoryview):
    data = bytes(payload)
  else:
    raise TypeError(f"Cannot hash payload of type {type(payload).__name__}.")
  return hashlib.sha256(data).hexdigest()


def decode_text_payload(payload: bytes) -> str:
  """Decode file bytes the way a browser reads a file as text (BOM dropped, bad bytes replaced)."""
  return payload.decode("utf-8-sig", errors="replace")


def hash_payload(payload: bytes, mode: HashMode) -> str:
  """Hash raw file bytes under the given mode."""
  if not isinstance(payload, bytes | bytearray | memoryview):
    raise TypeError(f"Cannot hash payload of type {type(payload).__name__}.")
  if mode is HashMode.TEXT:
    return sha256_hex(decode_text_payload(bytes(payload)))
  return sha256_hex(bytes(payload))


def hash_mode_for_analysis_type(analysis_type: str) -> HashMode:
  """Return the hashing mode used for inputs of an analysis type."""
  if analysis_type.strip().lower() in _TEXT_ANALYSIS_TYPES:
    return HashMode.TEXT
  return HashMode.BINARY


def hash_mode_for_agent(agent_label: str) -> HashMode:
  """Return the hashing mode implied by a manifest's analysis agent label."""
  normalized = agent_label.strip().lower()
  for fragment, mode in _AGENT_MODES:
    if fragment in normalized:
      return mode
  raise ValidationError(f"Could not determine the analysis type from agent '{agent_label}'.")


def agent_label_for(analysis_type: str) -> str:
  """Return the agent label recorded in manifests for an analysis type."""
  normalized = analysis_type.strip().lower()
  return AGENT_LABELS.get(normalized, f"{normalized}-analysis-agent/1.0")


def is_sha256_hex(value: object) -> bool:
  """Return True for a 64 character lowercase hex digest."""
  return isinstance(value, str) and bool(SHA256_HEX_PATTERN.match(value))
