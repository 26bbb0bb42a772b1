import pytest

from provenance_engine.artifacts.hashing import HashMode, hash_payload, sha256_hex
from provenance_engine.artifacts.manifest import ArtifactManifest
from provenance_engine.artifacts.packager import ArtifactPayload, package_artifact
from provenance_engine.artifacts.verifier import require_match, verify_artifact, verify_file
from provenance_engine.core.errors import HashMismatchError, ValidationError

SAMPLE_CSV = b"\xef\xbb\xbfdose,response,total\n0.1,0,10\n0.5,3,10\n1.0,8,10\n"
SPECTRUM = bytes(range(256)) * 4


def _manifest(agent: str, payload: bytes, mode: HashMode) -> ArtifactManifest:
  return ArtifactManifest(analysis_agent=agent, timestamp_utc="2025-01-01T00:00:00.000Z", input_data_hash_sha256=hash_payload(payload, mode), outputs=[])


def test_original_file_matches_and_flipped_byte_does_not():
  manifest = _manifest("nmr-analysis-agent/1.0", SPECTRUM, HashMode.BINARY)

  result = verify_file(manifest, SPECTRUM, "fid")
  assert result.match
  assert result.mode is HashMode.BINARY
  assert result.expected_hash == result.calculated_hash

  flipped = bytearray(SPECTRUM)
  flipped[100] ^= 0x01
  mismatch = verify_file(manifest, bytes(flipped), "fid")
  assert not mismatch.match
  assert mismatch.expected_hash == manifest.input_data_hash_sha256
  assert mismatch.calculated_hash == sha256_hex(bytes(flipped))


def test_ld50_manifest_uses_text_mode():
  manifest = _manifest("ld50-analysis-agent/1.0", SAMPLE_CSV, HashMode.TEXT)
  result = verify_file(manifest, SAMPLE_CSV, "sample.csv")
  assert result.match
  assert result.mode is HashMode.TEXT
  # The BOM is not part of the text digest.
  assert result.calculated_hash != sha256_hex(SAMPLE_CSV)


def test_manifest_can_be_passed_as_json():
  manifest = _manifest("gc-ms-analysis-agent/1.0", SPECTRUM, HashMode.BINARY)
  assert verify_file(manifest.to_json().encode(), SPECTRUM).match


def test_require_match_raises_only_on_mismatch():
  manifest = _manifest("nmr-analysis-agent/1.0", SPECTRUM, HashMode.BINARY)
  assert require_match(verify_file(manifest, SPECTRUM)).match
  with pytest.raises(HashMismatchError) as excinfo:
    require_match(verify_file(manifest, SPECTRUM[:-1]))
  assert excinfo.value.expected_hash == manifest.input_data_hash_sha256


def test_unknown_agent_is_a_validation_error():
  manifest = _manifest("custom-agent", SPECTRUM, HashMode.BINARY)
  with pytest.raises(ValidationError):
    verify_file(manifest, SPECTRUM)


def test_verify_artifact_rechecks_outputs():
  packaged = package_artifact(sha256_hex(SPECTRUM), "nmr-analysis-agent/1.0", [ArtifactPayload("peaks.json", '{"peaks": [1, 2]}')])
  inspection = verify_artifact(packaged.archive)
  assert inspection.ok
  assert inspection.manifest.output_hashes() == {"peaks.json": sha256_hex(b'{"peaks": [1, 2]}')}
