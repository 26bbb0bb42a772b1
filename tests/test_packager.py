import base64
import io
import json
from datetime import UTC, datetime

import pyzipper
import pytest

from provenance_engine.artifacts.hashing import sha256_hex
from provenance_engine.artifacts.manifest import MANIFEST_FILENAME, SCHEMA_VERSION, parse_manifest
from provenance_engine.artifacts.packager import RESULTS_FILENAME, ArtifactPayload, build_job_payloads, inspect_artifact, package_artifact
from provenance_engine.core.errors import ValidationError
from provenance_engine.jobs.models import JobRecord

INPUT_HASH = sha256_hex(b"dose,response\n")
AGENT = "ld50-analysis-agent/1.0"
FIXED_NOW = datetime(2025, 3, 4, 5, 6, 7, 890000, tzinfo=UTC)


def _payloads():
  return [
    ArtifactPayload("results.json", json.dumps({"ld50": 1.5})),
    ArtifactPayload("plots/curve.png", b"\x89PNG\r\n\x1a\n\x00\x01"),
  ]


def test_manifest_records_hash_of_each_stored_file():
  packaged = package_artifact(INPUT_HASH, AGENT, _payloads(), now=FIXED_NOW)

  manifest = packaged.manifest
  assert manifest.schema_version == SCHEMA_VERSION
  assert manifest.analysis_agent == AGENT
  assert manifest.input_data_hash_sha256 == INPUT_HASH
  assert manifest.timestamp_utc == "2025-03-04T05:06:07.890Z"

  with pyzipper.ZipFile(io.BytesIO(packaged.archive)) as archive:
    names = archive.namelist()
    assert names[0] == MANIFEST_FILENAME
    for output in manifest.outputs:
      assert sha256_hex(archive.read(output.filename)) == output.hash_sha256
    embedded = json.loads(archive.read(MANIFEST_FILENAME))
  assert embedded == manifest.model_dump(mode="json")


def test_packaging_is_deterministic_for_same_inputs():
  first = package_artifact(INPUT_HASH, AGENT, _payloads(), now=FIXED_NOW)
  second = package_artifact(INPUT_HASH, AGENT, _payloads(), now=FIXED_NOW)
  assert first.archive == second.archive


def test_inspect_round_trip_reports_no_mismatches():
  packaged = package_artifact(INPUT_HASH, AGENT, _payloads(), now=FIXED_NOW)
  inspection = inspect_artifact(packaged.archive)
  assert inspection.ok
  assert inspection.manifest == packaged.manifest
  assert inspection.files["plots/curve.png"] == b"\x89PNG\r\n\x1a\n\x00\x01"


def test_inspect_flags_tampered_output():
  packaged = package_artifact(INPUT_HASH, AGENT, _payloads(), now=FIXED_NOW)
  members = inspect_artifact(packaged.archive).files

  buffer = io.BytesIO()
  with pyzipper.ZipFile(buffer, mode="w") as archive:
    archive.writestr(MANIFEST_FILENAME, packaged.manifest.to_json())
    archive.writestr("results.json", members["results.json"] + b" ")
  tampered = inspect_artifact(buffer.getvalue())

  assert not tampered.ok
  assert tampered.mismatches == ["results.json"]
  assert tampered.missing == ["plots/curve.png"]


def test_legacy_metadata_manifest_is_readable():
  packaged = package_artifact(INPUT_HASH, AGENT, _payloads(), now=FIXED_NOW)
  members = inspect_artifact(packaged.archive).files
  buffer = io.BytesIO()
  with pyzipper.ZipFile(buffer, mode="w") as archive:
    archive.writestr("metadata.json", packaged.manifest.to_json())
    for name, data in members.items():
      archive.writestr(name, data)
  assert inspect_artifact(buffer.getvalue()).ok


def test_encrypted_archive_needs_password():
  packaged = package_artifact(INPUT_HASH, AGENT, _payloads(), password="s3cret", now=FIXED_NOW)
  assert inspect_artifact(packaged.archive, password="s3cret").ok
  with pytest.raises(ValidationError):
    inspect_artifact(packaged.archive)
  with pytest.raises(ValidationError):
    inspect_artifact(packaged.archive, password="wrong")


def test_encrypted_entries_keep_fixed_dates():
  packaged = package_artifact(INPUT_HASH, AGENT, _payloads(), password="s3cret", now=FIXED_NOW)
  with pyzipper.AESZipFile(io.BytesIO(packaged.archive)) as archive:
    infos = archive.infolist()
  assert [info.filename for info in infos] == [MANIFEST_FILENAME, "results.json", "plots/curve.png"]
  for info in infos:
    assert info.date_time == (1980, 1, 1, 0, 0, 0)
    assert info.flag_bits & 0x1


def test_encrypted_rebuilds_differ_but_carry_the_same_manifest():
  # AES salts are random per entry, so only plaintext archives are byte-stable.
  first = package_artifact(INPUT_HASH, AGENT, _payloads(), password="s3cret", now=FIXED_NOW)
  second = package_artifact(INPUT_HASH, AGENT, _payloads(), password="s3cret", now=FIXED_NOW)
  assert first.archive != second.archive
  assert inspect_artifact(first.archive, password="s3cret").manifest == inspect_artifact(second.archive, password="s3cret").manifest
  assert package_artifact(INPUT_HASH, AGENT, _payloads(), now=FIXED_NOW).archive == package_artifact(INPUT_HASH, AGENT, _payloads(), now=FIXED_NOW).archive


@pytest.mark.parametrize("filename", ["", "/abs.txt", "../escape.txt", "a/../b.txt", "dir\\file.txt", "manifest.json", "./x.txt"])
def test_invalid_filenames_are_rejected(filename):
  with pytest.raises(ValidationError):
    package_artifact(INPUT_HASH, AGENT, [ArtifactPayload(filename, "x")])


def test_duplicate_filenames_are_rejected():
  with pytest.raises(ValidationError):
    package_artifact(INPUT_HASH, AGENT, [ArtifactPayload("a.txt", "x"), ArtifactPayload("a.txt", "y")])


def test_bad_input_hash_or_agent_is_rejected():
  with pytest.raises(ValidationError):
    package_artifact("not-a-hash", AGENT, [])
  with pytest.raises(ValidationError):
    package_artifact(INPUT_HASH, " ", [])


def test_non_zip_bytes_are_rejected():
  with pytest.raises(ValidationError):
    inspect_artifact(b"definitely not a zip")


def test_build_job_payloads_splits_embedded_files():
  png = b"\x89PNG\r\n\x1a\n"
  record = JobRecord(
    job_id="job_1_abc",
    status="completed",
    analysis_type="ld50",
    input_data_hash=INPUT_HASH,
    original_filename="sample.csv",
    created_at="2025-01-01T00:00:00.000Z",
    updated_at="2025-01-01T00:00:01.000Z",
    result={
      "ld50": 1.5,
      "files": [
        {"filename": "plot.png", "content": "data:image/png;base64," + base64.b64encode(png).decode(), "encoding": "base64"},
        {"filename": "notes.txt", "content": "fit ok"},
      ],
    },
  )
  payloads = build_job_payloads(record)

  assert [payload.filename for payload in payloads] == [RESULTS_FILENAME, "plot.png", "notes.txt"]
  assert json.loads(payloads[0].data) == {"ld50": 1.5}
  assert payloads[1].data == png
  assert payloads[2].data == b"fit ok"


def test_build_job_payloads_rejects_bad_base64():
  record = JobRecord("job_1_abc", "completed", "nmr", INPUT_HASH, "fid", "t", "t", result={"files": [{"filename": "x.bin", "content": "%%%", "encoding": "base64"}]})
  with pytest.raises(ValidationError):
    build_job_payloads(record)


def test_parse_manifest_rejects_malformed_documents():
  with pytest.raises(ValidationError):
    parse_manifest(b"{not json")
  with pytest.raises(ValidationError):
    parse_manifest({"analysis_agent": AGENT, "timestamp_utc": "t", "input_data_hash_sha256": "short"})
  with pytest.raises(ValidationError):
    parse_manifest({"analysis_agent": AGENT, "timestamp_utc": "t", "input_data_hash_sha256": INPUT_HASH, "outputs": [{"filename": "a", "hash_sha256": INPUT_HASH, "extra": 1}]})
