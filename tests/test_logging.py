import logging
import sys
from dataclasses import replace

from provenance_engine.core.logging import TruncatedFormatter, _rotated_name, setup_logging


def test_rotated_backups_use_dash_suffix():
  assert _rotated_name("logs/provenance_dev.log.3") == "logs/provenance_dev.log-3"
  assert _rotated_name("logs/provenance_dev.log") == "logs/provenance_dev.log"


def test_file_logging_outside_tests(settings, tmp_path):
  log_path = setup_logging(replace(settings, environment="development"), log_dir=tmp_path)
  try:
    logging.getLogger("provenance_engine.test").info("job dispatched")
    for handler in logging.getLogger().handlers:
      handler.flush()
    assert log_path.parent == tmp_path
    assert "job dispatched" in log_path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING
  finally:
    for handler in logging.getLogger().handlers:
      handler.close()
    logging.basicConfig(force=True)


def test_console_only_in_test_environment(settings):
  try:
    assert setup_logging(replace(settings, environment="test")) is None
  finally:
    logging.basicConfig(force=True)


def test_truncated_tracebacks():
  def _deep(depth: int) -> None:
    if depth == 0:
      raise RuntimeError("ledger unreachable")
    _deep(depth - 1)

  try:
    _deep(10)
  except RuntimeError:
    record = logging.LogRecord("t", logging.ERROR, __file__, 1, "failed", None, exc_info=sys.exc_info())
  text = TruncatedFormatter().format(record)
  assert "    ..." in text
  assert "ledger unreachable" in text
