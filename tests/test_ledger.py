import pytest

from provenance_engine.core.errors import NotFoundError, TransactionError, ValidationError
from provenance_engine.ledger.appender import LedgerLogAppender
from provenance_engine.ledger.memory import InMemoryLedger
from provenance_engine.ledger.models import ProjectSpec, TransactionStatus, ViewKind

ADDRESS = "b" * 64


async def _project_with_entries(ledger: InMemoryLedger, count: int) -> int:
  project = await ledger.create_project(ProjectSpec(name="Toxicity study", summary="Acute oral toxicity", content_address="c" * 64, owner="0xalice"))
  appender = LedgerLogAppender(ledger, poll_interval_seconds=0.001, finalize_timeout_seconds=1)
  for index in range(count):
    await appender.append(project.project_id, agent="ld50-analysis-agent/1.0", title=f"Step {index}", description=f"step {index}", content_address=ADDRESS)
  return project.project_id


@pytest.mark.anyio
async def test_append_grows_log_by_one_with_matching_fields():
  ledger = InMemoryLedger(seal_after_reads=2)
  project_id = await _project_with_entries(ledger, 3)
  assert len(await ledger.get_log(project_id)) == 3

  appender = LedgerLogAppender(ledger, poll_interval_seconds=0.001, finalize_timeout_seconds=1)
  result = await appender.append(project_id, agent="nmr-analysis-agent/1.0", title="NMR Analysis", description="input hash: " + "a" * 64, content_address=ADDRESS)

  assert result.log_length == 4
  assert result.attempts == 1
  assert result.entry.agent == "nmr-analysis-agent/1.0"
  assert result.entry.title == "NMR Analysis"
  assert result.entry.content_address == ADDRESS
  log = await ledger.get_log(project_id)
  assert len(log) == 4
  assert log[-1] == result.entry
  assert [entry.title for entry in log[:3]] == ["Step 0", "Step 1", "Step 2"]


@pytest.mark.anyio
async def test_rejected_append_leaves_log_unchanged():
  ledger = InMemoryLedger()
  project_id = await _project_with_entries(ledger, 3)
  ledger.reject_next_append("signature rejected")

  appender = LedgerLogAppender(ledger, poll_interval_seconds=0.001, finalize_timeout_seconds=1)
  with pytest.raises(TransactionError) as excinfo:
    await appender.append(project_id, agent="ld50", title="t", description="d", content_address=ADDRESS)

  assert excinfo.value.retryable
  assert "signature rejected" in str(excinfo.value)
  assert len(await ledger.get_log(project_id)) == 3

  # Resubmitting after a rejection lands at the same position.
  retried = await appender.append(project_id, agent="ld50", title="t", description="d", content_address=ADDRESS)
  assert retried.log_length == 4


class RacingLedger(InMemoryLedger):
  """Lets another writer append right after the first submission."""

  def __init__(self) -> None:
    super().__init__()
    self.raced = False

  async def submit_append(self, project_id, **kwargs):
    transaction_id = await super().submit_append(project_id, **kwargs)
    if not self.raced:
      self.raced = True
      rival = await super().submit_append(project_id, **{**kwargs, "title": "rival"})
      await self.get_transaction_status(rival)
    return transaction_id


@pytest.mark.anyio
async def test_conflicting_append_is_retried_at_new_position():
  ledger = RacingLedger()
  project = await ledger.create_project(ProjectSpec(name="p", summary="", content_address="", owner="0xalice"))
  appender = LedgerLogAppender(ledger, poll_interval_seconds=0.001, finalize_timeout_seconds=1, backoff_seconds=0)

  result = await appender.append(project.project_id, agent="ld50", title="mine", description="d", content_address=ADDRESS)

  assert result.attempts == 2
  assert result.log_length == 2
  assert [entry.title for entry in await ledger.get_log(project.project_id)] == ["rival", "mine"]


class AlwaysConflictingLedger(InMemoryLedger):
  async def submit_append(self, project_id, *, expected_length, **kwargs):
    return await super().submit_append(project_id, expected_length=expected_length + 1, **kwargs)


@pytest.mark.anyio
async def test_exhausted_conflict_retries_raise_retryable_error():
  ledger = AlwaysConflictingLedger()
  project = await ledger.create_project(ProjectSpec(name="p", summary="", content_address="", owner="0xalice"))
  appender = LedgerLogAppender(ledger, poll_interval_seconds=0.001, finalize_timeout_seconds=1, max_attempts=2, backoff_seconds=0)

  with pytest.raises(TransactionError) as excinfo:
    await appender.append(project.project_id, agent="ld50", title="t", description="d", content_address=ADDRESS)
  assert excinfo.value.retryable
  assert await ledger.get_log(project.project_id) == []


@pytest.mark.anyio
async def test_unsealed_transaction_times_out():
  ledger = InMemoryLedger(seal_after_reads=10_000)
  project = await ledger.create_project(ProjectSpec(name="p", summary="", content_address="", owner="0xalice"))
  appender = LedgerLogAppender(ledger, poll_interval_seconds=0.001, finalize_timeout_seconds=0.02)

  with pytest.raises(TransactionError) as excinfo:
    await appender.append(project.project_id, agent="ld50", title="t", description="d", content_address=ADDRESS)
  assert excinfo.value.retryable
  assert await ledger.get_log(project.project_id) == []


@pytest.mark.anyio
async def test_transactions_stay_pending_until_sealed():
  ledger = InMemoryLedger(seal_after_reads=3)
  project = await ledger.create_project(ProjectSpec(name="p", summary="", content_address="", owner="0xalice"))
  transaction_id = await ledger.submit_append(project.project_id, agent="a", title="t", description="d", content_address=ADDRESS, expected_length=0)

  statuses = [(await ledger.get_transaction_status(transaction_id)).status for _ in range(4)]
  assert statuses == [TransactionStatus.PENDING, TransactionStatus.PENDING, TransactionStatus.SEALED, TransactionStatus.SEALED]
  assert len(await ledger.get_log(project.project_id)) == 1


@pytest.mark.anyio
async def test_transfer_moves_exclusive_ownership():
  ledger = InMemoryLedger()
  project = await ledger.create_project(ProjectSpec(name="p", summary="", content_address="", owner="0xalice"))

  await ledger.transfer(project.project_id, "0xbob")

  assert await ledger.list_owned("0xalice") == []
  assert await ledger.list_owned("0xbob") == [project.project_id]
  assert (await ledger.get_project(project.project_id)).owner == "0xbob"


@pytest.mark.anyio
async def test_views_are_resolved_by_kind():
  ledger = InMemoryLedger()
  project_id = await _project_with_entries(ledger, 1)

  display = await ledger.resolve_view(project_id, ViewKind.DISPLAY)
  story = await ledger.resolve_view(project_id, ViewKind.STORY)
  serial = await ledger.resolve_view(project_id, ViewKind.SERIAL)

  assert display["name"] == "Toxicity study"
  assert story["story"][0]["title"] == "Step 0"
  assert serial == {"serial": project_id}
  with pytest.raises(ValidationError):
    await ledger.resolve_view(project_id, "thumbnail")


@pytest.mark.anyio
async def test_unknown_project_and_transaction():
  ledger = InMemoryLedger()
  with pytest.raises(NotFoundError):
    await ledger.get_project(99)
  with pytest.raises(NotFoundError):
    await ledger.get_transaction_status("missing")
