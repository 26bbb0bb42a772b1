from __future__ import annotations

from provenance_engine.config import Settings
from provenance_engine.services.tasks.interface import TaskEnqueuer
from provenance_engine.services.tasks.local import LocalHttpEnqueuer


def get_task_enqueuer(settings: Settings) -> TaskEnqueuer:
  """Factory to get the configured task enqueuer."""
  if settings.task_service_provider == "gcp":
    # Imported lazily so local setups do not need Cloud Tasks credentials.
    from provenance_engine.services.tasks.gcp import CloudTasksEnqueuer

    return CloudTasksEnqueuer(settings)
  return LocalHttpEnqueuer(settings)
