from __future__ import annotations

from batchgen.config import Settings
from batchgen.services.tasks.gcp import CloudTasksEnqueuer
from batchgen.services.tasks.interface import TaskEnqueuer
from batchgen.services.tasks.local import LocalHttpEnqueuer


def get_task_enqueuer(settings: Settings) -> TaskEnqueuer:
  """Factory to get the configured task enqueuer."""
  if settings.task_service_provider == "gcp":
    return CloudTasksEnqueuer(settings)
  return LocalHttpEnqueuer(settings)
