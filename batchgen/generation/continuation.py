from __future__ import annotations

import asyncio
import logging

from batchgen.generation.errors import InvalidSectionStateError
from batchgen.generation.models import SectionRecord
from batchgen.services.tasks.interface import TaskEnqueuer
from batchgen.storage.sections_repo import SectionsRepository

logger = logging.getLogger(__name__)


def trigger_failure_message(completed_batch: int, total_generated: int) -> str:
  return f"Batch {completed_batch} completed ({total_generated} total questions), but batch {completed_batch + 1} trigger failed. Regenerate to complete."


class ContinuationTrigger:
  """Schedules the next batch without blocking the current invocation."""

  def __init__(self, enqueuer: TaskEnqueuer, repo: SectionsRepository) -> None:
    self._enqueuer = enqueuer
    self._repo = repo
    # Strong references keep pending dispatches alive until they finish.
    self._pending: set[asyncio.Task[None]] = set()

  def fire(self, section: SectionRecord, next_batch_number: int) -> asyncio.Task[None]:
    if section.generation_attempt_id is None:
      raise InvalidSectionStateError("Section has no active generation attempt")
    task = asyncio.create_task(self._dispatch(section, next_batch_number))
    self._pending.add(task)
    task.add_done_callback(self._pending.discard)
    return task

  async def _dispatch(self, section: SectionRecord, next_batch_number: int) -> None:
    try:
      await self._enqueuer.enqueue_batch(section_id=section.section_id, batch_number=next_batch_number, attempt_id=section.generation_attempt_id, tenant_id=section.tenant_id)
      logger.info("Continuation dispatched: section %s batch %d", section.section_id, next_batch_number)
    except Exception as exc:  # noqa: BLE001
      logger.error("Continuation trigger failed for section %s batch %d: %s", section.section_id, next_batch_number, exc)
      message = trigger_failure_message(next_batch_number - 1, section.questions_generated_so_far)
      try:
        await self._repo.record_diagnostic(section.section_id, message)
      except Exception:  # noqa: BLE001
        logger.exception("Failed to record trigger diagnostic for section %s", section.section_id)

  async def drain(self) -> None:
    """Wait for every pending dispatch; used on shutdown and in tests."""
    while self._pending:
      await asyncio.gather(*list(self._pending), return_exceptions=True)
