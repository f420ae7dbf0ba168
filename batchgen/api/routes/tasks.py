from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status

from batchgen.api.deps import get_section_service, require_task_secret
from batchgen.api.models import BatchTaskPayload, ReapStalePayload
from batchgen.generation.orchestrator import BatchSkipped
from batchgen.services.sections import BatchTask, SectionService

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(require_task_secret)])
logger = logging.getLogger(__name__)


async def run_batch_task(service: SectionService, task: BatchTask) -> None:
  """Background body of a batch task; failures are logged, never raised to the dispatcher."""
  try:
    outcome = await service.process_batch_task(task)
  except Exception as exc:  # noqa: BLE001
    logger.error("Batch task failed for section %s batch %d: %s", task.section_id, task.batch_number, exc, exc_info=True)
    return
  if isinstance(outcome, BatchSkipped):
    logger.info("Batch task for section %s batch %d skipped (%s)", task.section_id, task.batch_number, outcome.reason)
  else:
    logger.info("Batch task for section %s batch %d finished: %s", task.section_id, task.batch_number, type(outcome).__name__)


@router.post("/generate-batch", status_code=status.HTTP_202_ACCEPTED)
async def generate_batch_task(payload: BatchTaskPayload, background_tasks: BackgroundTasks, service: SectionService = Depends(get_section_service)) -> dict[str, str]:  # noqa: B008
  """
  Handler for Cloud Tasks (and local simulation).
  Accepts the task quickly and runs the batch in the background so the dispatcher gets a fast 2xx.
  """
  logger.info("Received batch task: section %s batch %d", payload.section_id, payload.batch_number)
  task = BatchTask(section_id=payload.section_id, batch_number=payload.batch_number, attempt_id=payload.attempt_id, tenant_id=payload.tenant_id)
  background_tasks.add_task(run_batch_task, service, task)
  return {"status": "accepted"}


@router.post("/reap-stale")
async def reap_stale_task(payload: ReapStalePayload, service: SectionService = Depends(get_section_service)) -> dict[str, object]:  # noqa: B008
  outcomes = await service.reap_stale(payload.tenant_id)
  return {"status": "ok", "reaped": [{"section_id": outcome.section_id, "action": outcome.action, "questions_available": outcome.questions_available} for outcome in outcomes]}
