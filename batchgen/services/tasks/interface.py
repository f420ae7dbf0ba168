from __future__ import annotations

from typing import Protocol


class TaskEnqueuer(Protocol):
  """Interface for enqueuing background tasks."""

  async def enqueue_batch(self, *, section_id: str, batch_number: int, attempt_id: str, tenant_id: str) -> None:
    """Enqueue one batch of a section's generation attempt."""
    ...


def batch_task_payload(*, section_id: str, batch_number: int, attempt_id: str, tenant_id: str) -> dict[str, str | int]:
  return {"section_id": section_id, "batch_number": batch_number, "attempt_id": attempt_id, "tenant_id": tenant_id}


def batch_task_id(*, section_id: str, batch_number: int, attempt_id: str) -> str:
  """Stable task id so a re-dispatch of the same batch is deduplicated by the queue."""
  return f"batch-{section_id}-{attempt_id}-{batch_number}"
