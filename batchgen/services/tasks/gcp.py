from __future__ import annotations

import json
import logging

from google.api_core import exceptions as gcp_exceptions
from google.cloud import tasks_v2
from starlette.concurrency import run_in_threadpool

from batchgen.config import Settings
from batchgen.services.tasks.interface import TaskEnqueuer, batch_task_id, batch_task_payload
from batchgen.services.tasks.local import GENERATE_BATCH_PATH

logger = logging.getLogger(__name__)


class CloudTasksEnqueuer(TaskEnqueuer):
  """Enqueues tasks to Google Cloud Tasks."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings
    self.client = tasks_v2.CloudTasksClient()

  def _build_task(self, *, name: str, url: str, body: dict) -> dict:
    http_request: dict = {"http_method": tasks_v2.HttpMethod.POST, "url": url, "headers": {"Content-Type": "application/json"}, "body": json.dumps(body).encode()}
    if self.settings.task_secret:
      http_request["headers"]["Authorization"] = f"Bearer {self.settings.task_secret}"
      # An OIDC token replaces Authorization, so the secret also travels in its own header.
      http_request["headers"]["X-Batchgen-Task-Secret"] = self.settings.task_secret
    # Cloud Run rejects unauthenticated invocations unless the task carries an OIDC token.
    if self.settings.cloud_run_invoker_service_account:
      http_request["oidc_token"] = {"service_account_email": self.settings.cloud_run_invoker_service_account, "audience": self.settings.base_url}
    return {"name": name, "http_request": http_request}

  async def enqueue_batch(self, *, section_id: str, batch_number: int, attempt_id: str, tenant_id: str) -> None:
    """Enqueue a batch to Cloud Tasks under a deterministic task name."""
    if not self.settings.cloud_tasks_queue_path:
      raise RuntimeError("Cloud Tasks queue path not configured.")
    if not self.settings.base_url:
      raise RuntimeError("Base URL not configured.")

    parent = self.settings.cloud_tasks_queue_path
    name = f"{parent}/tasks/{batch_task_id(section_id=section_id, batch_number=batch_number, attempt_id=attempt_id)}"
    url = f"{self.settings.base_url.rstrip('/')}{GENERATE_BATCH_PATH}"
    task = self._build_task(name=name, url=url, body=batch_task_payload(section_id=section_id, batch_number=batch_number, attempt_id=attempt_id, tenant_id=tenant_id))

    try:
      # The client is synchronous; keep it off the event loop.
      response = await run_in_threadpool(self.client.create_task, request={"parent": parent, "task": task})
      logger.info("Enqueued task %s for section %s batch %d", response.name, section_id, batch_number)
    except gcp_exceptions.AlreadyExists:
      logger.info("Task %s already exists; batch %d of section %s is already queued", name, batch_number, section_id)
