from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import httpx

from batchgen.config import Settings
from batchgen.services.tasks.interface import TaskEnqueuer, batch_task_payload

logger = logging.getLogger(__name__)

GENERATE_BATCH_PATH = "/internal/tasks/generate-batch"
# The in-process post lasts as long as the batch it runs.
IN_PROCESS_TIMEOUT_SECONDS = 1800.0

_IN_FLIGHT: set[asyncio.Task[None]] = set()


def _log_detached_result(task: asyncio.Task[None]) -> None:
  _IN_FLIGHT.discard(task)
  if task.cancelled():
    return
  exc = task.exception()
  # HTTP failures are already logged by the post itself.
  if exc is not None and not isinstance(exc, httpx.HTTPError):
    logger.error("Detached local dispatch failed: %s", exc, exc_info=exc)


class LocalHttpEnqueuer(TaskEnqueuer):
  """Enqueues tasks via local HTTP requests to simulate Cloud Tasks."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings

  def _should_use_asgi_transport(self, base_url: str) -> bool:
    """Decide if we should route requests in-process via ASGITransport."""
    parsed = urlparse(base_url)
    hostname = (parsed.hostname or "").lower()
    return hostname in {"localhost", "127.0.0.1", "::1", "0.0.0.0"}

  def _build_client(self, base_url: str) -> httpx.AsyncClient:
    """Build an httpx client for local task dispatch."""
    # Never trust environment proxy variables for internal task dispatch.
    if self._should_use_asgi_transport(base_url):
      from batchgen.main import app

      transport = httpx.ASGITransport(app=app)
      return httpx.AsyncClient(transport=transport, base_url=base_url, trust_env=False)
    return httpx.AsyncClient(trust_env=False)

  def _task_headers(self) -> dict[str, str]:
    """Build task authentication headers for internal endpoints."""
    if not self.settings.task_secret:
      raise RuntimeError("Task secret not configured.")
    return {"authorization": f"Bearer {self.settings.task_secret}"}

  async def _post(self, url: str, payload: dict[str, object], headers: dict[str, str], *, timeout: float, section_id: str, batch_number: int) -> None:
    try:
      async with self._build_client(self.settings.base_url or url) as client:
        response = await client.post(url, json=payload, headers=headers, timeout=timeout)
        response.raise_for_status()

    except httpx.HTTPStatusError as e:
      logger.error("Local task dispatch returned %s for section %s batch %d: %s", e.response.status_code, section_id, batch_number, e.response.text)
      raise
    except httpx.RequestError as e:
      logger.error("Failed to dispatch local task for section %s batch %d: %s", section_id, batch_number, e)
      raise

  async def enqueue_batch(self, *, section_id: str, batch_number: int, attempt_id: str, tenant_id: str) -> None:
    """Enqueue a batch by POSTing to the internal task endpoint."""
    if not self.settings.base_url:
      raise RuntimeError("Base URL not configured, strictly required for LocalHttpEnqueuer.")

    url = f"{self.settings.base_url.rstrip('/')}{GENERATE_BATCH_PATH}"
    payload = batch_task_payload(section_id=section_id, batch_number=batch_number, attempt_id=attempt_id, tenant_id=tenant_id)
    headers = self._task_headers()

    if self._should_use_asgi_transport(self.settings.base_url):
      # ASGITransport returns only after the endpoint's background batch finishes, so the in-process post is detached.
      logger.info("Dispatching batch %d of section %s in-process to %s", batch_number, section_id, url)
      task = asyncio.create_task(self._post(url, payload, headers, timeout=IN_PROCESS_TIMEOUT_SECONDS, section_id=section_id, batch_number=batch_number))
      _IN_FLIGHT.add(task)
      task.add_done_callback(_log_detached_result)
      return

    # A served endpoint answers 202 before its background batch runs.
    logger.info("Dispatching batch %d of section %s locally to %s", batch_number, section_id, url)
    await self._post(url, payload, headers, timeout=30.0, section_id=section_id, batch_number=batch_number)
