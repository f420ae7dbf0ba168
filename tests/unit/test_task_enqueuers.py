from __future__ import annotations

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest
from google.api_core import exceptions as gcp_exceptions

from batchgen.api.deps import get_section_service
from batchgen.config import get_settings
from batchgen.generation.orchestrator import BatchSkipped
from batchgen.services.tasks import local as local_tasks
from batchgen.services.tasks.factory import get_task_enqueuer
from batchgen.services.tasks.gcp import CloudTasksEnqueuer
from batchgen.services.tasks.interface import batch_task_id, batch_task_payload
from batchgen.services.tasks.local import LocalHttpEnqueuer

QUEUE = "projects/p/locations/asia-south1/queues/batches"


def test_batch_task_id_is_deterministic() -> None:
  assert batch_task_id(section_id="sec-1", batch_number=3, attempt_id="att-9") == "batch-sec-1-att-9-3"
  assert batch_task_payload(section_id="sec-1", batch_number=3, attempt_id="att-9", tenant_id="t") == {"section_id": "sec-1", "batch_number": 3, "attempt_id": "att-9", "tenant_id": "t"}


def test_factory_defaults_to_local_http() -> None:
  assert isinstance(get_task_enqueuer(get_settings()), LocalHttpEnqueuer)


@pytest.mark.anyio
async def test_local_task_dispatch() -> None:
  """Verify that the local enqueuer posts to the internal batch endpoint."""
  settings = replace(get_settings(), base_url="http://batchgen.internal:8080", task_secret="test-task-secret")

  with patch("batchgen.services.tasks.local.httpx.AsyncClient") as mock_client_cls:
    mock_client = AsyncMock()
    mock_client_cls.return_value.__aenter__.return_value = mock_client
    mock_response = Mock()
    mock_response.raise_for_status = Mock()
    mock_client.post.return_value = mock_response

    await LocalHttpEnqueuer(settings).enqueue_batch(section_id="sec-1", batch_number=2, attempt_id="att-1", tenant_id="tenant-a")

    mock_client.post.assert_called_once()
    args, kwargs = mock_client.post.call_args
    assert args[0] == "http://batchgen.internal:8080/internal/tasks/generate-batch"
    assert kwargs["json"] == {"section_id": "sec-1", "batch_number": 2, "attempt_id": "att-1", "tenant_id": "tenant-a"}
    assert kwargs["headers"] == {"authorization": "Bearer test-task-secret"}


@pytest.mark.anyio
async def test_in_process_dispatch_returns_before_the_batch_runs() -> None:
  from batchgen.main import app

  release = asyncio.Event()
  finished = asyncio.Event()

  async def slow_batch(task):
    await release.wait()
    finished.set()
    return BatchSkipped(section_id=task.section_id, reason="duplicate")

  service = MagicMock()
  service.process_batch_task = slow_batch
  app.dependency_overrides[get_section_service] = lambda: service
  try:
    enqueuer = LocalHttpEnqueuer(replace(get_settings(), base_url="http://localhost:8080"))
    await asyncio.wait_for(enqueuer.enqueue_batch(section_id="sec-1", batch_number=2, attempt_id="att-1", tenant_id="tenant-a"), timeout=1.0)
    assert not finished.is_set()

    release.set()
    await asyncio.wait_for(finished.wait(), timeout=5.0)
    await asyncio.gather(*list(local_tasks._IN_FLIGHT))
  finally:
    app.dependency_overrides.clear()


@pytest.mark.anyio
async def test_local_dispatch_requires_base_url() -> None:
  settings = replace(get_settings(), base_url=None)
  with pytest.raises(RuntimeError):
    await LocalHttpEnqueuer(settings).enqueue_batch(section_id="sec-1", batch_number=1, attempt_id="att-1", tenant_id="tenant-a")


def _cloud_settings(**overrides):
  values = {"task_service_provider": "gcp", "cloud_tasks_queue_path": QUEUE, "base_url": "https://batchgen.example.com", "task_secret": "s3cret", "cloud_run_invoker_service_account": "invoker@p.iam.gserviceaccount.com"}
  values.update(overrides)
  return replace(get_settings(), **values)


@pytest.mark.anyio
async def test_cloud_task_carries_deterministic_name_and_auth() -> None:
  with patch("batchgen.services.tasks.gcp.tasks_v2.CloudTasksClient") as client_cls:
    client = MagicMock()
    client.create_task.return_value = MagicMock(name="created")
    client_cls.return_value = client

    await CloudTasksEnqueuer(_cloud_settings()).enqueue_batch(section_id="sec-1", batch_number=2, attempt_id="att-1", tenant_id="tenant-a")

    request = client.create_task.call_args.kwargs["request"]
    task = request["task"]
    assert request["parent"] == QUEUE
    assert task["name"] == f"{QUEUE}/tasks/batch-sec-1-att-1-2"
    assert task["http_request"]["url"] == "https://batchgen.example.com/internal/tasks/generate-batch"
    assert task["http_request"]["headers"]["X-Batchgen-Task-Secret"] == "s3cret"
    assert task["http_request"]["oidc_token"]["service_account_email"] == "invoker@p.iam.gserviceaccount.com"


@pytest.mark.anyio
async def test_cloud_task_redispatch_is_deduplicated() -> None:
  with patch("batchgen.services.tasks.gcp.tasks_v2.CloudTasksClient") as client_cls:
    client = MagicMock()
    client.create_task.side_effect = gcp_exceptions.AlreadyExists("task exists")
    client_cls.return_value = client

    # Must not raise.
    await CloudTasksEnqueuer(_cloud_settings()).enqueue_batch(section_id="sec-1", batch_number=2, attempt_id="att-1", tenant_id="tenant-a")
    client.create_task.assert_called_once()


@pytest.mark.anyio
async def test_cloud_task_requires_queue_path() -> None:
  with patch("batchgen.services.tasks.gcp.tasks_v2.CloudTasksClient"):
    enqueuer = CloudTasksEnqueuer(_cloud_settings(cloud_tasks_queue_path=None))
    with pytest.raises(RuntimeError):
      await enqueuer.enqueue_batch(section_id="sec-1", batch_number=1, attempt_id="att-1", tenant_id="tenant-a")
