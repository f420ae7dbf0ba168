"""HTTP surface tests for the section routes and internal task endpoints."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from batchgen.api.deps import get_section_service
from batchgen.config import get_settings
from batchgen.generation.continuation import ContinuationTrigger
from batchgen.generation.errors import ApiFailure
from batchgen.generation.models import BatchMetadata, ChapterRef, ChapterScheduleEntry
from batchgen.generation.modes import AI_KNOWLEDGE_CHAPTER
from batchgen.generation.orchestrator import BatchSkipped
from batchgen.services.sections import BatchTask, SectionService
from batchgen.utils.clock import now_iso
from fakes import make_section

AUTH_A = {"authorization": "Bearer tok-a"}
AUTH_B = {"authorization": "Bearer tok-b"}
BASE = "/v1/papers/paper-1/sections"
CHAPTERS = [ChapterRef("ai", AI_KNOWLEDGE_CHAPTER, position=0)]


@pytest.fixture
def service(repo, enqueuer, content_client) -> SectionService:
  settings = replace(get_settings(), retry_base_delay_seconds=0.001, proofreading_enabled=False)
  return SectionService(repo, enqueuer, settings=settings, trigger=ContinuationTrigger(enqueuer, repo), client=content_client)


@pytest.fixture
async def client(async_client, service):
  from batchgen.main import app

  app.dependency_overrides[get_section_service] = lambda: service
  return async_client


def _generating(repo, *, batch_number: int = 0, generated: int = 0) -> None:
  schedule = (ChapterScheduleEntry("ai", AI_KNOWLEDGE_CHAPTER, questions_target=45, questions_generated=generated),)
  section = make_section(
    status="generating",
    target_questions=45,
    total_batches=2,
    batch_number=batch_number,
    questions_generated_so_far=generated,
    generation_attempt_id="att-1",
    generation_started_at=now_iso(),
    batch_metadata=BatchMetadata(chapter_schedule=schedule),
  )
  repo.add_section(section, CHAPTERS)


@pytest.mark.anyio
async def test_health(client) -> None:
  response = await client.get("/health")
  assert response.status_code == 200
  assert response.json()["status"] == "ok"
  assert "x-request-id" in response.headers


@pytest.mark.anyio
async def test_missing_and_invalid_tokens_are_unauthorized(client) -> None:
  missing = await client.get(BASE)
  invalid = await client.get(BASE, headers={"authorization": "Bearer nope"})
  assert missing.status_code == 401
  assert missing.json()["detail"] == "Missing bearer token"
  assert invalid.status_code == 401


@pytest.mark.anyio
async def test_other_tenant_is_forbidden(client, repo) -> None:
  repo.add_section(make_section(status="ready"), CHAPTERS)
  response = await client.post(f"{BASE}/sec-1/start", headers=AUTH_B)
  assert response.status_code == 403


@pytest.mark.anyio
async def test_unknown_section_is_not_found(client) -> None:
  response = await client.post(f"{BASE}/missing/start", headers=AUTH_A)
  assert response.status_code == 404
  assert response.json()["detail"] == "Section not found"


@pytest.mark.anyio
async def test_start_returns_accepted(client, repo, enqueuer) -> None:
  repo.add_section(make_section(status="ready"), CHAPTERS)

  response = await client.post(f"{BASE}/sec-1/start", headers=AUTH_A)

  assert response.status_code == 202
  body = response.json()
  assert body["status"] == "generating"
  assert body["target_questions"] == 45
  assert body["total_batches"] == 2
  assert body["first_batch_triggered"] is True
  assert enqueuer.calls[0]["attempt_id"] == body["generation_attempt_id"]


@pytest.mark.anyio
async def test_start_twice_conflicts(client, repo) -> None:
  repo.add_section(make_section(status="ready"), CHAPTERS)
  await client.post(f"{BASE}/sec-1/start", headers=AUTH_A)
  response = await client.post(f"{BASE}/sec-1/start", headers=AUTH_A)
  assert response.status_code == 409


@pytest.mark.anyio
async def test_next_batch_in_progress(client, repo, content_client) -> None:
  _generating(repo)
  content_client.queue_items(30)

  response = await client.post(f"{BASE}/sec-1/generate-next-batch", headers=AUTH_A)

  assert response.status_code == 200
  assert response.json() == {
    "success": True,
    "batch_number": 1,
    "total_batches": 2,
    "questions_generated": 30,
    "total_generated": 30,
    "target_questions": 45,
    "has_more": True,
    "next_batch_triggered": True,
  }


@pytest.mark.anyio
async def test_next_batch_partial_failure_is_multi_status(client, repo, content_client) -> None:
  _generating(repo, batch_number=1, generated=30)
  content_client.script.extend([ApiFailure("quota")] * 3)

  response = await client.post(f"{BASE}/sec-1/generate-next-batch", headers=AUTH_A)

  assert response.status_code == 207
  body = response.json()
  assert body["partial_success"] is True
  assert body["batches_completed"] == 1
  assert body["questions_available"] == 30
  assert body["error"] == "quota"
  assert repo.sections["sec-1"].status == "in_review"


@pytest.mark.anyio
async def test_next_batch_first_failure_is_server_error(client, repo, content_client) -> None:
  _generating(repo)
  content_client.script.extend([ApiFailure("quota")] * 3)

  response = await client.post(f"{BASE}/sec-1/generate-next-batch", headers=AUTH_A)

  assert response.status_code == 500
  assert response.json()["error"].startswith("Batch 1/2 failed after 3 retry attempts.")


@pytest.mark.anyio
async def test_next_batch_on_completed_section(client, repo) -> None:
  repo.add_section(make_section(status="in_review", questions_generated_so_far=45), CHAPTERS)
  response = await client.post(f"{BASE}/sec-1/generate-next-batch", headers=AUTH_A)
  assert response.status_code == 200
  assert response.json() == {"completed": True, "section_id": "sec-1", "total_generated": 45}


@pytest.mark.anyio
async def test_cleanup_of_live_section_is_a_no_op(client, repo) -> None:
  _generating(repo)
  response = await client.post(f"{BASE}/sec-1/cleanup", headers=AUTH_A)
  assert response.status_code == 200
  assert response.json()["cleaned"] is False


@pytest.mark.anyio
async def test_list_sections_scoped_to_tenant(client, repo) -> None:
  repo.add_section(make_section(status="ready"))
  repo.add_section(make_section(section_id="sec-2", status="ready", tenant_id="tenant-b"))

  response = await client.get(BASE, headers=AUTH_A)

  assert response.status_code == 200
  assert [section["section_id"] for section in response.json()["sections"]] == ["sec-1"]


@pytest.mark.anyio
async def test_finalize_without_selection_is_rejected(client, repo) -> None:
  repo.add_section(make_section(status="in_review", generation_attempt_id="att-1"), CHAPTERS)
  response = await client.post(f"{BASE}/sec-1/finalize", headers=AUTH_A)
  assert response.status_code == 400
  assert "Select at least 30 questions" in response.json()["detail"]


@pytest.mark.anyio
async def test_task_endpoint_requires_secret(async_client) -> None:
  response = await async_client.post("/internal/tasks/generate-batch", json={"section_id": "sec-1", "batch_number": 1, "attempt_id": "att-1", "tenant_id": "tenant-a"})
  assert response.status_code == 403

  wrong = await async_client.post("/internal/tasks/generate-batch", json={}, headers={"authorization": "Bearer tok-a"})
  assert wrong.status_code == 403


@pytest.mark.anyio
async def test_task_endpoint_accepts_and_runs_batch(async_client) -> None:
  from batchgen.main import app

  fake_service = MagicMock()
  fake_service.process_batch_task = AsyncMock(return_value=BatchSkipped(section_id="sec-1", reason="duplicate"))
  app.dependency_overrides[get_section_service] = lambda: fake_service

  response = await async_client.post(
    "/internal/tasks/generate-batch",
    json={"section_id": "sec-1", "batch_number": 2, "attempt_id": "att-1", "tenant_id": "tenant-a"},
    headers={"x-batchgen-task-secret": "test-task-secret"},
  )

  assert response.status_code == 202
  assert response.json() == {"status": "accepted"}
  fake_service.process_batch_task.assert_awaited_once_with(BatchTask(section_id="sec-1", batch_number=2, attempt_id="att-1", tenant_id="tenant-a"))


@pytest.mark.anyio
async def test_task_payload_rejects_unknown_fields(client) -> None:
  response = await client.post(
    "/internal/tasks/generate-batch",
    json={"section_id": "sec-1", "batch_number": 1, "attempt_id": "att-1", "tenant_id": "tenant-a", "extra": "x"},
    headers={"authorization": "Bearer test-task-secret"},
  )
  assert response.status_code == 422
  assert all("input" not in error for error in response.json()["detail"])


@pytest.mark.anyio
async def test_reap_stale_task(client, repo) -> None:
  repo.add_section(make_section(status="generating", generation_attempt_id="att-1", generation_started_at="2020-01-01T00:00:00Z"))

  response = await client.post("/internal/tasks/reap-stale", json={"tenant_id": "tenant-a"}, headers={"authorization": "Bearer test-task-secret"})

  assert response.status_code == 200
  assert response.json() == {"status": "ok", "reaped": [{"section_id": "sec-1", "action": "reset", "questions_available": 0}]}
