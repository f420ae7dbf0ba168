"""Section lifecycle operations shared by the public and internal routes."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from batchgen.config import Settings
from batchgen.generation.client import ContentClient, GeminiContentClient
from batchgen.generation.continuation import ContinuationTrigger
from batchgen.generation.errors import InvalidSectionStateError, SectionAccessDeniedError, SectionNotFoundError, SelectionIncompleteError, SourceUnavailableError
from batchgen.generation.finalizer import CompletionFinalizer
from batchgen.generation.models import BatchMetadata, GeneratedItem, SectionRecord, compute_target_questions, ensure_transition
from batchgen.generation.modes import RequestBuilder
from batchgen.generation.orchestrator import BatchOrchestrator, BatchOutcome, BatchSkipped
from batchgen.generation.proofreader import Proofreader
from batchgen.generation.protocols import get_protocol_registry
from batchgen.generation.reaper import ReapOutcome, StaleJobReaper
from batchgen.generation.schedule import build_chapter_schedule
from batchgen.services.tasks.interface import TaskEnqueuer
from batchgen.storage.sections_repo import SectionsRepository
from batchgen.utils.clock import now_iso
from batchgen.utils.ids import generate_attempt_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchTask:
  section_id: str
  batch_number: int
  attempt_id: str
  tenant_id: str


@dataclass(frozen=True)
class AttemptStarted:
  section: SectionRecord
  first_batch_triggered: bool


def build_proofreader(settings: Settings, repo: SectionsRepository, client: ContentClient) -> Proofreader | None:
  if not settings.proofreading_enabled:
    return None
  return Proofreader(client, repo, model=settings.proofreading_model, usd_to_inr=settings.usd_to_inr)


def build_orchestrator(settings: Settings, repo: SectionsRepository, client: ContentClient, trigger: ContinuationTrigger) -> BatchOrchestrator:
  """Wire the orchestrator with its collaborators from settings."""
  return BatchOrchestrator(
    repo,
    client,
    registry=get_protocol_registry(),
    request_builder=RequestBuilder(list_materials=repo.list_materials),
    continuation=trigger,
    finalizer=CompletionFinalizer(repo, build_proofreader(settings, repo, client)),
    model=settings.generation_model,
    usd_to_inr=settings.usd_to_inr,
    max_attempts=settings.retry_max_attempts,
    base_delay=settings.retry_base_delay_seconds,
    dedup_limit=settings.dedup_prompt_limit,
  )


class SectionService:
  """Entry points for starting, continuing, recovering and closing out section generation."""

  def __init__(self, repo: SectionsRepository, enqueuer: TaskEnqueuer, *, settings: Settings, trigger: ContinuationTrigger, client: ContentClient | None = None) -> None:
    self._repo = repo
    self._enqueuer = enqueuer
    self._settings = settings
    self._trigger = trigger
    self._client = client
    self._reaper = StaleJobReaper(repo, stale_after_seconds=settings.stale_after_seconds)

  def _content_client(self) -> ContentClient:
    # Built on first use so routes that never generate do not need an API key.
    if self._client is None:
      self._client = GeminiContentClient(self._settings.gemini_api_key, model=self._settings.generation_model, timeout_seconds=self._settings.generation_timeout_seconds)
    return self._client

  def orchestrator(self) -> BatchOrchestrator:
    return build_orchestrator(self._settings, self._repo, self._content_client(), self._trigger)

  async def get_owned(self, section_id: str, *, paper_id: str, tenant_id: str) -> SectionRecord:
    section = await self._repo.get_section(section_id)
    if section is None or section.paper_id != paper_id:
      raise SectionNotFoundError("Section not found")
    if section.tenant_id != tenant_id:
      raise SectionAccessDeniedError("Access denied")
    return section

  async def _begin_attempt(self, section: SectionRecord) -> AttemptStarted:
    chapters = await self._repo.list_chapters(section.section_id)
    if not chapters:
      raise SourceUnavailableError("No chapters assigned to this section")
    # Fail before any state change when the exam has no protocol.
    get_protocol_registry().resolve(section.stream_name, section.subject_name)

    target = compute_target_questions(section.question_count)
    batch_size = self._settings.batch_size
    attempt_id = generate_attempt_id()
    changes = {
      "status": "generating",
      "target_questions": target,
      "batch_size": batch_size,
      "batch_number": 0,
      "total_batches": math.ceil(target / batch_size),
      "questions_generated_so_far": 0,
      "batch_metadata": BatchMetadata(chapter_schedule=build_chapter_schedule(chapters, target)),
      "generation_attempt_id": attempt_id,
      "generation_started_at": now_iso(),
      "last_batch_completed_at": None,
      "generation_completed_at": None,
      "generation_error": None,
    }
    updated = await self._repo.update_section(section.section_id, changes, expected_version=section.version)
    removed = await self._repo.delete_items_except_attempt(section.section_id, attempt_id=attempt_id)
    logger.info("Section %s attempt %s started: target=%d over %d chapter(s), %d earlier item(s) removed", section.section_id, attempt_id, target, len(chapters), removed)

    try:
      await self._enqueuer.enqueue_batch(section_id=section.section_id, batch_number=1, attempt_id=attempt_id, tenant_id=section.tenant_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed to enqueue first batch for section %s: %s", section.section_id, exc)
      await self._repo.record_diagnostic(section.section_id, "Batch 1 trigger failed. Regenerate to start again.")
      return AttemptStarted(section=updated, first_batch_triggered=False)
    return AttemptStarted(section=updated, first_batch_triggered=True)

  async def start(self, section_id: str, *, paper_id: str, tenant_id: str) -> AttemptStarted:
    section = await self.get_owned(section_id, paper_id=paper_id, tenant_id=tenant_id)
    if section.status != "ready":
      raise InvalidSectionStateError(f"Section must be ready to start generation (current status: {section.status})")
    return await self._begin_attempt(section)

  async def regenerate(self, section_id: str, *, paper_id: str, tenant_id: str) -> AttemptStarted:
    section = await self.get_owned(section_id, paper_id=paper_id, tenant_id=tenant_id)
    # A dead continuation chain is recovered first so the section can be regenerated.
    if await self._reaper.reap(section) is not None:
      section = await self.get_owned(section_id, paper_id=paper_id, tenant_id=tenant_id)
    ensure_transition(section.status, "generating")
    return await self._begin_attempt(section)

  async def run_next_batch(self, section_id: str, *, paper_id: str, tenant_id: str) -> BatchOutcome:
    await self.get_owned(section_id, paper_id=paper_id, tenant_id=tenant_id)
    return await self.orchestrator().run_batch(section_id, tenant_id=tenant_id)

  async def process_batch_task(self, task: BatchTask) -> BatchOutcome:
    """Run a queued batch; deliveries for stale attempts or finished batches are skipped."""
    section = await self._repo.get_section(task.section_id)
    if section is None:
      logger.warning("Batch task for unknown section %s dropped", task.section_id)
      return BatchSkipped(section_id=task.section_id, reason="not-found")
    if section.tenant_id != task.tenant_id:
      logger.warning("Batch task tenant mismatch for section %s dropped", task.section_id)
      return BatchSkipped(section_id=task.section_id, reason="tenant-mismatch")
    if section.generation_attempt_id != task.attempt_id:
      logger.info("Batch task for superseded attempt %s of section %s skipped", task.attempt_id, task.section_id)
      return BatchSkipped(section_id=task.section_id, reason="stale-attempt")
    if task.batch_number <= section.batch_number:
      logger.info("Batch %d of section %s already committed; duplicate delivery skipped", task.batch_number, task.section_id)
      return BatchSkipped(section_id=task.section_id, reason="duplicate")
    return await self.orchestrator().run_batch(task.section_id, tenant_id=task.tenant_id)

  async def cleanup(self, section_id: str, *, paper_id: str, tenant_id: str) -> ReapOutcome | None:
    section = await self.get_owned(section_id, paper_id=paper_id, tenant_id=tenant_id)
    return await self._reaper.reap(section)

  async def reap_stale(self, tenant_id: str) -> list[ReapOutcome]:
    return await self._reaper.reap_stale(tenant_id)

  async def list_sections(self, *, paper_id: str, tenant_id: str) -> list[SectionRecord]:
    """Dashboard listing; stale jobs are recovered before the rows are read."""
    outcomes = await self._reaper.reap_stale(tenant_id)
    if outcomes:
      logger.info("Recovered %d stale section(s) for tenant %s", len(outcomes), tenant_id)
    return await self._repo.list_sections(paper_id=paper_id, tenant_id=tenant_id)

  async def finalize(self, section_id: str, *, paper_id: str, tenant_id: str) -> SectionRecord:
    section = await self.get_owned(section_id, paper_id=paper_id, tenant_id=tenant_id)
    ensure_transition(section.status, "finalized")
    selected = 0
    if section.generation_attempt_id:
      selected = await self._repo.count_selected(section_id, attempt_id=section.generation_attempt_id)
    if selected < section.question_count:
      raise SelectionIncompleteError(f"Select at least {section.question_count} questions before finalizing (currently {selected})")
    return await self._repo.update_section(section_id, {"status": "finalized"}, expected_version=section.version)

  async def toggle_selection(self, section_id: str, question_id: str, *, paper_id: str, tenant_id: str) -> GeneratedItem:
    section = await self.get_owned(section_id, paper_id=paper_id, tenant_id=tenant_id)
    if section.status == "finalized":
      raise InvalidSectionStateError("Finalized sections cannot change their selection")
    item = await self._repo.toggle_selection(section_id, question_id)
    if item is None:
      raise SectionNotFoundError("Question not found")
    return item


_TRIGGER: ContinuationTrigger | None = None


def get_continuation_trigger(repo: SectionsRepository, enqueuer: TaskEnqueuer) -> ContinuationTrigger:
  """Process-wide trigger so pending dispatches can be drained on shutdown."""
  global _TRIGGER
  if _TRIGGER is None:
    _TRIGGER = ContinuationTrigger(enqueuer, repo)
  return _TRIGGER


async def drain_continuations() -> None:
  if _TRIGGER is not None:
    await _TRIGGER.drain()
