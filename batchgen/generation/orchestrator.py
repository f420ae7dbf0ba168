"""Runs one bounded batch of a section's generation job.

Each invocation re-reads the persisted section, generates at most one batch, commits it together
with the updated counters, and either hands off to the next invocation or finalizes the section.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any, Union

from batchgen.generation.client import ContentClient
from batchgen.generation.continuation import ContinuationTrigger
from batchgen.generation.dedup import build_dedup_context, render_dedup_block
from batchgen.generation.errors import BatchFailedError, InvalidSectionStateError, RetryExhaustedError, SectionAccessDeniedError, SectionNotFoundError, SourceUnavailableError
from batchgen.generation.finalizer import CompletionFinalizer
from batchgen.generation.models import BatchAuditEntry, ChapterRef, GeneratedItem, SectionRecord
from batchgen.generation.modes import AI_KNOWLEDGE_CHAPTER, RequestBuilder, resolve_generation_mode
from batchgen.generation.pricing import calculate_cost
from batchgen.generation.protocols import ProtocolRegistry, map_difficulty_to_config
from batchgen.generation.retry import generate_with_retry
from batchgen.generation.schedule import ChapterScheduler, ScheduleDecision, batch_size_for
from batchgen.generation.validator import validate_items
from batchgen.storage.sections_repo import SectionsRepository
from batchgen.utils.clock import now_iso
from batchgen.utils.ids import generate_question_id

logger = logging.getLogger(__name__)

_BILINGUAL_KEYS = ("questionText_en", "options_en", "explanation_en")


@dataclass(frozen=True)
class BatchCompleted:
  section_id: str
  total_generated: int
  chapters_completed: int | None = None


@dataclass(frozen=True)
class BatchInProgress:
  section_id: str
  batch_number: int
  total_batches: int
  questions_generated: int
  total_generated: int
  target_questions: int
  next_batch_triggered: bool = True


@dataclass(frozen=True)
class BatchPartialFailure:
  section_id: str
  error: str
  batches_completed: int
  questions_available: int
  message: str


@dataclass(frozen=True)
class BatchSkipped:
  section_id: str
  reason: str


BatchOutcome = Union[BatchCompleted, BatchInProgress, BatchPartialFailure, BatchSkipped]


def _total_batches(section: SectionRecord) -> int:
  if section.total_batches:
    return section.total_batches
  return math.ceil(section.effective_target / section.batch_size)


def build_item(section: SectionRecord, raw: dict[str, Any], *, chapter_id: str | None, order: int, batch_number: int) -> GeneratedItem:
  """Map one model question onto a stored item."""
  question_data: dict[str, Any] = {
    "options": raw.get("options"),
    "correctAnswer": raw.get("correctAnswer"),
    "archetype": raw.get("archetype"),
    "structuralForm": raw.get("structuralForm"),
    "cognitiveLoad": raw.get("cognitiveLoad"),
    "difficulty": raw.get("difficulty"),
    "ncertFidelity": raw.get("ncertFidelity"),
    "language": raw.get("language") or ("bilingual" if section.is_bilingual else "hindi"),
  }
  for key in _BILINGUAL_KEYS:
    if raw.get(key):
      question_data[key] = raw[key]

  if section.generation_attempt_id is None:
    raise InvalidSectionStateError("Section has no active generation attempt")
  return GeneratedItem(
    question_id=generate_question_id(),
    section_id=section.section_id,
    paper_id=section.paper_id,
    tenant_id=section.tenant_id,
    chapter_id=chapter_id,
    generation_attempt_id=section.generation_attempt_id,
    question_order=order,
    batch_number=batch_number,
    question_text=str(raw.get("questionText") or ""),
    question_data=question_data,
    explanation=raw.get("explanation") or None,
    marks=section.marks_per_question,
    negative_marks=section.negative_marks,
  )


def partial_failure_message(*, batch_number: int, total_batches: int, attempts: int, available: int, completed: int, error: str) -> str:
  return f"Batch {batch_number}/{total_batches} failed after {attempts} retry attempts. {available} questions from {completed} successful batch(es) are available for review. Error: {error}"


class BatchOrchestrator:
  """Generates the next batch for a section and decides what happens after it."""

  def __init__(
    self,
    repo: SectionsRepository,
    client: ContentClient,
    *,
    registry: ProtocolRegistry,
    request_builder: RequestBuilder,
    continuation: ContinuationTrigger,
    finalizer: CompletionFinalizer,
    model: str,
    usd_to_inr: float = 83.0,
    max_attempts: int = 3,
    base_delay: float = 2.0,
    dedup_limit: int = 150,
    scheduler: ChapterScheduler | None = None,
    sleep=asyncio.sleep,
  ) -> None:
    self._repo = repo
    self._client = client
    self._registry = registry
    self._request_builder = request_builder
    self._continuation = continuation
    self._finalizer = finalizer
    self._model = model
    self._usd_to_inr = usd_to_inr
    self._max_attempts = max_attempts
    self._base_delay = base_delay
    self._dedup_limit = dedup_limit
    self._scheduler = scheduler or ChapterScheduler()
    self._sleep = sleep

  async def _load(self, section_id: str, tenant_id: str) -> SectionRecord:
    section = await self._repo.get_section(section_id)
    if section is None:
      raise SectionNotFoundError("Section not found")
    if section.tenant_id != tenant_id:
      raise SectionAccessDeniedError("Section belongs to another tenant")
    return section

  def _pick_chapter(self, decision: ScheduleDecision, chapters: Sequence[ChapterRef], mode: str) -> ChapterRef:
    if mode == "self-knowledge":
      for chapter in chapters:
        if chapter.chapter_name == AI_KNOWLEDGE_CHAPTER:
          return chapter
    if decision.active is not None:
      for chapter in chapters:
        if chapter.chapter_id == decision.active.chapter_id:
          return chapter
      return ChapterRef(chapter_id=decision.active.chapter_id, chapter_name=decision.active.chapter_name)
    if not chapters:
      raise SourceUnavailableError("No chapters assigned to section")
    # Sections started without a schedule draw from their first chapter.
    return min(chapters, key=lambda chapter: chapter.position)

  async def run_batch(self, section_id: str, *, tenant_id: str) -> BatchOutcome:
    section = await self._load(section_id, tenant_id)

    if section.status in ("in_review", "finalized"):
      logger.info("Section %s already %s; nothing to generate", section_id, section.status)
      return BatchCompleted(section_id=section_id, total_generated=section.questions_generated_so_far)
    if section.status != "generating":
      raise InvalidSectionStateError(f"Section is {section.status}, not generating")
    if not section.generation_attempt_id:
      raise InvalidSectionStateError("Section has no active generation attempt")

    target = section.effective_target
    remaining = section.remaining
    next_batch = section.batch_number + 1
    logger.info("Batch %d for section %s: %d/%d generated, %d remaining", next_batch, section_id, section.questions_generated_so_far, target, remaining)

    if remaining <= 0:
      await self._finalizer.finalize(section)
      return BatchCompleted(section_id=section_id, total_generated=section.questions_generated_so_far)

    decision = self._scheduler.resolve(section.batch_metadata)
    if decision.all_complete:
      logger.info("All %d chapters complete for section %s", len(decision.metadata.chapter_schedule), section_id)
      await self._finalizer.finalize(section)
      return BatchCompleted(section_id=section_id, total_generated=section.questions_generated_so_far, chapters_completed=len(decision.metadata.chapter_schedule))

    this_batch = batch_size_for(decision, batch_size=section.batch_size, global_remaining=remaining)

    chapters = await self._repo.list_chapters(section_id)
    mode = resolve_generation_mode(section, chapters)
    chapter = self._pick_chapter(decision, chapters, mode)
    protocol = self._registry.resolve(section.stream_name, section.subject_name)
    config = map_difficulty_to_config(protocol, section.difficulty_level, this_batch)
    logger.info("Section %s batch %d: mode=%s chapter=%s protocol=%s size=%d", section_id, next_batch, mode, chapter.chapter_name, protocol.protocol_id, this_batch)

    scope_chapter = decision.active.chapter_id if decision.active else None
    previous = await self._repo.list_items(section_id, attempt_id=section.generation_attempt_id, chapter_id=scope_chapter)
    dedup_block = render_dedup_block(build_dedup_context(previous, attempt_id=section.generation_attempt_id, chapter_id=scope_chapter), limit=self._dedup_limit)

    claimed = await self._repo.claim_batch(section_id, expected_version=section.version)
    if claimed is None:
      logger.info("Section %s batch %d already claimed by another invocation", section_id, next_batch)
      return BatchSkipped(section_id=section_id, reason="claimed")

    request = await self._request_builder.build(claimed, mode=mode, protocol=protocol, config=config, chapter=chapter, question_count=this_batch, dedup_block=dedup_block, model=self._model)

    async def heartbeat() -> None:
      await self._repo.touch_heartbeat(section_id, at=now_iso())

    try:
      result = await generate_with_retry(self._client, request, heartbeat=heartbeat, max_attempts=self._max_attempts, base_delay=self._base_delay, sleep=self._sleep)
    except RetryExhaustedError as exc:
      return await self._handle_exhausted(claimed, exc, next_batch)

    raw_items = result.items[:this_batch]
    if len(result.items) > this_batch:
      logger.info("Model returned %d items for a batch of %d; keeping the first %d", len(result.items), this_batch, this_batch)

    report = validate_items(raw_items, protocol.validators)
    for message in report.errors:
      logger.warning("Validation error (section %s batch %d): %s", section_id, next_batch, message)
    for message in report.warnings:
      logger.info("Validation warning (section %s batch %d): %s", section_id, next_batch, message)

    base_order = claimed.questions_generated_so_far
    chapter_id = decision.active.chapter_id if decision.active is not None else chapter.chapter_id
    items = [build_item(claimed, raw, chapter_id=chapter_id, order=base_order + index + 1, batch_number=next_batch) for index, raw in enumerate(raw_items)]
    new_total = base_order + len(items)

    completed_at = now_iso()
    metadata = decision.metadata
    if decision.index is not None and decision.active is not None:
      metadata = metadata.with_chapter_progress(decision.index, len(items))
    metadata = metadata.with_batch(
      next_batch,
      BatchAuditEntry(generated_at=completed_at, questions_count=len(items), tokens_used=result.usage.total_tokens, cost_inr=calculate_cost(result.usage, self._model, usd_to_inr=self._usd_to_inr)),
    )
    changes = {"batch_number": next_batch, "questions_generated_so_far": new_total, "batch_metadata": metadata, "last_batch_completed_at": completed_at, "generation_error": None}
    committed = await self._repo.commit_batch(section_id, expected_version=claimed.version, items=items, changes=changes)
    logger.info("Inserted %d questions for section %s batch %d (%d/%d)", len(items), section_id, next_batch, new_total, target)

    if committed.remaining > 0:
      self._continuation.fire(committed, next_batch + 1)
      return BatchInProgress(
        section_id=section_id,
        batch_number=next_batch,
        total_batches=_total_batches(committed),
        questions_generated=len(items),
        total_generated=new_total,
        target_questions=target,
      )

    await self._finalizer.finalize(committed)
    logger.info("Section %s complete with %d questions", section_id, new_total)
    return BatchCompleted(section_id=section_id, total_generated=new_total)

  async def _handle_exhausted(self, section: SectionRecord, exc: RetryExhaustedError, batch_number: int) -> BatchOutcome:
    completed = section.batch_number
    available = section.questions_generated_so_far
    message = partial_failure_message(batch_number=batch_number, total_batches=_total_batches(section), attempts=exc.attempts, available=available, completed=completed, error=str(exc.last_failure))

    if completed == 0:
      logger.error("Section %s failed on its first batch: %s", section.section_id, message)
      await self._repo.record_diagnostic(section.section_id, message)
      raise BatchFailedError(message) from exc

    logger.warning("Graceful failure for section %s: %s", section.section_id, message)
    # Heartbeat refreshes leave the version alone, so the claimed record is still current.
    await self._finalizer.finalize(replace(section, generation_error=message), generation_error=message)
    return BatchPartialFailure(section_id=section.section_id, error=str(exc.last_failure), batches_completed=completed, questions_available=available, message=message)
