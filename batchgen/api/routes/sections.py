from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from batchgen.api.deps import get_section_service, require_tenant
from batchgen.api.models import (
  BatchCompletedResponse,
  BatchPartialFailureResponse,
  BatchProgressResponse,
  CleanupResponse,
  GenerationStartedResponse,
  QuestionSelectionResponse,
  SectionListResponse,
  SectionSummary,
)
from batchgen.core.json import DecimalJSONResponse
from batchgen.generation.errors import BatchFailedError, InvalidSectionStateError
from batchgen.generation.orchestrator import BatchCompleted, BatchInProgress, BatchOutcome, BatchPartialFailure
from batchgen.services.sections import AttemptStarted, SectionService

router = APIRouter()
logger = logging.getLogger(__name__)

_MULTI_STATUS = 207


def _started_response(started: AttemptStarted) -> GenerationStartedResponse:
  section = started.section
  if section.generation_attempt_id is None or section.target_questions is None:
    raise InvalidSectionStateError("Section has no active generation attempt")
  return GenerationStartedResponse(
    section_id=section.section_id,
    status=section.status,
    generation_attempt_id=section.generation_attempt_id,
    target_questions=section.target_questions,
    total_batches=section.total_batches or 0,
    first_batch_triggered=started.first_batch_triggered,
  )


def outcome_response(outcome: BatchOutcome) -> DecimalJSONResponse:
  """Render a batch outcome with the status code callers poll on."""
  if isinstance(outcome, BatchCompleted):
    body = BatchCompletedResponse(section_id=outcome.section_id, total_generated=outcome.total_generated, chapters_completed=outcome.chapters_completed)
    return DecimalJSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(exclude_none=True))
  if isinstance(outcome, BatchInProgress):
    body = BatchProgressResponse(
      batch_number=outcome.batch_number,
      total_batches=outcome.total_batches,
      questions_generated=outcome.questions_generated,
      total_generated=outcome.total_generated,
      target_questions=outcome.target_questions,
      next_batch_triggered=outcome.next_batch_triggered,
    )
    return DecimalJSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump())
  if isinstance(outcome, BatchPartialFailure):
    body = BatchPartialFailureResponse(error=outcome.error, batches_completed=outcome.batches_completed, questions_available=outcome.questions_available, message=outcome.message)
    return DecimalJSONResponse(status_code=_MULTI_STATUS, content=body.model_dump())
  raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Batch skipped: {outcome.reason}")


@router.get("/{paper_id}/sections", response_model=SectionListResponse)
async def list_sections(paper_id: str, tenant_id: str = Depends(require_tenant), service: SectionService = Depends(get_section_service)) -> SectionListResponse:  # noqa: B008
  """Dashboard listing; recovers stale generation jobs before reading."""
  records = await service.list_sections(paper_id=paper_id, tenant_id=tenant_id)
  return SectionListResponse(sections=[SectionSummary.from_record(record) for record in records])


@router.post("/{paper_id}/sections/{section_id}/start", status_code=status.HTTP_202_ACCEPTED, response_model=GenerationStartedResponse)
async def start_generation(paper_id: str, section_id: str, tenant_id: str = Depends(require_tenant), service: SectionService = Depends(get_section_service)) -> GenerationStartedResponse:  # noqa: B008
  started = await service.start(section_id, paper_id=paper_id, tenant_id=tenant_id)
  return _started_response(started)


@router.post("/{paper_id}/sections/{section_id}/regenerate", status_code=status.HTTP_202_ACCEPTED, response_model=GenerationStartedResponse)
async def regenerate_section(paper_id: str, section_id: str, tenant_id: str = Depends(require_tenant), service: SectionService = Depends(get_section_service)) -> GenerationStartedResponse:  # noqa: B008
  """Start a fresh attempt; items from earlier attempts are discarded."""
  started = await service.regenerate(section_id, paper_id=paper_id, tenant_id=tenant_id)
  return _started_response(started)


@router.post("/{paper_id}/sections/{section_id}/generate-next-batch")
async def generate_next_batch(paper_id: str, section_id: str, tenant_id: str = Depends(require_tenant), service: SectionService = Depends(get_section_service)) -> DecimalJSONResponse:  # noqa: B008
  try:
    outcome = await service.run_next_batch(section_id, paper_id=paper_id, tenant_id=tenant_id)
  except BatchFailedError as exc:
    return DecimalJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": exc.message})
  return outcome_response(outcome)


@router.post("/{paper_id}/sections/{section_id}/cleanup", response_model=CleanupResponse)
async def cleanup_section(paper_id: str, section_id: str, tenant_id: str = Depends(require_tenant), service: SectionService = Depends(get_section_service)) -> CleanupResponse:  # noqa: B008
  outcome = await service.cleanup(section_id, paper_id=paper_id, tenant_id=tenant_id)
  if outcome is None:
    return CleanupResponse(section_id=section_id, cleaned=False)
  return CleanupResponse(section_id=section_id, cleaned=True, action=outcome.action, questions_available=outcome.questions_available)


@router.post("/{paper_id}/sections/{section_id}/finalize", response_model=SectionSummary)
async def finalize_section(paper_id: str, section_id: str, tenant_id: str = Depends(require_tenant), service: SectionService = Depends(get_section_service)) -> SectionSummary:  # noqa: B008
  record = await service.finalize(section_id, paper_id=paper_id, tenant_id=tenant_id)
  return SectionSummary.from_record(record)


@router.post("/{paper_id}/sections/{section_id}/questions/{question_id}/toggle-selection", response_model=QuestionSelectionResponse)
async def toggle_question_selection(paper_id: str, section_id: str, question_id: str, tenant_id: str = Depends(require_tenant), service: SectionService = Depends(get_section_service)) -> QuestionSelectionResponse:  # noqa: B008
  item = await service.toggle_selection(section_id, question_id, paper_id=paper_id, tenant_id=tenant_id)
  return QuestionSelectionResponse.from_item(item)
