from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from batchgen.generation.models import GeneratedItem, SectionRecord


class SectionSummary(BaseModel):
  """Dashboard view of one section's generation state."""

  section_id: StrictStr
  paper_id: StrictStr
  section_name: StrictStr
  status: StrictStr
  question_count: StrictInt
  target_questions: StrictInt | None
  batch_number: StrictInt
  total_batches: StrictInt | None
  questions_generated_so_far: StrictInt
  generation_attempt_id: StrictStr | None
  generation_started_at: StrictStr | None
  last_batch_completed_at: StrictStr | None
  generation_completed_at: StrictStr | None
  generation_error: StrictStr | None
  batch_metadata: dict[str, Any]

  @classmethod
  def from_record(cls, record: SectionRecord) -> SectionSummary:
    return cls(
      section_id=record.section_id,
      paper_id=record.paper_id,
      section_name=record.section_name,
      status=record.status,
      question_count=record.question_count,
      target_questions=record.target_questions,
      batch_number=record.batch_number,
      total_batches=record.total_batches,
      questions_generated_so_far=record.questions_generated_so_far,
      generation_attempt_id=record.generation_attempt_id,
      generation_started_at=record.generation_started_at,
      last_batch_completed_at=record.last_batch_completed_at,
      generation_completed_at=record.generation_completed_at,
      generation_error=record.generation_error,
      batch_metadata=record.batch_metadata.to_json(),
    )


class SectionListResponse(BaseModel):
  sections: list[SectionSummary]


class GenerationStartedResponse(BaseModel):
  """Response payload when an attempt has been started or restarted."""

  section_id: StrictStr
  status: StrictStr
  generation_attempt_id: StrictStr
  target_questions: StrictInt
  total_batches: StrictInt
  first_batch_triggered: bool


class CleanupResponse(BaseModel):
  section_id: StrictStr
  cleaned: bool
  action: StrictStr | None = None
  questions_available: StrictInt = 0


class QuestionSelectionResponse(BaseModel):
  question_id: StrictStr
  is_selected: bool

  @classmethod
  def from_item(cls, item: GeneratedItem) -> QuestionSelectionResponse:
    return cls(question_id=item.question_id, is_selected=item.is_selected)


class BatchCompletedResponse(BaseModel):
  completed: bool = True
  section_id: StrictStr
  total_generated: StrictInt
  chapters_completed: StrictInt | None = None


class BatchProgressResponse(BaseModel):
  success: bool = True
  batch_number: StrictInt
  total_batches: StrictInt
  questions_generated: StrictInt
  total_generated: StrictInt
  target_questions: StrictInt
  has_more: bool = True
  next_batch_triggered: bool = True


class BatchPartialFailureResponse(BaseModel):
  error: StrictStr
  partial_success: bool = True
  batches_completed: StrictInt
  questions_available: StrictInt
  message: StrictStr


class BatchTaskPayload(BaseModel):
  """Body posted by the task queue for one batch."""

  section_id: StrictStr = Field(min_length=1)
  batch_number: StrictInt = Field(ge=1)
  attempt_id: StrictStr = Field(min_length=1)
  tenant_id: StrictStr = Field(min_length=1)
  model_config = ConfigDict(extra="forbid")


class ReapStalePayload(BaseModel):
  tenant_id: StrictStr = Field(min_length=1)
  model_config = ConfigDict(extra="forbid")
