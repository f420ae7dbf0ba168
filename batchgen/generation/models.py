"""Domain models for progressive section generation."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from batchgen.generation.errors import InvalidSectionStateError

SectionStatus = Literal["pending", "ready", "generating", "in_review", "finalized"]
DifficultyLevel = Literal["easy", "balanced", "hard"]

OVER_GENERATION_FACTOR = 1.5
DEFAULT_BATCH_SIZE = 30

# Regeneration re-enters "generating" from either resting state; the reaper is the only way back to "ready".
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
  "pending": frozenset({"ready"}),
  "ready": frozenset({"generating"}),
  "generating": frozenset({"in_review", "ready"}),
  "in_review": frozenset({"generating", "finalized"}),
  "finalized": frozenset(),
}


def ensure_transition(current: str, target: str) -> None:
  """Raise when the section lifecycle does not allow current -> target."""
  if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
    raise InvalidSectionStateError(f"Section cannot move from '{current}' to '{target}'.")


def compute_target_questions(question_count: int) -> int:
  """Over-generate so the review step has a surplus pool to select from."""
  return math.ceil(question_count * OVER_GENERATION_FACTOR)


def _require_int(raw: dict[str, Any], key: str, *, default: int | None = None) -> int:
  value = raw.get(key, default)
  if isinstance(value, bool) or not isinstance(value, int | float) or value < 0:
    raise ValueError(f"Expected non-negative integer for '{key}', got {value!r}")
  return int(value)


@dataclass(frozen=True)
class ChapterScheduleEntry:
  """One chapter's quota within a section's sequential schedule."""

  chapter_id: str
  chapter_name: str
  questions_target: int
  questions_generated: int = 0

  @property
  def remaining(self) -> int:
    return max(self.questions_target - self.questions_generated, 0)

  @property
  def exhausted(self) -> bool:
    return self.questions_generated >= self.questions_target

  @classmethod
  def from_dict(cls, raw: Any, *, legacy_counts: dict[str, Any] | None = None) -> ChapterScheduleEntry:
    if not isinstance(raw, dict):
      raise ValueError(f"Chapter schedule entry must be an object, got {type(raw).__name__}")
    chapter_id = raw.get("chapter_id")
    if not isinstance(chapter_id, str) or not chapter_id:
      raise ValueError("Chapter schedule entry is missing 'chapter_id'")
    generated_default = 0
    # Older rows only tracked progress in flat chapter_<id>_generated keys.
    if legacy_counts is not None:
      generated_default = int(legacy_counts.get(f"chapter_{chapter_id}_generated") or 0)
    return cls(
      chapter_id=chapter_id,
      chapter_name=str(raw.get("chapter_name") or ""),
      questions_target=_require_int(raw, "questions_target"),
      questions_generated=_require_int(raw, "questions_generated", default=generated_default),
    )

  def to_dict(self) -> dict[str, Any]:
    return {"chapter_id": self.chapter_id, "chapter_name": self.chapter_name, "questions_target": self.questions_target, "questions_generated": self.questions_generated}


@dataclass(frozen=True)
class BatchAuditEntry:
  """Usage audit for one completed sub-job."""

  generated_at: str
  questions_count: int
  tokens_used: int
  cost_inr: float

  @classmethod
  def from_dict(cls, raw: Any) -> BatchAuditEntry:
    if not isinstance(raw, dict):
      raise ValueError("Batch audit entry must be an object")
    return cls(generated_at=str(raw.get("generated_at") or ""), questions_count=_require_int(raw, "questions_count", default=0), tokens_used=_require_int(raw, "tokens_used", default=0), cost_inr=float(raw.get("cost_inr") or 0.0))

  def to_dict(self) -> dict[str, Any]:
    return {"generated_at": self.generated_at, "questions_count": self.questions_count, "tokens_used": self.tokens_used, "cost_inr": self.cost_inr}


@dataclass(frozen=True)
class ProofreadingStats:
  """Outcome of the post-generation proofreading pass."""

  status: Literal["completed", "failed", "skipped"]
  started_at: str
  completed_at: str | None = None
  batches_processed: int = 0
  questions_checked: int = 0
  issues_found: int = 0
  corrections_applied: tuple[str, ...] = ()
  total_tokens_used: int = 0
  total_cost_inr: float = 0.0
  error: str | None = None

  @classmethod
  def from_dict(cls, raw: Any) -> ProofreadingStats:
    if not isinstance(raw, dict):
      raise ValueError("Proofreading stats must be an object")
    return cls(
      status=raw.get("status", "failed"),
      started_at=str(raw.get("started_at") or ""),
      completed_at=raw.get("completed_at"),
      batches_processed=int(raw.get("batches_processed") or 0),
      questions_checked=int(raw.get("questions_checked") or 0),
      issues_found=int(raw.get("issues_found") or 0),
      corrections_applied=tuple(str(item) for item in raw.get("corrections_applied") or ()),
      total_tokens_used=int(raw.get("total_tokens_used") or 0),
      total_cost_inr=float(raw.get("total_cost_inr") or 0.0),
      error=raw.get("error"),
    )

  def to_dict(self) -> dict[str, Any]:
    payload: dict[str, Any] = {
      "status": self.status,
      "started_at": self.started_at,
      "completed_at": self.completed_at,
      "batches_processed": self.batches_processed,
      "questions_checked": self.questions_checked,
      "issues_found": self.issues_found,
      "corrections_applied": list(self.corrections_applied),
      "total_tokens_used": self.total_tokens_used,
      "total_cost_inr": self.total_cost_inr,
    }
    if self.error is not None:
      payload["error"] = self.error
    return payload


@dataclass(frozen=True)
class BatchMetadata:
  """Typed view over the section's batch_metadata JSON column."""

  chapter_schedule: tuple[ChapterScheduleEntry, ...] = ()
  current_chapter_index: int = 0
  batches: dict[int, BatchAuditEntry] = field(default_factory=dict)
  proofreading: ProofreadingStats | None = None

  @property
  def scheduled(self) -> bool:
    return len(self.chapter_schedule) > 0

  @property
  def chapter_generated_total(self) -> int:
    return sum(entry.questions_generated for entry in self.chapter_schedule)

  @classmethod
  def from_json(cls, raw: dict[str, Any] | None) -> BatchMetadata:
    """Validate and convert the stored JSON, raising ValueError on malformed shapes."""
    if raw is None:
      return cls()
    if not isinstance(raw, dict):
      raise ValueError("batch_metadata must be a JSON object")

    schedule_raw = raw.get("chapterSchedule") or []
    if not isinstance(schedule_raw, list):
      raise ValueError("chapterSchedule must be a list")
    schedule = tuple(ChapterScheduleEntry.from_dict(entry, legacy_counts=raw) for entry in schedule_raw)

    index = _require_int(raw, "current_chapter_index", default=0)
    if schedule and index > len(schedule):
      raise ValueError(f"current_chapter_index {index} is outside a schedule of {len(schedule)} chapters")

    batches: dict[int, BatchAuditEntry] = {}
    for key, value in raw.items():
      if key.startswith("batch_") and key[len("batch_") :].isdigit():
        batches[int(key[len("batch_") :])] = BatchAuditEntry.from_dict(value)

    proofreading_raw = raw.get("proofreading")
    proofreading = ProofreadingStats.from_dict(proofreading_raw) if proofreading_raw is not None else None
    return cls(chapter_schedule=schedule, current_chapter_index=index, batches=batches, proofreading=proofreading)

  def to_json(self) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if self.chapter_schedule:
      payload["chapterSchedule"] = [entry.to_dict() for entry in self.chapter_schedule]
      payload["current_chapter_index"] = self.current_chapter_index
      # Flat counters stay in sync for readers that predate the typed schedule.
      for entry in self.chapter_schedule:
        payload[f"chapter_{entry.chapter_id}_generated"] = entry.questions_generated
    for number in sorted(self.batches):
      payload[f"batch_{number}"] = self.batches[number].to_dict()
    if self.proofreading is not None:
      payload["proofreading"] = self.proofreading.to_dict()
    return payload

  def with_batch(self, number: int, entry: BatchAuditEntry) -> BatchMetadata:
    batches = dict(self.batches)
    batches[number] = entry
    return replace(self, batches=batches)

  def with_chapter_progress(self, index: int, added: int) -> BatchMetadata:
    """Credit `added` items to the chapter at `index` and make it current."""
    schedule = list(self.chapter_schedule)
    entry = schedule[index]
    schedule[index] = replace(entry, questions_generated=entry.questions_generated + added)
    return replace(self, chapter_schedule=tuple(schedule), current_chapter_index=index)

  def with_proofreading(self, stats: ProofreadingStats) -> BatchMetadata:
    return replace(self, proofreading=stats)


@dataclass
class SectionRecord:
  """Durable state for one section's generation job."""

  section_id: str
  paper_id: str
  tenant_id: str
  subject_id: str
  section_name: str
  stream_name: str
  subject_name: str
  question_count: int
  status: SectionStatus
  difficulty_level: DifficultyLevel = "balanced"
  is_bilingual: bool = False
  is_source_of_scope: bool = False
  marks_per_question: float = 1.0
  negative_marks: float = 0.0
  target_questions: int | None = None
  batch_size: int = DEFAULT_BATCH_SIZE
  batch_number: int = 0
  total_batches: int | None = None
  questions_generated_so_far: int = 0
  batch_metadata: BatchMetadata = field(default_factory=BatchMetadata)
  generation_attempt_id: str | None = None
  generation_started_at: str | None = None
  last_batch_completed_at: str | None = None
  generation_completed_at: str | None = None
  generation_error: str | None = None
  version: int = 0
  updated_at: str | None = None

  @property
  def effective_target(self) -> int:
    """The frozen target, or the derived one for rows that never started."""
    if self.target_questions is not None:
      return self.target_questions
    return compute_target_questions(self.question_count)

  @property
  def remaining(self) -> int:
    return self.effective_target - self.questions_generated_so_far


@dataclass
class GeneratedItem:
  """One accepted question persisted for a section attempt."""

  question_id: str
  section_id: str
  paper_id: str
  tenant_id: str
  chapter_id: str | None
  generation_attempt_id: str
  question_order: int
  batch_number: int
  question_text: str
  question_data: dict[str, Any]
  explanation: str | None = None
  marks: float = 1.0
  negative_marks: float = 0.0
  is_selected: bool = False


@dataclass(frozen=True)
class ChapterRef:
  """A chapter assigned to a section."""

  chapter_id: str
  chapter_name: str
  position: int = 0
  knowledge: dict[str, Any] | None = None
  knowledge_status: str | None = None


@dataclass(frozen=True)
class SourceMaterial:
  """An uploaded source document backing a chapter."""

  chapter_id: str
  title: str
  file_url: str
  mime_type: str = "application/pdf"


@dataclass(frozen=True)
class TokenUsage:
  prompt_tokens: int = 0
  completion_tokens: int = 0
  total_tokens: int = 0

  def __add__(self, other: TokenUsage) -> TokenUsage:
    return TokenUsage(self.prompt_tokens + other.prompt_tokens, self.completion_tokens + other.completion_tokens, self.total_tokens + other.total_tokens)
