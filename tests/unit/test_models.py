from __future__ import annotations

import pytest

from batchgen.generation.errors import InvalidSectionStateError
from batchgen.generation.models import BatchAuditEntry, BatchMetadata, ChapterScheduleEntry, ProofreadingStats, compute_target_questions, ensure_transition
from fakes import make_section


def test_compute_target_questions_over_generates_by_half() -> None:
  assert compute_target_questions(30) == 45
  assert compute_target_questions(25) == 38
  assert compute_target_questions(1) == 2


def test_effective_target_prefers_frozen_value() -> None:
  assert make_section(question_count=30).effective_target == 45
  assert make_section(question_count=30, target_questions=50).effective_target == 50


def test_allowed_and_rejected_transitions() -> None:
  ensure_transition("ready", "generating")
  ensure_transition("generating", "in_review")
  ensure_transition("in_review", "generating")
  ensure_transition("in_review", "finalized")
  with pytest.raises(InvalidSectionStateError):
    ensure_transition("finalized", "generating")
  with pytest.raises(InvalidSectionStateError):
    ensure_transition("pending", "generating")


def test_batch_metadata_json_keeps_flat_counters_and_batches() -> None:
  metadata = BatchMetadata(chapter_schedule=(ChapterScheduleEntry("c1", "Cell", 20, 7),), current_chapter_index=0)
  metadata = metadata.with_batch(1, BatchAuditEntry(generated_at="2026-01-01T00:00:00Z", questions_count=7, tokens_used=1200, cost_inr=0.5))
  payload = metadata.to_json()
  assert payload["chapterSchedule"][0]["questions_generated"] == 7
  assert payload["chapter_c1_generated"] == 7
  assert payload["batch_1"]["tokens_used"] == 1200
  assert BatchMetadata.from_json(payload) == metadata


def test_batch_metadata_reads_legacy_flat_counters() -> None:
  raw = {"chapterSchedule": [{"chapter_id": "c1", "chapter_name": "Cell", "questions_target": 20}], "chapter_c1_generated": 12}
  metadata = BatchMetadata.from_json(raw)
  assert metadata.chapter_schedule[0].questions_generated == 12


@pytest.mark.parametrize(
  "raw",
  [
    "not-an-object",
    {"chapterSchedule": "nope"},
    {"chapterSchedule": [{"chapter_name": "missing id", "questions_target": 3}]},
    {"chapterSchedule": [{"chapter_id": "c1", "questions_target": -1}]},
    {"chapterSchedule": [{"chapter_id": "c1", "questions_target": 3}], "current_chapter_index": 5},
  ],
)
def test_batch_metadata_rejects_malformed_shapes(raw) -> None:
  with pytest.raises(ValueError):
    BatchMetadata.from_json(raw)


def test_with_chapter_progress_credits_and_moves_index() -> None:
  metadata = BatchMetadata(chapter_schedule=(ChapterScheduleEntry("c1", "A", 10, 10), ChapterScheduleEntry("c2", "B", 10, 0)))
  updated = metadata.with_chapter_progress(1, 4)
  assert updated.current_chapter_index == 1
  assert updated.chapter_schedule[1].questions_generated == 4
  assert metadata.chapter_schedule[1].questions_generated == 0


def test_proofreading_stats_error_only_serialized_when_present() -> None:
  ok = ProofreadingStats(status="completed", started_at="t0", completed_at="t1")
  failed = ProofreadingStats(status="failed", started_at="t0", error="boom")
  assert "error" not in ok.to_dict()
  assert ProofreadingStats.from_dict(failed.to_dict()) == failed
