from __future__ import annotations

from batchgen.generation.dedup import DedupEntry, build_dedup_context, render_dedup_block
from batchgen.generation.models import GeneratedItem


def _item(order: int, *, attempt: str = "att-1", chapter: str | None = "c1", text: str | None = None) -> GeneratedItem:
  return GeneratedItem(
    question_id=f"q-{attempt}-{order}",
    section_id="sec-1",
    paper_id="paper-1",
    tenant_id="tenant-a",
    chapter_id=chapter,
    generation_attempt_id=attempt,
    question_order=order,
    batch_number=1,
    question_text=text or f"Question {order}",
    question_data={"archetype": "directRecall", "structuralForm": "standardMCQ"},
  )


def test_context_is_scoped_to_attempt_and_ordered() -> None:
  items = [_item(3), _item(1), _item(2, attempt="att-old")]
  entries = build_dedup_context(items, attempt_id="att-1")
  assert [entry.question_text for entry in entries] == ["Question 1", "Question 3"]


def test_context_is_scoped_to_chapter_when_given() -> None:
  items = [_item(1, chapter="c1"), _item(2, chapter="c2")]
  entries = build_dedup_context(items, attempt_id="att-1", chapter_id="c2")
  assert [entry.chapter_id for entry in entries] == ["c2"]


def test_render_is_empty_without_entries() -> None:
  assert render_dedup_block([]) == ""


def test_render_lists_recent_entries_with_tags() -> None:
  entries = [DedupEntry(question_text=f"Stem {n}", question_data={"archetype": "integrative"}) for n in range(1, 6)]
  block = render_dedup_block(entries, limit=2)
  assert "ALREADY GENERATED QUESTIONS" in block
  assert "5 questions already exist" in block
  assert "(showing the most recent 2)" in block
  assert "1. Stem 4 [integrative]" in block
  assert "Stem 3" not in block


def test_render_truncates_long_stems() -> None:
  block = render_dedup_block([DedupEntry(question_text="word " * 100, question_data={})])
  last_line = block.splitlines()[-1]
  assert last_line.endswith("...")
  assert len(last_line) < 170
