"""Unit tests for proofreading batching and correction handling."""

from __future__ import annotations

import pytest

from batchgen.generation.errors import ApiFailure
from batchgen.generation.finalizer import CompletionFinalizer
from batchgen.generation.models import GeneratedItem
from batchgen.generation.proofreader import Proofreader, minimal_payload, parse_corrections, plan_batch_sizes
from fakes import FakeContentClient, make_section


def _item(order: int, *, text: str = "Short stem") -> GeneratedItem:
  return GeneratedItem(
    question_id=f"q-{order}",
    section_id="sec-1",
    paper_id="paper-1",
    tenant_id="tenant-a",
    chapter_id="c1",
    generation_attempt_id="att-1",
    question_order=order,
    batch_number=1,
    question_text=text,
    question_data={"options": {"(1)": "a", "(2)": "b", "(3)": "c", "(4)": "d"}, "correctAnswer": "(1)"},
    explanation="Because (1).",
  )


async def _no_sleep(delay: float) -> None:
  return None


def test_small_attempts_are_reviewed_in_one_batch() -> None:
  assert plan_batch_sizes([]) == []
  assert plan_batch_sizes([_item(n) for n in range(45)]) == [45]
  assert plan_batch_sizes([_item(n) for n in range(70)]) == [70]


def test_large_attempts_are_split_evenly() -> None:
  assert plan_batch_sizes([_item(n) for n in range(135)]) == [68, 67]


def test_long_items_lower_the_batch_ceiling() -> None:
  long_items = [_item(n, text="x" * 600) for n in range(140)]
  sizes = plan_batch_sizes(long_items)
  assert sizes == [47, 47, 46]
  assert sum(sizes) == 140


def test_parse_corrections_ignores_unknown_ids_and_bad_shapes() -> None:
  document = {
    "corrections": [
      {"questionId": "q-1", "issue": "wrong key", "corrected": {"id": "q-1", "correctAnswer": "(2)", "explanation": "Because (2)."}},
      {"questionId": "q-404", "corrected": {"correctAnswer": "(3)"}},
      {"questionId": "q-2", "corrected": "not-an-object"},
      "noise",
    ]
  }
  corrections = parse_corrections(document, {"q-1", "q-2"})
  assert len(corrections) == 1
  assert corrections[0].question_id == "q-1"
  assert corrections[0].correct_answer == "(2)"
  assert corrections[0].options is None
  assert parse_corrections(["not", "a", "dict"], {"q-1"}) == []


def test_minimal_payload_shape() -> None:
  assert minimal_payload(_item(1)) == {"id": "q-1", "question": "Short stem", "options": {"(1)": "a", "(2)": "b", "(3)": "c", "(4)": "d"}, "correctAnswer": "(1)", "explanation": "Because (1)."}


@pytest.mark.anyio
async def test_proofread_applies_corrections(repo) -> None:
  section = repo.add_section(make_section(status="generating", generation_attempt_id="att-1"))
  repo.add_items([_item(1), _item(2)])
  client = FakeContentClient(documents=[{"corrections": [{"questionId": "q-2", "corrected": {"question": "Fixed stem", "correctAnswer": "(3)"}}]}])

  stats = await Proofreader(client, repo, model="gemini-3-pro-preview", usd_to_inr=83.0).proofread(section)

  assert stats.status == "completed"
  assert stats.batches_processed == 1
  assert stats.questions_checked == 2
  assert stats.issues_found == 1
  assert stats.corrections_applied == ("q-2",)
  assert stats.total_tokens_used == 100
  fixed = repo.items["q-2"]
  assert fixed.question_text == "Fixed stem"
  assert fixed.question_data["correctAnswer"] == "(3)"
  assert fixed.question_data["proofread"] is True
  assert '"id": "q-1"' in client.prompts[0]


@pytest.mark.anyio
async def test_proofread_retries_once_then_reports_failure(repo) -> None:
  section = repo.add_section(make_section(status="generating", generation_attempt_id="att-1"))
  repo.add_items([_item(1)])
  client = FakeContentClient(documents=[ApiFailure("overloaded"), ApiFailure("still overloaded")])

  stats = await Proofreader(client, repo, model="gemini-3-pro-preview", usd_to_inr=83.0, sleep=_no_sleep).proofread(section)

  assert stats.status == "failed"
  assert stats.error == "still overloaded"
  assert len(client.prompts) == 2


@pytest.mark.anyio
async def test_proofread_skips_empty_attempts(repo) -> None:
  section = repo.add_section(make_section(status="generating", generation_attempt_id="att-1"))
  stats = await Proofreader(FakeContentClient(), repo, model="m", usd_to_inr=1.0).proofread(section)
  assert stats.status == "skipped"


@pytest.mark.anyio
async def test_finalizer_stores_proofreading_stats_even_on_failure(repo) -> None:
  section = repo.add_section(make_section(status="generating", generation_attempt_id="att-1", questions_generated_so_far=1))
  repo.add_items([_item(1)])
  client = FakeContentClient(documents=[ApiFailure("down"), ApiFailure("down")])
  finalizer = CompletionFinalizer(repo, Proofreader(client, repo, model="m", usd_to_inr=1.0, sleep=_no_sleep))

  updated = await finalizer.finalize(section)

  assert updated.status == "in_review"
  assert updated.batch_metadata.proofreading is not None
  assert updated.batch_metadata.proofreading.status == "failed"
