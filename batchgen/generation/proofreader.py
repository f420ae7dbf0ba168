"""Post-generation proofreading pass over a finished attempt."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Sequence
from string import Template
from typing import Any

from batchgen.generation.client import ContentClient
from batchgen.generation.models import GeneratedItem, ProofreadingStats, SectionRecord, TokenUsage
from batchgen.generation.pricing import calculate_cost
from batchgen.storage.sections_repo import ItemCorrection, SectionsRepository
from batchgen.utils.clock import now_iso

OPTIMAL_BATCH_SIZE = 70
SAFETY_TOLERANCE = 1.15
RETRY_DELAY_SECONDS = 2.0

logger = logging.getLogger(__name__)

PROOFREAD_PROMPT = Template(
  """You are a quality assurance expert reviewing educational test questions in Hindi/English.

Be STRICT: flag ANY question with issues. When in doubt, flag it.

Analyze these $count questions and identify ALL questions with errors:
1. Correct answer not in options.
2. Wrong option marked as correct.
3. Answer key mismatch with the option keys.
4. Malformed question text (truncated, missing information, broken encoding).
5. Duplicate options.
6. Explanation contradicts the marked answer.
7. Explanation shows internal reasoning or self-correction ("Wait", "Let me re-check", "re-evaluating"). Replace it with a clean, direct explanation.
8. Poor language (grammar errors, unclear phrasing, stale text).

QUESTIONS TO REVIEW:
$questions

OUTPUT FORMAT (strict JSON only, no markdown):
{
  "corrections": [
    {
      "questionId": "<id field of the question>",
      "issue": "<brief description>",
      "corrected": {"id": "<same id>", "question": "...", "options": {...}, "correctAnswer": "...", "explanation": "..."}
    }
  ]
}

Rules:
- Do NOT check protocol compliance, archetypes or cognitive load.
- Preserve the original language (Hindi/English) in corrections.
- The corrected answer MUST be one of the given options and the explanation MUST match it.
- If all questions are correct, return {"corrections": []}.

Return ONLY the JSON object."""
)


def _item_length(item: GeneratedItem) -> int:
  return len(item.question_text) + len(json.dumps(item.question_data.get("options") or {}, ensure_ascii=False)) + len(item.explanation or "")


def _even_sizes(total: int, batches: int) -> list[int]:
  sizes: list[int] = []
  remaining = total
  for index in range(batches):
    size = math.ceil(remaining / (batches - index))
    sizes.append(size)
    remaining -= size
  return sizes


def plan_batch_sizes(items: Sequence[GeneratedItem]) -> list[int]:
  """Split items into roughly equal batches near the optimal size.

  Long items lower the ceiling to 60; batches more than 15% over the ceiling are re-split.
  """
  total = len(items)
  if total == 0:
    return []
  average = sum(_item_length(item) for item in items) / total
  safe_max = 80 if average < 500 else 60
  if total <= OPTIMAL_BATCH_SIZE:
    return [total]
  sizes = _even_sizes(total, math.ceil(total / OPTIMAL_BATCH_SIZE))
  if any(size > safe_max * SAFETY_TOLERANCE for size in sizes):
    sizes = _even_sizes(total, math.ceil(total / safe_max))
  return sizes


def minimal_payload(item: GeneratedItem) -> dict[str, Any]:
  return {"id": item.question_id, "question": item.question_text, "options": item.question_data.get("options") or {}, "correctAnswer": item.question_data.get("correctAnswer") or "", "explanation": item.explanation or ""}


def parse_corrections(document: Any, known_ids: set[str]) -> list[ItemCorrection]:
  """Turn the model's corrections document into typed fixes for known items only."""
  if not isinstance(document, dict):
    return []
  corrections: list[ItemCorrection] = []
  for raw in document.get("corrections") or []:
    if not isinstance(raw, dict):
      continue
    question_id = str(raw.get("questionId") or "")
    corrected = raw.get("corrected")
    if question_id not in known_ids or not isinstance(corrected, dict):
      continue
    options = corrected.get("options")
    corrections.append(
      ItemCorrection(
        question_id=question_id,
        question_text=corrected.get("question") or None,
        options=options if isinstance(options, dict) and options else None,
        correct_answer=corrected.get("correctAnswer") or None,
        explanation=corrected.get("explanation") or None,
      )
    )
  return corrections


class Proofreader:
  """Reviews an attempt's items in batches and applies corrections in place."""

  def __init__(self, client: ContentClient, repo: SectionsRepository, *, model: str, usd_to_inr: float, retry_delay: float = RETRY_DELAY_SECONDS, sleep=asyncio.sleep) -> None:
    self._client = client
    self._repo = repo
    self._model = model
    self._usd_to_inr = usd_to_inr
    self._retry_delay = retry_delay
    self._sleep = sleep

  async def _review(self, batch: Sequence[GeneratedItem], number: int) -> tuple[list[ItemCorrection], TokenUsage]:
    prompt = PROOFREAD_PROMPT.substitute(count=len(batch), questions=json.dumps([minimal_payload(item) for item in batch], ensure_ascii=False, indent=2))
    known_ids = {item.question_id for item in batch}
    try:
      document, usage = await self._client.generate_document(prompt, model=self._model)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Proofreading batch %d failed, retrying once: %s", number, exc)
      await self._sleep(self._retry_delay)
      document, usage = await self._client.generate_document(prompt, model=self._model)
    corrections = parse_corrections(document, known_ids)
    logger.info("Proofreading batch %d: %d issue(s) found", number, len(corrections))
    return corrections, usage

  async def proofread(self, section: SectionRecord) -> ProofreadingStats:
    """Never raises; failures are reported in the returned stats."""
    started_at = now_iso()
    if not section.generation_attempt_id:
      return ProofreadingStats(status="skipped", started_at=started_at, completed_at=started_at)

    usage = TokenUsage()
    issues = 0
    applied: list[str] = []
    processed = 0
    checked = 0
    try:
      items = await self._repo.list_items(section.section_id, attempt_id=section.generation_attempt_id)
      if not items:
        return ProofreadingStats(status="skipped", started_at=started_at, completed_at=now_iso())

      offset = 0
      for number, size in enumerate(plan_batch_sizes(items), start=1):
        batch = items[offset : offset + size]
        offset += size
        corrections, batch_usage = await self._review(batch, number)
        usage = usage + batch_usage
        processed += 1
        checked += len(batch)
        issues += len(corrections)
        if corrections:
          applied.extend(await self._repo.apply_corrections(corrections))
    except Exception as exc:  # noqa: BLE001
      logger.error("Proofreading failed for section %s: %s", section.section_id, exc, exc_info=True)
      return ProofreadingStats(
        status="failed",
        started_at=started_at,
        completed_at=now_iso(),
        batches_processed=processed,
        questions_checked=checked,
        issues_found=issues,
        corrections_applied=tuple(applied),
        total_tokens_used=usage.total_tokens,
        total_cost_inr=calculate_cost(usage, self._model, usd_to_inr=self._usd_to_inr),
        error=str(exc),
      )

    logger.info("Proofreading complete for section %s: %d checked, %d corrected", section.section_id, checked, len(applied))
    return ProofreadingStats(
      status="completed",
      started_at=started_at,
      completed_at=now_iso(),
      batches_processed=processed,
      questions_checked=checked,
      issues_found=issues,
      corrections_applied=tuple(applied),
      total_tokens_used=usage.total_tokens,
      total_cost_inr=calculate_cost(usage, self._model, usd_to_inr=self._usd_to_inr),
    )
