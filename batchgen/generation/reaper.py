from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

from batchgen.generation.errors import StaleClaimError
from batchgen.generation.models import BatchMetadata, SectionRecord
from batchgen.storage.sections_repo import SectionsRepository
from batchgen.utils.clock import parse_iso, to_iso, utc_now

DEFAULT_STALE_AFTER_SECONDS = 7 * 60

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReapOutcome:
  section_id: str
  action: Literal["reset", "in_review"]
  questions_available: int


class StaleJobReaper:
  """Recovers sections whose continuation chain died mid-generation."""

  def __init__(self, repo: SectionsRepository, *, stale_after_seconds: int = DEFAULT_STALE_AFTER_SECONDS) -> None:
    self._repo = repo
    self._stale_after = timedelta(seconds=stale_after_seconds)

  def is_stale(self, section: SectionRecord, now: datetime) -> bool:
    if section.status != "generating":
      return False
    heartbeat = parse_iso(section.last_batch_completed_at) or parse_iso(section.generation_started_at)
    if heartbeat is None:
      return False
    return now - heartbeat > self._stale_after

  async def reap(self, section: SectionRecord, *, now: datetime | None = None) -> ReapOutcome | None:
    now = now or utc_now()
    if not self.is_stale(section, now):
      return None

    available = 0
    if section.generation_attempt_id:
      available = await self._repo.count_items(section.section_id, attempt_id=section.generation_attempt_id)

    if available == 0:
      changes = {
        "status": "ready",
        "generation_attempt_id": None,
        "batch_number": 0,
        "total_batches": None,
        "questions_generated_so_far": 0,
        "batch_metadata": BatchMetadata(),
        "generation_started_at": None,
        "last_batch_completed_at": None,
        "generation_error": "Generation stalled before any batch completed.",
      }
      action: Literal["reset", "in_review"] = "reset"
    else:
      changes = {
        "status": "in_review",
        "generation_completed_at": to_iso(now),
        "generation_error": f"Generation stalled after {section.batch_number} batch(es); {available} questions are available for review.",
      }
      action = "in_review"

    try:
      await self._repo.update_section(section.section_id, changes, expected_version=section.version)
    except StaleClaimError:
      # A batch committed in the meantime, so the section is alive again.
      logger.info("Section %s progressed while being reaped; leaving it alone", section.section_id)
      return None
    logger.warning("Reaped stale section %s -> %s (%d questions available)", section.section_id, action, available)
    return ReapOutcome(section_id=section.section_id, action=action, questions_available=available)

  async def reap_stale(self, tenant_id: str, *, now: datetime | None = None) -> list[ReapOutcome]:
    now = now or utc_now()
    cutoff = to_iso(now - self._stale_after)
    outcomes: list[ReapOutcome] = []
    for section in await self._repo.list_stale_generating(tenant_id=tenant_id, heartbeat_before=cutoff):
      outcome = await self.reap(section, now=now)
      if outcome is not None:
        outcomes.append(outcome)
    return outcomes
