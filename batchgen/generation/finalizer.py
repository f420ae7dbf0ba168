from __future__ import annotations

import logging

from batchgen.generation.models import ProofreadingStats, SectionRecord, ensure_transition
from batchgen.generation.proofreader import Proofreader
from batchgen.storage.sections_repo import SectionsRepository
from batchgen.utils.clock import now_iso

logger = logging.getLogger(__name__)


class CompletionFinalizer:
  """Moves a generating section to review after an optional proofreading pass."""

  def __init__(self, repo: SectionsRepository, proofreader: Proofreader | None = None) -> None:
    self._repo = repo
    self._proofreader = proofreader

  async def finalize(self, section: SectionRecord, *, generation_error: str | None = None) -> SectionRecord:
    """Proofread (best effort) then set in_review, guarded by the section's current version."""
    ensure_transition(section.status, "in_review")
    metadata = section.batch_metadata
    if self._proofreader is not None:
      stats: ProofreadingStats = await self._proofreader.proofread(section)
      metadata = metadata.with_proofreading(stats)

    changes = {"status": "in_review", "generation_completed_at": now_iso(), "batch_metadata": metadata}
    if generation_error is not None:
      changes["generation_error"] = generation_error
    updated = await self._repo.update_section(section.section_id, changes, expected_version=section.version)
    logger.info("Section %s moved to in_review with %d questions", section.section_id, updated.questions_generated_so_far)
    return updated
