"""Storage interfaces for section generation state."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from batchgen.generation.models import ChapterRef, GeneratedItem, SectionRecord, SourceMaterial

# Columns that may change after a section is created.
UPDATABLE_FIELDS = frozenset(
  {
    "status",
    "target_questions",
    "batch_size",
    "batch_number",
    "total_batches",
    "questions_generated_so_far",
    "batch_metadata",
    "generation_attempt_id",
    "generation_started_at",
    "last_batch_completed_at",
    "generation_completed_at",
    "generation_error",
  }
)


def check_changes(changes: Mapping[str, Any]) -> None:
  unknown = set(changes) - UPDATABLE_FIELDS
  if unknown:
    raise ValueError(f"Unsupported section fields: {', '.join(sorted(unknown))}")


@dataclass(frozen=True)
class ItemCorrection:
  """A proofreading fix for one stored item."""

  question_id: str
  question_text: str | None = None
  options: dict[str, str] | None = None
  correct_answer: str | None = None
  explanation: str | None = None


class SectionsRepository(Protocol):
  """Repository contract for sections, their chapters and generated items.

  Every method that changes section state bumps `version`, except `touch_heartbeat` and
  `record_diagnostic`. Methods taking `expected_version` raise StaleClaimError on mismatch.
  """

  async def get_section(self, section_id: str) -> SectionRecord | None:
    """Fetch a section by identifier."""

  async def list_sections(self, *, paper_id: str, tenant_id: str) -> list[SectionRecord]:
    """Return a paper's sections for one tenant."""

  async def list_stale_generating(self, *, tenant_id: str, heartbeat_before: str) -> list[SectionRecord]:
    """Return generating sections whose heartbeat (or start time) is older than the cutoff."""

  async def claim_batch(self, section_id: str, *, expected_version: int) -> SectionRecord | None:
    """Bump the version of a generating section; None when another invocation won."""

  async def commit_batch(self, section_id: str, *, expected_version: int, items: Sequence[GeneratedItem], changes: Mapping[str, Any]) -> SectionRecord:
    """Insert items and apply changes in one transaction guarded by the claimed version."""

  async def update_section(self, section_id: str, changes: Mapping[str, Any], *, expected_version: int | None = None) -> SectionRecord:
    """Apply partial updates, optionally guarded by version."""

  async def touch_heartbeat(self, section_id: str, *, at: str) -> None:
    """Refresh last_batch_completed_at without changing the version."""

  async def record_diagnostic(self, section_id: str, message: str) -> None:
    """Store a non-fatal generation_error without changing the version."""

  async def list_items(self, section_id: str, *, attempt_id: str, chapter_id: str | None = None) -> list[GeneratedItem]:
    """Items of one attempt ordered by question_order."""

  async def count_items(self, section_id: str, *, attempt_id: str) -> int:
    """Number of items stored for one attempt."""

  async def count_selected(self, section_id: str, *, attempt_id: str) -> int:
    """Number of selected items for one attempt."""

  async def delete_items_except_attempt(self, section_id: str, *, attempt_id: str | None) -> int:
    """Delete items from every other attempt; returns the deleted count."""

  async def toggle_selection(self, section_id: str, question_id: str) -> GeneratedItem | None:
    """Flip is_selected on one item."""

  async def apply_corrections(self, corrections: Sequence[ItemCorrection]) -> list[str]:
    """Apply proofreading fixes; returns the ids that were updated."""

  async def list_chapters(self, section_id: str) -> list[ChapterRef]:
    """Chapters assigned to a section ordered by position."""

  async def list_materials(self, chapter_id: str, tenant_id: str) -> list[SourceMaterial]:
    """Uploaded source documents for a chapter."""
