"""Sequential chapter scheduling over a section's batch metadata."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace

from batchgen.generation.models import BatchMetadata, ChapterRef, ChapterScheduleEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleDecision:
  """Which chapter the next batch should draw from.

  `metadata` carries the (possibly advanced) current_chapter_index to persist with the batch.
  """

  metadata: BatchMetadata
  active: ChapterScheduleEntry | None = None
  index: int | None = None
  all_complete: bool = False
  advanced: bool = False

  @property
  def scheduled(self) -> bool:
    return self.metadata.scheduled


def build_chapter_schedule(chapters: Sequence[ChapterRef], target: int) -> tuple[ChapterScheduleEntry, ...]:
  """Split `target` across chapters in order; earlier chapters absorb the remainder."""
  if not chapters:
    return ()
  ordered = sorted(chapters, key=lambda chapter: chapter.position)
  share, extra = divmod(target, len(ordered))
  return tuple(ChapterScheduleEntry(chapter_id=chapter.chapter_id, chapter_name=chapter.chapter_name, questions_target=share + (1 if index < extra else 0)) for index, chapter in enumerate(ordered))


class ChapterScheduler:
  """Resolves the active chapter from persisted metadata on every call."""

  def resolve(self, metadata: BatchMetadata) -> ScheduleDecision:
    if not metadata.scheduled:
      return ScheduleDecision(metadata=metadata)

    schedule = metadata.chapter_schedule
    index = metadata.current_chapter_index
    advanced = False
    # Skip every exhausted chapter, including zero-quota ones.
    while index < len(schedule) and schedule[index].exhausted:
      logger.info("Chapter %s exhausted (%d/%d), advancing", schedule[index].chapter_name, schedule[index].questions_generated, schedule[index].questions_target)
      index += 1
      advanced = True

    if index >= len(schedule):
      return ScheduleDecision(metadata=metadata, index=index, all_complete=True, advanced=advanced)

    entry = schedule[index]
    logger.info("Chapter sequence: %d/%d %s (%d/%d)", index + 1, len(schedule), entry.chapter_name, entry.questions_generated, entry.questions_target)
    return ScheduleDecision(metadata=replace(metadata, current_chapter_index=index), active=entry, index=index, advanced=advanced)


def batch_size_for(decision: ScheduleDecision, *, batch_size: int, global_remaining: int) -> int:
  """Items to request for this batch, bounded by the active scope and the overall target."""
  if decision.active is not None:
    return max(min(batch_size, decision.active.remaining, global_remaining), 0)
  return max(min(batch_size, global_remaining), 0)
