"""Postgres-backed repository for section generation state using SQLAlchemy."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select, update

from batchgen.core.database import get_session_factory
from batchgen.generation.errors import StaleClaimError
from batchgen.generation.models import BatchMetadata, ChapterRef, GeneratedItem, SectionRecord, SourceMaterial
from batchgen.schema.sections import ChapterMaterial, Question, Section, SectionChapter
from batchgen.storage.sections_repo import ItemCorrection, SectionsRepository, check_changes
from batchgen.utils.clock import now_iso


def _column_values(changes: Mapping[str, Any]) -> dict[str, Any]:
  check_changes(changes)
  values = dict(changes)
  metadata = values.get("batch_metadata")
  if isinstance(metadata, BatchMetadata):
    values["batch_metadata"] = metadata.to_json()
  values["updated_at"] = now_iso()
  return values


class PostgresSectionsRepository(SectionsRepository):
  """Persist sections, chapters and questions to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_section(self, section_id: str) -> SectionRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Section, section_id)
      if row is None:
        return None
      return self._section_to_record(row)

  async def list_sections(self, *, paper_id: str, tenant_id: str) -> list[SectionRecord]:
    async with self._session_factory() as session:
      stmt = select(Section).where(Section.paper_id == paper_id, Section.tenant_id == tenant_id).order_by(Section.created_at.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._section_to_record(row) for row in rows]

  async def list_stale_generating(self, *, tenant_id: str, heartbeat_before: str) -> list[SectionRecord]:
    async with self._session_factory() as session:
      heartbeat = func.coalesce(Section.last_batch_completed_at, Section.generation_started_at)
      stmt = select(Section).where(Section.tenant_id == tenant_id, Section.status == "generating", heartbeat < heartbeat_before)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._section_to_record(row) for row in rows]

  async def claim_batch(self, section_id: str, *, expected_version: int) -> SectionRecord | None:
    async with self._session_factory() as session:
      stmt = (
        update(Section)
        .where(Section.section_id == section_id, Section.version == expected_version, Section.status == "generating")
        .values(version=expected_version + 1, updated_at=now_iso())
        .returning(Section)
      )
      row = (await session.execute(stmt)).scalar_one_or_none()
      await session.commit()
      if row is None:
        return None
      return self._section_to_record(row)

  async def commit_batch(self, section_id: str, *, expected_version: int, items: Sequence[GeneratedItem], changes: Mapping[str, Any]) -> SectionRecord:
    values = _column_values(changes)
    async with self._session_factory() as session:
      stmt = update(Section).where(Section.section_id == section_id, Section.version == expected_version).values(**values, version=expected_version + 1).returning(Section)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        await session.rollback()
        raise StaleClaimError(f"Section {section_id} was claimed by another invocation; batch discarded.")
      session.add_all([self._item_to_model(item) for item in items])
      await session.commit()
      return self._section_to_record(row)

  async def update_section(self, section_id: str, changes: Mapping[str, Any], *, expected_version: int | None = None) -> SectionRecord:
    values = _column_values(changes)
    async with self._session_factory() as session:
      stmt = update(Section).where(Section.section_id == section_id)
      if expected_version is not None:
        stmt = stmt.where(Section.version == expected_version)
      stmt = stmt.values(**values, version=Section.version + 1).returning(Section)
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        await session.rollback()
        raise StaleClaimError(f"Section {section_id} changed concurrently; update rejected.")
      await session.commit()
      return self._section_to_record(row)

  async def touch_heartbeat(self, section_id: str, *, at: str) -> None:
    async with self._session_factory() as session:
      await session.execute(update(Section).where(Section.section_id == section_id).values(last_batch_completed_at=at))
      await session.commit()

  async def record_diagnostic(self, section_id: str, message: str) -> None:
    async with self._session_factory() as session:
      await session.execute(update(Section).where(Section.section_id == section_id).values(generation_error=message, updated_at=now_iso()))
      await session.commit()

  async def list_items(self, section_id: str, *, attempt_id: str, chapter_id: str | None = None) -> list[GeneratedItem]:
    async with self._session_factory() as session:
      stmt = select(Question).where(Question.section_id == section_id, Question.generation_attempt_id == attempt_id)
      if chapter_id is not None:
        stmt = stmt.where(Question.chapter_id == chapter_id)
      rows = (await session.execute(stmt.order_by(Question.question_order.asc()))).scalars().all()
      return [self._question_to_item(row) for row in rows]

  async def count_items(self, section_id: str, *, attempt_id: str) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(Question).where(Question.section_id == section_id, Question.generation_attempt_id == attempt_id)
      return int((await session.execute(stmt)).scalar_one() or 0)

  async def count_selected(self, section_id: str, *, attempt_id: str) -> int:
    async with self._session_factory() as session:
      stmt = select(func.count()).select_from(Question).where(Question.section_id == section_id, Question.generation_attempt_id == attempt_id, Question.is_selected.is_(True))
      return int((await session.execute(stmt)).scalar_one() or 0)

  async def delete_items_except_attempt(self, section_id: str, *, attempt_id: str | None) -> int:
    async with self._session_factory() as session:
      stmt = delete(Question).where(Question.section_id == section_id)
      if attempt_id is not None:
        stmt = stmt.where(Question.generation_attempt_id != attempt_id)
      result = await session.execute(stmt)
      await session.commit()
      return int(result.rowcount or 0)

  async def toggle_selection(self, section_id: str, question_id: str) -> GeneratedItem | None:
    async with self._session_factory() as session:
      stmt = select(Question).where(Question.question_id == question_id, Question.section_id == section_id).with_for_update()
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      row.is_selected = not row.is_selected
      await session.commit()
      return self._question_to_item(row)

  async def apply_corrections(self, corrections: Sequence[ItemCorrection]) -> list[str]:
    applied: list[str] = []
    async with self._session_factory() as session:
      for correction in corrections:
        row = await session.get(Question, correction.question_id)
        if row is None:
          continue
        data = dict(row.question_data or {})
        if correction.options is not None:
          data["options"] = correction.options
        if correction.correct_answer is not None:
          data["correctAnswer"] = correction.correct_answer
        data["proofread"] = True
        row.question_data = data
        if correction.question_text is not None:
          row.question_text = correction.question_text
        if correction.explanation is not None:
          row.explanation = correction.explanation
        applied.append(row.question_id)
      await session.commit()
    return applied

  async def list_chapters(self, section_id: str) -> list[ChapterRef]:
    async with self._session_factory() as session:
      stmt = select(SectionChapter).where(SectionChapter.section_id == section_id).order_by(SectionChapter.position.asc(), SectionChapter.id.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [ChapterRef(chapter_id=row.chapter_id, chapter_name=row.chapter_name, position=row.position, knowledge=row.knowledge, knowledge_status=row.knowledge_status) for row in rows]

  async def list_materials(self, chapter_id: str, tenant_id: str) -> list[SourceMaterial]:
    async with self._session_factory() as session:
      stmt = select(ChapterMaterial).where(ChapterMaterial.chapter_id == chapter_id, ChapterMaterial.tenant_id == tenant_id).order_by(ChapterMaterial.id.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [SourceMaterial(chapter_id=row.chapter_id, title=row.title, file_url=row.file_url, mime_type=row.mime_type) for row in rows]

  def _section_to_record(self, row: Section) -> SectionRecord:
    return SectionRecord(
      section_id=row.section_id,
      paper_id=row.paper_id,
      tenant_id=row.tenant_id,
      subject_id=row.subject_id,
      section_name=row.section_name,
      stream_name=row.stream_name,
      subject_name=row.subject_name,
      question_count=row.question_count,
      status=row.status,  # type: ignore[arg-type]
      difficulty_level=row.difficulty_level,  # type: ignore[arg-type]
      is_bilingual=bool(row.is_bilingual),
      is_source_of_scope=bool(row.is_source_of_scope),
      marks_per_question=float(row.marks_per_question),
      negative_marks=float(row.negative_marks),
      target_questions=row.target_questions,
      batch_size=row.batch_size,
      batch_number=row.batch_number,
      total_batches=row.total_batches,
      questions_generated_so_far=row.questions_generated_so_far,
      batch_metadata=BatchMetadata.from_json(row.batch_metadata),
      generation_attempt_id=row.generation_attempt_id,
      generation_started_at=row.generation_started_at,
      last_batch_completed_at=row.last_batch_completed_at,
      generation_completed_at=row.generation_completed_at,
      generation_error=row.generation_error,
      version=row.version,
      updated_at=row.updated_at,
    )

  def _item_to_model(self, item: GeneratedItem) -> Question:
    return Question(
      question_id=item.question_id,
      section_id=item.section_id,
      paper_id=item.paper_id,
      tenant_id=item.tenant_id,
      chapter_id=item.chapter_id,
      generation_attempt_id=item.generation_attempt_id,
      question_order=item.question_order,
      batch_number=item.batch_number,
      question_text=item.question_text,
      question_data=item.question_data,
      explanation=item.explanation,
      marks=Decimal(str(item.marks)),
      negative_marks=Decimal(str(item.negative_marks)),
      is_selected=item.is_selected,
    )

  def _question_to_item(self, row: Question) -> GeneratedItem:
    return GeneratedItem(
      question_id=row.question_id,
      section_id=row.section_id,
      paper_id=row.paper_id,
      tenant_id=row.tenant_id,
      chapter_id=row.chapter_id,
      generation_attempt_id=row.generation_attempt_id,
      question_order=row.question_order,
      batch_number=row.batch_number,
      question_text=row.question_text,
      question_data=dict(row.question_data or {}),
      explanation=row.explanation,
      marks=float(row.marks),
      negative_marks=float(row.negative_marks),
      is_selected=bool(row.is_selected),
    )
