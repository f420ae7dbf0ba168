from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from batchgen.core.database import Base

_UTC_NOW_ISO = text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


class Section(Base):
  __tablename__ = "sections"
  __table_args__ = (Index("ix_sections_status_heartbeat", "status", "last_batch_completed_at"),)

  section_id: Mapped[str] = mapped_column(String, primary_key=True)
  paper_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  subject_id: Mapped[str] = mapped_column(String, nullable=False)
  section_name: Mapped[str] = mapped_column(String, nullable=False)
  stream_name: Mapped[str] = mapped_column(String, nullable=False)
  subject_name: Mapped[str] = mapped_column(String, nullable=False)
  question_count: Mapped[int] = mapped_column(Integer, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'pending'"))
  difficulty_level: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'balanced'"))
  is_bilingual: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
  is_source_of_scope: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
  marks_per_question: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, server_default=text("1"))
  negative_marks: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, server_default=text("0"))
  target_questions: Mapped[int | None] = mapped_column(Integer, nullable=True)
  batch_size: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("30"))
  batch_number: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
  total_batches: Mapped[int | None] = mapped_column(Integer, nullable=True)
  questions_generated_so_far: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
  batch_metadata: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  generation_attempt_id: Mapped[str | None] = mapped_column(String, nullable=True)
  generation_started_at: Mapped[str | None] = mapped_column(String, nullable=True)
  last_batch_completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
  generation_completed_at: Mapped[str | None] = mapped_column(String, nullable=True)
  generation_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)


class SectionChapter(Base):
  __tablename__ = "section_chapters"
  __table_args__ = (UniqueConstraint("section_id", "chapter_id", name="ux_section_chapters_section_chapter"),)

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  section_id: Mapped[str] = mapped_column(ForeignKey("sections.section_id", ondelete="CASCADE"), nullable=False, index=True)
  chapter_id: Mapped[str] = mapped_column(String, nullable=False)
  chapter_name: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
  knowledge: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  knowledge_status: Mapped[str | None] = mapped_column(String, nullable=True)


class ChapterMaterial(Base):
  __tablename__ = "chapter_materials"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  chapter_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  file_url: Mapped[str] = mapped_column(Text, nullable=False)
  mime_type: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'application/pdf'"))
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)


class Question(Base):
  __tablename__ = "questions"
  __table_args__ = (
    UniqueConstraint("section_id", "generation_attempt_id", "question_order", name="ux_questions_section_attempt_order"),
    Index("ix_questions_section_attempt", "section_id", "generation_attempt_id"),
  )

  question_id: Mapped[str] = mapped_column(String, primary_key=True)
  section_id: Mapped[str] = mapped_column(ForeignKey("sections.section_id", ondelete="CASCADE"), nullable=False)
  paper_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  tenant_id: Mapped[str] = mapped_column(String, nullable=False)
  chapter_id: Mapped[str | None] = mapped_column(String, nullable=True)
  generation_attempt_id: Mapped[str] = mapped_column(String, nullable=False)
  question_order: Mapped[int] = mapped_column(Integer, nullable=False)
  batch_number: Mapped[int] = mapped_column(Integer, nullable=False)
  question_text: Mapped[str] = mapped_column(Text, nullable=False)
  question_data: Mapped[dict] = mapped_column(JSONB, nullable=False)
  explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
  marks: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, server_default=text("1"))
  negative_marks: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, server_default=text("0"))
  is_selected: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
  created_at: Mapped[str] = mapped_column(String, nullable=False, server_default=_UTC_NOW_ISO)
