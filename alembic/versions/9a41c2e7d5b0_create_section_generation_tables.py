"""Create section generation tables.

Revision ID: 9a41c2e7d5b0
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "9a41c2e7d5b0"
down_revision = None
branch_labels = None
depends_on = None

_UTC_NOW_ISO = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "sections",
    sa.Column("section_id", sa.String(), nullable=False),
    sa.Column("paper_id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("subject_id", sa.String(), nullable=False),
    sa.Column("section_name", sa.String(), nullable=False),
    sa.Column("stream_name", sa.String(), nullable=False),
    sa.Column("subject_name", sa.String(), nullable=False),
    sa.Column("question_count", sa.Integer(), nullable=False),
    sa.Column("status", sa.String(), server_default=sa.text("'pending'"), nullable=False),
    sa.Column("difficulty_level", sa.String(), server_default=sa.text("'balanced'"), nullable=False),
    sa.Column("is_bilingual", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.Column("is_source_of_scope", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.Column("marks_per_question", sa.Numeric(6, 2), server_default=sa.text("1"), nullable=False),
    sa.Column("negative_marks", sa.Numeric(6, 2), server_default=sa.text("0"), nullable=False),
    sa.Column("target_questions", sa.Integer(), nullable=True),
    sa.Column("batch_size", sa.Integer(), server_default=sa.text("30"), nullable=False),
    sa.Column("batch_number", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("total_batches", sa.Integer(), nullable=True),
    sa.Column("questions_generated_so_far", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("batch_metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("generation_attempt_id", sa.String(), nullable=True),
    sa.Column("generation_started_at", sa.String(), nullable=True),
    sa.Column("last_batch_completed_at", sa.String(), nullable=True),
    sa.Column("generation_completed_at", sa.String(), nullable=True),
    sa.Column("generation_error", sa.Text(), nullable=True),
    sa.Column("version", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.Column("updated_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.PrimaryKeyConstraint("section_id"),
  )
  op.create_index(op.f("ix_sections_paper_id"), "sections", ["paper_id"], unique=False)
  op.create_index(op.f("ix_sections_tenant_id"), "sections", ["tenant_id"], unique=False)
  op.create_index("ix_sections_status_heartbeat", "sections", ["status", "last_batch_completed_at"], unique=False)

  op.create_table(
    "section_chapters",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("section_id", sa.String(), nullable=False),
    sa.Column("chapter_id", sa.String(), nullable=False),
    sa.Column("chapter_name", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), server_default=sa.text("0"), nullable=False),
    sa.Column("knowledge", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("knowledge_status", sa.String(), nullable=True),
    sa.ForeignKeyConstraint(["section_id"], ["sections.section_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("section_id", "chapter_id", name="ux_section_chapters_section_chapter"),
  )
  op.create_index(op.f("ix_section_chapters_section_id"), "section_chapters", ["section_id"], unique=False)

  op.create_table(
    "chapter_materials",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("chapter_id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("file_url", sa.Text(), nullable=False),
    sa.Column("mime_type", sa.String(), server_default=sa.text("'application/pdf'"), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_chapter_materials_chapter_id"), "chapter_materials", ["chapter_id"], unique=False)
  op.create_index(op.f("ix_chapter_materials_tenant_id"), "chapter_materials", ["tenant_id"], unique=False)

  op.create_table(
    "questions",
    sa.Column("question_id", sa.String(), nullable=False),
    sa.Column("section_id", sa.String(), nullable=False),
    sa.Column("paper_id", sa.String(), nullable=False),
    sa.Column("tenant_id", sa.String(), nullable=False),
    sa.Column("chapter_id", sa.String(), nullable=True),
    sa.Column("generation_attempt_id", sa.String(), nullable=False),
    sa.Column("question_order", sa.Integer(), nullable=False),
    sa.Column("batch_number", sa.Integer(), nullable=False),
    sa.Column("question_text", sa.Text(), nullable=False),
    sa.Column("question_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("explanation", sa.Text(), nullable=True),
    sa.Column("marks", sa.Numeric(6, 2), server_default=sa.text("1"), nullable=False),
    sa.Column("negative_marks", sa.Numeric(6, 2), server_default=sa.text("0"), nullable=False),
    sa.Column("is_selected", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_NOW_ISO, nullable=False),
    sa.ForeignKeyConstraint(["section_id"], ["sections.section_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("question_id"),
    sa.UniqueConstraint("section_id", "generation_attempt_id", "question_order", name="ux_questions_section_attempt_order"),
  )
  op.create_index(op.f("ix_questions_paper_id"), "questions", ["paper_id"], unique=False)
  op.create_index("ix_questions_section_attempt", "questions", ["section_id", "generation_attempt_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_questions_section_attempt", table_name="questions")
  op.drop_index(op.f("ix_questions_paper_id"), table_name="questions")
  op.drop_table("questions")
  op.drop_index(op.f("ix_chapter_materials_tenant_id"), table_name="chapter_materials")
  op.drop_index(op.f("ix_chapter_materials_chapter_id"), table_name="chapter_materials")
  op.drop_table("chapter_materials")
  op.drop_index(op.f("ix_section_chapters_section_id"), table_name="section_chapters")
  op.drop_table("section_chapters")
  op.drop_index("ix_sections_status_heartbeat", table_name="sections")
  op.drop_index(op.f("ix_sections_tenant_id"), table_name="sections")
  op.drop_index(op.f("ix_sections_paper_id"), table_name="sections")
  op.drop_table("sections")
