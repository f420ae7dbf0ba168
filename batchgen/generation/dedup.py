"""Context of already-generated items used to steer the model away from repeats."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from batchgen.generation.models import GeneratedItem


@dataclass(frozen=True)
class DedupEntry:
  question_text: str
  question_data: dict[str, Any]
  chapter_id: str | None = None


def build_dedup_context(items: Sequence[GeneratedItem], *, attempt_id: str, chapter_id: str | None = None) -> list[DedupEntry]:
  """Entries for the active attempt (and chapter, when scheduled) in question_order."""
  scoped = [item for item in items if item.generation_attempt_id == attempt_id and (chapter_id is None or item.chapter_id == chapter_id)]
  scoped.sort(key=lambda item: item.question_order)
  return [DedupEntry(question_text=item.question_text, question_data=item.question_data, chapter_id=item.chapter_id) for item in scoped]


def _summary(entry: DedupEntry) -> str:
  text = " ".join(entry.question_text.split())
  if len(text) > 160:
    text = text[:157] + "..."
  tags = [str(entry.question_data[key]) for key in ("archetype", "structuralForm") if entry.question_data.get(key)]
  return f"{text} [{', '.join(tags)}]" if tags else text


def render_dedup_block(entries: Sequence[DedupEntry], *, limit: int = 150) -> str:
  """Render a prompt section listing prior questions; empty when there is nothing to avoid."""
  if not entries:
    return ""
  recent = list(entries)[-limit:]
  lines = [
    "## ALREADY GENERATED QUESTIONS (DO NOT REPEAT)",
    f"{len(entries)} questions already exist for this section. Do not repeat, paraphrase or test the same fact as any of them:",
  ]
  if len(recent) < len(entries):
    lines.append(f"(showing the most recent {len(recent)})")
  lines.extend(f"{number}. {_summary(entry)}" for number, entry in enumerate(recent, start=1))
  return "\n".join(lines)
