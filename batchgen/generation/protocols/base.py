"""Capability interface for exam-specific generation protocols."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from string import Template
from typing import Protocol

from batchgen.generation.models import DifficultyLevel
from batchgen.generation.validator import DEFAULT_VALIDATORS, Validator


@dataclass(frozen=True)
class CognitiveLoadMix:
  low: float
  medium: float
  high: float


@dataclass(frozen=True)
class CognitiveLoadConstraints:
  max_consecutive_high: int
  warmup_percentage: float


@dataclass(frozen=True)
class DifficultyMapping:
  """Target distributions for one difficulty level, as fractions of the batch."""

  archetypes: Mapping[str, float]
  structural_forms: Mapping[str, float]
  cognitive_load: CognitiveLoadMix


@dataclass(frozen=True)
class ProtocolConfig:
  """A difficulty mapping resolved for a concrete batch size."""

  archetype_distribution: Mapping[str, float]
  structural_forms: Mapping[str, float]
  cognitive_load: CognitiveLoadMix
  max_consecutive_high: int
  warmup_count: int
  prohibitions: tuple[str, ...]


class GenerationProtocol(Protocol):
  protocol_id: str
  name: str
  stream_name: str
  subject_name: str
  difficulty_mappings: Mapping[DifficultyLevel, DifficultyMapping]
  prohibitions: tuple[str, ...]
  cognitive_load_constraints: CognitiveLoadConstraints
  validators: Sequence[Validator]

  def build_prompt(self, config: ProtocolConfig, chapter_name: str, question_count: int, total_questions: int, *, is_bilingual: bool = False) -> str: ...


@dataclass(frozen=True)
class TemplateProtocol:
  """A protocol whose prompt body is a string.Template filled from the resolved config.

  Available placeholders: chapter_name, question_count, total_questions, warmup_count,
  max_consecutive_high, prohibitions, language_block, plus `archetype_<key>` and
  `form_<key>` target counts for every key in the difficulty mapping.
  """

  protocol_id: str
  name: str
  stream_name: str
  subject_name: str
  difficulty_mappings: Mapping[DifficultyLevel, DifficultyMapping]
  prohibitions: tuple[str, ...]
  cognitive_load_constraints: CognitiveLoadConstraints
  prompt_template: Template
  monolingual_language_block: str = ""
  bilingual_language_block: str = ""
  validators: Sequence[Validator] = field(default=DEFAULT_VALIDATORS)

  def build_prompt(self, config: ProtocolConfig, chapter_name: str, question_count: int, total_questions: int, *, is_bilingual: bool = False) -> str:
    # Imported here to keep the difficulty helpers free of protocol imports.
    from batchgen.generation.protocols.difficulty import archetype_counts, structural_form_counts

    values: dict[str, object] = {
      "chapter_name": chapter_name,
      "question_count": question_count,
      "total_questions": total_questions,
      "warmup_count": config.warmup_count,
      "max_consecutive_high": config.max_consecutive_high,
      "prohibitions": "\n".join(f"- {rule}" for rule in config.prohibitions),
      "language_block": self.bilingual_language_block if is_bilingual else self.monolingual_language_block,
    }
    values.update({f"archetype_{key}": count for key, count in archetype_counts(config, question_count).items()})
    values.update({f"form_{key}": count for key, count in structural_form_counts(config, question_count).items()})
    return self.prompt_template.substitute(values)
