from __future__ import annotations

import math

from batchgen.generation.models import DifficultyLevel
from batchgen.generation.protocols.base import GenerationProtocol, ProtocolConfig

MAX_WARMUP_QUESTIONS = 3


def _round_half_up(value: float) -> int:
  return math.floor(value + 0.5)


def map_difficulty_to_config(protocol: GenerationProtocol, difficulty: DifficultyLevel, question_count: int) -> ProtocolConfig:
  """Resolve a protocol's difficulty mapping for a batch of `question_count` items."""
  mapping = protocol.difficulty_mappings[difficulty]
  constraints = protocol.cognitive_load_constraints
  warmup_count = min(math.floor(question_count * constraints.warmup_percentage), MAX_WARMUP_QUESTIONS)
  return ProtocolConfig(
    archetype_distribution=mapping.archetypes,
    structural_forms=mapping.structural_forms,
    cognitive_load=mapping.cognitive_load,
    max_consecutive_high=constraints.max_consecutive_high,
    warmup_count=warmup_count,
    prohibitions=tuple(protocol.prohibitions),
  )


def archetype_counts(config: ProtocolConfig, question_count: int) -> dict[str, int]:
  return {key: _round_half_up(question_count * share) for key, share in config.archetype_distribution.items()}


def structural_form_counts(config: ProtocolConfig, question_count: int) -> dict[str, int]:
  return {key: _round_half_up(question_count * share) for key, share in config.structural_forms.items()}
