"""Exam-specific generation protocols."""

from batchgen.generation.protocols.base import GenerationProtocol, ProtocolConfig, TemplateProtocol
from batchgen.generation.protocols.difficulty import map_difficulty_to_config
from batchgen.generation.protocols.registry import ProtocolRegistry, get_protocol_registry

__all__ = ["GenerationProtocol", "ProtocolConfig", "ProtocolRegistry", "TemplateProtocol", "get_protocol_registry", "map_difficulty_to_config"]
