from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache

from batchgen.generation.errors import UnknownProtocolError
from batchgen.generation.protocols.base import GenerationProtocol
from batchgen.generation.protocols.catalog import BUILTIN_PROTOCOLS


def protocol_key(stream_name: str, subject_name: str) -> str:
  return f"{stream_name.strip().lower()}-{subject_name.strip().lower()}"


class ProtocolRegistry:
  """Maps (stream, subject) pairs to generation protocols."""

  def __init__(self, protocols: Iterable[GenerationProtocol] = ()) -> None:
    self._protocols: dict[str, GenerationProtocol] = {}
    for protocol in protocols:
      self.register(protocol)

  def register(self, protocol: GenerationProtocol) -> None:
    key = protocol_key(protocol.stream_name, protocol.subject_name)
    if key in self._protocols:
      raise ValueError(f"Protocol already registered for '{key}'")
    self._protocols[key] = protocol

  def has(self, stream_name: str, subject_name: str) -> bool:
    return protocol_key(stream_name, subject_name) in self._protocols

  def keys(self) -> list[str]:
    return sorted(self._protocols)

  def resolve(self, stream_name: str, subject_name: str) -> GenerationProtocol:
    key = protocol_key(stream_name, subject_name)
    protocol = self._protocols.get(key)
    if protocol is None:
      raise UnknownProtocolError(f'No protocol found for stream "{stream_name}" and subject "{subject_name}". Available protocols: {", ".join(self.keys())}')
    return protocol


@lru_cache(maxsize=1)
def get_protocol_registry() -> ProtocolRegistry:
  """Registry of the built-in protocols, shared per process."""
  return ProtocolRegistry(BUILTIN_PROTOCOLS)
