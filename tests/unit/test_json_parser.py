from __future__ import annotations

import pytest

from batchgen.generation.errors import ParseFailure
from batchgen.generation.json_parser import parse_items_payload, parse_json_lenient, strip_json_fences


def test_strip_json_fences() -> None:
  assert strip_json_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_lenient_parse_recovers_block_with_trailing_commas() -> None:
  raw = 'Here you go:\n{"questions": [{"questionText": "A {braced} \\"quote\\"",},],}\nThanks!'
  parsed = parse_json_lenient(raw)
  assert parsed == {"questions": [{"questionText": 'A {braced} "quote"'}]}


def test_items_payload_accepts_bare_array_and_wrapped_object() -> None:
  assert parse_items_payload('[{"questionText": "x"}]') == [{"questionText": "x"}]
  assert parse_items_payload('{"questions": [{"questionText": "y"}, 3]}') == [{"questionText": "y"}]


@pytest.mark.parametrize("raw", [None, "   ", "not json at all", '{"items": []}', '{"questions": []}', '"just a string"'])
def test_items_payload_failures_are_parse_failures(raw) -> None:
  with pytest.raises(ParseFailure):
    parse_items_payload(raw)
