"""Lenient JSON recovery for model responses."""

from __future__ import annotations

import json
import re
from typing import Any

from batchgen.generation.errors import ParseFailure

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_json_fences(raw: str) -> str:
  return _FENCE_RE.sub("", raw).strip()


def _first_balanced_block(raw: str) -> str | None:
  """Return the first balanced {...} or [...] block, honoring string escapes."""
  start: int | None = None
  stack: list[str] = []
  in_string = False
  escaped = False
  for index, char in enumerate(raw):
    if start is None:
      if char in "{[":
        start = index
        stack.append("}" if char == "{" else "]")
      continue
    if in_string:
      if escaped:
        escaped = False
      elif char == "\\":
        escaped = True
      elif char == '"':
        in_string = False
      continue
    if char == '"':
      in_string = True
    elif char in "{[":
      stack.append("}" if char == "{" else "]")
    elif char in "}]":
      if not stack or stack.pop() != char:
        return None
      if not stack:
        return raw[start : index + 1]
  return None


def parse_json_lenient(raw: str) -> Any:
  """Parse strictly first, then retry on the extracted block without trailing commas."""
  text = strip_json_fences(raw)
  try:
    return json.loads(text)
  except json.JSONDecodeError as exc:
    first_error = exc

  block = _first_balanced_block(text)
  if block is None:
    raise first_error
  for candidate in (block, _TRAILING_COMMA_RE.sub(r"\1", block)):
    try:
      return json.loads(candidate)
    except json.JSONDecodeError:
      continue
  raise first_error


def parse_items_payload(raw: str | None, *, key: str = "questions") -> list[dict[str, Any]]:
  """Extract the item list from either a bare array or an object wrapping it under `key`.

  Raises ParseFailure when the text is not JSON, has the wrong shape, or holds no items.
  """
  if raw is None or not raw.strip():
    raise ParseFailure("Empty response from generation service")
  try:
    parsed = parse_json_lenient(raw)
  except json.JSONDecodeError as exc:
    raise ParseFailure(f"Invalid JSON in response: {exc}") from exc

  if isinstance(parsed, dict):
    parsed = parsed.get(key)
  if not isinstance(parsed, list):
    raise ParseFailure(f"Response is neither an array nor an object with a '{key}' array")

  items = [item for item in parsed if isinstance(item, dict)]
  if not items:
    raise ParseFailure("No questions returned in response")
  return items
