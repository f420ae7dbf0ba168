"""Minimal .env loader for local configuration."""

from __future__ import annotations

import os
from pathlib import Path


def default_env_path() -> Path:
  """Return the .env path at the project root."""

  return Path(__file__).resolve().parents[2] / ".env"


def _strip_quotes(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  return value


def load_env_file(path: Path, *, override: bool = False) -> None:
  """Populate os.environ from KEY=VALUE lines, skipping comments and blanks."""

  if not path.is_file():
    return

  for raw_line in path.read_text(encoding="utf-8").splitlines():
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    if not override and key in os.environ:
      continue
    os.environ[key] = _strip_quotes(value.strip())
