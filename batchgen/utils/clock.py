"""UTC timestamp helpers shared by the generation pipeline."""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
  return datetime.now(UTC)


def to_iso(value: datetime) -> str:
  return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def now_iso() -> str:
  return to_iso(utc_now())


def parse_iso(raw: str | None) -> datetime | None:
  """Parse an ISO-8601 timestamp, treating naive values as UTC."""
  if not raw:
    return None
  parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=UTC)
  return parsed
