"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from batchgen.core.exceptions import _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "batch_number"), "msg": "Value error, bad batch.", "input": {"batch_number": 0}, "ctx": {"error": ValueError("bad batch."), "input": 0}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: bad batch."
  assert "input" not in sanitized[0]["ctx"]
