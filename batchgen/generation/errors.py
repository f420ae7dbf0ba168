"""Error types raised by the batch generation pipeline."""

from __future__ import annotations

from typing import Literal

FailureKind = Literal["parse", "timeout", "generic-api"]


class GenerationFailure(RuntimeError):
  """A single failed call to the content generation service."""

  kind: FailureKind = "generic-api"


class ParseFailure(GenerationFailure):
  """The service responded but the payload was not usable JSON items."""

  kind: FailureKind = "parse"


class TimeoutFailure(GenerationFailure):
  """The service call exceeded its deadline."""

  kind: FailureKind = "timeout"


class ApiFailure(GenerationFailure):
  """Transport, quota or server-side failure from the service."""

  kind: FailureKind = "generic-api"


class RetryExhaustedError(RuntimeError):
  """Raised after the final retry attempt fails."""

  def __init__(self, *, attempts: int, last_failure: GenerationFailure) -> None:
    super().__init__(f"Generation failed after {attempts} attempts ({last_failure.kind}): {last_failure}")
    self.attempts = attempts
    self.last_failure = last_failure


class SectionError(Exception):
  """Base class for section-level errors surfaced over HTTP."""

  status_code = 400

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class SectionNotFoundError(SectionError):
  status_code = 404


class SectionAccessDeniedError(SectionError):
  status_code = 403


class InvalidSectionStateError(SectionError):
  status_code = 409


class StaleClaimError(SectionError):
  """Another invocation claimed the section after this one did."""

  status_code = 409


class UnknownProtocolError(SectionError):
  status_code = 400


class SourceUnavailableError(SectionError):
  """Chapter knowledge or source material needed by the generation mode is missing."""

  status_code = 422


class BatchFailedError(SectionError):
  """A batch exhausted its retries before any batch of the attempt succeeded."""

  status_code = 500


class SelectionIncompleteError(SectionError):
  status_code = 400
