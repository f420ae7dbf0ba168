from __future__ import annotations

import asyncio

import pytest

from batchgen.generation.client import GenerationRequest, GenerationResult
from batchgen.generation.errors import ApiFailure, ParseFailure, RetryExhaustedError, TimeoutFailure
from batchgen.generation.retry import backoff_delay, generate_with_retry
from fakes import FakeContentClient

REQUEST = GenerationRequest(mode="self-knowledge", prompt="Generate questions")


class _Recorder:
  def __init__(self) -> None:
    self.events: list[str] = []

  async def sleep(self, delay: float) -> None:
    self.events.append(f"sleep:{delay}")

  async def heartbeat(self) -> None:
    self.events.append("heartbeat")


def test_backoff_delay_is_linear_and_doubled_for_timeouts() -> None:
  assert backoff_delay("parse", 1, 2.0) == 2.0
  assert backoff_delay("generic-api", 2, 2.0) == 4.0
  assert backoff_delay("timeout", 1, 2.0) == 4.0
  assert backoff_delay("timeout", 2, 2.0) == 8.0


@pytest.mark.anyio
async def test_success_on_first_attempt_does_not_sleep() -> None:
  client = FakeContentClient(script=[GenerationResult(items=[{"questionText": "q"}])])
  recorder = _Recorder()
  result = await generate_with_retry(client, REQUEST, heartbeat=recorder.heartbeat, sleep=recorder.sleep)
  assert result.items == [{"questionText": "q"}]
  assert recorder.events == []


@pytest.mark.anyio
async def test_heartbeat_precedes_every_backoff_sleep() -> None:
  client = FakeContentClient(script=[ParseFailure("bad json"), TimeoutFailure("slow"), GenerationResult(items=[{"questionText": "q"}])])
  recorder = _Recorder()
  await generate_with_retry(client, REQUEST, heartbeat=recorder.heartbeat, max_attempts=3, base_delay=2.0, sleep=recorder.sleep)
  assert recorder.events == ["heartbeat", "sleep:2.0", "heartbeat", "sleep:8.0"]
  assert len(client.requests) == 3


@pytest.mark.anyio
async def test_exhaustion_reports_attempts_and_last_failure() -> None:
  client = FakeContentClient(script=[ApiFailure("quota"), ApiFailure("quota"), ParseFailure("still bad")])
  recorder = _Recorder()
  with pytest.raises(RetryExhaustedError) as exc:
    await generate_with_retry(client, REQUEST, heartbeat=recorder.heartbeat, max_attempts=3, sleep=recorder.sleep)
  assert exc.value.attempts == 3
  assert exc.value.last_failure.kind == "parse"
  # No sleep after the final attempt.
  assert recorder.events.count("heartbeat") == 2


@pytest.mark.anyio
async def test_unknown_errors_are_classified() -> None:
  client = FakeContentClient(script=[asyncio.TimeoutError(), RuntimeError("503 unavailable")])
  recorder = _Recorder()
  with pytest.raises(RetryExhaustedError) as exc:
    await generate_with_retry(client, REQUEST, max_attempts=2, base_delay=1.0, sleep=recorder.sleep)
  assert recorder.events == ["sleep:2.0"]
  assert isinstance(exc.value.last_failure, ApiFailure)


@pytest.mark.anyio
async def test_heartbeat_failure_does_not_abort_retry() -> None:
  client = FakeContentClient(script=[ApiFailure("boom"), GenerationResult(items=[{"questionText": "q"}])])
  recorder = _Recorder()

  async def broken_heartbeat() -> None:
    raise RuntimeError("db down")

  result = await generate_with_retry(client, REQUEST, heartbeat=broken_heartbeat, sleep=recorder.sleep)
  assert len(result.items) == 1


@pytest.mark.anyio
async def test_zero_attempts_is_rejected() -> None:
  client = FakeContentClient()
  with pytest.raises(ValueError):
    await generate_with_retry(client, REQUEST, max_attempts=0)
  assert client.requests == []
