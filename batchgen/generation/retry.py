"""Bounded retry around a single generation call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from batchgen.generation.client import ContentClient, GenerationRequest, GenerationResult, classify_exception
from batchgen.generation.errors import FailureKind, GenerationFailure, RetryExhaustedError

logger = logging.getLogger(__name__)

Heartbeat = Callable[[], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(kind: FailureKind, attempt: int, base_delay: float) -> float:
  """Seconds to wait after a failed 1-based `attempt`; timeouts back off twice as long."""
  if kind == "timeout":
    return base_delay * 2 * attempt
  return base_delay * attempt


async def generate_with_retry(
  client: ContentClient,
  request: GenerationRequest,
  *,
  heartbeat: Heartbeat | None = None,
  max_attempts: int = 3,
  base_delay: float = 2.0,
  sleep: Sleep = asyncio.sleep,
) -> GenerationResult:
  """Call the client up to `max_attempts` times.

  The heartbeat is refreshed before every backoff sleep so a slow retry chain is not mistaken for a
  stalled job. Raises RetryExhaustedError once every attempt has failed.
  """
  if max_attempts < 1:
    raise ValueError("max_attempts must be at least 1")
  last_failure: GenerationFailure | None = None
  for attempt in range(1, max_attempts + 1):
    try:
      result = await client.generate(request)
      if attempt > 1:
        logger.info("Generation succeeded on attempt %d/%d", attempt, max_attempts)
      return result
    except Exception as exc:  # noqa: BLE001
      failure = classify_exception(exc)
      if failure is not exc:
        failure.__cause__ = exc
      last_failure = failure
      logger.warning("Generation attempt %d/%d failed (%s): %s", attempt, max_attempts, failure.kind, failure)

    if attempt == max_attempts:
      break

    if heartbeat is not None:
      try:
        await heartbeat()
      except Exception:  # noqa: BLE001
        logger.warning("Heartbeat refresh failed before retry", exc_info=True)

    delay = backoff_delay(last_failure.kind, attempt, base_delay)
    logger.info("Retrying generation in %.1fs", delay)
    await sleep(delay)

  raise RetryExhaustedError(attempts=max_attempts, last_failure=last_failure) from last_failure  # type: ignore[arg-type]
