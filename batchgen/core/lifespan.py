import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from batchgen.core.logging import _initialize_logging
from batchgen.services.sections import drain_continuations


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging after uvicorn starts and drain pending continuations on shutdown."""
  from batchgen.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("batchgen.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
    logger.info("Task provider=%s database=%s", settings.task_service_provider, _redact_dsn(settings.pg_dsn))
  except Exception:
    # Log initialization failures but allow the app to continue starting.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  yield

  # Continuation dispatches are fire-and-forget; let in-flight ones land before exit.
  await drain_continuations()
  logger.info("Pending continuations drained.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
