import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from batchgen.config import Settings
from batchgen.core.json import DecimalJSONResponse
from batchgen.generation.errors import SectionError


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    error_message = str(value)
    if error_message:
      return f"{type(value).__name__}: {error_message}"
    return type(value).__name__
  return str(value)


def _error_payload(detail: Any, settings: Settings, *, request_id: str | None = None) -> dict[str, Any]:
  """Build a safe error payload that avoids leaking internal details to clients."""
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> DecimalJSONResponse:
  """Global exception handler to catch unhandled errors."""
  from batchgen.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("uvicorn.error")
  request_id = getattr(request.state, "request_id", None)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return DecimalJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", settings, request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> DecimalJSONResponse:
  """Log request validation errors for debugging without leaking payloads."""
  from batchgen.config import get_settings

  settings = get_settings()
  request_id = getattr(request.state, "request_id", None)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger = logging.getLogger("uvicorn.error")
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return DecimalJSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, settings, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> DecimalJSONResponse:
  """Handle FastAPI HTTPExceptions while avoiding leaking internal diagnostics."""
  from batchgen.config import get_settings

  settings = get_settings()
  request_id = getattr(request.state, "request_id", None)
  if exc.status_code >= 500:
    logger = logging.getLogger("uvicorn.error")
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return DecimalJSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", settings, request_id=request_id))

  # Log 4xx HTTPExceptions when explicitly enabled for debugging.
  if settings.log_http_4xx:
    logger = logging.getLogger("uvicorn.error")
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail)

  return DecimalJSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, settings, request_id=request_id), headers=exc.headers)


async def section_exception_handler(request: Request, exc: SectionError) -> DecimalJSONResponse:
  """Map section domain errors onto their HTTP status codes."""
  from batchgen.config import get_settings

  settings = get_settings()
  request_id = getattr(request.state, "request_id", None)
  logger = logging.getLogger("uvicorn.error")
  if exc.status_code >= 500:
    logger.error("Section error request_id=%s path=%s error_type=%s message=%s", request_id, request.url.path, type(exc).__name__, exc.message)
  else:
    logger.info("Section error request_id=%s path=%s status_code=%s message=%s", request_id, request.url.path, exc.status_code, exc.message)
  return DecimalJSONResponse(status_code=exc.status_code, content=_error_payload(exc.message, settings, request_id=request_id))
