"""Content generation client backed by the google-genai SDK."""

from __future__ import annotations

import asyncio
import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import httpx
from pydantic.warnings import ArbitraryTypeWarning
from starlette.concurrency import run_in_threadpool

with warnings.catch_warnings():
  warnings.filterwarnings("ignore", message=r"<built-in function any> is not a Python type.*", category=ArbitraryTypeWarning)
  from google import genai
  from google.genai import errors as genai_errors
  from google.genai import types

from batchgen.generation.errors import ApiFailure, GenerationFailure, ParseFailure, TimeoutFailure
from batchgen.generation.json_parser import parse_items_payload, parse_json_lenient
from batchgen.generation.models import TokenUsage

GenerationMode = Literal["self-knowledge", "scope-only", "source-of-truth"]

DEFAULT_TEMPERATURE = 0.7

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Attachment:
  """Raw source document bytes to be uploaded alongside a prompt."""

  data: bytes
  mime_type: str
  display_name: str | None = None


@dataclass(frozen=True)
class GenerationRequest:
  mode: GenerationMode
  prompt: str
  attachments: tuple[Attachment, ...] = ()
  model: str | None = None
  temperature: float = DEFAULT_TEMPERATURE


@dataclass
class GenerationResult:
  items: list[dict[str, Any]]
  usage: TokenUsage = field(default_factory=TokenUsage)


class ContentClient(Protocol):
  """Seam for the external generative-content service."""

  async def generate(self, request: GenerationRequest) -> GenerationResult:
    """Return parsed items or raise a GenerationFailure subclass."""
    ...

  async def generate_document(self, prompt: str, *, model: str | None = None) -> tuple[Any, TokenUsage]:
    """Return one parsed JSON document, used by proofreading."""
    ...


def usage_from_response(response: Any) -> TokenUsage:
  metadata = getattr(response, "usage_metadata", None)
  if metadata is None:
    return TokenUsage()
  return TokenUsage(prompt_tokens=metadata.prompt_token_count or 0, completion_tokens=metadata.candidates_token_count or 0, total_tokens=metadata.total_token_count or 0)


def classify_exception(exc: BaseException) -> GenerationFailure:
  """Map SDK, transport and deadline errors onto the retry taxonomy."""
  if isinstance(exc, GenerationFailure):
    return exc
  if isinstance(exc, asyncio.TimeoutError | httpx.TimeoutException):
    return TimeoutFailure(f"Generation request timed out: {exc}")
  message = str(exc)
  if isinstance(exc, genai_errors.APIError) and ("DEADLINE_EXCEEDED" in message or "timeout" in message.lower()):
    return TimeoutFailure(message)
  return ApiFailure(message or type(exc).__name__)


class GeminiContentClient:
  """Calls Gemini in JSON mode, with uploads for source-of-truth requests."""

  def __init__(self, api_key: str | None, *, model: str, timeout_seconds: float) -> None:
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")
    self._client = genai.Client(api_key=api_key)
    self._model = model
    self._timeout_seconds = timeout_seconds

  async def _upload(self, attachment: Attachment) -> Any:
    # The files API is synchronous in the SDK; keep it off the event loop.
    return await run_in_threadpool(self._client.files.upload, file=attachment.data, config=types.UploadFileConfig(mime_type=attachment.mime_type, display_name=attachment.display_name))

  async def _call(self, *, model: str, contents: Any, temperature: float) -> Any:
    config = {"response_mime_type": "application/json", "temperature": temperature}
    try:
      return await asyncio.wait_for(self._client.aio.models.generate_content(model=model, contents=contents, config=config), timeout=self._timeout_seconds)
    except Exception as exc:  # noqa: BLE001
      raise classify_exception(exc) from exc

  async def generate(self, request: GenerationRequest) -> GenerationResult:
    model = request.model or self._model
    contents: Any = request.prompt
    if request.attachments:
      try:
        uploaded = [await self._upload(attachment) for attachment in request.attachments]
      except Exception as exc:  # noqa: BLE001
        raise classify_exception(exc) from exc
      contents = [*uploaded, request.prompt]
      logger.info("Uploaded %d source file(s) for %s generation", len(uploaded), request.mode)

    response = await self._call(model=model, contents=contents, temperature=request.temperature)
    usage = usage_from_response(response)
    items = parse_items_payload(response.text)
    logger.debug("Gemini returned %d items (%d tokens)", len(items), usage.total_tokens)
    return GenerationResult(items=items, usage=usage)

  async def generate_document(self, prompt: str, *, model: str | None = None) -> tuple[Any, TokenUsage]:
    response = await self._call(model=model or self._model, contents=prompt, temperature=0.2)
    text = response.text
    if not text:
      raise ParseFailure("Empty response from generation service")
    try:
      return parse_json_lenient(text), usage_from_response(response)
    except ValueError as exc:
      raise ParseFailure(f"Invalid JSON in response: {exc}") from exc
