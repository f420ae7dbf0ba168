"""Generation mode selection and prompt/request assembly."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

import httpx

from batchgen.generation.client import Attachment, GenerationMode, GenerationRequest
from batchgen.generation.errors import SourceUnavailableError
from batchgen.generation.models import ChapterRef, SectionRecord, SourceMaterial
from batchgen.generation.protocols.base import GenerationProtocol, ProtocolConfig

AI_KNOWLEDGE_CHAPTER = "[AI Knowledge] Full Syllabus"
AI_KNOWLEDGE_TOPIC = "Full Syllabus"
KNOWLEDGE_READY_STATUS = "completed"

logger = logging.getLogger(__name__)

MaterialFetcher = Callable[[SourceMaterial], Awaitable[bytes]]
MaterialLister = Callable[[str, str], Awaitable[Sequence[SourceMaterial]]]


def resolve_generation_mode(section: SectionRecord, chapters: Sequence[ChapterRef]) -> GenerationMode:
  """Self-knowledge wins over the subject flag; uploaded sources are the default."""
  if any(chapter.chapter_name == AI_KNOWLEDGE_CHAPTER for chapter in chapters):
    return "self-knowledge"
  if section.is_source_of_scope:
    return "scope-only"
  return "source-of-truth"


def self_knowledge_preamble(subject_name: str) -> str:
  return (
    f"You are generating questions using your built-in training knowledge of the {subject_name} subject.\n"
    "Do NOT rely on any uploaded materials - use your comprehensive knowledge of the subject's syllabus, concepts, and standard question patterns."
  )


def render_knowledge_block(chapter: ChapterRef) -> str:
  """Render the analysed chapter scope as a prompt section; raises when it is not ready."""
  if chapter.knowledge is None or chapter.knowledge_status != KNOWLEDGE_READY_STATUS:
    raise SourceUnavailableError(f'Chapter knowledge not available for "{chapter.chapter_name}"')
  lines = ["## CHAPTER SCOPE (generate ONLY within this scope)"]
  scope = chapter.knowledge.get("scope_analysis")
  if scope:
    lines.append(json.dumps(scope, ensure_ascii=False, indent=2))
  style = chapter.knowledge.get("style_examples")
  if style:
    lines.append("## STYLE EXAMPLES (match tone and structure, do not copy)")
    lines.append(json.dumps(style, ensure_ascii=False, indent=2))
  return "\n\n".join(lines)


async def download_material(material: SourceMaterial, *, timeout_seconds: float = 60.0) -> bytes:
  async with httpx.AsyncClient(timeout=timeout_seconds, follow_redirects=True) as client:
    response = await client.get(material.file_url)
    response.raise_for_status()
    return response.content


@dataclass
class RequestBuilder:
  """Assembles the prompt and attachments for one batch in the resolved mode."""

  list_materials: MaterialLister
  fetch_material: MaterialFetcher = download_material

  async def _fetch(self, material: SourceMaterial) -> bytes:
    try:
      return await self.fetch_material(material)
    except httpx.HTTPError as exc:
      raise SourceUnavailableError(f'Failed to fetch material "{material.title}": {exc}') from exc

  async def build(
    self,
    section: SectionRecord,
    *,
    mode: GenerationMode,
    protocol: GenerationProtocol,
    config: ProtocolConfig,
    chapter: ChapterRef,
    question_count: int,
    dedup_block: str,
    model: str | None = None,
  ) -> GenerationRequest:
    chapter_name = AI_KNOWLEDGE_TOPIC if mode == "self-knowledge" else chapter.chapter_name
    body = protocol.build_prompt(config, chapter_name, question_count, section.effective_target, is_bilingual=section.is_bilingual)

    parts: list[str] = []
    attachments: tuple[Attachment, ...] = ()
    if mode == "self-knowledge":
      parts.append(self_knowledge_preamble(section.subject_name))
      parts.append(body)
    elif mode == "scope-only":
      parts.append(body)
      parts.append(render_knowledge_block(chapter))
    else:
      materials = await self.list_materials(chapter.chapter_id, section.tenant_id)
      if not materials:
        raise SourceUnavailableError(f'No materials found for chapter "{chapter.chapter_name}"')
      attachments = tuple([Attachment(data=await self._fetch(material), mime_type=material.mime_type, display_name=material.title) for material in materials])
      parts.append(body)

    if dedup_block:
      parts.append(dedup_block)
    logger.info("Built %s request for %s (%d items, %d attachment(s))", mode, chapter_name, question_count, len(attachments))
    return GenerationRequest(mode=mode, prompt="\n\n".join(parts), attachments=attachments, model=model)
