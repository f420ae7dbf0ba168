"""Schema package exports."""

from .sections import ChapterMaterial, Question, Section, SectionChapter

__all__ = ["ChapterMaterial", "Question", "Section", "SectionChapter"]
