from __future__ import annotations

from batchgen.config import Settings
from batchgen.storage.postgres_sections_repo import PostgresSectionsRepository
from batchgen.storage.sections_repo import SectionsRepository


def _get_sections_repo(settings: Settings) -> SectionsRepository:
  """Return the sections repository; Postgres is the only backend."""
  if not settings.pg_dsn:
    raise ValueError("BATCHGEN_PG_DSN must be set to use the sections repository.")
  return PostgresSectionsRepository()
