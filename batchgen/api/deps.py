"""Shared FastAPI dependencies for auth and service wiring."""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, Header, HTTPException, status

from batchgen.config import Settings, get_settings
from batchgen.services.sections import SectionService, get_continuation_trigger
from batchgen.services.tasks.factory import get_task_enqueuer
from batchgen.storage.factory import _get_sections_repo

logger = logging.getLogger(__name__)


def _bearer_token(authorization: str | None) -> str | None:
  if not authorization:
    return None
  scheme, _, token = authorization.partition(" ")
  if scheme.lower() != "bearer" or not token.strip():
    return None
  return token.strip()


async def require_tenant(authorization: str | None = Header(default=None), settings: Settings = Depends(get_settings)) -> str:  # noqa: B008
  """Resolve the caller's tenant from a bearer token."""
  token = _bearer_token(authorization)
  if token is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

  # Compare every configured token so lookup time does not depend on which one matched.
  tenant_id: str | None = None
  for candidate, tenant in settings.api_tokens.items():
    if secrets.compare_digest(candidate, token):
      tenant_id = tenant
  if tenant_id is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid bearer token")
  return tenant_id


async def require_task_secret(authorization: str | None = Header(default=None), x_batchgen_task_secret: str | None = Header(default=None), settings: Settings = Depends(get_settings)) -> None:  # noqa: B008
  """Authorize internal task callbacks with the shared task secret."""
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  # Cloud Tasks OIDC may occupy Authorization, so the dedicated header is checked too.
  shared_secret_valid = secrets.compare_digest(x_batchgen_task_secret or "", settings.task_secret)
  bearer_valid = secrets.compare_digest(authorization or "", f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


def get_section_service(settings: Settings = Depends(get_settings)) -> SectionService:  # noqa: B008
  repo = _get_sections_repo(settings)
  enqueuer = get_task_enqueuer(settings)
  return SectionService(repo, enqueuer, settings=settings, trigger=get_continuation_trigger(repo, enqueuer))
