"""Application configuration loaded from environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache

from batchgen.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the batch generation service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  gemini_api_key: str | None
  generation_model: str
  proofreading_model: str
  proofreading_enabled: bool
  batch_size: int
  retry_max_attempts: int
  retry_base_delay_seconds: float
  generation_timeout_seconds: float
  stale_after_seconds: int
  dedup_prompt_limit: int
  usd_to_inr: float
  api_tokens: dict[str, str] = field(hash=False)
  task_service_provider: str = "local-http"
  cloud_tasks_queue_path: str | None = None
  base_url: str | None = None
  task_secret: str | None = None
  cloud_run_invoker_service_account: str | None = None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("BATCHGEN_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("BATCHGEN_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("BATCHGEN_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_token_map(raw: str | None) -> dict[str, str]:
  """Parse the bearer token to tenant mapping."""
  if not raw:
    return {}
  try:
    parsed = json.loads(raw)
  except json.JSONDecodeError as exc:
    raise ValueError("BATCHGEN_API_TOKENS must be a JSON object of token -> tenant id.") from exc

  if not isinstance(parsed, dict):
    raise ValueError("BATCHGEN_API_TOKENS must be a JSON object of token -> tenant id.")

  return {str(token): str(tenant) for token, tenant in parsed.items() if str(token).strip()}


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("BATCHGEN_ENV", "development").lower()

  # Toggle verbose error output and SQL echo in non-production environments.
  debug = _parse_bool(os.getenv("BATCHGEN_DEBUG"))

  log_max_bytes = _positive_int("BATCHGEN_LOG_MAX_BYTES", "5242880")  # 5MB default

  log_backup_count = int(os.getenv("BATCHGEN_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("BATCHGEN_LOG_BACKUP_COUNT must be zero or a positive integer.")

  batch_size = _positive_int("BATCHGEN_BATCH_SIZE", "30")
  retry_max_attempts = _positive_int("BATCHGEN_RETRY_MAX_ATTEMPTS", "3")
  retry_base_delay_seconds = _positive_float("BATCHGEN_RETRY_BASE_DELAY_SECONDS", "2.0")
  # Keep each call under the platform's per-invocation ceiling.
  generation_timeout_seconds = _positive_float("BATCHGEN_GENERATION_TIMEOUT_SECONDS", "240")
  stale_after_seconds = _positive_int("BATCHGEN_STALE_AFTER_SECONDS", "420")
  dedup_prompt_limit = _positive_int("BATCHGEN_DEDUP_PROMPT_LIMIT", "150")
  usd_to_inr = _positive_float("BATCHGEN_USD_TO_INR", "83")

  task_service_provider = (os.getenv("BATCHGEN_TASK_SERVICE_PROVIDER") or "local-http").strip().lower()
  if task_service_provider not in {"gcp", "local-http"}:
    raise ValueError("BATCHGEN_TASK_SERVICE_PROVIDER must be 'gcp' or 'local-http'.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("BATCHGEN_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("BATCHGEN_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("BATCHGEN_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("BATCHGEN_PG_CONNECT_TIMEOUT", "5"),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    generation_model=(os.getenv("BATCHGEN_GENERATION_MODEL") or "gemini-2.5-flash").strip(),
    proofreading_model=(os.getenv("BATCHGEN_PROOFREADING_MODEL") or "gemini-3-pro-preview").strip(),
    proofreading_enabled=_parse_bool(os.getenv("BATCHGEN_PROOFREADING_ENABLED"), default=True),
    batch_size=batch_size,
    retry_max_attempts=retry_max_attempts,
    retry_base_delay_seconds=retry_base_delay_seconds,
    generation_timeout_seconds=generation_timeout_seconds,
    stale_after_seconds=stale_after_seconds,
    dedup_prompt_limit=dedup_prompt_limit,
    usd_to_inr=usd_to_inr,
    api_tokens=_parse_token_map(os.getenv("BATCHGEN_API_TOKENS")),
    task_service_provider=task_service_provider,
    cloud_tasks_queue_path=_optional_str(os.getenv("BATCHGEN_CLOUD_TASKS_QUEUE_PATH")),
    base_url=_optional_str(os.getenv("BATCHGEN_BASE_URL")),
    task_secret=_optional_str(os.getenv("BATCHGEN_TASK_SECRET")),
    cloud_run_invoker_service_account=_optional_str(os.getenv("BATCHGEN_CLOUD_RUN_INVOKER_SERVICE_ACCOUNT")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("BATCHGEN_DEBUG"))
  pg_connect_timeout = _positive_int("BATCHGEN_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted platforms.
  pg_dsn = os.getenv("BATCHGEN_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
