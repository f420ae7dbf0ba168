import asyncio
import logging
import sys
from logging.config import fileConfig
from os.path import abspath, dirname
from time import perf_counter

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Add the project root to the path so we can import 'batchgen'
sys.path.insert(0, dirname(dirname(abspath(__file__))))

config = context.config

if config.config_file_name is not None:
  fileConfig(config.config_file_name)

# Must import models so they are attached to Base.metadata
import batchgen.schema.sections  # noqa: E402, F401
from batchgen.core.database import DATABASE_URL, Base  # noqa: E402

target_metadata = Base.metadata

# Track migration timing so logs include per-revision durations.
_MIGRATION_TIMER = {"current_start": None}

_migration_logger = logging.getLogger("alembic.runtime.migration")


def _on_version_apply(*, ctx: object, step: object, heads: set[str], run_args: dict[str, object]) -> None:
  """Emit per-revision logs so operators see timing and progress."""
  end_time = perf_counter()
  start_time = _MIGRATION_TIMER.get("current_start")
  revision = getattr(step, "up_revision_id", None) or "unknown"
  if start_time is None:
    _migration_logger.info("Applied migration %s", revision)
  else:
    _migration_logger.info("Applied migration %s in %.3fs", revision, end_time - start_time)

  _MIGRATION_TIMER["current_start"] = perf_counter()


def _build_context_options() -> dict[str, object]:
  return {"target_metadata": target_metadata, "compare_type": True, "compare_server_default": True, "on_version_apply": _on_version_apply}


def run_migrations_offline() -> None:
  """Configure offline migrations so generated SQL mirrors runtime settings."""
  context.configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"}, **_build_context_options())

  with context.begin_transaction():
    context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
  """Run migrations on the provided connection while logging revisions."""
  context.configure(connection=connection, **_build_context_options())
  migration_context = context.get_context()
  current_revision = migration_context.get_current_revision() or "base"
  target_list = migration_context.script.get_heads() if migration_context.script else []
  _migration_logger.info("Starting migration run from %s to %s", current_revision, ", ".join(target_list) or "none")
  _MIGRATION_TIMER["current_start"] = perf_counter()

  with context.begin_transaction():
    context.run_migrations()

  _migration_logger.info("Completed migration run at %s", ", ".join(migration_context.get_current_heads()) or "none")


async def run_async_migrations() -> None:
  """Run migrations with an async engine so settings match runtime drivers."""
  if not DATABASE_URL:
    raise RuntimeError("BATCHGEN_PG_DSN must be set to run migrations.")
  configuration = config.get_section(config.config_ini_section) or {}
  configuration["sqlalchemy.url"] = DATABASE_URL
  connectable = async_engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

  async with connectable.connect() as connection:
    await connection.run_sync(do_run_migrations)

  await connectable.dispose()


def run_migrations_online() -> None:
  asyncio.run(run_async_migrations())


if context.is_offline_mode():
  run_migrations_offline()
else:
  run_migrations_online()
