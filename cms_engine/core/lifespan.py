import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from cms_engine.config import Settings
from cms_engine.core.database import Base, dispose_engine, get_db_engine, get_session_factory
from cms_engine.core.logging import _initialize_logging
from cms_engine.publishing.worker import PublishWorker, clock_for


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging, build the publish worker and run it for the app's lifetime."""
  from cms_engine.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("cms_engine.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    # The app can still serve requests with uvicorn's default handlers.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  logger.info("Database DSN=%s", _redact_dsn(settings.pg_dsn))
  if settings.auto_create_schema:
    await _create_schema(logger=logger)

  worker = build_publish_worker(settings)
  app.state.publish_worker = worker
  if worker is None:
    logger.warning("Publish worker unavailable; database is not configured.")
  elif settings.publish_worker_enabled:
    worker.start()
  else:
    logger.info("Publish worker disabled by CMS_PUBLISH_WORKER_ENABLED; manual runs remain available.")

  try:
    yield
  finally:
    if worker is not None:
      await worker.stop()
    await dispose_engine()
    logger.info("Shutdown complete.")


def build_publish_worker(settings: Settings) -> PublishWorker | None:
  """Create the worker from settings; None when no database is configured."""
  session_factory = get_session_factory()
  if session_factory is None:
    return None
  return PublishWorker(
    session_factory,
    interval_seconds=settings.publish_interval_seconds,
    clock=clock_for(settings.publish_clock),
    statement_timeout_ms=settings.publish_statement_timeout_ms,
  )


async def _create_schema(*, logger: logging.Logger) -> None:
  """Create missing tables for local development; migrations own production schemas."""
  # Register every mapped table on the shared metadata.
  import cms_engine.schema.sql  # noqa: F401

  engine = get_db_engine()
  if engine is None:
    logger.warning("CMS_AUTO_CREATE_SCHEMA is set but no database is configured.")
    return
  async with engine.begin() as connection:
    await connection.run_sync(Base.metadata.create_all)
  logger.info("Schema ensured via metadata.create_all.")


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
