"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from cms_engine.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

PublishClock = Literal["database", "application"]


@dataclass(frozen=True)
class Settings:
  """Typed settings for the content engine service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  auto_create_schema: bool
  publish_worker_enabled: bool
  publish_interval_seconds: float
  publish_clock: PublishClock
  publish_statement_timeout_ms: int
  catalog_default_limit: int
  catalog_max_limit: int
  admin_secret: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("CMS_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("CMS_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("CMS_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_clock(raw: str | None) -> PublishClock:
  value = (raw or "database").strip().lower()
  if value == "database":
    return "database"
  if value == "application":
    return "application"
  raise ValueError("CMS_PUBLISH_CLOCK must be 'database' or 'application'.")


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("CMS_ENV", "development").lower()
  # Toggle verbose SQL echo and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("CMS_DEBUG"))

  log_max_bytes = int(os.getenv("CMS_LOG_MAX_BYTES", "5242880"))  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("CMS_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = int(os.getenv("CMS_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("CMS_LOG_BACKUP_COUNT must be zero or a positive integer.")

  pg_connect_timeout = int(os.getenv("CMS_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("CMS_PG_CONNECT_TIMEOUT must be a positive integer.")

  publish_interval_seconds = float(os.getenv("CMS_PUBLISH_INTERVAL_SECONDS", "30"))
  if publish_interval_seconds <= 0:
    raise ValueError("CMS_PUBLISH_INTERVAL_SECONDS must be a positive number.")

  # Zero disables the per-cycle statement timeout.
  publish_statement_timeout_ms = int(os.getenv("CMS_PUBLISH_STATEMENT_TIMEOUT_MS", "15000"))
  if publish_statement_timeout_ms < 0:
    raise ValueError("CMS_PUBLISH_STATEMENT_TIMEOUT_MS must be zero or a positive integer.")

  catalog_default_limit = int(os.getenv("CMS_CATALOG_DEFAULT_LIMIT", "10"))
  catalog_max_limit = int(os.getenv("CMS_CATALOG_MAX_LIMIT", "50"))
  if catalog_max_limit <= 0:
    raise ValueError("CMS_CATALOG_MAX_LIMIT must be a positive integer.")
  if catalog_default_limit <= 0 or catalog_default_limit > catalog_max_limit:
    raise ValueError("CMS_CATALOG_DEFAULT_LIMIT must be between 1 and CMS_CATALOG_MAX_LIMIT.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("CMS_ALLOWED_ORIGINS")),
    debug=debug,
    log_dir=(os.getenv("CMS_LOG_DIR") or "./logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("CMS_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("CMS_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=pg_connect_timeout,
    auto_create_schema=_parse_bool(os.getenv("CMS_AUTO_CREATE_SCHEMA")),
    publish_worker_enabled=_parse_bool(os.getenv("CMS_PUBLISH_WORKER_ENABLED"), default=True),
    publish_interval_seconds=publish_interval_seconds,
    publish_clock=_parse_clock(os.getenv("CMS_PUBLISH_CLOCK")),
    publish_statement_timeout_ms=publish_statement_timeout_ms,
    catalog_default_limit=catalog_default_limit,
    catalog_max_limit=catalog_max_limit,
    admin_secret=_optional_str(os.getenv("CMS_ADMIN_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("CMS_DEBUG"))
  pg_connect_timeout = int(os.getenv("CMS_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("CMS_PG_CONNECT_TIMEOUT must be a positive integer.")

  pg_dsn = os.getenv("CMS_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
