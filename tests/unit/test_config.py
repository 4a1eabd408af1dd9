import os
from unittest.mock import patch

import pytest
from cms_engine.config import get_settings

_BASE_ENV = {"CMS_ALLOWED_ORIGINS": "http://localhost:3000, https://cms.example.com"}


@pytest.fixture(autouse=True)
def clear_settings_cache():
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_settings_defaults():
  with patch.dict(os.environ, _BASE_ENV, clear=True):
    settings = get_settings()
  assert settings.allowed_origins == ("http://localhost:3000", "https://cms.example.com")
  assert settings.publish_worker_enabled is True
  assert settings.publish_interval_seconds == 30.0
  assert settings.publish_clock == "database"
  assert settings.publish_statement_timeout_ms == 15000
  assert settings.catalog_default_limit == 10
  assert settings.catalog_max_limit == 50
  assert settings.admin_secret is None
  assert settings.pg_dsn is None


def test_settings_read_worker_overrides():
  env = {**_BASE_ENV, "CMS_PUBLISH_INTERVAL_SECONDS": "2.5", "CMS_PUBLISH_CLOCK": "Application", "CMS_PUBLISH_WORKER_ENABLED": "off", "CMS_ADMIN_SECRET": "  s3cret  "}
  with patch.dict(os.environ, env, clear=True):
    settings = get_settings()
  assert settings.publish_interval_seconds == 2.5
  assert settings.publish_clock == "application"
  assert settings.publish_worker_enabled is False
  assert settings.admin_secret == "s3cret"


def test_database_url_falls_back_to_database_url_env():
  with patch.dict(os.environ, {**_BASE_ENV, "DATABASE_URL": "postgresql://cms@db/cms"}, clear=True):
    assert get_settings().pg_dsn == "postgresql://cms@db/cms"


@pytest.mark.parametrize(
  "env",
  [
    {},
    {"CMS_ALLOWED_ORIGINS": "*"},
    {**_BASE_ENV, "CMS_PUBLISH_INTERVAL_SECONDS": "0"},
    {**_BASE_ENV, "CMS_PUBLISH_CLOCK": "wallclock"},
    {**_BASE_ENV, "CMS_PUBLISH_STATEMENT_TIMEOUT_MS": "-1"},
    {**_BASE_ENV, "CMS_CATALOG_DEFAULT_LIMIT": "80"},
  ],
)
def test_invalid_settings_are_rejected(env):
  with patch.dict(os.environ, env, clear=True):
    with pytest.raises(ValueError):
      get_settings()
