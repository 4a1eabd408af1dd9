"""Dialect-portable column types shared by the content tables."""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON, DateTime, TypeDecorator


class JSONType(TypeDecorator[Any]):
  """Use JSONB on PostgreSQL and plain JSON elsewhere (SQLite in tests)."""

  impl = JSON
  cache_ok = True

  def load_dialect_impl(self, dialect: Any) -> Any:
    if dialect.name == "postgresql":
      return dialect.type_descriptor(JSONB())
    return dialect.type_descriptor(JSON())


class UTCDateTime(TypeDecorator[datetime.datetime]):
  """Timezone-aware UTC timestamps on every dialect.

  SQLite drops tzinfo on the way in and hands back naive values, so binds are
  normalized to UTC and results are re-tagged as UTC.
  """

  impl = DateTime(timezone=True)
  cache_ok = True

  def process_bind_param(self, value: datetime.datetime | None, dialect: Any) -> datetime.datetime | None:
    if value is None:
      return None
    if value.tzinfo is None:
      raise ValueError("UTCDateTime requires timezone-aware datetimes.")
    value = value.astimezone(datetime.UTC)
    if dialect.name == "sqlite":
      return value.replace(tzinfo=None)
    return value

  def process_result_value(self, value: Any, dialect: Any) -> datetime.datetime | None:
    if value is None:
      return None
    if isinstance(value, str):
      value = datetime.datetime.fromisoformat(value)
    if value.tzinfo is None:
      return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)
