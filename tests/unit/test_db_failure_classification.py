"""Unit tests for publish-cycle failure classification."""

from __future__ import annotations

import pytest
from cms_engine.utils.db_retry import classify_db_failure
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError


class _DriverError(Exception):
  def __init__(self, message: str, sqlstate: str | None = None) -> None:
    super().__init__(message)
    self.sqlstate = sqlstate


def _wrap(cls, message: str, sqlstate: str | None = None):
  return cls("UPDATE lessons SET ...", {}, _DriverError(message, sqlstate))


@pytest.mark.parametrize(
  ("sqlstate", "category"),
  [("40001", "serialization_conflict"), ("40P01", "deadlock"), ("55P03", "lock_timeout"), ("57014", "statement_timeout"), ("08006", "connectivity_error")],
)
def test_transient_sqlstates(sqlstate: str, category: str) -> None:
  result = classify_db_failure(_wrap(DBAPIError, "boom", sqlstate))
  assert result.transient is True
  assert result.category == category
  assert result.sqlstate == sqlstate


def test_unique_violation_is_permanent() -> None:
  result = classify_db_failure(_wrap(IntegrityError, "duplicate key", "23505"))
  assert result.transient is False
  assert result.category == "integrity_error"
  assert "unique violation" in result.reason


def test_undefined_table_is_schema_error() -> None:
  result = classify_db_failure(_wrap(DBAPIError, "relation lessons does not exist", "42P01"))
  assert result.transient is False
  assert result.category == "schema_error"


def test_sqlite_lock_is_transient_without_sqlstate() -> None:
  result = classify_db_failure(_wrap(OperationalError, "database is locked"))
  assert result.transient is True
  assert result.sqlstate is None


def test_plain_timeout_is_transient() -> None:
  assert classify_db_failure(TimeoutError()).transient is True


def test_unknown_exception_is_permanent() -> None:
  result = classify_db_failure(RuntimeError("resolver exploded"))
  assert result.transient is False
  assert result.category == "unknown_error"
