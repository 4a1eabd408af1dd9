"""Classification of store failures raised during a publish cycle."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

# SQLSTATE codes that clear up on their own; the next tick is expected to succeed.
_TRANSIENT_SQLSTATES: dict[str, tuple[str, str]] = {
  "40001": ("serialization_conflict", "Serialization failure - transaction conflict"),
  "40P01": ("deadlock", "Deadlock detected"),
  "55P03": ("lock_timeout", "Lock not available"),
  "57014": ("statement_timeout", "Statement canceled by statement_timeout"),
  "57P01": ("admin_shutdown", "Server terminated the connection"),
}

_INTEGRITY_SQLSTATES: dict[str, str] = {
  "23000": "integrity constraint violation",
  "23001": "restrict violation",
  "23502": "not null violation",
  "23503": "foreign key violation",
  "23505": "unique violation",
  "23514": "check constraint violation",
  "23P01": "exclusion constraint violation",
}

_CONNECTIVITY_PATTERNS = ("connection", "timeout", "reset", "network", "broken pipe", "lost connection", "database is locked")


@dataclass(frozen=True)
class DBFailureClassification:
  """Classification result for a database failure."""

  transient: bool
  reason: str
  sqlstate: str | None
  category: str


def _extract_sqlstate(exc: Exception) -> str | None:
  """Extract Postgres SQLSTATE from SQLAlchemy exception."""
  if isinstance(exc, DBAPIError) and exc.orig is not None:
    # asyncpg exposes `sqlstate`; psycopg exposes `pgcode`
    for attr in ("sqlstate", "pgcode"):
      value = getattr(exc.orig, attr, None)
      if value:
        return str(value)
  return None


def classify_db_failure(exc: Exception) -> DBFailureClassification:
  """
  Classify a failed cycle as transient or permanent.

  Primary signal: Postgres SQLSTATE
  Fallback: Exception type and message patterns

  Transient failures are left for the next scheduled tick. Permanent failures
  will repeat on every tick until the data or schema is fixed, so they are
  logged with a traceback.
  """
  sqlstate = _extract_sqlstate(exc)

  if sqlstate in _TRANSIENT_SQLSTATES:
    category, reason = _TRANSIENT_SQLSTATES[sqlstate]
    return DBFailureClassification(transient=True, reason=reason, sqlstate=sqlstate, category=category)

  # Integrity violations (class 23xxx)
  if sqlstate and sqlstate.startswith("23"):
    specific = _INTEGRITY_SQLSTATES.get(sqlstate, "integrity constraint violation")
    return DBFailureClassification(transient=False, reason=f"Integrity violation: {specific}", sqlstate=sqlstate, category="integrity_error")

  # Connection class (08xxx)
  if sqlstate and sqlstate.startswith("08"):
    return DBFailureClassification(transient=True, reason="Connection exception", sqlstate=sqlstate, category="connectivity_error")

  if sqlstate and sqlstate.startswith("42"):
    return DBFailureClassification(transient=False, reason="Schema/SQL error (undefined table/column, syntax error)", sqlstate=sqlstate, category="schema_error")

  if sqlstate and sqlstate.startswith("28"):
    return DBFailureClassification(transient=False, reason="Authentication/permission error", sqlstate=sqlstate, category="permission_error")

  if isinstance(exc, IntegrityError):
    return DBFailureClassification(transient=False, reason="Integrity constraint violation (detected by exception type)", sqlstate=sqlstate, category="integrity_error")

  if isinstance(exc, OperationalError):
    error_msg = str(exc).lower()
    if any(pattern in error_msg for pattern in _CONNECTIVITY_PATTERNS):
      return DBFailureClassification(transient=True, reason="Transient connection/network error", sqlstate=sqlstate, category="connectivity_error")
    return DBFailureClassification(transient=False, reason="Operational error (unknown cause)", sqlstate=sqlstate, category="operational_error_unknown")

  if isinstance(exc, (ConnectionError, TimeoutError)):
    return DBFailureClassification(transient=True, reason=f"Transient I/O error: {type(exc).__name__}", sqlstate=sqlstate, category="connectivity_error")

  if isinstance(exc, (AttributeError, TypeError, ValueError, KeyError, IndexError)):
    return DBFailureClassification(transient=False, reason=f"Programming error: {type(exc).__name__}", sqlstate=sqlstate, category="programming_error")

  return DBFailureClassification(transient=False, reason=f"Unknown error type: {type(exc).__name__}", sqlstate=sqlstate, category="unknown_error")
