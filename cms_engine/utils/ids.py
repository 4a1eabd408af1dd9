"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_id() -> str:
  """Return a new opaque entity identifier."""
  return str(uuid.uuid4())
