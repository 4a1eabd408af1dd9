"""Password hashing for editor accounts."""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
  if not password:
    raise ValueError("Password must not be empty.")
  return str(_hasher.hash(password))


def verify_password(password: str, password_hash: str) -> bool:
  try:
    return bool(_hasher.verify(password_hash, password))
  except (VerifyMismatchError, InvalidHashError):
    return False
