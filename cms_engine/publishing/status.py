"""Status state machine for lessons and programs.

Status columns double as the publish queue, so every predicate the worker and
the cascade use is derived from the sets and functions in this module rather
than from string comparisons scattered across call sites.

Worker-driven transitions:
  - Lesson ``scheduled -> published`` once ``publish_at <= now``.
  - Program ``draft|scheduled -> published`` once any of its lessons is published.

Editor-driven transitions are free-form except that ``archived`` is terminal
and a scheduled lesson needs a release instant. Only the worker releases a
scheduled lesson; a program's ``scheduled`` state is an editor label.
"""

from __future__ import annotations

import datetime
from enum import Enum


class ContentStatus(str, Enum):
  DRAFT = "draft"
  SCHEDULED = "scheduled"
  PUBLISHED = "published"
  ARCHIVED = "archived"


def enum_values(enum_cls: type[Enum]) -> list[str]:
  """Persist enum values (e.g. `draft`) instead of enum names (e.g. `DRAFT`)."""
  return [str(member.value) for member in enum_cls]


LESSON_PUBLISHABLE_FROM: frozenset[ContentStatus] = frozenset({ContentStatus.SCHEDULED})
PROGRAM_PUBLISHABLE_FROM: frozenset[ContentStatus] = frozenset({ContentStatus.DRAFT, ContentStatus.SCHEDULED})
TERMINAL_STATUSES: frozenset[ContentStatus] = frozenset({ContentStatus.ARCHIVED})


class IllegalTransitionError(ValueError):
  """Raised when a requested status change is not allowed."""

  def __init__(self, entity: str, current: ContentStatus, target: ContentStatus, reason: str) -> None:
    super().__init__(f"{entity} cannot move from {current.value} to {target.value}: {reason}")
    self.entity = entity
    self.current = current
    self.target = target
    self.reason = reason


def first_published_at(existing: datetime.datetime | None, now: datetime.datetime) -> datetime.datetime:
  """Keep the first publish instant; only fill it when it was never set."""
  if existing is not None:
    return existing
  return now


def check_editor_transition(entity: str, current: ContentStatus, target: ContentStatus, *, publish_at: datetime.datetime | None) -> None:
  """Validate an editor-initiated status change."""
  if current in TERMINAL_STATUSES and target != current:
    raise IllegalTransitionError(entity, current, target, "archived content cannot be reopened")
  if entity == "lesson" and target == ContentStatus.SCHEDULED and publish_at is None:
    raise IllegalTransitionError(entity, current, target, "publish_at is required when scheduling")
  if entity == "lesson" and current == ContentStatus.SCHEDULED and target == ContentStatus.PUBLISHED:
    raise IllegalTransitionError(entity, current, target, "scheduled lessons are released by the publish worker")


def lesson_invariant_violations(
  status: ContentStatus, publish_at: datetime.datetime | None, published_at: datetime.datetime | None
) -> list[str]:
  """List every stored-state rule a lesson row breaks.

  A republished lesson keeps its first ``published_at``, which may then
  precede a later ``publish_at``; that is not reported.
  """
  violations: list[str] = []
  if status == ContentStatus.SCHEDULED and publish_at is None:
    violations.append("scheduled lesson has no publish_at")
  if status == ContentStatus.PUBLISHED and published_at is None:
    violations.append("published lesson has no published_at")
  return violations


def program_invariant_violations(status: ContentStatus, published_at: datetime.datetime | None) -> list[str]:
  """List every stored-state rule a program row breaks."""
  if status == ContentStatus.PUBLISHED and published_at is None:
    return ["published program has no published_at"]
  return []
