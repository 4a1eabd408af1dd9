"""Storage interface for the publish queue.

Status columns are the queue: "due" means a scheduled lesson whose
``publish_at`` has passed. Every method runs inside the caller's session and
transaction so a whole cycle commits or rolls back together.
"""

from __future__ import annotations

import datetime
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from cms_engine.publishing.models import DueLesson, PublishedLesson, PublishedProgram


class PublishingRepository(Protocol):
  """Repository contract for queue-as-rows publishing."""

  async def list_due_scheduled_lessons(self, session: AsyncSession, now: datetime.datetime) -> list[DueLesson]:
    """Return scheduled lessons with `publish_at <= now`, locking them for this transaction."""

  async def transition_lessons_to_published(self, session: AsyncSession, lesson_ids: Sequence[str], now: datetime.datetime) -> list[PublishedLesson]:
    """Move the given lessons from scheduled to published and return the rows actually changed."""

  async def resolve_term_programs(self, session: AsyncSession, term_ids: Sequence[str]) -> dict[str, str | None]:
    """Map each term id to its owning program id, or None when either row is missing."""

  async def publish_eligible_programs(self, session: AsyncSession, program_ids: Sequence[str] | None, now: datetime.datetime) -> list[PublishedProgram]:
    """Publish programs that are still pre-publication and own at least one published lesson."""
