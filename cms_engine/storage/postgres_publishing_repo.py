"""SQLAlchemy-backed publishing repository (Postgres in production, SQLite in tests)."""

from __future__ import annotations

import datetime
from collections.abc import Sequence

from sqlalchemy import func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cms_engine.publishing.models import DueLesson, PublishedLesson, PublishedProgram
from cms_engine.publishing.status import LESSON_PUBLISHABLE_FROM, PROGRAM_PUBLISHABLE_FROM, ContentStatus
from cms_engine.schema.sql import Lesson, Program, Term
from cms_engine.schema.types import UTCDateTime
from cms_engine.storage.publishing_repo import PublishingRepository


def _sorted_statuses(statuses: frozenset[ContentStatus]) -> list[ContentStatus]:
  return sorted(statuses, key=lambda status: status.value)


def _now_literal(now: datetime.datetime):
  # Keep the bound timestamp typed so COALESCE stores it like any other column value.
  return literal(now, type_=UTCDateTime())


class PostgresPublishingRepository(PublishingRepository):
  """Queue-as-rows queries over the lessons/terms/programs tables."""

  async def list_due_scheduled_lessons(self, session: AsyncSession, now: datetime.datetime) -> list[DueLesson]:
    stmt = (
      select(Lesson.id, Lesson.term_id, Lesson.publish_at)
      .where(Lesson.status.in_(_sorted_statuses(LESSON_PUBLISHABLE_FROM)), Lesson.publish_at.is_not(None), Lesson.publish_at <= now)
      .order_by(Lesson.publish_at.asc(), Lesson.id.asc())
      # SKIP LOCKED keeps a second process from blocking on rows this cycle owns; SQLite ignores it.
      .with_for_update(skip_locked=True)
    )
    result = await session.execute(stmt)
    return [DueLesson(id=row.id, term_id=row.term_id, publish_at=row.publish_at) for row in result]

  async def transition_lessons_to_published(self, session: AsyncSession, lesson_ids: Sequence[str], now: datetime.datetime) -> list[PublishedLesson]:
    if not lesson_ids:
      return []

    # The guard repeats the due predicate so stale or foreign ids are left alone.
    stmt = (
      update(Lesson)
      .where(
        Lesson.id.in_(list(lesson_ids)),
        Lesson.status.in_(_sorted_statuses(LESSON_PUBLISHABLE_FROM)),
        Lesson.publish_at.is_not(None),
        Lesson.publish_at <= now,
      )
      .values(status=ContentStatus.PUBLISHED, published_at=func.coalesce(Lesson.published_at, _now_literal(now)), updated_at=now)
      .returning(Lesson.id, Lesson.term_id)
      .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    published = [PublishedLesson(id=row.id, term_id=row.term_id) for row in result]
    published.sort(key=lambda lesson: lesson.id)
    return published

  async def resolve_term_programs(self, session: AsyncSession, term_ids: Sequence[str]) -> dict[str, str | None]:
    if not term_ids:
      return {}

    unique_ids = list(dict.fromkeys(term_ids))
    stmt = select(Term.id, Program.id.label("program_id")).outerjoin(Program, Program.id == Term.program_id).where(Term.id.in_(unique_ids))
    result = await session.execute(stmt)
    resolved: dict[str, str | None] = dict.fromkeys(unique_ids)
    for row in result:
      resolved[row.id] = row.program_id
    return resolved

  async def publish_eligible_programs(self, session: AsyncSession, program_ids: Sequence[str] | None, now: datetime.datetime) -> list[PublishedProgram]:
    if program_ids is not None and not program_ids:
      return []

    has_published_lesson = (
      select(Lesson.id).join(Term, Term.id == Lesson.term_id).where(Term.program_id == Program.id, Lesson.status == ContentStatus.PUBLISHED).correlate(Program).exists()
    )
    conditions = [Program.status.in_(_sorted_statuses(PROGRAM_PUBLISHABLE_FROM)), has_published_lesson]
    if program_ids is not None:
      conditions.append(Program.id.in_(list(dict.fromkeys(program_ids))))

    stmt = (
      update(Program)
      .where(*conditions)
      .values(status=ContentStatus.PUBLISHED, published_at=func.coalesce(Program.published_at, _now_literal(now)), updated_at=now)
      .returning(Program.id, Program.published_at)
      .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    published = [PublishedProgram(id=row.id, published_at=row.published_at) for row in result]
    published.sort(key=lambda program: program.id)
    return published
