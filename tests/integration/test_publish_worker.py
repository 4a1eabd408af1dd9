"""Publish worker cycles against a real (SQLite) store."""

from __future__ import annotations

import asyncio
import datetime

import pytest
from cms_engine.publishing.cascade import CascadeResolver
from cms_engine.publishing.status import ContentStatus
from cms_engine.publishing.worker import PublishWorker, application_clock, clock_for, database_clock
from cms_engine.schema.sql import Lesson, Program
from cms_engine.storage.postgres_publishing_repo import PostgresPublishingRepository

T0 = datetime.datetime(2026, 3, 1, 12, 0, 0, tzinfo=datetime.UTC)


class _ExplodingResolver(CascadeResolver):
  """Fails after the lesson update has already been issued."""

  async def cascade_publish_programs(self, session, term_ids, now):
    raise RuntimeError("cascade unavailable")


class _BlockingRepository(PostgresPublishingRepository):
  """Parks the first due-lesson scan until the test releases it."""

  def __init__(self) -> None:
    self.entered = asyncio.Event()
    self.release = asyncio.Event()

  async def list_due_scheduled_lessons(self, session, now):
    self.entered.set()
    await self.release.wait()
    return await super().list_due_scheduled_lessons(session, now)


async def _seed_program_with_scheduled_lesson(content_factory, *, publish_at: datetime.datetime, program_status: ContentStatus = ContentStatus.DRAFT) -> None:
  await content_factory.program("p1", status=program_status)
  await content_factory.term("t1", "p1")
  await content_factory.lesson("l1", "t1", status=ContentStatus.SCHEDULED, publish_at=publish_at)


@pytest.mark.anyio
async def test_due_lesson_publishes_and_cascades_to_program(worker, content_factory):
  await _seed_program_with_scheduled_lesson(content_factory, publish_at=T0 - datetime.timedelta(minutes=1))

  result = await worker.run_cycle(T0)

  assert result.lesson_ids == ["l1"]
  assert result.program_ids == ["p1"]
  lesson = await content_factory.get(Lesson, "l1")
  program = await content_factory.get(Program, "p1")
  assert lesson.status == ContentStatus.PUBLISHED
  assert lesson.published_at == T0
  assert program.status == ContentStatus.PUBLISHED
  assert program.published_at == T0


@pytest.mark.anyio
async def test_release_instant_is_inclusive(worker, content_factory):
  await content_factory.program("p1")
  await content_factory.term("t1", "p1")
  await content_factory.lesson("on-time", "t1", lesson_number=1, status=ContentStatus.SCHEDULED, publish_at=T0)
  await content_factory.lesson("late", "t1", lesson_number=2, status=ContentStatus.SCHEDULED, publish_at=T0 + datetime.timedelta(microseconds=1))

  result = await worker.run_cycle(T0)

  assert result.lesson_ids == ["on-time"]
  assert (await content_factory.get(Lesson, "late")).status == ContentStatus.SCHEDULED


@pytest.mark.anyio
async def test_second_cycle_is_a_no_op(worker, content_factory):
  await _seed_program_with_scheduled_lesson(content_factory, publish_at=T0)

  first = await worker.run_cycle(T0)
  second = await worker.run_cycle(T0 + datetime.timedelta(minutes=5))

  assert first.lesson_ids == ["l1"]
  assert second.lesson_ids == []
  assert second.program_ids == []
  lesson = await content_factory.get(Lesson, "l1")
  assert lesson.published_at == T0
  assert worker.status.cycles_completed == 2
  assert worker.status.last_lessons_published == 0


@pytest.mark.anyio
async def test_republishing_keeps_the_first_published_at(worker, content_factory):
  first_release = T0 - datetime.timedelta(days=10)
  await content_factory.program("p1", status=ContentStatus.PUBLISHED, published_at=first_release)
  await content_factory.term("t1", "p1")
  await content_factory.lesson("l1", "t1", status=ContentStatus.SCHEDULED, publish_at=T0 - datetime.timedelta(hours=1), published_at=first_release)

  result = await worker.run_cycle(T0)

  assert result.lesson_ids == ["l1"]
  # Already published programs are not candidates for the cascade.
  assert result.program_ids == []
  assert (await content_factory.get(Lesson, "l1")).published_at == first_release
  assert (await content_factory.get(Program, "p1")).published_at == first_release


@pytest.mark.anyio
async def test_future_and_non_scheduled_lessons_are_left_alone(worker, content_factory):
  await content_factory.program("p1")
  await content_factory.term("t1", "p1")
  await content_factory.lesson("future", "t1", lesson_number=1, status=ContentStatus.SCHEDULED, publish_at=T0 + datetime.timedelta(days=1))
  await content_factory.lesson("draft", "t1", lesson_number=2, status=ContentStatus.DRAFT, publish_at=T0 - datetime.timedelta(days=1))
  await content_factory.lesson("archived", "t1", lesson_number=3, status=ContentStatus.ARCHIVED, publish_at=T0 - datetime.timedelta(days=1))

  result = await worker.run_cycle(T0)

  assert result.lesson_ids == []
  assert (await content_factory.get(Program, "p1")).status == ContentStatus.DRAFT


@pytest.mark.anyio
async def test_failed_cascade_rolls_back_lesson_updates(session_factory, content_factory):
  await _seed_program_with_scheduled_lesson(content_factory, publish_at=T0)
  failing = PublishWorker(session_factory, resolver=_ExplodingResolver())

  result = await failing.run_cycle(T0)

  assert result.failed is True
  assert result.error == "unknown_error"
  assert failing.status.cycles_failed == 1
  assert "cascade unavailable" in failing.status.last_error
  lesson = await content_factory.get(Lesson, "l1")
  assert lesson.status == ContentStatus.SCHEDULED
  assert lesson.published_at is None

  retried = await PublishWorker(session_factory).run_cycle(T0)
  assert retried.lesson_ids == ["l1"]
  assert retried.program_ids == ["p1"]


@pytest.mark.anyio
async def test_overlapping_cycle_is_skipped(session_factory, content_factory):
  await _seed_program_with_scheduled_lesson(content_factory, publish_at=T0)
  repository = _BlockingRepository()
  blocking = PublishWorker(session_factory, repository=repository)

  in_flight = asyncio.create_task(blocking.run_cycle(T0))
  await asyncio.wait_for(repository.entered.wait(), timeout=5)
  assert blocking.is_cycle_running is True

  overlapped = await blocking.run_cycle(T0)
  assert overlapped.skipped is True
  assert overlapped.lesson_ids == []

  repository.release.set()
  completed = await asyncio.wait_for(in_flight, timeout=5)
  assert completed.lesson_ids == ["l1"]
  assert blocking.status.cycles_skipped == 1
  assert blocking.status.cycles_completed == 1
  assert blocking.is_cycle_running is False


@pytest.mark.anyio
async def test_lessons_across_programs_publish_in_one_cycle(worker, content_factory):
  await content_factory.program("p1")
  await content_factory.term("t1", "p1")
  await content_factory.lesson("l1", "t1", status=ContentStatus.SCHEDULED, publish_at=T0 - datetime.timedelta(minutes=2))
  await content_factory.program("p2", status=ContentStatus.SCHEDULED)
  await content_factory.term("t2", "p2")
  await content_factory.lesson("l2", "t2", status=ContentStatus.SCHEDULED, publish_at=T0 - datetime.timedelta(minutes=1))
  await content_factory.program("p3", status=ContentStatus.ARCHIVED)
  await content_factory.term("t3", "p3")
  await content_factory.lesson("l3", "t3", status=ContentStatus.SCHEDULED, publish_at=T0)

  result = await worker.run_cycle(T0)

  assert result.lesson_ids == ["l1", "l2", "l3"]
  assert result.program_ids == ["p1", "p2"]
  assert (await content_factory.get(Program, "p3")).status == ContentStatus.ARCHIVED


@pytest.mark.anyio
async def test_naive_now_is_rejected(worker):
  with pytest.raises(ValueError):
    await worker.run_cycle(datetime.datetime(2026, 3, 1, 12, 0))


@pytest.mark.anyio
async def test_database_clock_drives_the_cycle(session_factory, content_factory):
  await _seed_program_with_scheduled_lesson(content_factory, publish_at=datetime.datetime.now(datetime.UTC) - datetime.timedelta(hours=1))
  db_clock_worker = PublishWorker(session_factory, clock=database_clock)

  result = await db_clock_worker.run_cycle()

  assert result.lesson_ids == ["l1"]
  assert result.now is not None
  assert result.now.tzinfo is not None
  assert db_clock_worker.status.clock == "database"


def test_clock_for_resolves_names():
  assert clock_for("database") is database_clock
  assert clock_for("application") is application_clock
  with pytest.raises(ValueError):
    clock_for("ntp")


@pytest.mark.anyio
async def test_interval_must_be_positive(session_factory):
  with pytest.raises(ValueError):
    PublishWorker(session_factory, interval_seconds=0)


@pytest.mark.anyio
async def test_started_worker_ticks_until_stopped(session_factory, content_factory):
  await _seed_program_with_scheduled_lesson(content_factory, publish_at=datetime.datetime.now(datetime.UTC) - datetime.timedelta(seconds=1))
  background = PublishWorker(session_factory, interval_seconds=0.05, clock=application_clock)

  background.start()
  assert background.status.running is True
  for _ in range(100):
    if background.status.cycles_completed >= 2:
      break
    await asyncio.sleep(0.02)
  await background.stop()

  assert background.status.running is False
  assert background.status.cycles_completed >= 2
  assert (await content_factory.get(Lesson, "l1")).status == ContentStatus.PUBLISHED
  assert (await content_factory.get(Program, "p1")).status == ContentStatus.PUBLISHED
