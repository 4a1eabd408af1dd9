"""Background publish worker.

Each cycle reads the clock once, publishes every scheduled lesson whose
``publish_at`` has passed and cascades the change to the owning programs, all
inside a single transaction. Cycles never overlap within one worker: a tick
that finds the previous cycle still running is skipped, not queued.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime
import logging
from collections.abc import Awaitable, Callable

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cms_engine.publishing.cascade import CascadeResolver
from cms_engine.publishing.models import CascadeResult, CycleResult, WorkerStatus
from cms_engine.schema.types import UTCDateTime
from cms_engine.storage.postgres_publishing_repo import PostgresPublishingRepository
from cms_engine.storage.publishing_repo import PublishingRepository
from cms_engine.utils.db_retry import classify_db_failure

logger = logging.getLogger(__name__)

Clock = Callable[[AsyncSession], Awaitable[datetime.datetime]]


async def database_clock(session: AsyncSession) -> datetime.datetime:
  """Read the store's clock so every node compares against the same time source."""
  value = await session.scalar(select(func.now(type_=UTCDateTime())))
  if value is None:
    raise RuntimeError("Database returned no current timestamp.")
  return value


async def application_clock(session: AsyncSession) -> datetime.datetime:
  _ = session
  return datetime.datetime.now(datetime.UTC)


def clock_for(name: str) -> Clock:
  if name == "database":
    return database_clock
  if name == "application":
    return application_clock
  raise ValueError(f"Unknown publish clock: {name}")


class PublishWorker:
  """Poll the lessons table and publish what is due."""

  def __init__(
    self,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    interval_seconds: float = 30.0,
    clock: Clock = database_clock,
    repository: PublishingRepository | None = None,
    resolver: CascadeResolver | None = None,
    statement_timeout_ms: int = 0,
  ) -> None:
    if interval_seconds <= 0:
      raise ValueError("interval_seconds must be positive")
    self._session_factory = session_factory
    self._interval_seconds = interval_seconds
    self._clock = clock
    self._repository = repository or PostgresPublishingRepository()
    self._resolver = resolver or CascadeResolver(self._repository)
    self._statement_timeout_ms = statement_timeout_ms
    # Single-slot guard owned by this worker instance.
    self._lock = asyncio.Lock()
    self._task: asyncio.Task[None] | None = None
    self._stop_event = asyncio.Event()
    self._status = WorkerStatus(interval_seconds=interval_seconds, clock=getattr(clock, "__name__", "custom").removesuffix("_clock"))

  @property
  def status(self) -> WorkerStatus:
    """Return a snapshot of the worker counters."""
    return dataclasses.replace(self._status)

  @property
  def is_cycle_running(self) -> bool:
    return self._lock.locked()

  async def run_cycle(self, now: datetime.datetime | None = None) -> CycleResult:
    """Run one publish cycle; a cycle already in flight makes this a no-op."""
    if now is not None and now.tzinfo is None:
      raise ValueError("now must be timezone-aware")

    # No await sits between the check and the acquire, so the check cannot race.
    if self._lock.locked():
      self._status.cycles_skipped += 1
      logger.info("Publish cycle skipped; previous cycle still running.")
      return CycleResult(now=now, skipped=True)

    async with self._lock:
      return await self._run_locked(now)

  async def tick(self) -> None:
    """Scheduled entrypoint; failures are recorded on the status and never raised."""
    result = await self.run_cycle()
    if result.failed:
      logger.info("Publish cycle will be retried on the next tick in %.1fs.", self._interval_seconds)

  def start(self) -> None:
    """Begin ticking every `interval_seconds` on the running event loop."""
    if self._task is not None and not self._task.done():
      return
    self._stop_event = asyncio.Event()
    self._task = asyncio.create_task(self._run_forever(), name="publish-worker")
    self._task.add_done_callback(self._log_task_exit)
    self._status.running = True
    logger.info("Publish worker started: interval=%.1fs clock=%s", self._interval_seconds, self._status.clock)

  async def stop(self) -> None:
    """Stop ticking and wait for an in-flight cycle to finish."""
    task = self._task
    if task is None:
      return
    self._stop_event.set()
    await task
    self._task = None
    self._status.running = False
    logger.info("Publish worker stopped.")

  async def _run_forever(self) -> None:
    while not self._stop_event.is_set():
      await self.tick()
      try:
        await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
      except TimeoutError:
        continue

  async def _run_locked(self, now: datetime.datetime | None) -> CycleResult:
    cycle_now = now
    try:
      async with self._session_factory() as session:
        async with session.begin():
          await self._apply_statement_timeout(session)
          # Read the clock once; every comparison and write in this cycle uses it.
          if cycle_now is None:
            cycle_now = await self._clock(session)

          due = await self._repository.list_due_scheduled_lessons(session, cycle_now)
          lessons = await self._repository.transition_lessons_to_published(session, [lesson.id for lesson in due], cycle_now)
          cascade = CascadeResult()
          if lessons:
            term_ids = sorted({lesson.term_id for lesson in lessons})
            cascade = await self._resolver.cascade_publish_programs(session, term_ids, cycle_now)

    except Exception as exc:  # noqa: BLE001
      classification = classify_db_failure(exc)
      logger.error(
        "Publish cycle failed and was rolled back: category=%s, sqlstate=%s, transient=%s, reason=%s",
        classification.category,
        classification.sqlstate or "none",
        classification.transient,
        classification.reason,
        exc_info=not classification.transient,
      )
      self._status.cycles_failed += 1
      self._status.last_error = f"{classification.category}: {exc}"
      return CycleResult(now=cycle_now, failed=True, error=classification.category)

    self._status.cycles_completed += 1
    self._status.last_cycle_at = cycle_now
    self._status.last_error = None
    self._status.last_lessons_published = len(lessons)
    self._status.last_programs_published = len(cascade.programs)

    if lessons:
      logger.info("Publish cycle published lessons=%s programs=%s at=%s", [lesson.id for lesson in lessons], cascade.program_ids, cycle_now.isoformat())
    else:
      logger.debug("Publish cycle found no due lessons at=%s", cycle_now.isoformat())
    return CycleResult(now=cycle_now, lessons=lessons, cascade=cascade)

  async def _apply_statement_timeout(self, session: AsyncSession) -> None:
    if self._statement_timeout_ms <= 0:
      return
    if session.get_bind().dialect.name != "postgresql":
      return
    # SET LOCAL cannot take bind parameters; the value is an int.
    await session.execute(text(f"SET LOCAL statement_timeout = {int(self._statement_timeout_ms)}"))

  def _log_task_exit(self, task: asyncio.Task[None]) -> None:
    if task.cancelled():
      self._status.running = False
      logger.warning("Publish worker task was cancelled.")
      return
    exc = task.exception()
    if exc is not None:
      self._status.running = False
      logger.error("Publish worker task exited unexpectedly: %s", exc, exc_info=exc)
