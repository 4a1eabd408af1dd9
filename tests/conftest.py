"""Shared fixtures: an in-memory SQLite store, session factory and HTTP client."""

from __future__ import annotations

import datetime
import os

# Ensure required settings are available before importing the app.
os.environ["CMS_ALLOWED_ORIGINS"] = "http://localhost"
os.environ["CMS_ADMIN_SECRET"] = "test-admin-secret"
os.environ["CMS_PUBLISH_WORKER_ENABLED"] = "0"
os.environ.pop("CMS_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from cms_engine.core.database import Base, get_db  # noqa: E402
from cms_engine.main import app  # noqa: E402
from cms_engine.publishing.status import ContentStatus  # noqa: E402
from cms_engine.publishing.worker import PublishWorker  # noqa: E402
from cms_engine.schema.sql import Lesson, Program, ProgramTopic, Term, Topic  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
async def engine():
  db_engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool, connect_args={"check_same_thread": False})
  async with db_engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  yield db_engine
  await db_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
  return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db_session(session_factory):
  async with session_factory() as session:
    yield session


@pytest.fixture
def worker(session_factory) -> PublishWorker:
  return PublishWorker(session_factory, interval_seconds=30)


class ContentFactory:
  """Insert rows directly, bypassing editor checks, to set up publish scenarios."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def _add(self, row):
    async with self._session_factory() as session:
      session.add(row)
      await session.commit()
    return row

  async def topic(self, topic_id: str, name: str) -> Topic:
    return await self._add(Topic(id=topic_id, name=name))

  async def program(self, program_id: str, *, status: ContentStatus = ContentStatus.DRAFT, published_at: datetime.datetime | None = None, topic_ids: tuple[str, ...] = (), title: str | None = None) -> Program:
    program = Program(id=program_id, title=title or f"Program {program_id}", language_primary="en", languages_available=["en"], status=status, published_at=published_at)
    for position, topic_id in enumerate(topic_ids):
      program.topic_links.append(ProgramTopic(position=position, topic_id=topic_id))
    return await self._add(program)

  async def term(self, term_id: str, program_id: str, term_number: int = 1) -> Term:
    return await self._add(Term(id=term_id, program_id=program_id, term_number=term_number, title=f"Term {term_id}"))

  async def lesson(
    self,
    lesson_id: str,
    term_id: str,
    *,
    lesson_number: int = 1,
    status: ContentStatus = ContentStatus.DRAFT,
    publish_at: datetime.datetime | None = None,
    published_at: datetime.datetime | None = None,
  ) -> Lesson:
    lesson = Lesson(
      id=lesson_id,
      term_id=term_id,
      lesson_number=lesson_number,
      title=f"Lesson {lesson_id}",
      status=status,
      publish_at=publish_at,
      published_at=published_at,
      content_languages_available=["en"],
      content_urls_by_language={"en": f"https://example.com/{lesson_id}"},
    )
    return await self._add(lesson)

  async def get(self, model, row_id: str):
    async with self._session_factory() as session:
      return await session.get(model, row_id)


@pytest.fixture
def content_factory(session_factory) -> ContentFactory:
  return ContentFactory(session_factory)


@pytest.fixture
async def async_client(session_factory, worker):
  async def _get_db():
    async with session_factory() as session:
      yield session

  app.dependency_overrides[get_db] = _get_db
  app.state.publish_worker = worker
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
  app.state.publish_worker = None
