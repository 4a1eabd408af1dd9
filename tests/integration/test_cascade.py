"""Cascade resolver behavior against a real (SQLite) store."""

from __future__ import annotations

import datetime

import pytest
from cms_engine.publishing.cascade import CascadeResolver
from cms_engine.publishing.status import ContentStatus
from cms_engine.schema.sql import Program

T0 = datetime.datetime(2026, 3, 1, 12, 0, 0, tzinfo=datetime.UTC)


async def _cascade(session_factory, term_ids):
  resolver = CascadeResolver()
  async with session_factory() as session:
    async with session.begin():
      return await resolver.cascade_publish_programs(session, term_ids, T0)


@pytest.mark.anyio
async def test_program_without_published_lesson_stays_draft(session_factory, content_factory):
  await content_factory.program("p1")
  await content_factory.term("t1", "p1")
  await content_factory.lesson("l1", "t1", status=ContentStatus.SCHEDULED, publish_at=T0 + datetime.timedelta(days=1))

  result = await _cascade(session_factory, ["t1"])

  assert result.candidate_program_ids == ["p1"]
  assert result.programs == []
  assert (await content_factory.get(Program, "p1")).status == ContentStatus.DRAFT


@pytest.mark.anyio
async def test_published_lesson_publishes_program_once(session_factory, content_factory):
  await content_factory.program("p1", status=ContentStatus.SCHEDULED)
  await content_factory.term("t1", "p1", term_number=1)
  await content_factory.term("t2", "p1", term_number=2)
  await content_factory.lesson("l1", "t2", status=ContentStatus.PUBLISHED, publish_at=T0, published_at=T0)

  first = await _cascade(session_factory, ["t1", "t2"])
  second = await _cascade(session_factory, ["t2"])

  assert first.candidate_program_ids == ["p1"]
  assert first.program_ids == ["p1"]
  assert first.programs[0].published_at == T0
  assert second.programs == []


@pytest.mark.anyio
async def test_orphan_term_is_skipped(session_factory, content_factory):
  # SQLite does not enforce foreign keys here, so the term can point at a missing program.
  await content_factory.term("ghost-term", "missing-program")
  await content_factory.program("p1")
  await content_factory.term("t1", "p1")
  await content_factory.lesson("l1", "t1", status=ContentStatus.PUBLISHED, published_at=T0)

  result = await _cascade(session_factory, ["ghost-term", "t1", "unknown-term"])

  assert result.orphan_term_ids == ["ghost-term", "unknown-term"]
  assert result.program_ids == ["p1"]


@pytest.mark.anyio
async def test_archived_program_is_never_republished(session_factory, content_factory):
  await content_factory.program("p1", status=ContentStatus.ARCHIVED)
  await content_factory.term("t1", "p1")
  await content_factory.lesson("l1", "t1", status=ContentStatus.PUBLISHED, published_at=T0)

  result = await _cascade(session_factory, ["t1"])

  assert result.programs == []
  program = await content_factory.get(Program, "p1")
  assert program.status == ContentStatus.ARCHIVED
  assert program.published_at is None


@pytest.mark.anyio
async def test_sweep_publishes_every_eligible_program(session_factory, content_factory):
  await content_factory.program("p1")
  await content_factory.term("t1", "p1")
  await content_factory.lesson("l1", "t1", status=ContentStatus.PUBLISHED, published_at=T0)
  await content_factory.program("p2")
  await content_factory.term("t2", "p2")
  await content_factory.lesson("l2", "t2", status=ContentStatus.DRAFT)

  result = await _cascade(session_factory, None)

  assert result.program_ids == ["p1"]
  assert (await content_factory.get(Program, "p2")).status == ContentStatus.DRAFT


@pytest.mark.anyio
async def test_empty_term_list_writes_nothing(session_factory, content_factory):
  await content_factory.program("p1")
  await content_factory.term("t1", "p1")
  await content_factory.lesson("l1", "t1", status=ContentStatus.PUBLISHED, published_at=T0)

  result = await _cascade(session_factory, [])

  assert result.programs == []
  assert result.candidate_program_ids == []
  assert (await content_factory.get(Program, "p1")).status == ContentStatus.DRAFT
