"""Catalog read side: visibility, ordering, pagination and topic filtering."""

from __future__ import annotations

import datetime

import pytest
from cms_engine.publishing.status import ContentStatus
from cms_engine.schema.sql import AssetType, AssetVariant
from cms_engine.services import content
from cms_engine.services.catalog import InvalidCursorError, list_published_catalog

T0 = datetime.datetime(2026, 3, 1, 12, 0, 0, tzinfo=datetime.UTC)


async def _live_program(content_factory, program_id: str, *, published_at: datetime.datetime, topic_ids: tuple[str, ...] = ()) -> None:
  await content_factory.program(program_id, status=ContentStatus.PUBLISHED, published_at=published_at, topic_ids=topic_ids)
  await content_factory.term(f"{program_id}-t1", program_id)
  await content_factory.lesson(f"{program_id}-l1", f"{program_id}-t1", status=ContentStatus.PUBLISHED, published_at=published_at)


@pytest.mark.anyio
async def test_only_published_programs_with_a_live_lesson_are_listed(db_session, content_factory):
  await _live_program(content_factory, "visible", published_at=T0)
  # Published program whose only lesson was archived afterwards.
  await content_factory.program("stale", status=ContentStatus.PUBLISHED, published_at=T0)
  await content_factory.term("stale-t1", "stale")
  await content_factory.lesson("stale-l1", "stale-t1", status=ContentStatus.ARCHIVED, published_at=T0)
  # Draft program that already owns a published lesson.
  await content_factory.program("draft")
  await content_factory.term("draft-t1", "draft")
  await content_factory.lesson("draft-l1", "draft-t1", status=ContentStatus.PUBLISHED, published_at=T0)

  page = await list_published_catalog(db_session)

  assert [program.id for program in page.data] == ["visible"]
  assert page.total == 1
  assert page.next_cursor is None


@pytest.mark.anyio
async def test_pages_follow_newest_first_order(db_session, content_factory):
  for offset, program_id in enumerate(["oldest", "middle", "newest"]):
    await _live_program(content_factory, program_id, published_at=T0 + datetime.timedelta(hours=offset))

  first = await list_published_catalog(db_session, limit=2)
  second = await list_published_catalog(db_session, cursor=first.next_cursor, limit=2)

  assert [program.id for program in first.data] == ["newest", "middle"]
  assert first.next_cursor == "2"
  assert first.total == 3
  assert [program.id for program in second.data] == ["oldest"]
  assert second.next_cursor is None


@pytest.mark.anyio
async def test_ties_break_on_id(db_session, content_factory):
  for program_id in ["b", "a", "c"]:
    await _live_program(content_factory, program_id, published_at=T0)

  page = await list_published_catalog(db_session)

  assert [program.id for program in page.data] == ["a", "b", "c"]


@pytest.mark.anyio
async def test_limit_is_clamped_to_maximum(db_session, content_factory):
  for index in range(3):
    await _live_program(content_factory, f"p{index}", published_at=T0 + datetime.timedelta(minutes=index))

  page = await list_published_catalog(db_session, limit=100, max_limit=2)

  assert page.limit == 2
  assert len(page.data) == 2
  assert page.next_cursor == "2"


@pytest.mark.anyio
async def test_topic_filter_narrows_page_and_total(db_session, content_factory):
  await content_factory.topic("coding", "Coding")
  await content_factory.topic("finance", "Finance")
  await _live_program(content_factory, "react", published_at=T0, topic_ids=("coding",))
  await _live_program(content_factory, "budget", published_at=T0 + datetime.timedelta(hours=1), topic_ids=("finance", "coding"))
  await _live_program(content_factory, "tea", published_at=T0 + datetime.timedelta(hours=2))

  page = await list_published_catalog(db_session, topic="finance")
  coding = await list_published_catalog(db_session, topic="coding")

  assert [program.id for program in page.data] == ["budget"]
  assert page.total == 1
  assert page.data[0].topic_ids == ["finance", "coding"]
  assert page.data[0].topics == ["Finance", "Coding"]
  assert [program.id for program in coding.data] == ["budget", "react"]
  assert coding.total == 2


@pytest.mark.anyio
async def test_deleted_topic_leaves_dangling_reference(db_session, content_factory):
  await content_factory.topic("coding", "Coding")
  await content_factory.topic("legacy", "Legacy")
  await _live_program(content_factory, "react", published_at=T0, topic_ids=("legacy", "coding"))

  await content.delete_topic(db_session, "legacy")
  page = await list_published_catalog(db_session, topic="legacy")

  assert [program.id for program in page.data] == ["react"]
  assert page.data[0].topic_ids == ["legacy", "coding"]
  assert page.data[0].topics == ["Coding"]


@pytest.mark.anyio
async def test_posters_prefer_primary_language(db_session, content_factory):
  await _live_program(content_factory, "tea", published_at=T0)
  await content.upsert_asset(db_session, parent_id="tea", language="de", variant=AssetVariant.PORTRAIT, asset_type=AssetType.POSTER, url="https://img.example.com/de-portrait.jpg")
  await content.upsert_asset(db_session, parent_id="tea", language="en", variant=AssetVariant.PORTRAIT, asset_type=AssetType.POSTER, url="https://img.example.com/en-portrait.jpg")
  await content.upsert_asset(db_session, parent_id="tea", language="de", variant=AssetVariant.BANNER, asset_type=AssetType.POSTER, url="https://img.example.com/de-banner.jpg")
  await content.upsert_asset(db_session, parent_id="tea", language="en", variant=AssetVariant.SQUARE, asset_type=AssetType.THUMBNAIL, url="https://img.example.com/en-thumb.jpg")

  page = await list_published_catalog(db_session)

  assert page.data[0].posters == {"portrait": "https://img.example.com/en-portrait.jpg", "banner": "https://img.example.com/de-banner.jpg"}


@pytest.mark.anyio
async def test_program_appears_after_worker_publishes_its_first_lesson(db_session, worker, content_factory):
  await content_factory.program("p2")
  await content_factory.term("p2-t1", "p2")
  await content_factory.lesson("p2-l1", "p2-t1", status=ContentStatus.SCHEDULED, publish_at=T0)

  before = await list_published_catalog(db_session)
  await worker.run_cycle(T0)
  after = await list_published_catalog(db_session)

  assert before.total == 0
  assert [program.id for program in after.data] == ["p2"]
  assert after.data[0].published_at == T0


@pytest.mark.anyio
async def test_archived_term_does_not_hide_a_program_released_through_another_term(db_session, worker, content_factory):
  await content_factory.program("p3")
  await content_factory.term("p3-a", "p3", term_number=1)
  await content_factory.term("p3-b", "p3", term_number=2)
  await content_factory.lesson("p3-a-l1", "p3-a", status=ContentStatus.SCHEDULED, publish_at=T0 - datetime.timedelta(minutes=1))
  await content_factory.lesson("p3-b-l1", "p3-b", status=ContentStatus.ARCHIVED)

  result = await worker.run_cycle(T0)
  page = await list_published_catalog(db_session)

  assert result.lesson_ids == ["p3-a-l1"]
  assert result.program_ids == ["p3"]
  assert page.total == 1
  assert [program.id for program in page.data] == ["p3"]


@pytest.mark.anyio
async def test_invalid_cursor_is_rejected(db_session):
  with pytest.raises(InvalidCursorError):
    await list_published_catalog(db_session, cursor="not-a-cursor")
