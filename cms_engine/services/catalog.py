"""Public read side of the catalog.

Only programs that are published and own at least one published lesson are
visible. Visibility is evaluated at read time, so a program that slipped
through to ``published`` without a live lesson stays hidden until it has one.
"""

from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cms_engine.publishing.status import ContentStatus
from cms_engine.schema.sql import Asset, AssetType, Lesson, Program, ProgramTopic, Term, Topic

logger = logging.getLogger(__name__)


# Largest offset every supported store accepts as an OFFSET bind.
MAX_CURSOR_OFFSET = 2**31 - 1


class InvalidCursorError(ValueError):
  """Raised when a pagination cursor is not a token this service issued."""


@dataclass(frozen=True)
class CatalogProgram:
  id: str
  title: str
  description: str | None
  language_primary: str
  languages_available: list[str]
  status: ContentStatus
  published_at: datetime.datetime | None
  created_at: datetime.datetime
  updated_at: datetime.datetime
  topic_ids: list[str] = field(default_factory=list)
  topics: list[str] = field(default_factory=list)
  posters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CatalogPage:
  data: list[CatalogProgram]
  next_cursor: str | None
  total: int
  limit: int


def parse_cursor(cursor: str | None) -> int:
  """Decode an opaque cursor into a row offset."""
  if cursor is None or cursor == "":
    return 0
  if not (cursor.isascii() and cursor.isdigit()):
    raise InvalidCursorError("cursor must be a token returned by a previous page")
  offset = int(cursor)
  if offset > MAX_CURSOR_OFFSET:
    raise InvalidCursorError("cursor is out of range")
  return offset


def encode_cursor(offset: int) -> str:
  return str(offset)


def clamp_limit(limit: int | None, *, default: int, maximum: int) -> int:
  if limit is None:
    return default
  return max(1, min(int(limit), maximum))


def _visible_conditions(topic: str | None) -> list:
  has_published_lesson = (
    select(Lesson.id).join(Term, Term.id == Lesson.term_id).where(Term.program_id == Program.id, Lesson.status == ContentStatus.PUBLISHED).correlate(Program).exists()
  )
  conditions = [Program.status == ContentStatus.PUBLISHED, has_published_lesson]
  if topic:
    conditions.append(select(ProgramTopic.program_id).where(ProgramTopic.program_id == Program.id, ProgramTopic.topic_id == topic).correlate(Program).exists())
  return conditions


async def _topics_by_program(session: AsyncSession, program_ids: list[str]) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
  """Return (topic ids, resolved topic names) per program in reference order."""
  ids: dict[str, list[str]] = defaultdict(list)
  names: dict[str, list[str]] = defaultdict(list)
  # Outer join keeps dangling ids in the id list but out of the name list.
  stmt = (
    select(ProgramTopic.program_id, ProgramTopic.topic_id, Topic.name)
    .outerjoin(Topic, Topic.id == ProgramTopic.topic_id)
    .where(ProgramTopic.program_id.in_(program_ids))
    .order_by(ProgramTopic.program_id.asc(), ProgramTopic.position.asc())
  )
  for row in await session.execute(stmt):
    ids[row.program_id].append(row.topic_id)
    if row.name is not None:
      names[row.program_id].append(row.name)
  return ids, names


async def _posters_by_program(session: AsyncSession, programs: list[Program]) -> dict[str, dict[str, str]]:
  """Return `variant -> url` poster maps, preferring each program's primary language."""
  primary_language = {program.id: program.language_primary for program in programs}
  stmt = select(Asset).where(Asset.parent_id.in_(list(primary_language)), Asset.asset_type == AssetType.POSTER).order_by(Asset.parent_id.asc(), Asset.language.asc())
  posters: dict[str, dict[str, str]] = defaultdict(dict)
  ranked: dict[tuple[str, str], bool] = {}
  for asset in (await session.execute(stmt)).scalars():
    key = (asset.parent_id, asset.variant.value)
    is_primary = asset.language == primary_language[asset.parent_id]
    # Keep the first match per variant unless a primary-language one arrives later.
    if key in ranked and (ranked[key] or not is_primary):
      continue
    posters[asset.parent_id][asset.variant.value] = asset.url
    ranked[key] = is_primary
  return posters


async def list_published_catalog(session: AsyncSession, *, cursor: str | None = None, limit: int | None = None, topic: str | None = None, default_limit: int = 10, max_limit: int = 50) -> CatalogPage:
  """Return one page of visible programs, newest release first."""
  offset = parse_cursor(cursor)
  page_size = clamp_limit(limit, default=default_limit, maximum=max_limit)
  conditions = _visible_conditions(topic)

  total = int(await session.scalar(select(func.count()).select_from(Program).where(*conditions)) or 0)
  stmt = (
    select(Program)
    .where(*conditions)
    .order_by(func.coalesce(Program.published_at, Program.created_at).desc(), Program.id.asc())
    .offset(offset)
    .limit(page_size)
  )
  programs = list((await session.execute(stmt)).scalars())

  program_ids = [program.id for program in programs]
  topic_ids: dict[str, list[str]] = {}
  topic_names: dict[str, list[str]] = {}
  posters: dict[str, dict[str, str]] = {}
  if program_ids:
    topic_ids, topic_names = await _topics_by_program(session, program_ids)
    posters = await _posters_by_program(session, programs)

  data = [
    CatalogProgram(
      id=program.id,
      title=program.title,
      description=program.description,
      language_primary=program.language_primary,
      languages_available=list(program.languages_available or []),
      status=program.status,
      published_at=program.published_at,
      created_at=program.created_at,
      updated_at=program.updated_at,
      topic_ids=list(topic_ids.get(program.id, [])),
      topics=list(topic_names.get(program.id, [])),
      posters=dict(posters.get(program.id, {})),
    )
    for program in programs
  ]
  next_cursor = encode_cursor(offset + page_size) if len(programs) == page_size else None
  logger.debug("Catalog page served: offset=%s limit=%s topic=%s returned=%s total=%s", offset, page_size, topic, len(data), total)
  return CatalogPage(data=data, next_cursor=next_cursor, total=total, limit=page_size)
