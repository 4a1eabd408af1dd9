"""Editor-side CRUD for the content tables.

Routes and the bootstrap script go through these helpers so every write runs
the same status checks and maps store constraint failures to one error type.
The publish worker never calls in here; it only touches rows through the
publishing repository. A lesson an editor publishes directly runs the same
program cascade the worker runs, inside the editor's transaction.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cms_engine.publishing.cascade import CascadeResolver
from cms_engine.publishing.status import ContentStatus, check_editor_transition, first_published_at, lesson_invariant_violations, program_invariant_violations
from cms_engine.schema.sql import Asset, AssetType, AssetVariant, ContentType, Lesson, Program, ProgramTopic, Term, Topic, User, UserRole
from cms_engine.utils.ids import generate_id
from cms_engine.utils.passwords import hash_password

logger = logging.getLogger(__name__)

_LESSON_FIELDS = frozenset(
  {
    "title",
    "lesson_number",
    "content_type",
    "duration_ms",
    "is_paid",
    "content_language_primary",
    "content_languages_available",
    "content_urls_by_language",
    "subtitle_languages",
    "subtitle_urls_by_language",
  }
)
_PROGRAM_FIELDS = frozenset({"title", "description", "language_primary", "languages_available"})


class ConstraintViolationError(Exception):
  """Raised when a write breaks a store constraint (uniqueness, foreign key, check)."""


class NotFoundError(LookupError):
  """Raised when a referenced row does not exist."""

  def __init__(self, entity: str, entity_id: str) -> None:
    super().__init__(f"{entity} {entity_id} not found")
    self.entity = entity
    self.entity_id = entity_id


def _utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


async def _commit(session: AsyncSession, action: str) -> None:
  """Commit and translate constraint failures into ConstraintViolationError."""
  try:
    await session.commit()
  except IntegrityError as exc:
    await session.rollback()
    logger.warning("Content write rejected by the store: action=%s error=%s", action, exc.orig)
    raise ConstraintViolationError(f"{action} violates a content constraint") from exc


async def _flush(session: AsyncSession, action: str) -> None:
  try:
    await session.flush()
  except IntegrityError as exc:
    await session.rollback()
    logger.warning("Content write rejected by the store: action=%s error=%s", action, exc.orig)
    raise ConstraintViolationError(f"{action} violates a content constraint") from exc


def _raise_on_violations(action: str, violations: list[str]) -> None:
  if violations:
    raise ConstraintViolationError(f"{action} leaves an invalid row: {'; '.join(violations)}")


def _apply_release(lesson: Lesson, target: ContentStatus, now: datetime.datetime) -> None:
  """Fill publish timestamps when an editor publishes a lesson directly."""
  if target != ContentStatus.PUBLISHED:
    return
  # A manual release moves a future release instant back to the actual one.
  if lesson.publish_at is not None and lesson.publish_at > now:
    lesson.publish_at = now
  lesson.published_at = first_published_at(lesson.published_at, now)


async def _cascade_release(session: AsyncSession, lesson: Lesson, now: datetime.datetime, action: str) -> None:
  """Publish the owning program of a lesson an editor just published."""
  # The cascade re-checks eligibility in SQL, so the lesson row must be written first.
  await _flush(session, action)
  cascade = await CascadeResolver().cascade_publish_programs(session, [lesson.term_id], now)
  if cascade.programs:
    logger.info("Editor publish cascaded: lesson_id=%s programs=%s", lesson.id, cascade.program_ids)


async def _require(session: AsyncSession, model: type, entity_id: str, entity: str) -> Any:
  row = await session.get(model, entity_id)
  if row is None:
    raise NotFoundError(entity, entity_id)
  return row


async def _validate_topic_ids(session: AsyncSession, topic_ids: Sequence[str]) -> list[str]:
  unique_ids = list(dict.fromkeys(topic_ids))
  if not unique_ids:
    return []
  result = await session.execute(select(Topic.id).where(Topic.id.in_(unique_ids)))
  known = set(result.scalars())
  missing = [topic_id for topic_id in unique_ids if topic_id not in known]
  if missing:
    raise ConstraintViolationError(f"Unknown topic ids: {', '.join(missing)}")
  return unique_ids


def _replace_topic_links(program: Program, topic_ids: Sequence[str]) -> None:
  program.topic_links.clear()
  for position, topic_id in enumerate(topic_ids):
    program.topic_links.append(ProgramTopic(position=position, topic_id=topic_id))


async def create_user(session: AsyncSession, *, username: str, email: str, password: str, role: UserRole = UserRole.VIEWER) -> User:
  """Create a user with a hashed password."""
  user = User(username=username, email=email.strip().lower(), password_hash=hash_password(password), role=role)
  session.add(user)
  await _commit(session, "create_user")
  logger.info("User created: id=%s role=%s", user.id, user.role.value)
  return user


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
  result = await session.execute(select(User).where(User.email == email.strip().lower()))
  return result.scalar_one_or_none()


async def list_users(session: AsyncSession) -> list[User]:
  result = await session.execute(select(User).order_by(User.created_at.asc(), User.id.asc()))
  return list(result.scalars())


async def create_topic(session: AsyncSession, *, name: str) -> Topic:
  topic = Topic(name=name.strip())
  session.add(topic)
  await _commit(session, "create_topic")
  return topic


async def list_topics(session: AsyncSession) -> list[Topic]:
  result = await session.execute(select(Topic).order_by(Topic.name.asc()))
  return list(result.scalars())


async def delete_topic(session: AsyncSession, topic_id: str) -> None:
  """Delete a topic; programs keep the now-dangling reference."""
  topic = await _require(session, Topic, topic_id, "Topic")
  await session.delete(topic)
  await _commit(session, "delete_topic")


async def create_program(
  session: AsyncSession,
  *,
  title: str,
  description: str | None = None,
  language_primary: str = "en",
  languages_available: Sequence[str] | None = None,
  topic_ids: Sequence[str] = (),
  status: ContentStatus = ContentStatus.DRAFT,
  now: datetime.datetime | None = None,
) -> Program:
  """Create a program with its ordered topic references."""
  check_editor_transition("program", ContentStatus.DRAFT, status, publish_at=None)
  validated_topics = await _validate_topic_ids(session, topic_ids)
  languages = list(languages_available or [language_primary])
  if language_primary not in languages:
    languages.insert(0, language_primary)

  program = Program(title=title, description=description, language_primary=language_primary, languages_available=languages, status=status)
  if status == ContentStatus.PUBLISHED:
    program.published_at = first_published_at(None, now or _utcnow())
  _raise_on_violations("create_program", program_invariant_violations(program.status, program.published_at))
  _replace_topic_links(program, validated_topics)
  session.add(program)
  await _commit(session, "create_program")
  logger.info("Program created: id=%s status=%s", program.id, program.status.value)
  return program


async def get_program(session: AsyncSession, program_id: str) -> Program:
  return await _require(session, Program, program_id, "Program")


async def list_programs(session: AsyncSession, *, status: ContentStatus | None = None) -> list[Program]:
  stmt = select(Program).order_by(Program.created_at.desc(), Program.id.asc())
  if status is not None:
    stmt = stmt.where(Program.status == status)
  result = await session.execute(stmt)
  return list(result.scalars())


async def list_program_topic_ids(session: AsyncSession, program_id: str) -> list[str]:
  result = await session.execute(select(ProgramTopic.topic_id).where(ProgramTopic.program_id == program_id).order_by(ProgramTopic.position.asc()))
  return list(result.scalars())


async def update_program(session: AsyncSession, program_id: str, changes: Mapping[str, Any], *, now: datetime.datetime | None = None) -> Program:
  """Apply a partial editor update to a program."""
  program = await _require(session, Program, program_id, "Program")
  now = now or _utcnow()

  if "status" in changes and changes["status"] is not None:
    target = ContentStatus(changes["status"])
    check_editor_transition("program", program.status, target, publish_at=None)
    if target == ContentStatus.PUBLISHED:
      program.published_at = first_published_at(program.published_at, now)
    program.status = target

  for field_name in _PROGRAM_FIELDS & changes.keys():
    setattr(program, field_name, changes[field_name])

  if "topic_ids" in changes and changes["topic_ids"] is not None:
    validated_topics = await _validate_topic_ids(session, changes["topic_ids"])
    # Clear old positions first so reordering never collides with the (program, topic) unique key.
    await session.execute(delete(ProgramTopic).where(ProgramTopic.program_id == program.id))
    session.add_all([ProgramTopic(program_id=program.id, position=position, topic_id=topic_id) for position, topic_id in enumerate(validated_topics)])

  _raise_on_violations("update_program", program_invariant_violations(program.status, program.published_at))
  program.updated_at = now
  await _commit(session, "update_program")
  return program


async def create_term(session: AsyncSession, *, program_id: str, term_number: int, title: str | None = None) -> Term:
  await _require(session, Program, program_id, "Program")
  term = Term(program_id=program_id, term_number=term_number, title=title)
  session.add(term)
  await _commit(session, "create_term")
  return term


async def list_terms(session: AsyncSession, program_id: str) -> list[Term]:
  result = await session.execute(select(Term).where(Term.program_id == program_id).order_by(Term.term_number.asc()))
  return list(result.scalars())


async def create_lesson(
  session: AsyncSession,
  *,
  term_id: str,
  lesson_number: int,
  title: str,
  status: ContentStatus = ContentStatus.DRAFT,
  publish_at: datetime.datetime | None = None,
  content_type: ContentType = ContentType.VIDEO,
  duration_ms: int | None = None,
  is_paid: bool = False,
  content_language_primary: str = "en",
  content_languages_available: Sequence[str] | None = None,
  content_urls_by_language: Mapping[str, str] | None = None,
  subtitle_languages: Sequence[str] | None = None,
  subtitle_urls_by_language: Mapping[str, str] | None = None,
  now: datetime.datetime | None = None,
) -> Lesson:
  """Create a lesson; `scheduled` requires `publish_at`, `published` cascades to the program."""
  check_editor_transition("lesson", ContentStatus.DRAFT, status, publish_at=publish_at)
  await _require(session, Term, term_id, "Term")
  now = now or _utcnow()

  lesson = Lesson(
    term_id=term_id,
    lesson_number=lesson_number,
    title=title,
    status=status,
    publish_at=publish_at,
    content_type=content_type,
    duration_ms=duration_ms,
    is_paid=is_paid,
    content_language_primary=content_language_primary,
    content_languages_available=list(content_languages_available or [content_language_primary]),
    content_urls_by_language=dict(content_urls_by_language or {}),
    subtitle_languages=list(subtitle_languages or []),
    subtitle_urls_by_language=dict(subtitle_urls_by_language or {}),
  )
  _apply_release(lesson, status, now)
  _raise_on_violations("create_lesson", lesson_invariant_violations(lesson.status, lesson.publish_at, lesson.published_at))
  session.add(lesson)
  if status == ContentStatus.PUBLISHED:
    await _cascade_release(session, lesson, now, "create_lesson")
  await _commit(session, "create_lesson")
  logger.info("Lesson created: id=%s term_id=%s status=%s publish_at=%s", lesson.id, term_id, status.value, publish_at.isoformat() if publish_at else None)
  return lesson


async def get_lesson(session: AsyncSession, lesson_id: str) -> Lesson:
  return await _require(session, Lesson, lesson_id, "Lesson")


async def list_lessons(session: AsyncSession, *, term_id: str | None = None, status: ContentStatus | None = None) -> list[Lesson]:
  stmt = select(Lesson).order_by(Lesson.term_id.asc(), Lesson.lesson_number.asc())
  if term_id is not None:
    stmt = stmt.where(Lesson.term_id == term_id)
  if status is not None:
    stmt = stmt.where(Lesson.status == status)
  result = await session.execute(stmt)
  return list(result.scalars())


async def update_lesson(session: AsyncSession, lesson_id: str, changes: Mapping[str, Any], *, now: datetime.datetime | None = None) -> Lesson:
  """Apply a partial editor update to a lesson, including status changes.

  `published_at` is never cleared: unpublishing or archiving keeps the first
  release instant. Publishing the lesson also publishes its draft or scheduled
  program in the same transaction.
  """
  lesson = await _require(session, Lesson, lesson_id, "Lesson")
  now = now or _utcnow()

  target = ContentStatus(changes["status"]) if changes.get("status") is not None else lesson.status
  publish_at = changes["publish_at"] if "publish_at" in changes else lesson.publish_at
  if target != lesson.status or "publish_at" in changes:
    check_editor_transition("lesson", lesson.status, target, publish_at=publish_at)

  released = target == ContentStatus.PUBLISHED and lesson.status != ContentStatus.PUBLISHED
  lesson.publish_at = publish_at
  if target != lesson.status:
    _apply_release(lesson, target, now)
    lesson.status = target

  for field_name in _LESSON_FIELDS & changes.keys():
    setattr(lesson, field_name, changes[field_name])

  _raise_on_violations("update_lesson", lesson_invariant_violations(lesson.status, lesson.publish_at, lesson.published_at))
  lesson.updated_at = now
  if released:
    await _cascade_release(session, lesson, now, "update_lesson")
  await _commit(session, "update_lesson")
  logger.info("Lesson updated: id=%s status=%s publish_at=%s", lesson.id, lesson.status.value, lesson.publish_at.isoformat() if lesson.publish_at else None)
  return lesson


async def upsert_asset(session: AsyncSession, *, parent_id: str, language: str, variant: AssetVariant, asset_type: AssetType, url: str) -> Asset:
  """Insert an asset or replace the url of the existing (parent, language, variant, type) row."""
  values = {"parent_id": parent_id, "language": language, "variant": variant, "asset_type": asset_type, "url": url}
  # Pick the dialect's insert so ON CONFLICT works on both Postgres and SQLite.
  insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
  stmt = insert(Asset).values(id=generate_id(), **values)
  stmt = stmt.on_conflict_do_update(index_elements=[Asset.parent_id, Asset.language, Asset.variant, Asset.asset_type], set_={"url": stmt.excluded.url}).returning(Asset.id)
  try:
    asset_id = (await session.execute(stmt)).scalar_one()
  except IntegrityError as exc:
    await session.rollback()
    raise ConstraintViolationError("upsert_asset violates a content constraint") from exc
  await _commit(session, "upsert_asset")
  asset = await session.get(Asset, asset_id, populate_existing=True)
  if asset is None:
    raise NotFoundError("Asset", asset_id)
  return asset


async def list_assets(session: AsyncSession, parent_id: str) -> list[Asset]:
  result = await session.execute(select(Asset).where(Asset.parent_id == parent_id).order_by(Asset.asset_type.asc(), Asset.language.asc(), Asset.variant.asc()))
  return list(result.scalars())


async def count_by_status(session: AsyncSession) -> dict[str, dict[str, int]]:
  """Return per-status row counts for programs and lessons."""
  counts: dict[str, dict[str, int]] = {}
  for label, model in (("programs", Program), ("lessons", Lesson)):
    bucket = {status.value: 0 for status in ContentStatus}
    result = await session.execute(select(model.status, func.count()).group_by(model.status))
    for status, total in result:
      bucket[ContentStatus(status).value] = int(total)
    counts[label] = bucket
  return counts
