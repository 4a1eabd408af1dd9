from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cms_engine.api.models import (
  AssetResponse,
  AssetUpsertRequest,
  LessonCreateRequest,
  LessonResponse,
  LessonUpdateRequest,
  ProgramCreateRequest,
  ProgramResponse,
  ProgramUpdateRequest,
  StatusCountsResponse,
  TermCreateRequest,
  TermResponse,
  TopicCreateRequest,
  TopicResponse,
  UserCreateRequest,
  UserResponse,
)
from cms_engine.core.database import get_db
from cms_engine.core.security import require_admin_secret
from cms_engine.publishing.status import ContentStatus
from cms_engine.schema.sql import Program
from cms_engine.services import content

router = APIRouter(dependencies=[Depends(require_admin_secret)])
logger = logging.getLogger(__name__)

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def _program_response(db_session: AsyncSession, program: Program) -> ProgramResponse:
  topic_ids = await content.list_program_topic_ids(db_session, program.id)
  return ProgramResponse(
    id=program.id,
    title=program.title,
    description=program.description,
    language_primary=program.language_primary,
    languages_available=list(program.languages_available or []),
    status=program.status,
    topic_ids=topic_ids,
    published_at=program.published_at,
    created_at=program.created_at,
    updated_at=program.updated_at,
  )


@router.get("/stats", response_model=StatusCountsResponse)
async def get_status_counts(db_session: DbSession) -> StatusCountsResponse:
  """Row counts per status for programs and lessons."""
  counts = await content.count_by_status(db_session)
  return StatusCountsResponse(**counts)


@router.post("/topics", status_code=status.HTTP_201_CREATED, response_model=TopicResponse)
async def create_topic(request: TopicCreateRequest, db_session: DbSession) -> TopicResponse:
  topic = await content.create_topic(db_session, name=request.name)
  return TopicResponse.model_validate(topic)


@router.get("/topics", response_model=list[TopicResponse])
async def list_topics(db_session: DbSession) -> list[TopicResponse]:
  return [TopicResponse.model_validate(topic) for topic in await content.list_topics(db_session)]


@router.delete("/topics/{topic_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_topic(topic_id: str, db_session: DbSession) -> None:
  """Delete a topic; program references to it are kept and ignored by the catalog."""
  await content.delete_topic(db_session, topic_id)


@router.post("/programs", status_code=status.HTTP_201_CREATED, response_model=ProgramResponse)
async def create_program(request: ProgramCreateRequest, db_session: DbSession) -> ProgramResponse:
  program = await content.create_program(
    db_session,
    title=request.title,
    description=request.description,
    language_primary=request.language_primary,
    languages_available=request.languages_available,
    topic_ids=request.topic_ids,
    status=request.status,
  )
  return await _program_response(db_session, program)


@router.get("/programs", response_model=list[ProgramResponse])
async def list_programs(db_session: DbSession, status_filter: Annotated[ContentStatus | None, Query(alias="status")] = None) -> list[ProgramResponse]:
  programs = await content.list_programs(db_session, status=status_filter)
  return [await _program_response(db_session, program) for program in programs]


@router.get("/programs/{program_id}", response_model=ProgramResponse)
async def get_program(program_id: str, db_session: DbSession) -> ProgramResponse:
  program = await content.get_program(db_session, program_id)
  return await _program_response(db_session, program)


@router.patch("/programs/{program_id}", response_model=ProgramResponse)
async def update_program(program_id: str, request: ProgramUpdateRequest, db_session: DbSession) -> ProgramResponse:
  changes = {key: value for key, value in request.model_dump(exclude_unset=True).items() if value is not None or key == "description"}
  program = await content.update_program(db_session, program_id, changes)
  return await _program_response(db_session, program)


@router.post("/terms", status_code=status.HTTP_201_CREATED, response_model=TermResponse)
async def create_term(request: TermCreateRequest, db_session: DbSession) -> TermResponse:
  term = await content.create_term(db_session, program_id=request.program_id, term_number=request.term_number, title=request.title)
  return TermResponse.model_validate(term)


@router.get("/programs/{program_id}/terms", response_model=list[TermResponse])
async def list_terms(program_id: str, db_session: DbSession) -> list[TermResponse]:
  await content.get_program(db_session, program_id)
  return [TermResponse.model_validate(term) for term in await content.list_terms(db_session, program_id)]


@router.post("/lessons", status_code=status.HTTP_201_CREATED, response_model=LessonResponse)
async def create_lesson(request: LessonCreateRequest, db_session: DbSession) -> LessonResponse:
  """Create a lesson; scheduled lessons are released by the publish worker."""
  lesson = await content.create_lesson(
    db_session,
    term_id=request.term_id,
    lesson_number=request.lesson_number,
    title=request.title,
    status=request.status,
    publish_at=request.publish_at,
    content_type=request.content_type,
    duration_ms=request.duration_ms,
    is_paid=request.is_paid,
    content_language_primary=request.content_language_primary,
    content_languages_available=request.content_languages_available,
    content_urls_by_language=request.content_urls_by_language,
    subtitle_languages=request.subtitle_languages,
    subtitle_urls_by_language=request.subtitle_urls_by_language,
  )
  return LessonResponse.model_validate(lesson)


@router.get("/lessons", response_model=list[LessonResponse])
async def list_lessons(
  db_session: DbSession, term_id: Annotated[str | None, Query()] = None, status_filter: Annotated[ContentStatus | None, Query(alias="status")] = None
) -> list[LessonResponse]:
  lessons = await content.list_lessons(db_session, term_id=term_id, status=status_filter)
  return [LessonResponse.model_validate(lesson) for lesson in lessons]


@router.get("/lessons/{lesson_id}", response_model=LessonResponse)
async def get_lesson(lesson_id: str, db_session: DbSession) -> LessonResponse:
  return LessonResponse.model_validate(await content.get_lesson(db_session, lesson_id))


@router.patch("/lessons/{lesson_id}", response_model=LessonResponse)
async def update_lesson(lesson_id: str, request: LessonUpdateRequest, db_session: DbSession) -> LessonResponse:
  """Partial update, including editor status changes such as scheduling or archiving."""
  lesson = await content.update_lesson(db_session, lesson_id, request.changes())
  return LessonResponse.model_validate(lesson)


@router.put("/assets", response_model=AssetResponse)
async def upsert_asset(request: AssetUpsertRequest, db_session: DbSession) -> AssetResponse:
  asset = await content.upsert_asset(db_session, parent_id=request.parent_id, language=request.language, variant=request.variant, asset_type=request.asset_type, url=request.url)
  return AssetResponse.model_validate(asset)


@router.get("/assets", response_model=list[AssetResponse])
async def list_assets(db_session: DbSession, parent_id: Annotated[str, Query()]) -> list[AssetResponse]:
  return [AssetResponse.model_validate(asset) for asset in await content.list_assets(db_session, parent_id)]


@router.post("/users", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
async def create_user(request: UserCreateRequest, db_session: DbSession) -> UserResponse:
  user = await content.create_user(db_session, username=request.username, email=request.email, password=request.password, role=request.role)
  return UserResponse.model_validate(user)


@router.get("/users", response_model=list[UserResponse])
async def list_users(db_session: DbSession) -> list[UserResponse]:
  return [UserResponse.model_validate(user) for user in await content.list_users(db_session)]
