from __future__ import annotations

import datetime
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator

from cms_engine.publishing.status import ContentStatus
from cms_engine.schema.sql import AssetType, AssetVariant, ContentType, UserRole

_LANGUAGE_PATTERN = r"^[a-z]{2}(-[A-Z]{2})?$"


def _require_keys_in(languages: list[str], mapping: dict[str, str], label: str) -> None:
  unknown = sorted(set(mapping) - set(languages))
  if unknown:
    raise ValueError(f"{label} has languages outside the available set: {', '.join(unknown)}")


class TopicCreateRequest(BaseModel):
  name: StrictStr = Field(min_length=1, max_length=120)
  model_config = ConfigDict(extra="forbid")


class TopicResponse(BaseModel):
  id: str
  name: str
  model_config = ConfigDict(from_attributes=True)


class ProgramCreateRequest(BaseModel):
  """Editor payload for a new program."""

  title: StrictStr = Field(min_length=1, max_length=300)
  description: StrictStr | None = None
  language_primary: StrictStr = Field(default="en", pattern=_LANGUAGE_PATTERN)
  languages_available: list[StrictStr] | None = None
  topic_ids: list[StrictStr] = Field(default_factory=list, description="Ordered topic ids; unknown ids are rejected.")
  status: ContentStatus = ContentStatus.DRAFT
  model_config = ConfigDict(extra="forbid")


class ProgramUpdateRequest(BaseModel):
  title: StrictStr | None = Field(default=None, min_length=1, max_length=300)
  description: StrictStr | None = None
  language_primary: StrictStr | None = Field(default=None, pattern=_LANGUAGE_PATTERN)
  languages_available: list[StrictStr] | None = None
  topic_ids: list[StrictStr] | None = None
  status: ContentStatus | None = None
  model_config = ConfigDict(extra="forbid")


class ProgramResponse(BaseModel):
  id: str
  title: str
  description: str | None
  language_primary: str
  languages_available: list[str]
  status: ContentStatus
  topic_ids: list[str] = Field(default_factory=list)
  published_at: datetime.datetime | None
  created_at: datetime.datetime
  updated_at: datetime.datetime


class TermCreateRequest(BaseModel):
  program_id: StrictStr
  term_number: int = Field(gt=0)
  title: StrictStr | None = None
  model_config = ConfigDict(extra="forbid")


class TermResponse(BaseModel):
  id: str
  program_id: str
  term_number: int
  title: str | None
  created_at: datetime.datetime
  model_config = ConfigDict(from_attributes=True)


class LessonCreateRequest(BaseModel):
  """Editor payload for a new lesson; `scheduled` requires `publish_at`."""

  term_id: StrictStr
  lesson_number: int = Field(gt=0)
  title: StrictStr = Field(min_length=1, max_length=300)
  content_type: ContentType = ContentType.VIDEO
  duration_ms: int | None = Field(default=None, ge=0)
  is_paid: bool = False
  content_language_primary: StrictStr = Field(default="en", pattern=_LANGUAGE_PATTERN)
  content_languages_available: list[StrictStr] | None = None
  content_urls_by_language: dict[str, str] = Field(default_factory=dict)
  subtitle_languages: list[StrictStr] = Field(default_factory=list)
  subtitle_urls_by_language: dict[str, str] = Field(default_factory=dict)
  status: ContentStatus = ContentStatus.DRAFT
  publish_at: AwareDatetime | None = None
  model_config = ConfigDict(extra="forbid")

  @model_validator(mode="after")
  def _check_languages(self) -> LessonCreateRequest:
    languages = self.content_languages_available or [self.content_language_primary]
    if self.content_language_primary not in languages:
      raise ValueError("content_language_primary must be one of content_languages_available")
    _require_keys_in(languages, self.content_urls_by_language, "content_urls_by_language")
    _require_keys_in(self.subtitle_languages, self.subtitle_urls_by_language, "subtitle_urls_by_language")
    return self


class LessonUpdateRequest(BaseModel):
  """Partial lesson update; send `publish_at: null` to clear it."""

  title: StrictStr | None = Field(default=None, min_length=1, max_length=300)
  lesson_number: int | None = Field(default=None, gt=0)
  content_type: ContentType | None = None
  duration_ms: int | None = Field(default=None, ge=0)
  is_paid: bool | None = None
  content_language_primary: StrictStr | None = Field(default=None, pattern=_LANGUAGE_PATTERN)
  content_languages_available: list[StrictStr] | None = None
  content_urls_by_language: dict[str, str] | None = None
  subtitle_languages: list[StrictStr] | None = None
  subtitle_urls_by_language: dict[str, str] | None = None
  status: ContentStatus | None = None
  publish_at: AwareDatetime | None = None
  model_config = ConfigDict(extra="forbid")

  def changes(self) -> dict[str, Any]:
    """Return only the fields the caller sent, dropping nulls except `publish_at`."""
    sent = self.model_dump(exclude_unset=True)
    return {key: value for key, value in sent.items() if value is not None or key == "publish_at"}


class LessonResponse(BaseModel):
  id: str
  term_id: str
  lesson_number: int
  title: str
  content_type: ContentType
  duration_ms: int | None
  is_paid: bool
  content_language_primary: str
  content_languages_available: list[str]
  content_urls_by_language: dict[str, str]
  subtitle_languages: list[str]
  subtitle_urls_by_language: dict[str, str]
  status: ContentStatus
  publish_at: datetime.datetime | None
  published_at: datetime.datetime | None
  created_at: datetime.datetime
  updated_at: datetime.datetime
  model_config = ConfigDict(from_attributes=True)


class AssetUpsertRequest(BaseModel):
  parent_id: StrictStr
  language: StrictStr = Field(default="en", pattern=_LANGUAGE_PATTERN)
  variant: AssetVariant
  asset_type: AssetType
  url: StrictStr = Field(min_length=1)
  model_config = ConfigDict(extra="forbid")

  @field_validator("url")
  @classmethod
  def _check_url(cls, value: str) -> str:
    if not value.startswith(("https://", "http://")):
      raise ValueError("url must be an http(s) URL")
    return value


class AssetResponse(BaseModel):
  id: str
  parent_id: str
  language: str
  variant: AssetVariant
  asset_type: AssetType
  url: str
  model_config = ConfigDict(from_attributes=True)


class UserCreateRequest(BaseModel):
  username: StrictStr = Field(min_length=1, max_length=120)
  email: StrictStr = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
  password: StrictStr = Field(min_length=8, max_length=256)
  role: UserRole = UserRole.VIEWER
  model_config = ConfigDict(extra="forbid")


class UserResponse(BaseModel):
  """Public user view; the password hash never leaves the service."""

  id: str
  username: str
  email: str
  role: UserRole
  created_at: datetime.datetime
  model_config = ConfigDict(from_attributes=True)


class StatusCountsResponse(BaseModel):
  programs: dict[str, int]
  lessons: dict[str, int]


class CatalogProgramResponse(BaseModel):
  id: str
  title: str
  description: str | None
  language_primary: str
  languages_available: list[str]
  status: ContentStatus
  published_at: datetime.datetime | None
  created_at: datetime.datetime
  updated_at: datetime.datetime
  topic_ids: list[str]
  topics: list[str]
  posters: dict[str, str]
  model_config = ConfigDict(from_attributes=True)


class CatalogPageResponse(BaseModel):
  data: list[CatalogProgramResponse]
  next_cursor: str | None
  total: int
  limit: int
  model_config = ConfigDict(from_attributes=True)


class CycleResultResponse(BaseModel):
  now: datetime.datetime | None
  skipped: bool
  failed: bool
  error: str | None
  lesson_ids: list[str]
  program_ids: list[str]
  orphan_term_ids: list[str]


class WorkerStatusResponse(BaseModel):
  running: bool
  cycle_in_progress: bool
  interval_seconds: float
  clock: str
  cycles_completed: int
  cycles_failed: int
  cycles_skipped: int
  last_cycle_at: datetime.datetime | None
  last_error: str | None
  last_lessons_published: int
  last_programs_published: int
