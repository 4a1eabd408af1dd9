from __future__ import annotations

import datetime
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cms_engine.core.database import Base
from cms_engine.publishing.status import ContentStatus, enum_values
from cms_engine.schema.types import JSONType, UTCDateTime
from cms_engine.utils.ids import generate_id


class UserRole(str, Enum):
  ADMIN = "ADMIN"
  EDITOR = "EDITOR"
  VIEWER = "VIEWER"


class ContentType(str, Enum):
  VIDEO = "video"
  ARTICLE = "article"


class AssetVariant(str, Enum):
  PORTRAIT = "portrait"
  LANDSCAPE = "landscape"
  SQUARE = "square"
  BANNER = "banner"


class AssetType(str, Enum):
  POSTER = "poster"
  THUMBNAIL = "thumbnail"


def _status_column_type() -> SAEnum:
  return SAEnum(ContentStatus, name="content_status", values_callable=enum_values, validate_strings=True)


class User(Base):
  __tablename__ = "users"
  __mapper_args__ = {"eager_defaults": True}

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  username: Mapped[str] = mapped_column(String, nullable=False)
  email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[UserRole] = mapped_column(SAEnum(UserRole, name="user_role"), default=UserRole.VIEWER, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime(), server_default=func.now(), nullable=False)


class Topic(Base):
  __tablename__ = "topics"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  name: Mapped[str] = mapped_column(String, unique=True, nullable=False)


class Program(Base):
  __tablename__ = "programs"
  __mapper_args__ = {"eager_defaults": True}
  __table_args__ = (
    CheckConstraint("status <> 'published' OR published_at IS NOT NULL", name="ck_programs_published_has_timestamp"),
    Index("ix_programs_status", "status"),
  )

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  language_primary: Mapped[str] = mapped_column(String, nullable=False, default="en", server_default="en")
  languages_available: Mapped[list[str]] = mapped_column(JSONType(), nullable=False, default=lambda: ["en"])
  status: Mapped[ContentStatus] = mapped_column(_status_column_type(), nullable=False, default=ContentStatus.DRAFT)
  published_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime(), server_default=func.now(), nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False)

  terms: Mapped[list[Term]] = relationship("Term", back_populates="program", cascade="all, delete-orphan", passive_deletes=True)
  topic_links: Mapped[list[ProgramTopic]] = relationship("ProgramTopic", back_populates="program", cascade="all, delete-orphan", order_by="ProgramTopic.position", passive_deletes=True)


class ProgramTopic(Base):
  """Ordered topic references of a program.

  `topic_id` carries no foreign key: deleting a topic leaves the reference in
  place and readers skip ids that no longer resolve.
  """

  __tablename__ = "program_topics"
  __table_args__ = (UniqueConstraint("program_id", "topic_id", name="ux_program_topics_program_topic"), Index("ix_program_topics_topic_id", "topic_id"))

  program_id: Mapped[str] = mapped_column(ForeignKey("programs.id", ondelete="CASCADE"), primary_key=True)
  position: Mapped[int] = mapped_column(Integer, primary_key=True)
  topic_id: Mapped[str] = mapped_column(String(36), nullable=False)

  program: Mapped[Program] = relationship("Program", back_populates="topic_links")


class Term(Base):
  __tablename__ = "terms"
  __mapper_args__ = {"eager_defaults": True}
  __table_args__ = (
    UniqueConstraint("program_id", "term_number", name="ux_terms_program_term_number"),
    CheckConstraint("term_number > 0", name="ck_terms_term_number_positive"),
  )

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  program_id: Mapped[str] = mapped_column(ForeignKey("programs.id", ondelete="CASCADE"), nullable=False, index=True)
  term_number: Mapped[int] = mapped_column(Integer, nullable=False)
  title: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime(), server_default=func.now(), nullable=False)

  program: Mapped[Program] = relationship("Program", back_populates="terms")
  lessons: Mapped[list[Lesson]] = relationship("Lesson", back_populates="term", cascade="all, delete-orphan", passive_deletes=True)


class Lesson(Base):
  __tablename__ = "lessons"
  __mapper_args__ = {"eager_defaults": True}
  __table_args__ = (
    UniqueConstraint("term_id", "lesson_number", name="ux_lessons_term_lesson_number"),
    CheckConstraint("lesson_number > 0", name="ck_lessons_lesson_number_positive"),
    CheckConstraint("status <> 'scheduled' OR publish_at IS NOT NULL", name="ck_lessons_scheduled_has_publish_at"),
    CheckConstraint("status <> 'published' OR published_at IS NOT NULL", name="ck_lessons_published_has_timestamp"),
    # Serves the due-lesson scan of every publish cycle.
    Index("ix_lessons_status_publish_at", "status", "publish_at"),
  )

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  term_id: Mapped[str] = mapped_column(ForeignKey("terms.id", ondelete="CASCADE"), nullable=False, index=True)
  lesson_number: Mapped[int] = mapped_column(Integer, nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  content_type: Mapped[ContentType] = mapped_column(SAEnum(ContentType, name="content_type", values_callable=enum_values), nullable=False, default=ContentType.VIDEO)
  duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
  is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
  content_language_primary: Mapped[str] = mapped_column(String, nullable=False, default="en", server_default="en")
  content_languages_available: Mapped[list[str]] = mapped_column(JSONType(), nullable=False, default=lambda: ["en"])
  content_urls_by_language: Mapped[dict[str, str]] = mapped_column(JSONType(), nullable=False, default=dict)
  subtitle_languages: Mapped[list[str]] = mapped_column(JSONType(), nullable=False, default=list)
  subtitle_urls_by_language: Mapped[dict[str, str]] = mapped_column(JSONType(), nullable=False, default=dict)
  status: Mapped[ContentStatus] = mapped_column(_status_column_type(), nullable=False, default=ContentStatus.DRAFT)
  publish_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  published_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime(), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime(), server_default=func.now(), nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False)

  term: Mapped[Term] = relationship("Term", back_populates="lessons")


class Asset(Base):
  __tablename__ = "assets"
  __table_args__ = (UniqueConstraint("parent_id", "language", "variant", "asset_type", name="ux_assets_parent_language_variant_type"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
  # Program or lesson id; deliberately untyped.
  parent_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
  language: Mapped[str] = mapped_column(String, nullable=False, default="en", server_default="en")
  variant: Mapped[AssetVariant] = mapped_column(SAEnum(AssetVariant, name="asset_variant", values_callable=enum_values), nullable=False)
  asset_type: Mapped[AssetType] = mapped_column(SAEnum(AssetType, name="asset_type", values_callable=enum_values), nullable=False)
  url: Mapped[str] = mapped_column(Text, nullable=False)
