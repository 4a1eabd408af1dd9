"""Baseline content schema.

Revision ID: 5f1c2a7e9b30
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "5f1c2a7e9b30"
down_revision = None
branch_labels = None
depends_on = None

_CONTENT_STATUS = postgresql.ENUM("draft", "scheduled", "published", "archived", name="content_status", create_type=False)
_USER_ROLE = postgresql.ENUM("ADMIN", "EDITOR", "VIEWER", name="user_role", create_type=False)
_CONTENT_TYPE = postgresql.ENUM("video", "article", name="content_type", create_type=False)
_ASSET_VARIANT = postgresql.ENUM("portrait", "landscape", "square", "banner", name="asset_variant", create_type=False)
_ASSET_TYPE = postgresql.ENUM("poster", "thumbnail", name="asset_type", create_type=False)
_ENUMS = (_CONTENT_STATUS, _USER_ROLE, _CONTENT_TYPE, _ASSET_VARIANT, _ASSET_TYPE)


def upgrade() -> None:
  """Upgrade schema."""
  bind = op.get_bind()
  for enum_type in _ENUMS:
    enum_type.create(bind, checkfirst=True)

  op.create_table(
    "users",
    sa.Column("id", sa.String(length=36), nullable=False),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=False),
    sa.Column("role", _USER_ROLE, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

  op.create_table(
    "topics",
    sa.Column("id", sa.String(length=36), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("name"),
  )

  op.create_table(
    "programs",
    sa.Column("id", sa.String(length=36), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("language_primary", sa.String(), server_default="en", nullable=False),
    sa.Column("languages_available", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("status", _CONTENT_STATUS, nullable=False),
    sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("status <> 'published' OR published_at IS NOT NULL", name="ck_programs_published_has_timestamp"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ix_programs_status", "programs", ["status"], unique=False)

  op.create_table(
    "program_topics",
    sa.Column("program_id", sa.String(length=36), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False),
    sa.Column("topic_id", sa.String(length=36), nullable=False),
    sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("program_id", "position"),
    sa.UniqueConstraint("program_id", "topic_id", name="ux_program_topics_program_topic"),
  )
  op.create_index("ix_program_topics_topic_id", "program_topics", ["topic_id"], unique=False)

  op.create_table(
    "terms",
    sa.Column("id", sa.String(length=36), nullable=False),
    sa.Column("program_id", sa.String(length=36), nullable=False),
    sa.Column("term_number", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("term_number > 0", name="ck_terms_term_number_positive"),
    sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("program_id", "term_number", name="ux_terms_program_term_number"),
  )
  op.create_index(op.f("ix_terms_program_id"), "terms", ["program_id"], unique=False)

  op.create_table(
    "lessons",
    sa.Column("id", sa.String(length=36), nullable=False),
    sa.Column("term_id", sa.String(length=36), nullable=False),
    sa.Column("lesson_number", sa.Integer(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("content_type", _CONTENT_TYPE, nullable=False),
    sa.Column("duration_ms", sa.Integer(), nullable=True),
    sa.Column("is_paid", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.Column("content_language_primary", sa.String(), server_default="en", nullable=False),
    sa.Column("content_languages_available", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("content_urls_by_language", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("subtitle_languages", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("subtitle_urls_by_language", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("status", _CONTENT_STATUS, nullable=False),
    sa.Column("publish_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("lesson_number > 0", name="ck_lessons_lesson_number_positive"),
    sa.CheckConstraint("status <> 'scheduled' OR publish_at IS NOT NULL", name="ck_lessons_scheduled_has_publish_at"),
    sa.CheckConstraint("status <> 'published' OR published_at IS NOT NULL", name="ck_lessons_published_has_timestamp"),
    sa.ForeignKeyConstraint(["term_id"], ["terms.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("term_id", "lesson_number", name="ux_lessons_term_lesson_number"),
  )
  op.create_index(op.f("ix_lessons_term_id"), "lessons", ["term_id"], unique=False)
  op.create_index("ix_lessons_status_publish_at", "lessons", ["status", "publish_at"], unique=False)

  op.create_table(
    "assets",
    sa.Column("id", sa.String(length=36), nullable=False),
    sa.Column("parent_id", sa.String(length=36), nullable=False),
    sa.Column("language", sa.String(), server_default="en", nullable=False),
    sa.Column("variant", _ASSET_VARIANT, nullable=False),
    sa.Column("asset_type", _ASSET_TYPE, nullable=False),
    sa.Column("url", sa.Text(), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("parent_id", "language", "variant", "asset_type", name="ux_assets_parent_language_variant_type"),
  )
  op.create_index(op.f("ix_assets_parent_id"), "assets", ["parent_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_assets_parent_id"), table_name="assets")
  op.drop_table("assets")
  op.drop_index("ix_lessons_status_publish_at", table_name="lessons")
  op.drop_index(op.f("ix_lessons_term_id"), table_name="lessons")
  op.drop_table("lessons")
  op.drop_index(op.f("ix_terms_program_id"), table_name="terms")
  op.drop_table("terms")
  op.drop_index("ix_program_topics_topic_id", table_name="program_topics")
  op.drop_table("program_topics")
  op.drop_index("ix_programs_status", table_name="programs")
  op.drop_table("programs")
  op.drop_table("topics")
  op.drop_index(op.f("ix_users_email"), table_name="users")
  op.drop_table("users")

  bind = op.get_bind()
  for enum_type in reversed(_ENUMS):
    enum_type.drop(bind, checkfirst=True)
