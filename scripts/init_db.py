"""Database initialization helper.

Intended for local/dev environments:
  - creates the target database when it does not exist yet,
  - creates missing tables from the ORM metadata (migrations own production schemas),
  - ensures an admin account exists,
  - optionally loads a small demo catalog.

The database name is validated before it is used in SQL, because CREATE DATABASE
cannot be parameterized in PostgreSQL.
"""

import argparse
import asyncio
import datetime
import os
import re
import sys

from sqlalchemy import select, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import create_async_engine

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


_DB_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


def _validate_database_name(db_name: str) -> str:
  """Validate a PostgreSQL database name used as an identifier."""
  if not db_name:
    raise ValueError("Target database name is empty.")

  # Only allow a strict character set so the value is safe in identifier context.
  if not _DB_NAME_PATTERN.fullmatch(db_name):
    raise ValueError("Target database name contains invalid characters (allowed: A-Z, a-z, 0-9, _).")

  return db_name


async def create_database_if_not_exists(dsn: str) -> None:
  """Create the configured database if it does not already exist."""
  url = make_url(dsn)
  target_db = _validate_database_name(url.database or "")

  # Connect to the default 'postgres' database to check/create the target DB
  postgres_url = url.set(database="postgres")
  if postgres_url.drivername.startswith("postgresql") and "+asyncpg" not in postgres_url.drivername:
    postgres_url = postgres_url.set(drivername="postgresql+asyncpg")

  print(f"Connecting to postgres to check for database '{target_db}'...")

  # We need isolation_level="AUTOCOMMIT" to CREATE DATABASE
  engine = create_async_engine(postgres_url, isolation_level="AUTOCOMMIT")
  try:
    async with engine.connect() as conn:
      result = await conn.execute(text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": target_db})
      if result.scalar() == 1:
        print(f"Database '{target_db}' already exists.")
        return
      print(f"Database '{target_db}' does not exist. Creating...")
      await conn.execute(text(f'CREATE DATABASE "{target_db}"'))
      print(f"Database '{target_db}' created successfully.")
  finally:
    await engine.dispose()


async def create_schema() -> None:
  import cms_engine.schema.sql  # noqa: F401
  from cms_engine.core.database import Base, get_db_engine

  engine = get_db_engine()
  if engine is None:
    raise RuntimeError("CMS_PG_DSN is not set.")
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  print("Schema ensured.")


async def ensure_admin_user(*, email: str, password: str, username: str = "Super Admin") -> None:
  """Create the admin account once; an existing account is left untouched."""
  from cms_engine.core.database import get_session_factory
  from cms_engine.schema.sql import UserRole
  from cms_engine.services.content import create_user, get_user_by_email

  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("CMS_PG_DSN is not set.")
  async with session_factory() as session:
    if await get_user_by_email(session, email) is not None:
      print(f"Admin user {email} already exists.")
      return
    await create_user(session, username=username, email=email, password=password, role=UserRole.ADMIN)
    print(f"Admin user {email} created.")


async def seed_demo_catalog() -> None:
  """Load a two-program demo: one live program and one draft with a scheduled lesson."""
  from cms_engine.core.database import get_session_factory
  from cms_engine.publishing.status import ContentStatus
  from cms_engine.schema.sql import AssetType, AssetVariant, ContentType, Program, UserRole
  from cms_engine.services import content

  session_factory = get_session_factory()
  if session_factory is None:
    raise RuntimeError("CMS_PG_DSN is not set.")

  async with session_factory() as session:
    existing = await session.scalar(select(Program.id).limit(1))
    if existing is not None:
      print("Demo seed skipped; programs already exist.")
      return

    now = datetime.datetime.now(datetime.UTC)
    topics = {name: await content.create_topic(session, name=name) for name in ("Productivity", "Lifestyle", "Coding", "Finance")}

    for username, email, password, role in (("Content Editor", "editor@example.com", "editor12345", UserRole.EDITOR), ("Guest Viewer", "viewer@example.com", "viewer12345", UserRole.VIEWER)):
      if await content.get_user_by_email(session, email) is None:
        await content.create_user(session, username=username, email=email, password=password, role=role)

    chai = await content.create_program(
      session,
      title="Mastering the Art of Chai",
      description="History, science and practice of brewing tea across cultures.",
      language_primary="en",
      languages_available=["en", "hi"],
      topic_ids=[topics["Lifestyle"].id],
      status=ContentStatus.PUBLISHED,
      now=now - datetime.timedelta(days=1),
    )
    foundations = await content.create_term(session, program_id=chai.id, term_number=1, title="Foundations")
    await content.create_lesson(
      session,
      term_id=foundations.id,
      lesson_number=1,
      title="The History of Tea",
      status=ContentStatus.PUBLISHED,
      duration_ms=300000,
      content_languages_available=["en", "hi"],
      content_urls_by_language={"en": "https://example.com/en-history", "hi": "https://example.com/hi-history"},
      subtitle_languages=["en"],
      subtitle_urls_by_language={"en": "https://example.com/en-sub"},
      now=now,
    )
    await content.create_lesson(
      session, term_id=foundations.id, lesson_number=2, title="Milk and Spices", status=ContentStatus.PUBLISHED, duration_ms=450000, is_paid=True, content_urls_by_language={"en": "https://example.com/spices"}, now=now
    )
    await content.create_lesson(
      session,
      term_id=foundations.id,
      lesson_number=3,
      title="The Perfect Boil",
      status=ContentStatus.SCHEDULED,
      publish_at=now + datetime.timedelta(minutes=2),
      duration_ms=180000,
      content_urls_by_language={"en": "https://example.com/boil"},
    )

    patterns = await content.create_program(
      session,
      title="React Design Patterns",
      description="Techniques for building maintainable React applications.",
      topic_ids=[topics["Coding"].id, topics["Productivity"].id],
    )
    hooks = await content.create_term(session, program_id=patterns.id, term_number=1, title="Hooks Mastery")
    await content.create_lesson(
      session, term_id=hooks.id, lesson_number=1, title="Introduction to Patterns", content_type=ContentType.ARTICLE, duration_ms=0, content_urls_by_language={"en": "https://example.com/intro"}
    )
    await content.create_lesson(
      session,
      term_id=hooks.id,
      lesson_number=2,
      title="Compound Components",
      status=ContentStatus.SCHEDULED,
      publish_at=now + datetime.timedelta(minutes=5),
      duration_ms=600000,
      is_paid=True,
      content_urls_by_language={"en": "https://example.com/compound"},
    )

    for program, portrait, landscape in (
      (chai, "https://images.example.com/chai-portrait.jpg", "https://images.example.com/chai-landscape.jpg"),
      (patterns, "https://images.example.com/react-portrait.jpg", "https://images.example.com/react-landscape.jpg"),
    ):
      await content.upsert_asset(session, parent_id=program.id, language="en", variant=AssetVariant.PORTRAIT, asset_type=AssetType.POSTER, url=portrait)
      await content.upsert_asset(session, parent_id=program.id, language="en", variant=AssetVariant.LANDSCAPE, asset_type=AssetType.POSTER, url=landscape)

  print("Demo catalog seeded.")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
  parser = argparse.ArgumentParser(description="Initialize the content database.")
  parser.add_argument("--create-database", action="store_true", help="Create the target database first (PostgreSQL only).")
  parser.add_argument("--admin-email", default=os.getenv("CMS_BOOTSTRAP_ADMIN_EMAIL"), help="Admin account email (default: CMS_BOOTSTRAP_ADMIN_EMAIL).")
  parser.add_argument("--admin-password", default=os.getenv("CMS_BOOTSTRAP_ADMIN_PASSWORD"), help="Admin account password (default: CMS_BOOTSTRAP_ADMIN_PASSWORD).")
  parser.add_argument("--demo", action="store_true", help="Load the demo catalog when the database has no programs.")
  return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
  from cms_engine.config import get_database_settings
  from cms_engine.core.database import dispose_engine

  args = _parse_args(argv)
  dsn = get_database_settings().pg_dsn
  if not dsn:
    print("Error: CMS_PG_DSN is not set.")
    return 1

  try:
    if args.create_database:
      await create_database_if_not_exists(dsn)
    await create_schema()
    if args.admin_email and args.admin_password:
      await ensure_admin_user(email=args.admin_email, password=args.admin_password)
    else:
      print("Admin bootstrap skipped; set --admin-email and --admin-password.")
    if args.demo:
      await seed_demo_catalog()
  finally:
    await dispose_engine()
  return 0


if __name__ == "__main__":
  sys.exit(asyncio.run(main()))
