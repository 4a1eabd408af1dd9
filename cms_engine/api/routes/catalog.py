from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cms_engine.api.models import CatalogPageResponse
from cms_engine.config import Settings, get_settings
from cms_engine.core.database import get_db
from cms_engine.services.catalog import list_published_catalog

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/programs", response_model=CatalogPageResponse)
async def list_catalog_programs(
  settings: Annotated[Settings, Depends(get_settings)],
  db_session: Annotated[AsyncSession, Depends(get_db)],
  cursor: Annotated[str | None, Query(description="Opaque token from a previous page's next_cursor.")] = None,
  limit: Annotated[int | None, Query(description="Page size; clamped to the configured maximum.")] = None,
  topic: Annotated[str | None, Query(description="Only programs referencing this topic id.")] = None,
) -> CatalogPageResponse:
  """List published programs that have at least one published lesson."""
  page = await list_published_catalog(db_session, cursor=cursor, limit=limit, topic=topic, default_limit=settings.catalog_default_limit, max_limit=settings.catalog_max_limit)
  return CatalogPageResponse.model_validate(page)
