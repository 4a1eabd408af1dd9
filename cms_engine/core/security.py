from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from cms_engine.config import Settings, get_settings

logger = logging.getLogger(__name__)


async def require_admin_secret(
  request: Request, settings: Annotated[Settings, Depends(get_settings)], x_cms_admin_secret: Annotated[str | None, Header()] = None
) -> None:
  """Gate editor and worker endpoints behind the shared admin secret."""
  # Secure-by-default: without a configured secret the admin surface stays closed.
  if not settings.admin_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin authentication is not configured.")
  if not secrets.compare_digest((x_cms_admin_secret or ""), settings.admin_secret):
    logger.warning("Unauthorized access attempt to %s", request.url.path)
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin secret.")
