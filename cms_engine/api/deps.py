"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from cms_engine.publishing.worker import PublishWorker


def get_publish_worker(request: Request) -> PublishWorker:
  """Return the worker created by the lifespan for this app."""
  worker = getattr(request.app.state, "publish_worker", None)
  if worker is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Publish worker is not configured.")
  return worker
