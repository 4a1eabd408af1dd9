from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from cms_engine.api.routes import admin, catalog, worker
from cms_engine.config import get_settings
from cms_engine.core.exceptions import (
  constraint_violation_exception_handler,
  global_exception_handler,
  http_exception_handler,
  illegal_transition_exception_handler,
  invalid_cursor_exception_handler,
  not_found_exception_handler,
  request_validation_exception_handler,
)
from cms_engine.core.json import ContentJSONResponse
from cms_engine.core.lifespan import lifespan
from cms_engine.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from cms_engine.publishing.status import IllegalTransitionError
from cms_engine.services.catalog import InvalidCursorError
from cms_engine.services.content import ConstraintViolationError, NotFoundError

settings = get_settings()

app = FastAPI(title="cms-engine", default_response_class=ContentJSONResponse, lifespan=lifespan, docs_url="/docs" if settings.debug else None, redoc_url=None)

app.add_middleware(
  CORSMiddleware,
  allow_origins=list(settings.allowed_origins),
  allow_credentials=True,
  allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
  allow_headers=["content-type", "x-cms-admin-secret", "x-request-id"],
  expose_headers=["content-length", "x-request-id"],
)


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(ConstraintViolationError, constraint_violation_exception_handler)
app.add_exception_handler(IllegalTransitionError, illegal_transition_exception_handler)
app.add_exception_handler(NotFoundError, not_found_exception_handler)
app.add_exception_handler(InvalidCursorError, invalid_cursor_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(catalog.router, prefix="/catalog", tags=["catalog"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
app.include_router(worker.router, prefix="/worker", tags=["worker"])
