from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from cms_engine.api.deps import get_publish_worker
from cms_engine.api.models import CycleResultResponse, WorkerStatusResponse
from cms_engine.core.security import require_admin_secret
from cms_engine.publishing.worker import PublishWorker

router = APIRouter(dependencies=[Depends(require_admin_secret)])
logger = logging.getLogger(__name__)


@router.post("/run", status_code=status.HTTP_200_OK, response_model=CycleResultResponse)
async def run_publish_cycle(worker: Annotated[PublishWorker, Depends(get_publish_worker)]) -> CycleResultResponse:
  """Run one publish cycle now; it is skipped if a cycle is already in flight."""
  logger.info("Manual publish cycle requested.")
  result = await worker.run_cycle()
  return CycleResultResponse(
    now=result.now,
    skipped=result.skipped,
    failed=result.failed,
    error=result.error,
    lesson_ids=result.lesson_ids,
    program_ids=result.program_ids,
    orphan_term_ids=list(result.cascade.orphan_term_ids),
  )


@router.get("/status", response_model=WorkerStatusResponse)
async def get_worker_status(worker: Annotated[PublishWorker, Depends(get_publish_worker)]) -> WorkerStatusResponse:
  snapshot = worker.status
  return WorkerStatusResponse(
    running=snapshot.running,
    cycle_in_progress=worker.is_cycle_running,
    interval_seconds=snapshot.interval_seconds,
    clock=snapshot.clock,
    cycles_completed=snapshot.cycles_completed,
    cycles_failed=snapshot.cycles_failed,
    cycles_skipped=snapshot.cycles_skipped,
    last_cycle_at=snapshot.last_cycle_at,
    last_error=snapshot.last_error,
    last_lessons_published=snapshot.last_lessons_published,
    last_programs_published=snapshot.last_programs_published,
  )
