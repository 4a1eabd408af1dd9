"""Derived program publication.

A program becomes published the first time any lesson under any of its terms
is published. The resolver never trusts the caller's claim that a program is
eligible: the precondition is re-evaluated by the store inside the caller's
transaction, so running the resolver twice writes nothing the second time.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from cms_engine.publishing.models import CascadeResult
from cms_engine.storage.postgres_publishing_repo import PostgresPublishingRepository
from cms_engine.storage.publishing_repo import PublishingRepository

logger = logging.getLogger(__name__)


class CascadeResolver:
  """Propagate lesson publication up to owning programs."""

  def __init__(self, repository: PublishingRepository | None = None) -> None:
    self._repository = repository or PostgresPublishingRepository()

  async def cascade_publish_programs(self, session: AsyncSession, term_ids: Sequence[str] | None, now: datetime.datetime) -> CascadeResult:
    """Publish every eligible program owning one of `term_ids`.

    Passing None sweeps the whole program set instead of a term subset.
    """
    if term_ids is None:
      programs = await self._repository.publish_eligible_programs(session, None, now)
      self._log_published(programs, swept=True)
      return CascadeResult(programs=programs)

    if not term_ids:
      return CascadeResult()

    # Resolve terms to programs and skip rows whose parent vanished.
    resolved = await self._repository.resolve_term_programs(session, term_ids)
    orphan_term_ids: list[str] = []
    candidate_program_ids: list[str] = []
    for term_id, program_id in resolved.items():
      if program_id is None:
        orphan_term_ids.append(term_id)
        logger.warning("Cascade skipped term without an owning program: term_id=%s", term_id)
        continue
      if program_id not in candidate_program_ids:
        candidate_program_ids.append(program_id)

    if not candidate_program_ids:
      return CascadeResult(orphan_term_ids=orphan_term_ids)

    programs = await self._repository.publish_eligible_programs(session, candidate_program_ids, now)
    self._log_published(programs, swept=False)
    return CascadeResult(programs=programs, candidate_program_ids=candidate_program_ids, orphan_term_ids=orphan_term_ids)

  @staticmethod
  def _log_published(programs: Sequence, *, swept: bool) -> None:
    for program in programs:
      logger.info("Program published by cascade: program_id=%s published_at=%s swept=%s", program.id, program.published_at.isoformat(), swept)
