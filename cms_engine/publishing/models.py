"""Domain models exchanged by the publish worker, repository and cascade resolver."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field


@dataclass(frozen=True)
class DueLesson:
  """A scheduled lesson whose release instant has passed."""

  id: str
  term_id: str
  publish_at: datetime.datetime


@dataclass(frozen=True)
class PublishedLesson:
  """A lesson the current cycle moved to published."""

  id: str
  term_id: str


@dataclass(frozen=True)
class PublishedProgram:
  id: str
  published_at: datetime.datetime


@dataclass
class CascadeResult:
  """Outcome of one cascade pass."""

  programs: list[PublishedProgram] = field(default_factory=list)
  candidate_program_ids: list[str] = field(default_factory=list)
  orphan_term_ids: list[str] = field(default_factory=list)

  @property
  def program_ids(self) -> list[str]:
    return [program.id for program in self.programs]


@dataclass
class CycleResult:
  """Outcome of a single publish cycle."""

  now: datetime.datetime | None
  skipped: bool = False
  failed: bool = False
  error: str | None = None
  lessons: list[PublishedLesson] = field(default_factory=list)
  cascade: CascadeResult = field(default_factory=CascadeResult)

  @property
  def lesson_ids(self) -> list[str]:
    return [lesson.id for lesson in self.lessons]

  @property
  def program_ids(self) -> list[str]:
    return self.cascade.program_ids


@dataclass
class WorkerStatus:
  """Mutable counters kept by a running worker."""

  running: bool = False
  interval_seconds: float = 30.0
  clock: str = "database"
  cycles_completed: int = 0
  cycles_failed: int = 0
  cycles_skipped: int = 0
  last_cycle_at: datetime.datetime | None = None
  last_error: str | None = None
  last_lessons_published: int = 0
  last_programs_published: int = 0
