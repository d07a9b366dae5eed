"""Storage interfaces and records for lesson persistence."""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.policy.access import Caller, LessonChanges, PurchaseStatus, SearchFilters, SortOptions


@dataclass(frozen=True)
class InstructorRecord:
  id: str
  name: str | None
  email: str | None


@dataclass(frozen=True)
class LessonRecord:
  """Lesson row with its instructor and tag names."""

  id: str
  title: str
  description: str | None
  price: int
  category: str | None
  thumbnail_url: str | None
  published: bool
  instructor_id: str
  created_at: datetime.datetime
  updated_at: datetime.datetime
  instructor: InstructorRecord
  tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class LessonStats:
  """Aggregates recomputed on every read; never stored."""

  purchase_count: int = 0
  total_revenue: int = 0
  review_count: int = 0
  average_rating: float | None = None


@dataclass(frozen=True)
class LessonListingRecord:
  """A search hit with the aggregates needed for a summary card."""

  lesson: LessonRecord
  purchase_count: int
  average_rating: float | None


@dataclass(frozen=True)
class LessonCreateData:
  title: str
  price: int
  instructor_id: str
  description: str | None = None
  category: str | None = None
  published: bool = False
  thumbnail_url: str | None = None


@dataclass(frozen=True)
class PurchaseRecord:
  id: str
  user_id: str
  lesson_id: str
  amount: int
  platform_fee: int
  instructor_earnings: int
  status: PurchaseStatus


@dataclass(frozen=True)
class ReviewRecord:
  id: str
  user_id: str
  lesson_id: str
  rating: int
  comment: str | None


def build_lesson_stats(completed_amounts: Iterable[int], ratings: Iterable[int]) -> LessonStats:
  """Fold completed purchase amounts and review ratings into lesson stats."""
  amounts = list(completed_amounts)
  rating_values = list(ratings)
  average = sum(rating_values) / len(rating_values) if rating_values else None
  return LessonStats(purchase_count=len(amounts), total_revenue=sum(amounts), review_count=len(rating_values), average_rating=average)


class LessonsRepository(Protocol):
  """Repository contract for lesson persistence. Callers own the session and its transaction."""

  async def ensure_user(self, session: AsyncSession, caller: Caller) -> None:
    """Create the user row for a verified caller when it does not exist yet."""

  async def get_lesson(self, session: AsyncSession, lesson_id: str, *, for_update: bool = False) -> LessonRecord | None:
    """Fetch a lesson with instructor and tags, optionally locking the row."""

  async def search_lessons(self, session: AsyncSession, filters: SearchFilters, sort: SortOptions) -> list[LessonListingRecord]:
    """Return one page of lessons matching the filters."""

  async def count_lessons(self, session: AsyncSession, filters: SearchFilters) -> int:
    """Count all lessons matching the filters, ignoring pagination."""

  async def list_by_instructor(self, session: AsyncSession, instructor_id: str, *, include_unpublished: bool) -> list[LessonRecord]:
    """List an instructor's lessons, newest first."""

  async def create_lesson(self, session: AsyncSession, data: LessonCreateData) -> LessonRecord:
    """Insert a lesson and return it."""

  async def update_lesson(self, session: AsyncSession, lesson_id: str, changes: LessonChanges) -> LessonRecord:
    """Apply a partial update and return the updated lesson."""

  async def delete_lesson(self, session: AsyncSession, lesson_id: str) -> None:
    """Delete a lesson row."""

  async def get_lesson_stats(self, session: AsyncSession, lesson_id: str) -> LessonStats:
    """Aggregate purchase and review stats for one lesson."""

  async def get_stats_for_lessons(self, session: AsyncSession, lesson_ids: list[str]) -> dict[str, LessonStats]:
    """Aggregate stats for many lessons in one round trip."""

  async def count_completed_purchases(self, session: AsyncSession, lesson_id: str) -> int:
    """Count completed purchases of a lesson."""

  async def get_purchase(self, session: AsyncSession, lesson_id: str, user_id: str) -> PurchaseRecord | None:
    """Fetch the caller's purchase of a lesson."""

  async def upsert_purchase(self, session: AsyncSession, record: PurchaseRecord) -> PurchaseRecord:
    """Insert or update the purchase for a (user, lesson) pair."""

  async def get_review(self, session: AsyncSession, lesson_id: str, user_id: str) -> ReviewRecord | None:
    """Fetch the caller's review of a lesson."""
