"""Lesson use cases: compose the access policy with persistence and own transaction scope."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import Settings
from marketplace.policy import access
from marketplace.policy.access import Caller, LessonChanges, LessonInput, ReviewSnapshot, SearchFilters, SortOptions, UserContext
from marketplace.policy.errors import LessonError, LessonErrorKind, LessonServiceError
from marketplace.services.lesson_views import LessonView
from marketplace.storage.lessons_repo import LessonCreateData, LessonListingRecord, LessonRecord, LessonsRepository, LessonStats

logger = logging.getLogger(__name__)

_DENIAL_KINDS = frozenset({LessonErrorKind.PERMISSION_DENIED, LessonErrorKind.NOT_PUBLISHED, LessonErrorKind.HAS_PURCHASES, LessonErrorKind.PURCHASE_REQUIRED})


@dataclass(frozen=True)
class CreateLessonCommand:
  """Fields accepted when creating a lesson."""

  title: str | None
  price: int | None
  description: str | None = None
  category: str | None = None


@dataclass(frozen=True)
class LessonSearchResult:
  items: list[LessonListingRecord]
  total: int


class LessonService:
  """Lesson operations for one repository; the caller supplies the session."""

  def __init__(self, repository: LessonsRepository, settings: Settings) -> None:
    self._repo = repository
    self._settings = settings

  def reject(self, error: LessonError, *, operation: str, lesson_id: str | None, caller: Caller | None) -> LessonServiceError:
    """Log a policy refusal and return the exception to raise."""
    caller_id = caller.id if caller else None
    if error.kind in _DENIAL_KINDS and self._settings.log_policy_denials:
      logger.warning("lesson.%s.denied kind=%s lesson_id=%s user_id=%s", operation, error.kind.value, lesson_id, caller_id)
    else:
      logger.info("lesson.%s.rejected kind=%s lesson_id=%s user_id=%s field=%s", operation, error.kind.value, lesson_id, caller_id, error.field)
    return LessonServiceError(error)

  async def create_lesson(self, session: AsyncSession, lesson_input: CreateLessonCommand, caller: Caller | None) -> LessonView:
    """Create a draft lesson owned by the calling instructor."""
    logger.info("lesson.create.started user_id=%s", caller.id if caller else None)
    error = access.validate_lesson_input(LessonInput(title=lesson_input.title, price=lesson_input.price, description=lesson_input.description))
    if error is None and not access.can_create_lesson(caller):
      error = LessonError.permission_denied("new lesson", caller.id if caller else None)
    if error is not None:
      raise self.reject(error, operation="create", lesson_id=None, caller=caller)

    try:
      # Lessons always start as drafts owned by the caller.
      await self._repo.ensure_user(session, caller)
      data = LessonCreateData(title=lesson_input.title.strip(), price=lesson_input.price, instructor_id=caller.id, description=lesson_input.description, category=lesson_input.category, published=False)
      lesson = await self._repo.create_lesson(session, data)
      await session.commit()
    except Exception:
      await session.rollback()
      raise

    logger.info("lesson.create.completed lesson_id=%s instructor_id=%s price=%s", lesson.id, lesson.instructor_id, lesson.price)
    return LessonView(lesson=lesson, stats=LessonStats(), show_revenue=True)

  async def update_lesson(self, session: AsyncSession, lesson_id: str, changes: LessonChanges, caller: Caller | None) -> LessonView:
    """Apply a partial update after ownership and field checks; last writer wins."""
    logger.info("lesson.update.started lesson_id=%s user_id=%s fields=%s", lesson_id, caller.id if caller else None, ",".join(changes.changed_fields()))
    try:
      lesson = await self._repo.get_lesson(session, lesson_id)
      if lesson is None:
        raise self.reject(LessonError.not_found(lesson_id), operation="update", lesson_id=lesson_id, caller=caller)
      if not access.can_mutate_lesson(lesson, caller):
        raise self.reject(LessonError.permission_denied(lesson_id, caller.id if caller else None), operation="update", lesson_id=lesson_id, caller=caller)
      error = access.validate_lesson_changes(changes)
      if error is not None:
        raise self.reject(error, operation="update", lesson_id=lesson_id, caller=caller)

      updated = await self._repo.update_lesson(session, lesson_id, changes)
      stats = await self._repo.get_lesson_stats(session, lesson_id)
      await session.commit()
    except Exception:
      await session.rollback()
      raise

    if changes.published is not None and changes.published != lesson.published:
      logger.info("lesson.publish.changed lesson_id=%s published=%s", lesson_id, changes.published)
    logger.info("lesson.update.completed lesson_id=%s", lesson_id)
    return LessonView(lesson=updated, stats=stats, show_revenue=True)

  async def get_lesson(self, session: AsyncSession, lesson_id: str, caller: Caller | None) -> LessonView:
    """Return a lesson with stats, plus purchase context for signed-in callers."""
    lesson = await self._repo.get_lesson(session, lesson_id)
    if lesson is None:
      raise self.reject(LessonError.not_found(lesson_id), operation="get", lesson_id=lesson_id, caller=caller)
    if not access.can_view_lesson(lesson, caller):
      raise self.reject(LessonError.not_published(lesson_id), operation="get", lesson_id=lesson_id, caller=caller)

    stats = await self._repo.get_lesson_stats(session, lesson_id)
    user_context = await self.build_user_context(session, lesson_id, caller)
    return LessonView(lesson=lesson, stats=stats, user_context=user_context, show_revenue=access.can_mutate_lesson(lesson, caller))

  async def search_lessons(self, session: AsyncSession, filters: SearchFilters, sort: SortOptions, caller: Caller | None) -> LessonSearchResult:
    """Search lessons after narrowing the published filter for the caller."""
    effective = access.filter_search_visibility(filters, caller)
    logger.info("lesson.search.started query=%s category=%s published=%s limit=%s offset=%s", effective.query, effective.category, effective.published, effective.limit, effective.offset)
    items = await self._repo.search_lessons(session, effective, sort)
    total = await self._repo.count_lessons(session, effective)
    logger.info("lesson.search.completed results=%s total=%s", len(items), total)
    return LessonSearchResult(items=items, total=total)

  async def list_instructor_lessons(self, session: AsyncSession, instructor_id: str, include_unpublished: bool, caller: Caller | None) -> list[LessonView]:
    """List an instructor's lessons; drafts only for that instructor or an administrator."""
    include_drafts = access.can_see_unpublished_for_instructor(instructor_id, include_unpublished, caller)
    lessons = await self._repo.list_by_instructor(session, instructor_id, include_unpublished=include_drafts)
    stats = await self._repo.get_stats_for_lessons(session, [lesson.id for lesson in lessons])
    return [LessonView(lesson=lesson, stats=stats.get(lesson.id, LessonStats()), show_revenue=access.can_mutate_lesson(lesson, caller)) for lesson in lessons]

  async def delete_lesson(self, session: AsyncSession, lesson_id: str, caller: Caller | None) -> None:
    """Delete a lesson unless the caller lacks rights or buyers exist."""
    logger.info("lesson.delete.started lesson_id=%s user_id=%s", lesson_id, caller.id if caller else None)
    try:
      # Lock the row so a purchase cannot complete between the count and the delete.
      lesson = await self._repo.get_lesson(session, lesson_id, for_update=True)
      if lesson is None:
        raise self.reject(LessonError.not_found(lesson_id), operation="delete", lesson_id=lesson_id, caller=caller)
      purchase_count = await self._repo.count_completed_purchases(session, lesson_id)
      error = access.can_delete_lesson(lesson, caller, purchase_count)
      if error is not None:
        raise self.reject(error, operation="delete", lesson_id=lesson_id, caller=caller)
      await self._repo.delete_lesson(session, lesson_id)
      await session.commit()
    except Exception:
      await session.rollback()
      raise
    logger.info("lesson.delete.completed lesson_id=%s", lesson_id)

  async def build_user_context(self, session: AsyncSession, lesson_id: str, caller: Caller | None) -> UserContext | None:
    """Resolve purchase and review state for a caller; None for anonymous callers."""
    if caller is None:
      return None
    purchase = await self._repo.get_purchase(session, lesson_id, caller.id)
    review = await self._repo.get_review(session, lesson_id, caller.id)
    snapshot = ReviewSnapshot(id=review.id, rating=review.rating, comment=review.comment) if review else None
    return access.user_context_from_records(purchase.status if purchase else None, snapshot)

  async def require_lesson(self, session: AsyncSession, lesson_id: str, caller: Caller | None, *, operation: str) -> LessonRecord:
    """Load a lesson or raise NOT_FOUND."""
    lesson = await self._repo.get_lesson(session, lesson_id)
    if lesson is None:
      raise self.reject(LessonError.not_found(lesson_id), operation=operation, lesson_id=lesson_id, caller=caller)
    return lesson

