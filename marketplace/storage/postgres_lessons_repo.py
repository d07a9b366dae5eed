"""Postgres-backed repository for lesson persistence using SQLAlchemy."""

from __future__ import annotations

import datetime
import logging
import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import ColumnElement, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from marketplace.policy.access import Caller, LessonChanges, PurchaseStatus, SearchFilters, SortDirection, SortField, SortOptions
from marketplace.schema.sql import Lesson, Purchase, Review, User
from marketplace.storage.lessons_repo import InstructorRecord, LessonCreateData, LessonListingRecord, LessonRecord, LessonsRepository, LessonStats, PurchaseRecord, ReviewRecord

logger = logging.getLogger(__name__)

_LESSON_LOAD_OPTIONS = (selectinload(Lesson.instructor), selectinload(Lesson.tags))


class PostgresLessonsRepository(LessonsRepository):
  """Persist lessons to Postgres using SQLAlchemy."""

  async def ensure_user(self, session: AsyncSession, caller: Caller) -> None:
    """Create the user row for a verified caller and keep its role in sync with token claims."""
    user = await session.get(User, caller.id)
    if user is None:
      session.add(User(id=caller.id, email=caller.email, role=caller.role))
      await session.flush()
      logger.info("user.provisioned user_id=%s role=%s", caller.id, caller.role.value)
      return
    if user.role != caller.role:
      user.role = caller.role
      await session.flush()

  async def get_lesson(self, session: AsyncSession, lesson_id: str, *, for_update: bool = False) -> LessonRecord | None:
    """Fetch a lesson by id."""
    stmt = select(Lesson).where(Lesson.id == lesson_id).options(*_LESSON_LOAD_OPTIONS).execution_options(populate_existing=True)
    # Row lock so purchases referencing the lesson cannot land between check and write.
    if for_update:
      stmt = stmt.with_for_update(of=Lesson)
    result = await session.execute(stmt)
    lesson = result.scalar_one_or_none()
    if lesson is None:
      return None
    return _lesson_to_record(lesson)

  async def search_lessons(self, session: AsyncSession, filters: SearchFilters, sort: SortOptions) -> list[LessonListingRecord]:
    """Return one page of lessons with completed purchase counts and average ratings."""
    purchase_counts = select(Purchase.lesson_id.label("lesson_id"), func.count(Purchase.id).label("purchase_count")).where(Purchase.status == PurchaseStatus.COMPLETED).group_by(Purchase.lesson_id).subquery()
    ratings = select(Review.lesson_id.label("lesson_id"), func.avg(Review.rating).label("average_rating")).group_by(Review.lesson_id).subquery()

    stmt = (
      select(Lesson, func.coalesce(purchase_counts.c.purchase_count, 0), ratings.c.average_rating)
      .outerjoin(purchase_counts, purchase_counts.c.lesson_id == Lesson.id)
      .outerjoin(ratings, ratings.c.lesson_id == Lesson.id)
      .options(*_LESSON_LOAD_OPTIONS)
    )
    conditions = _search_conditions(filters)
    if conditions:
      stmt = stmt.where(*conditions)
    stmt = stmt.order_by(*_order_by(sort)).limit(filters.limit).offset(filters.offset)

    result = await session.execute(stmt)
    return [LessonListingRecord(lesson=_lesson_to_record(lesson), purchase_count=int(count or 0), average_rating=_to_float(average)) for lesson, count, average in result.all()]

  async def count_lessons(self, session: AsyncSession, filters: SearchFilters) -> int:
    stmt = select(func.count()).select_from(Lesson)
    conditions = _search_conditions(filters)
    if conditions:
      stmt = stmt.where(*conditions)
    total = await session.scalar(stmt)
    return int(total or 0)

  async def list_by_instructor(self, session: AsyncSession, instructor_id: str, *, include_unpublished: bool) -> list[LessonRecord]:
    stmt = select(Lesson).where(Lesson.instructor_id == instructor_id).options(*_LESSON_LOAD_OPTIONS).order_by(Lesson.created_at.desc())
    if not include_unpublished:
      stmt = stmt.where(Lesson.published.is_(True))
    result = await session.execute(stmt)
    return [_lesson_to_record(lesson) for lesson in result.scalars().all()]

  async def create_lesson(self, session: AsyncSession, data: LessonCreateData) -> LessonRecord:
    """Insert a lesson owned by an existing user."""
    instructor = await session.get(User, data.instructor_id)
    if instructor is None:
      raise RuntimeError("Instructor not found.")

    now = datetime.datetime.now(datetime.UTC)
    lesson = Lesson(
      id=str(uuid.uuid4()),
      title=data.title,
      description=data.description,
      price=data.price,
      category=data.category,
      thumbnail_url=data.thumbnail_url,
      published=data.published,
      instructor_id=data.instructor_id,
      created_at=now,
      updated_at=now,
      instructor=instructor,
      tags=[],
    )
    session.add(lesson)
    await session.flush()
    return _lesson_to_record(lesson)

  async def update_lesson(self, session: AsyncSession, lesson_id: str, changes: LessonChanges) -> LessonRecord:
    """Apply only the fields present in `changes`."""
    result = await session.execute(select(Lesson).where(Lesson.id == lesson_id).options(*_LESSON_LOAD_OPTIONS))
    lesson = result.scalar_one_or_none()
    if lesson is None:
      raise RuntimeError("Lesson not found.")

    for field_name in changes.changed_fields():
      setattr(lesson, field_name, getattr(changes, field_name))
    lesson.updated_at = datetime.datetime.now(datetime.UTC)
    await session.flush()
    return _lesson_to_record(lesson)

  async def delete_lesson(self, session: AsyncSession, lesson_id: str) -> None:
    await session.execute(delete(Lesson).where(Lesson.id == lesson_id))

  async def get_lesson_stats(self, session: AsyncSession, lesson_id: str) -> LessonStats:
    stats = await self.get_stats_for_lessons(session, [lesson_id])
    return stats.get(lesson_id, LessonStats())

  async def get_stats_for_lessons(self, session: AsyncSession, lesson_ids: list[str]) -> dict[str, LessonStats]:
    """Aggregate completed purchases and reviews per lesson."""
    if not lesson_ids:
      return {}

    purchase_stmt = (
      select(Purchase.lesson_id, func.count(Purchase.id), func.coalesce(func.sum(Purchase.amount), 0))
      .where(Purchase.lesson_id.in_(lesson_ids), Purchase.status == PurchaseStatus.COMPLETED)
      .group_by(Purchase.lesson_id)
    )
    review_stmt = select(Review.lesson_id, func.count(Review.id), func.avg(Review.rating)).where(Review.lesson_id.in_(lesson_ids)).group_by(Review.lesson_id)

    purchases: dict[str, tuple[int, int]] = {row[0]: (int(row[1]), int(row[2])) for row in (await session.execute(purchase_stmt)).all()}
    reviews: dict[str, tuple[int, float | None]] = {row[0]: (int(row[1]), _to_float(row[2])) for row in (await session.execute(review_stmt)).all()}

    stats: dict[str, LessonStats] = {}
    for lesson_id in lesson_ids:
      purchase_count, total_revenue = purchases.get(lesson_id, (0, 0))
      review_count, average_rating = reviews.get(lesson_id, (0, None))
      stats[lesson_id] = LessonStats(purchase_count=purchase_count, total_revenue=total_revenue, review_count=review_count, average_rating=average_rating)
    return stats

  async def count_completed_purchases(self, session: AsyncSession, lesson_id: str) -> int:
    count = await session.scalar(select(func.count(Purchase.id)).where(Purchase.lesson_id == lesson_id, Purchase.status == PurchaseStatus.COMPLETED))
    return int(count or 0)

  async def get_purchase(self, session: AsyncSession, lesson_id: str, user_id: str) -> PurchaseRecord | None:
    result = await session.execute(select(Purchase).where(Purchase.lesson_id == lesson_id, Purchase.user_id == user_id))
    purchase = result.scalar_one_or_none()
    return _purchase_to_record(purchase) if purchase else None

  async def upsert_purchase(self, session: AsyncSession, record: PurchaseRecord) -> PurchaseRecord:
    """Insert or update the single purchase row for a (user, lesson) pair."""
    result = await session.execute(select(Purchase).where(Purchase.lesson_id == record.lesson_id, Purchase.user_id == record.user_id))
    purchase = result.scalar_one_or_none()
    if purchase is None:
      purchase = Purchase(id=record.id, user_id=record.user_id, lesson_id=record.lesson_id)
      session.add(purchase)

    purchase.amount = record.amount
    purchase.platform_fee = record.platform_fee
    purchase.instructor_earnings = record.instructor_earnings
    purchase.status = record.status
    await session.flush()
    return _purchase_to_record(purchase)

  async def get_review(self, session: AsyncSession, lesson_id: str, user_id: str) -> ReviewRecord | None:
    result = await session.execute(select(Review).where(Review.lesson_id == lesson_id, Review.user_id == user_id))
    review = result.scalar_one_or_none()
    if review is None:
      return None
    return ReviewRecord(id=review.id, user_id=review.user_id, lesson_id=review.lesson_id, rating=review.rating, comment=review.comment)


def _escape_like(term: str) -> str:
  return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search_conditions(filters: SearchFilters) -> list[ColumnElement[bool]]:
  """Translate search filters into SQL conditions shared by the page and count queries."""
  conditions: list[ColumnElement[bool]] = []
  if filters.query:
    pattern = f"%{_escape_like(filters.query)}%"
    conditions.append(or_(Lesson.title.ilike(pattern, escape="\\"), Lesson.description.ilike(pattern, escape="\\"), Lesson.category.ilike(pattern, escape="\\")))
  if filters.category:
    conditions.append(Lesson.category == filters.category)
  if filters.instructor_id:
    conditions.append(Lesson.instructor_id == filters.instructor_id)
  if filters.min_price is not None:
    conditions.append(Lesson.price >= filters.min_price)
  if filters.max_price is not None:
    conditions.append(Lesson.price <= filters.max_price)
  if filters.published is not None:
    conditions.append(Lesson.published.is_(filters.published))
  return conditions


def _order_by(sort: SortOptions) -> tuple[Any, ...]:
  column = {SortField.PRICE: Lesson.price, SortField.TITLE: Lesson.title}.get(sort.field, Lesson.created_at)
  primary = column.asc() if sort.direction == SortDirection.ASC else column.desc()
  # Tie-break on id so pages stay stable.
  return primary, Lesson.id.asc()


def _to_float(value: Decimal | float | None) -> float | None:
  if value is None:
    return None
  return float(value)


def _lesson_to_record(lesson: Lesson) -> LessonRecord:
  """Convert a SQLAlchemy model to a domain record."""
  instructor = InstructorRecord(id=lesson.instructor.id, name=lesson.instructor.name, email=lesson.instructor.email)
  return LessonRecord(
    id=lesson.id,
    title=lesson.title,
    description=lesson.description,
    price=lesson.price,
    category=lesson.category,
    thumbnail_url=lesson.thumbnail_url,
    published=bool(lesson.published),
    instructor_id=lesson.instructor_id,
    created_at=lesson.created_at,
    updated_at=lesson.updated_at,
    instructor=instructor,
    tags=tuple(sorted(tag.name for tag in lesson.tags)),
  )


def _purchase_to_record(purchase: Purchase) -> PurchaseRecord:
  return PurchaseRecord(
    id=purchase.id,
    user_id=purchase.user_id,
    lesson_id=purchase.lesson_id,
    amount=purchase.amount,
    platform_fee=purchase.platform_fee,
    instructor_earnings=purchase.instructor_earnings,
    status=PurchaseStatus(purchase.status),
  )
