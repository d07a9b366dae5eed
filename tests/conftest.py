"""Shared fixtures: an in-memory lessons repository, mock sessions and an authenticated test client."""

from __future__ import annotations

import datetime
import itertools
import uuid
from collections.abc import Iterator
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from marketplace.api.deps import get_lessons_repository, get_video_storage_client
from marketplace.config import Settings, get_settings
from marketplace.core.database import get_db
from marketplace.main import app
from marketplace.policy.access import Caller, LessonChanges, PurchaseStatus, SearchFilters, SortDirection, SortField, SortOptions
from marketplace.storage.lessons_repo import InstructorRecord, LessonCreateData, LessonListingRecord, LessonRecord, LessonStats, PurchaseRecord, ReviewRecord, build_lesson_stats

_BASE_TIME = datetime.datetime(2024, 1, 1, tzinfo=datetime.UTC)

TOKENS: dict[str, dict[str, object]] = {
  "student-token": {"uid": "student-1", "email": "student@example.com", "role": "student"},
  "instructor-token": {"uid": "instructor-1", "email": "coach@example.com", "role": "INSTRUCTOR"},
  "other-instructor-token": {"uid": "instructor-2", "email": "other@example.com", "role": "INSTRUCTOR"},
  "admin-token": {"uid": "admin-1", "email": "admin@example.com", "role": "ADMIN"},
}


class FakeLessonsRepository:
  """Dict-backed repository mirroring the Postgres repository's query semantics."""

  def __init__(self) -> None:
    self.users: dict[str, InstructorRecord] = {}
    self.lessons: dict[str, LessonRecord] = {}
    self.purchases: list[PurchaseRecord] = []
    self.reviews: list[ReviewRecord] = []
    self.locked: list[str] = []
    self._clock = itertools.count(1)

  def add_user(self, user_id: str, *, name: str | None = None, email: str | None = None) -> InstructorRecord:
    record = InstructorRecord(id=user_id, name=name, email=email)
    self.users[user_id] = record
    return record

  def add_lesson(self, *, instructor_id: str = "instructor-1", published: bool = True, title: str = "Kickflip basics", price: int = 2999, category: str | None = "skateboarding", description: str | None = None, lesson_id: str | None = None) -> LessonRecord:
    instructor = self.users.get(instructor_id) or self.add_user(instructor_id, name=f"Name {instructor_id}")
    created = _BASE_TIME + datetime.timedelta(minutes=next(self._clock))
    lesson = LessonRecord(
      id=lesson_id or str(uuid.uuid4()),
      title=title,
      description=description,
      price=price,
      category=category,
      thumbnail_url=None,
      published=published,
      instructor_id=instructor_id,
      created_at=created,
      updated_at=created,
      instructor=instructor,
    )
    self.lessons[lesson.id] = lesson
    return lesson

  def add_purchase(self, lesson_id: str, user_id: str, *, status: PurchaseStatus = PurchaseStatus.COMPLETED, amount: int | None = None) -> PurchaseRecord:
    price = amount if amount is not None else self.lessons[lesson_id].price
    record = PurchaseRecord(id=str(uuid.uuid4()), user_id=user_id, lesson_id=lesson_id, amount=price, platform_fee=0, instructor_earnings=price, status=status)
    self.purchases.append(record)
    return record

  def add_review(self, lesson_id: str, user_id: str, rating: int, comment: str | None = None) -> ReviewRecord:
    record = ReviewRecord(id=str(uuid.uuid4()), user_id=user_id, lesson_id=lesson_id, rating=rating, comment=comment)
    self.reviews.append(record)
    return record

  def _stats(self, lesson_id: str) -> LessonStats:
    amounts = [p.amount for p in self.purchases if p.lesson_id == lesson_id and p.status == PurchaseStatus.COMPLETED]
    ratings = [r.rating for r in self.reviews if r.lesson_id == lesson_id]
    return build_lesson_stats(amounts, ratings)

  def _matches(self, lesson: LessonRecord, filters: SearchFilters) -> bool:
    if filters.query:
      needle = filters.query.lower()
      haystacks = [lesson.title, lesson.description or "", lesson.category or ""]
      if not any(needle in value.lower() for value in haystacks):
        return False
    if filters.category and lesson.category != filters.category:
      return False
    if filters.instructor_id and lesson.instructor_id != filters.instructor_id:
      return False
    if filters.min_price is not None and lesson.price < filters.min_price:
      return False
    if filters.max_price is not None and lesson.price > filters.max_price:
      return False
    if filters.published is not None and lesson.published != filters.published:
      return False
    return True

  async def ensure_user(self, session, caller: Caller) -> None:
    if caller.id not in self.users:
      self.add_user(caller.id, email=caller.email)

  async def get_lesson(self, session, lesson_id: str, *, for_update: bool = False) -> LessonRecord | None:
    if for_update:
      self.locked.append(lesson_id)
    return self.lessons.get(lesson_id)

  async def search_lessons(self, session, filters: SearchFilters, sort: SortOptions) -> list[LessonListingRecord]:
    matches = [lesson for lesson in self.lessons.values() if self._matches(lesson, filters)]
    key = {SortField.PRICE: lambda item: item.price, SortField.TITLE: lambda item: item.title}.get(sort.field, lambda item: item.created_at)
    matches.sort(key=key, reverse=sort.direction == SortDirection.DESC)
    page = matches[filters.offset : filters.offset + filters.limit]
    listings = []
    for lesson in page:
      stats = self._stats(lesson.id)
      listings.append(LessonListingRecord(lesson=lesson, purchase_count=stats.purchase_count, average_rating=stats.average_rating))
    return listings

  async def count_lessons(self, session, filters: SearchFilters) -> int:
    return sum(1 for lesson in self.lessons.values() if self._matches(lesson, filters))

  async def list_by_instructor(self, session, instructor_id: str, *, include_unpublished: bool) -> list[LessonRecord]:
    lessons = [lesson for lesson in self.lessons.values() if lesson.instructor_id == instructor_id and (include_unpublished or lesson.published)]
    return sorted(lessons, key=lambda item: item.created_at, reverse=True)

  async def create_lesson(self, session, data: LessonCreateData) -> LessonRecord:
    lesson = self.add_lesson(instructor_id=data.instructor_id, published=data.published, title=data.title, price=data.price, category=data.category, description=data.description)
    return lesson

  async def update_lesson(self, session, lesson_id: str, changes: LessonChanges) -> LessonRecord:
    lesson = self.lessons[lesson_id]
    updates = {name: getattr(changes, name) for name in changes.changed_fields()}
    updated = replace(lesson, **updates, updated_at=lesson.updated_at + datetime.timedelta(seconds=1))
    self.lessons[lesson_id] = updated
    return updated

  async def delete_lesson(self, session, lesson_id: str) -> None:
    self.lessons.pop(lesson_id, None)
    self.purchases = [p for p in self.purchases if p.lesson_id != lesson_id]
    self.reviews = [r for r in self.reviews if r.lesson_id != lesson_id]

  async def get_lesson_stats(self, session, lesson_id: str) -> LessonStats:
    return self._stats(lesson_id)

  async def get_stats_for_lessons(self, session, lesson_ids: list[str]) -> dict[str, LessonStats]:
    return {lesson_id: self._stats(lesson_id) for lesson_id in lesson_ids}

  async def count_completed_purchases(self, session, lesson_id: str) -> int:
    return sum(1 for p in self.purchases if p.lesson_id == lesson_id and p.status == PurchaseStatus.COMPLETED)

  async def get_purchase(self, session, lesson_id: str, user_id: str) -> PurchaseRecord | None:
    return next((p for p in self.purchases if p.lesson_id == lesson_id and p.user_id == user_id), None)

  async def upsert_purchase(self, session, record: PurchaseRecord) -> PurchaseRecord:
    existing = await self.get_purchase(session, record.lesson_id, record.user_id)
    if existing is not None:
      record = replace(record, id=existing.id)
      self.purchases.remove(existing)
    self.purchases.append(record)
    return record

  async def get_review(self, session, lesson_id: str, user_id: str) -> ReviewRecord | None:
    return next((r for r in self.reviews if r.lesson_id == lesson_id and r.user_id == user_id), None)


@pytest.fixture
def settings() -> Settings:
  return replace(get_settings(), log_policy_denials=True, video_url_ttl_seconds=14400, platform_fee_percent=15)


@pytest.fixture
def fake_repo() -> FakeLessonsRepository:
  return FakeLessonsRepository()


@pytest.fixture
def mock_db_session():
  session = AsyncMock()
  # Mock execute result
  result = MagicMock()
  result.scalar_one_or_none.return_value = None
  result.scalar_one.return_value = None
  session.execute.return_value = result
  return session


@pytest.fixture
def override_get_db(mock_db_session):
  async def _get_db():
    yield mock_db_session

  return _get_db


@pytest.fixture
def video_storage():
  storage = MagicMock()
  storage.generate_signed_url = AsyncMock(return_value="https://storage.example.com/signed")
  return storage


@pytest.fixture
def client(monkeypatch, fake_repo, override_get_db, video_storage) -> Iterator[TestClient]:
  """Test client wired to the fake repository with bearer tokens resolved from TOKENS."""
  monkeypatch.setattr("marketplace.core.security.verify_id_token", lambda token: TOKENS.get(token))
  app.dependency_overrides[get_db] = override_get_db
  app.dependency_overrides[get_lessons_repository] = lambda: fake_repo
  app.dependency_overrides[get_video_storage_client] = lambda: video_storage
  try:
    yield TestClient(app)
  finally:
    app.dependency_overrides.clear()

