"""Lesson access policy: visibility, mutation rights, deletion guards, input rules and search narrowing.

Every function here is a pure function of its arguments. Nothing reads storage, logs or raises;
failures come back as `LessonError` values so the service layer decides how to surface them.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol

from marketplace.policy.errors import LessonError

MIN_PRICE_CENTS = 100
MAX_PRICE_CENTS = 99999
TITLE_MAX_CHARS = 200
DESCRIPTION_MAX_CHARS = 2000
CATEGORY_MAX_CHARS = 50
DEFAULT_PAGE_LIMIT = 20


class Role(str, Enum):
  STUDENT = "STUDENT"
  INSTRUCTOR = "INSTRUCTOR"
  ADMIN = "ADMIN"

  @classmethod
  def from_claim(cls, raw: object) -> Role:
    """Map a token role claim onto a role, defaulting to STUDENT for missing or unknown values."""
    if isinstance(raw, str):
      try:
        return cls(raw.strip().upper())
      except ValueError:
        return cls.STUDENT
    return cls.STUDENT


class PurchaseStatus(str, Enum):
  PENDING = "PENDING"
  COMPLETED = "COMPLETED"
  FAILED = "FAILED"
  REFUNDED = "REFUNDED"


class SortField(str, Enum):
  CREATED_AT = "createdAt"
  PRICE = "price"
  TITLE = "title"


class SortDirection(str, Enum):
  ASC = "asc"
  DESC = "desc"


@dataclass(frozen=True)
class Caller:
  """Verified identity of the party making a request."""

  id: str
  role: Role
  email: str | None = None


class OwnedLesson(Protocol):
  """The lesson fields the policy reads."""

  @property
  def id(self) -> str: ...

  @property
  def instructor_id(self) -> str: ...

  @property
  def published(self) -> bool: ...


@dataclass(frozen=True)
class LessonInput:
  """Lesson fields subject to input rules."""

  title: str | None
  price: int | None
  description: str | None = None


@dataclass(frozen=True)
class LessonChanges:
  """Partial update; None means the field is left untouched."""

  title: str | None = None
  description: str | None = None
  price: int | None = None
  category: str | None = None
  published: bool | None = None
  thumbnail_url: str | None = None

  def changed_fields(self) -> list[str]:
    return [name for name in ("title", "description", "price", "category", "published", "thumbnail_url") if getattr(self, name) is not None]


@dataclass(frozen=True)
class SearchFilters:
  query: str | None = None
  category: str | None = None
  min_price: int | None = None
  max_price: int | None = None
  instructor_id: str | None = None
  # None means both published and unpublished.
  published: bool | None = None
  limit: int = DEFAULT_PAGE_LIMIT
  offset: int = 0


@dataclass(frozen=True)
class SortOptions:
  field: SortField = SortField.CREATED_AT
  direction: SortDirection = SortDirection.DESC

  @classmethod
  def parse(cls, field: str | None, direction: str | None) -> SortOptions:
    """Build sort options from loose input; unknown fields fall back to createdAt."""
    try:
      sort_field = SortField(field) if field else SortField.CREATED_AT
    except ValueError:
      sort_field = SortField.CREATED_AT
    sort_direction = SortDirection.ASC if (direction or "").lower() == "asc" else SortDirection.DESC
    return cls(field=sort_field, direction=sort_direction)


@dataclass(frozen=True)
class ReviewSnapshot:
  id: str
  rating: int
  comment: str | None


@dataclass(frozen=True)
class UserContext:
  is_purchased: bool
  has_access: bool
  user_review: ReviewSnapshot | None = None


@dataclass(frozen=True)
class AccessDecision:
  visible: bool
  can_mutate: bool
  can_delete: bool
  user_context: UserContext | None = None


def _is_owner_or_admin(lesson: OwnedLesson, caller: Caller | None) -> bool:
  if caller is None:
    return False
  return caller.id == lesson.instructor_id or caller.role == Role.ADMIN


def can_view_lesson(lesson: OwnedLesson, caller: Caller | None) -> bool:
  """Published lessons are public; drafts are visible to their owner and administrators."""
  if lesson.published:
    return True
  return _is_owner_or_admin(lesson, caller)


def can_mutate_lesson(lesson: OwnedLesson, caller: Caller | None) -> bool:
  """Owners and administrators may update a lesson."""
  return _is_owner_or_admin(lesson, caller)


def can_delete_lesson(lesson: OwnedLesson, caller: Caller | None, purchase_count: int) -> LessonError | None:
  """Return the reason deletion is blocked, or None when it may proceed.

  Permission is checked before purchases, and purchases block deletion for every role.
  """
  if not can_mutate_lesson(lesson, caller):
    return LessonError.permission_denied(lesson.id, caller.id if caller else None)
  if purchase_count > 0:
    return LessonError.has_purchases(lesson.id, purchase_count)
  return None


def can_create_lesson(caller: Caller | None) -> bool:
  """Only instructors author lessons; administrators curate but do not create."""
  return caller is not None and caller.role == Role.INSTRUCTOR


def can_see_unpublished_for_instructor(instructor_id: str, include_unpublished: bool, caller: Caller | None) -> bool:
  """Decide whether an instructor listing may include drafts."""
  if not include_unpublished or caller is None:
    return False
  return caller.id == instructor_id or caller.role == Role.ADMIN


def validate_price(price: object) -> LessonError | None:
  if price is None:
    return LessonError.validation("price", "Price is required")
  # bool is an int subclass; reject it explicitly.
  if isinstance(price, bool) or not isinstance(price, int):
    return LessonError.validation("price", "Price must be an integer (cents)")
  if price < MIN_PRICE_CENTS or price > MAX_PRICE_CENTS:
    return LessonError.invalid_price(price)
  return None


def _validate_title(title: str | None) -> LessonError | None:
  if not title or not title.strip():
    return LessonError.validation("title", "Title is required")
  if len(title) > TITLE_MAX_CHARS:
    return LessonError.validation("title", f"Title must be {TITLE_MAX_CHARS} characters or less")
  return None


def _validate_description(description: str | None) -> LessonError | None:
  if description and len(description) > DESCRIPTION_MAX_CHARS:
    return LessonError.validation("description", f"Description must be {DESCRIPTION_MAX_CHARS} characters or less")
  return None


def validate_lesson_input(lesson_input: LessonInput) -> LessonError | None:
  """Check title, then description, then price, and report the first problem found."""
  return _validate_title(lesson_input.title) or _validate_description(lesson_input.description) or validate_price(lesson_input.price)


def validate_lesson_changes(changes: LessonChanges) -> LessonError | None:
  """Apply the same rules as creation, but only to the fields being changed."""
  if changes.title is not None:
    error = _validate_title(changes.title)
    if error:
      return error
  error = _validate_description(changes.description)
  if error:
    return error
  if changes.category is not None and len(changes.category) > CATEGORY_MAX_CHARS:
    return LessonError.validation("category", f"Category must be {CATEGORY_MAX_CHARS} characters or less")
  if changes.price is not None:
    return validate_price(changes.price)
  return None


def filter_search_visibility(filters: SearchFilters, caller: Caller | None) -> SearchFilters:
  """Only instructors keep their requested `published` filter; everyone else sees published lessons only."""
  if caller is not None and caller.role == Role.INSTRUCTOR:
    return filters
  return replace(filters, published=True)


def user_context_from_records(purchase_status: PurchaseStatus | None, review: ReviewSnapshot | None) -> UserContext:
  """Derive purchase and access flags for a caller from their purchase and review rows."""
  is_purchased = purchase_status == PurchaseStatus.COMPLETED
  # Access is granted by a completed purchase and nothing else.
  has_access = is_purchased
  return UserContext(is_purchased=is_purchased, has_access=has_access, user_review=review)


def can_access_video(lesson: OwnedLesson, caller: Caller | None, user_context: UserContext | None) -> bool:
  """Buyers with access may stream; owners and administrators may preview."""
  if can_mutate_lesson(lesson, caller):
    return True
  return user_context is not None and user_context.has_access


def decide_access(lesson: OwnedLesson, caller: Caller | None, purchase_count: int, user_context: UserContext | None = None) -> AccessDecision:
  """Bundle every per-lesson decision for one caller."""
  return AccessDecision(
    visible=can_view_lesson(lesson, caller),
    can_mutate=can_mutate_lesson(lesson, caller),
    can_delete=can_delete_lesson(lesson, caller, purchase_count) is None,
    user_context=user_context if caller is not None else None,
  )
