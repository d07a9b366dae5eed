"""Tagged error values for lesson authorization and validation outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LessonErrorKind(str, Enum):
  NOT_FOUND = "NOT_FOUND"
  PERMISSION_DENIED = "PERMISSION_DENIED"
  NOT_PUBLISHED = "NOT_PUBLISHED"
  VALIDATION = "VALIDATION"
  INVALID_PRICE = "INVALID_PRICE"
  HAS_PURCHASES = "HAS_PURCHASES"
  PURCHASE_REQUIRED = "PURCHASE_REQUIRED"


@dataclass(frozen=True)
class LessonError:
  """A terminal, caller-facing failure produced by the lesson policy or service."""

  kind: LessonErrorKind
  message: str
  field: str | None = None
  value: int | None = None
  count: int | None = None

  @classmethod
  def not_found(cls, lesson_id: str) -> LessonError:
    return cls(LessonErrorKind.NOT_FOUND, f"Lesson with ID {lesson_id} not found")

  @classmethod
  def permission_denied(cls, target: str, user_id: str | None) -> LessonError:
    return cls(LessonErrorKind.PERMISSION_DENIED, f"User {user_id or 'anonymous'} does not have permission to modify lesson {target}")

  @classmethod
  def not_published(cls, lesson_id: str) -> LessonError:
    return cls(LessonErrorKind.NOT_PUBLISHED, f"Lesson {lesson_id} is not published and cannot be accessed")

  @classmethod
  def validation(cls, field: str, message: str) -> LessonError:
    return cls(LessonErrorKind.VALIDATION, f"Lesson validation failed for field '{field}': {message}", field=field)

  @classmethod
  def invalid_price(cls, price: int) -> LessonError:
    return cls(LessonErrorKind.INVALID_PRICE, f"Invalid lesson price: {price}. Price must be between $1.00 and $999.99", field="price", value=price)

  @classmethod
  def has_purchases(cls, lesson_id: str, count: int) -> LessonError:
    return cls(LessonErrorKind.HAS_PURCHASES, f"Cannot delete lesson {lesson_id} because it has {count} purchases", count=count)

  @classmethod
  def purchase_required(cls, lesson_id: str) -> LessonError:
    return cls(LessonErrorKind.PURCHASE_REQUIRED, f"Access to lesson {lesson_id} requires a completed purchase")


class LessonServiceError(Exception):
  """Raised by the service layer to carry a tagged LessonError up to the HTTP layer."""

  def __init__(self, error: LessonError) -> None:
    super().__init__(error.message)
    self.error = error

  @property
  def kind(self) -> LessonErrorKind:
    return self.error.kind
