from __future__ import annotations

from typing import Generic, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from marketplace.policy.access import CATEGORY_MAX_CHARS

MAX_PAGE_SIZE = 100
T = TypeVar("T")


class CamelModel(BaseModel):
  """Base model exposing camelCase JSON while keeping snake_case attributes."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateLessonRequest(CamelModel):
  """Payload for creating a draft lesson.

  Shape and types are checked here; title, description and price rules are enforced by the access policy so
  each failure keeps its own error code.
  """

  title: StrictStr | None = Field(default=None, description="Lesson title (1-200 characters).", examples=["Mastering the kickflip"])
  description: StrictStr | None = Field(default=None, description="Optional lesson description (max 2000 characters).")
  price: StrictInt | None = Field(default=None, description="Price in cents (100-99999).", examples=[2999])
  category: StrictStr | None = Field(default=None, max_length=CATEGORY_MAX_CHARS, description="Optional category label.")
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", str_strip_whitespace=True)


class UpdateLessonRequest(CamelModel):
  """Partial lesson update; omitted fields are left untouched."""

  title: StrictStr | None = None
  description: StrictStr | None = None
  price: StrictInt | None = None
  category: StrictStr | None = Field(default=None, max_length=CATEGORY_MAX_CHARS)
  published: StrictBool | None = None
  thumbnail_url: StrictStr | None = None
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", str_strip_whitespace=True)

  @field_validator("thumbnail_url")
  @classmethod
  def _validate_thumbnail_url(cls, value: str | None) -> str | None:
    if value is None:
      return value
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
      raise ValueError("thumbnailUrl must be an http(s) URL.")
    return value

  @model_validator(mode="after")
  def _require_a_change(self) -> UpdateLessonRequest:
    # Reject empty updates so clients cannot bump updated_at without changing anything.
    if all(getattr(self, name) is None for name in type(self).model_fields):
      raise ValueError("At least one field must be provided for update.")
    return self


class InstructorResponse(CamelModel):
  id: str
  name: str | None = None
  email: str | None = None


class LessonStatsResponse(CamelModel):
  purchase_count: int
  average_rating: float | None = None
  review_count: int
  total_revenue: int | None = None


class UserReviewResponse(CamelModel):
  id: str
  rating: int
  comment: str | None = None


class LessonApiResponse(CamelModel):
  """Lesson detail returned by read and write endpoints."""

  id: str
  title: str
  description: str | None = None
  price: int
  category: str | None = None
  thumbnail_url: str | None = None
  published: bool
  created_at: str
  updated_at: str
  instructor: InstructorResponse
  stats: LessonStatsResponse
  tags: list[str] = Field(default_factory=list)
  is_purchased: bool | None = None
  has_access: bool | None = None
  user_review: UserReviewResponse | None = None


class SummaryInstructorResponse(CamelModel):
  id: str
  name: str | None = None


class SummaryStatsResponse(CamelModel):
  purchase_count: int
  average_rating: float | None = None


class LessonSummaryResponse(CamelModel):
  """Compact lesson card used in search results."""

  id: str
  title: str
  price: int
  thumbnail_url: str | None = None
  instructor: SummaryInstructorResponse
  stats: SummaryStatsResponse


class PaginatedResponse(CamelModel, Generic[T]):
  items: list[T]
  total: int
  page: int
  page_size: int
  has_more: bool


class ApiResponse(CamelModel, Generic[T]):
  """Envelope for every lesson endpoint payload."""

  data: T
  message: str | None = None
  timestamp: str


class DeleteResult(CamelModel):
  deleted: bool


class ServiceHealthResponse(CamelModel):
  status: str
  service: str
  timestamp: str
  version: str


class ServiceInfoResponse(CamelModel):
  service: str
  version: str
  environment: str
  features: list[str]


class MeResponse(CamelModel):
  """Identity resolved from the caller's bearer token."""

  uid: str
  email: str | None = None
  role: str


class VideoAccessResponse(CamelModel):
  url: str
  expires_at: str


class HealthResponse(CamelModel):
  status: str
  timestamp: str
  version: str


class RecordPurchaseRequest(CamelModel):
  lesson_id: StrictStr = Field(min_length=1)


class PurchaseResponse(CamelModel):
  """Purchase row as stored, with the fee split in cents."""

  id: str
  lesson_id: str
  user_id: str
  amount: int
  platform_fee: int
  instructor_earnings: int
  status: str


class SetRoleRequest(CamelModel):
  role: StrictStr


class MessageResponse(CamelModel):
  message: str
