"""Typed conversions from storage records to API payloads."""

from __future__ import annotations

import datetime
from dataclasses import dataclass

from marketplace.api.models import InstructorResponse, LessonApiResponse, LessonStatsResponse, LessonSummaryResponse, SummaryInstructorResponse, SummaryStatsResponse, UserReviewResponse
from marketplace.policy.access import UserContext
from marketplace.storage.lessons_repo import LessonListingRecord, LessonRecord, LessonStats

_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


@dataclass(frozen=True)
class LessonView:
  """A lesson as one caller is allowed to see it."""

  lesson: LessonRecord
  stats: LessonStats
  user_context: UserContext | None = None
  # Revenue is exposed only to callers who may mutate the lesson.
  show_revenue: bool = False


def format_timestamp(value: datetime.datetime) -> str:
  """Render a timestamp as UTC ISO-8601 with millisecond precision."""
  if value.tzinfo is not None:
    value = value.astimezone(datetime.UTC)
  return value.strftime(_DATE_FORMAT)[:-4] + "Z"


def lesson_view_to_response(view: LessonView) -> LessonApiResponse:
  """Build the lesson detail payload for one caller."""
  lesson = view.lesson
  stats = LessonStatsResponse(
    purchase_count=view.stats.purchase_count,
    average_rating=view.stats.average_rating,
    review_count=view.stats.review_count,
    total_revenue=view.stats.total_revenue if view.show_revenue else None,
  )
  payload = LessonApiResponse(
    id=lesson.id,
    title=lesson.title,
    description=lesson.description,
    price=lesson.price,
    category=lesson.category,
    thumbnail_url=lesson.thumbnail_url,
    published=lesson.published,
    created_at=format_timestamp(lesson.created_at),
    updated_at=format_timestamp(lesson.updated_at),
    instructor=InstructorResponse(id=lesson.instructor.id, name=lesson.instructor.name, email=lesson.instructor.email),
    stats=stats,
    tags=list(lesson.tags),
  )

  # Anonymous callers get no user context; the detail route leaves these keys out entirely.
  context = view.user_context
  if context is None:
    return payload
  review = None
  if context.user_review is not None:
    review = UserReviewResponse(id=context.user_review.id, rating=context.user_review.rating, comment=context.user_review.comment)
  return payload.model_copy(update={"is_purchased": context.is_purchased, "has_access": context.has_access, "user_review": review})


def listing_to_summary(listing: LessonListingRecord) -> LessonSummaryResponse:
  lesson = listing.lesson
  return LessonSummaryResponse(
    id=lesson.id,
    title=lesson.title,
    price=lesson.price,
    thumbnail_url=lesson.thumbnail_url,
    instructor=SummaryInstructorResponse(id=lesson.instructor.id, name=lesson.instructor.name),
    stats=SummaryStatsResponse(purchase_count=listing.purchase_count, average_rating=listing.average_rating),
  )
