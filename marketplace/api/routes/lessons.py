from __future__ import annotations

import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.deps import get_lesson_service
from marketplace.api.models import MAX_PAGE_SIZE, ApiResponse, CreateLessonRequest, DeleteResult, LessonApiResponse, LessonSummaryResponse, PaginatedResponse, ServiceHealthResponse, ServiceInfoResponse, UpdateLessonRequest
from marketplace.config import Settings, get_settings
from marketplace.core.database import get_db
from marketplace.core.security import get_current_caller, get_optional_caller, require_role
from marketplace.policy.access import MAX_PRICE_CENTS, MIN_PRICE_CENTS, Caller, LessonChanges, Role, SearchFilters, SortOptions
from marketplace.services.lesson_views import format_timestamp, lesson_view_to_response, listing_to_summary
from marketplace.services.lessons import CreateLessonCommand, LessonService

router = APIRouter()

OptionalCaller = Annotated[Caller | None, Depends(get_optional_caller)]
RequiredCaller = Annotated[Caller, Depends(get_current_caller)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Service = Annotated[LessonService, Depends(get_lesson_service)]


def _now() -> str:
  return format_timestamp(datetime.datetime.now(datetime.UTC))


@router.get("/health", response_model=ServiceHealthResponse)
async def lessons_health(settings: Settings = Depends(get_settings)) -> ServiceHealthResponse:  # noqa: B008
  """Liveness probe for the lessons service."""
  return ServiceHealthResponse(status="healthy", service="lessons", timestamp=_now(), version=settings.app_version)


@router.get("/info", response_model=ServiceInfoResponse)
async def lessons_info(settings: Settings = Depends(get_settings)) -> ServiceInfoResponse:  # noqa: B008
  return ServiceInfoResponse(service="lessons", version=settings.app_version, environment=settings.environment, features=["crud", "search", "instructor-management", "statistics"])


@router.get("", response_model=ApiResponse[PaginatedResponse[LessonSummaryResponse]])
async def search_lessons(
  service: Service,
  db_session: DbSession,
  caller: OptionalCaller,
  q: Annotated[str | None, Query(max_length=200)] = None,
  category: Annotated[str | None, Query(max_length=50)] = None,
  min_price: Annotated[int | None, Query(alias="minPrice", ge=MIN_PRICE_CENTS, le=MAX_PRICE_CENTS)] = None,
  max_price: Annotated[int | None, Query(alias="maxPrice", ge=MIN_PRICE_CENTS, le=MAX_PRICE_CENTS)] = None,
  instructor_id: Annotated[str | None, Query(alias="instructorId")] = None,
  published: bool | None = None,
  page: Annotated[int, Query(ge=1)] = 1,
  page_size: Annotated[int, Query(alias="pageSize", ge=1, le=MAX_PAGE_SIZE)] = 20,
  sort_by: Annotated[Literal["created", "price", "title"], Query(alias="sortBy")] = "created",
  sort_order: Annotated[Literal["asc", "desc"], Query(alias="sortOrder")] = "desc",
) -> ApiResponse[PaginatedResponse[LessonSummaryResponse]]:
  """Search lessons; only instructors may look past the published filter."""
  if min_price is not None and max_price is not None and min_price > max_price:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"error": "VALIDATION_ERROR", "message": "minPrice must be less than or equal to maxPrice"})

  filters = SearchFilters(query=q or None, category=category, min_price=min_price, max_price=max_price, instructor_id=instructor_id, published=published, limit=page_size, offset=(page - 1) * page_size)
  sort = SortOptions.parse("createdAt" if sort_by == "created" else sort_by, sort_order)
  result = await service.search_lessons(db_session, filters, sort, caller)

  items = [listing_to_summary(listing) for listing in result.items]
  data = PaginatedResponse[LessonSummaryResponse](items=items, total=result.total, page=page, page_size=page_size, has_more=page * page_size < result.total)
  return ApiResponse[PaginatedResponse[LessonSummaryResponse]](data=data, timestamp=_now())


@router.get("/my", response_model=ApiResponse[list[LessonApiResponse]])
async def list_my_lessons(service: Service, db_session: DbSession, caller: Annotated[Caller, Depends(require_role(Role.INSTRUCTOR))]) -> ApiResponse[list[LessonApiResponse]]:
  """List every lesson the calling instructor owns, drafts included."""
  views = await service.list_instructor_lessons(db_session, caller.id, True, caller)
  return ApiResponse[list[LessonApiResponse]](data=[lesson_view_to_response(view) for view in views], timestamp=_now())


@router.get("/instructor/{instructor_id}", response_model=ApiResponse[list[LessonApiResponse]])
async def list_instructor_lessons(
  instructor_id: str,
  service: Service,
  db_session: DbSession,
  caller: OptionalCaller,
  include_unpublished: Annotated[bool, Query(alias="includeUnpublished")] = False,
) -> ApiResponse[list[LessonApiResponse]]:
  views = await service.list_instructor_lessons(db_session, instructor_id, include_unpublished, caller)
  return ApiResponse[list[LessonApiResponse]](data=[lesson_view_to_response(view) for view in views], timestamp=_now())


@router.get("/{lesson_id}", response_model=ApiResponse[LessonApiResponse], response_model_exclude_unset=True)
async def get_lesson(lesson_id: str, service: Service, db_session: DbSession, caller: OptionalCaller) -> ApiResponse[LessonApiResponse]:
  """Return one lesson; drafts only for their owner and administrators."""
  view = await service.get_lesson(db_session, lesson_id, caller)
  return ApiResponse[LessonApiResponse](data=lesson_view_to_response(view), timestamp=_now())


@router.post("", response_model=ApiResponse[LessonApiResponse], status_code=status.HTTP_201_CREATED)
async def create_lesson(payload: CreateLessonRequest, service: Service, db_session: DbSession, caller: RequiredCaller) -> ApiResponse[LessonApiResponse]:
  """Create a draft lesson for the calling instructor."""
  command = CreateLessonCommand(title=payload.title, price=payload.price, description=payload.description, category=payload.category)
  view = await service.create_lesson(db_session, command, caller)
  return ApiResponse[LessonApiResponse](data=lesson_view_to_response(view), message="Lesson created successfully", timestamp=_now())


@router.put("/{lesson_id}", response_model=ApiResponse[LessonApiResponse])
async def update_lesson(lesson_id: str, payload: UpdateLessonRequest, service: Service, db_session: DbSession, caller: RequiredCaller) -> ApiResponse[LessonApiResponse]:
  changes = LessonChanges(title=payload.title, description=payload.description, price=payload.price, category=payload.category, published=payload.published, thumbnail_url=payload.thumbnail_url)
  view = await service.update_lesson(db_session, lesson_id, changes, caller)
  return ApiResponse[LessonApiResponse](data=lesson_view_to_response(view), message="Lesson updated successfully", timestamp=_now())


@router.delete("/{lesson_id}", response_model=ApiResponse[DeleteResult])
async def delete_lesson(lesson_id: str, service: Service, db_session: DbSession, caller: RequiredCaller) -> ApiResponse[DeleteResult]:
  """Delete a lesson that nobody has bought."""
  await service.delete_lesson(db_session, lesson_id, caller)
  return ApiResponse[DeleteResult](data=DeleteResult(deleted=True), message="Lesson deleted successfully", timestamp=_now())
