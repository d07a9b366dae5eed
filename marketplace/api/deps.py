"""Shared FastAPI dependencies that wire services to the active repository."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from marketplace.config import Settings, get_settings
from marketplace.services.lessons import LessonService
from marketplace.services.purchases import PurchaseService
from marketplace.services.storage_client import VideoStorageClient, build_video_storage_client
from marketplace.services.videos import VideoAccessService
from marketplace.storage.lessons_repo import LessonsRepository
from marketplace.storage.postgres_lessons_repo import PostgresLessonsRepository


def get_lessons_repository() -> LessonsRepository:
  """Return the active lessons repository."""
  return PostgresLessonsRepository()


def get_lesson_service(repository: LessonsRepository = Depends(get_lessons_repository), settings: Settings = Depends(get_settings)) -> LessonService:  # noqa: B008
  return LessonService(repository, settings)


@lru_cache(maxsize=1)
def _video_storage_client() -> VideoStorageClient:
  # The GCS client holds an HTTP session; build it once per process.
  return build_video_storage_client(get_settings())


def get_video_storage_client() -> VideoStorageClient:
  return _video_storage_client()


def get_video_service(lessons: LessonService = Depends(get_lesson_service), storage_client: VideoStorageClient = Depends(get_video_storage_client), settings: Settings = Depends(get_settings)) -> VideoAccessService:  # noqa: B008
  return VideoAccessService(lessons, storage_client, settings)


def get_purchase_service(lessons: LessonService = Depends(get_lesson_service), repository: LessonsRepository = Depends(get_lessons_repository), settings: Settings = Depends(get_settings)) -> PurchaseService:  # noqa: B008
  return PurchaseService(repository, lessons, settings)
