"""Unit tests for signed video access."""

from __future__ import annotations

import datetime
from dataclasses import replace

import pytest

from marketplace.policy.access import Caller, PurchaseStatus, Role
from marketplace.policy.errors import LessonErrorKind, LessonServiceError
from marketplace.services.lessons import LessonService
from marketplace.services.storage_client import _normalize_emulator_endpoint, video_object_name
from marketplace.services.videos import VideoAccessService

BUYER = Caller(id="student-1", role=Role.STUDENT)


@pytest.fixture
def video_service(fake_repo, settings, video_storage) -> VideoAccessService:
  return VideoAccessService(LessonService(fake_repo, settings), video_storage, replace(settings, video_url_ttl_seconds=600))


def test_video_object_name() -> None:
  assert video_object_name("abc") == "lessons/abc/video.mp4"


@pytest.mark.parametrize(("raw", "normalized"), [("http://localhost:4443/", "http://localhost:4443"), ("http://gcs:4443/storage/v1", "http://gcs:4443"), ("gcs:4443", "gcs:4443")])
def test_emulator_endpoint_normalization(raw: str, normalized: str) -> None:
  assert _normalize_emulator_endpoint(raw) == normalized


@pytest.mark.anyio
async def test_buyer_gets_signed_url_with_configured_ttl(video_service, fake_repo, mock_db_session, video_storage) -> None:
  lesson = fake_repo.add_lesson()
  fake_repo.add_purchase(lesson.id, BUYER.id)
  before = datetime.datetime.now(datetime.UTC)
  granted = await video_service.grant_access(mock_db_session, lesson.id, BUYER)
  assert granted.url == "https://storage.example.com/signed"
  assert before + datetime.timedelta(seconds=600) <= granted.expires_at <= datetime.datetime.now(datetime.UTC) + datetime.timedelta(seconds=600)
  video_storage.generate_signed_url.assert_awaited_once_with(object_name=f"lessons/{lesson.id}/video.mp4", ttl_seconds=600)


@pytest.mark.anyio
@pytest.mark.parametrize("status", [PurchaseStatus.PENDING, PurchaseStatus.REFUNDED, PurchaseStatus.FAILED])
async def test_non_completed_purchase_is_denied(video_service, fake_repo, mock_db_session, video_storage, status) -> None:
  lesson = fake_repo.add_lesson()
  fake_repo.add_purchase(lesson.id, BUYER.id, status=status)
  with pytest.raises(LessonServiceError) as exc_info:
    await video_service.grant_access(mock_db_session, lesson.id, BUYER)
  assert exc_info.value.kind == LessonErrorKind.PURCHASE_REQUIRED
  video_storage.generate_signed_url.assert_not_awaited()


@pytest.mark.anyio
async def test_draft_video_without_purchase_is_denied(video_service, fake_repo, mock_db_session) -> None:
  draft = fake_repo.add_lesson(published=False)
  with pytest.raises(LessonServiceError) as exc_info:
    await video_service.grant_access(mock_db_session, draft.id, BUYER)
  assert exc_info.value.kind == LessonErrorKind.PURCHASE_REQUIRED


@pytest.mark.anyio
async def test_missing_lesson_is_not_found(video_service, mock_db_session) -> None:
  with pytest.raises(LessonServiceError) as exc_info:
    await video_service.grant_access(mock_db_session, "missing", BUYER)
  assert exc_info.value.kind == LessonErrorKind.NOT_FOUND


@pytest.mark.anyio
async def test_admin_previews_without_purchase(video_service, fake_repo, mock_db_session) -> None:
  lesson = fake_repo.add_lesson(published=False)
  granted = await video_service.grant_access(mock_db_session, lesson.id, Caller(id="admin-1", role=Role.ADMIN))
  assert granted.url
