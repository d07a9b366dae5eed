"""Purchase-gated access to lesson videos."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import Settings
from marketplace.policy import access
from marketplace.policy.access import Caller
from marketplace.policy.errors import LessonError
from marketplace.services.lessons import LessonService
from marketplace.services.storage_client import VideoStorageClient, video_object_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoAccess:
  url: str
  expires_at: datetime.datetime


class VideoAccessService:
  """Issue signed video links to buyers, owners and administrators."""

  def __init__(self, lessons: LessonService, storage_client: VideoStorageClient, settings: Settings) -> None:
    self._lessons = lessons
    self._storage = storage_client
    self._ttl_seconds = settings.video_url_ttl_seconds

  async def grant_access(self, session: AsyncSession, lesson_id: str, caller: Caller) -> VideoAccess:
    lesson = await self._lessons.require_lesson(session, lesson_id, caller, operation="video")
    user_context = await self._lessons.build_user_context(session, lesson_id, caller)
    if not access.can_access_video(lesson, caller, user_context):
      raise self._lessons.reject(LessonError.purchase_required(lesson_id), operation="video", lesson_id=lesson_id, caller=caller)

    expires_at = datetime.datetime.now(datetime.UTC) + datetime.timedelta(seconds=self._ttl_seconds)
    url = await self._storage.generate_signed_url(object_name=video_object_name(lesson_id), ttl_seconds=self._ttl_seconds)
    logger.info("video.access.granted lesson_id=%s user_id=%s", lesson_id, caller.id)
    return VideoAccess(url=url, expires_at=expires_at)
