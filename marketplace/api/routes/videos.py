from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.deps import get_video_service
from marketplace.api.models import VideoAccessResponse
from marketplace.core.database import get_db
from marketplace.core.security import get_current_caller
from marketplace.policy.access import Caller
from marketplace.services.lesson_views import format_timestamp
from marketplace.services.videos import VideoAccessService

router = APIRouter()


@router.get("/access/{lesson_id}", response_model=VideoAccessResponse)
async def get_video_access(
  lesson_id: str,
  caller: Annotated[Caller, Depends(get_current_caller)],
  db_session: Annotated[AsyncSession, Depends(get_db)],
  service: Annotated[VideoAccessService, Depends(get_video_service)],
) -> VideoAccessResponse:
  """Issue a signed playback URL to buyers and to the lesson's owner or administrators."""
  access = await service.grant_access(db_session, lesson_id, caller)
  return VideoAccessResponse(url=access.url, expires_at=format_timestamp(access.expires_at))
