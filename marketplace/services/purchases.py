"""Purchase ledger writes with the platform fee split applied."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import Settings
from marketplace.policy import access
from marketplace.policy.access import Caller, PurchaseStatus
from marketplace.policy.errors import LessonError
from marketplace.services.fees import split_amount
from marketplace.services.lessons import LessonService
from marketplace.storage.lessons_repo import LessonsRepository, PurchaseRecord

logger = logging.getLogger(__name__)


class PurchaseService:
  """Record lesson purchases for buyers; payment collection happens elsewhere."""

  def __init__(self, repository: LessonsRepository, lessons: LessonService, settings: Settings) -> None:
    self._repo = repository
    self._lessons = lessons
    self._fee_percent = settings.platform_fee_percent

  async def record_purchase(self, session: AsyncSession, lesson_id: str, buyer: Caller, *, status: PurchaseStatus = PurchaseStatus.COMPLETED) -> PurchaseRecord:
    """Upsert the buyer's purchase row at the lesson's current price."""
    try:
      lesson = await self._lessons.require_lesson(session, lesson_id, buyer, operation="purchase")
      # Only lessons the buyer can see may be bought.
      if not access.can_view_lesson(lesson, buyer):
        raise self._lessons.reject(LessonError.not_published(lesson_id), operation="purchase", lesson_id=lesson_id, caller=buyer)

      split = split_amount(lesson.price, self._fee_percent)
      await self._repo.ensure_user(session, buyer)
      record = PurchaseRecord(id=str(uuid.uuid4()), user_id=buyer.id, lesson_id=lesson_id, amount=split.amount, platform_fee=split.platform_fee, instructor_earnings=split.instructor_earnings, status=status)
      saved = await self._repo.upsert_purchase(session, record)
      await session.commit()
    except Exception:
      await session.rollback()
      raise

    logger.info("purchase.recorded lesson_id=%s user_id=%s status=%s amount=%s platform_fee=%s", lesson_id, buyer.id, saved.status.value, saved.amount, saved.platform_fee)
    return saved
