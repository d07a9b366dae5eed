from __future__ import annotations

import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.deps import get_purchase_service
from marketplace.api.models import ApiResponse, PurchaseResponse, RecordPurchaseRequest
from marketplace.core.database import get_db
from marketplace.core.security import get_current_caller
from marketplace.policy.access import Caller
from marketplace.services.lesson_views import format_timestamp
from marketplace.services.purchases import PurchaseService

router = APIRouter()


@router.post("", response_model=ApiResponse[PurchaseResponse], status_code=status.HTTP_201_CREATED)
async def record_purchase(
  request: RecordPurchaseRequest,
  caller: Annotated[Caller, Depends(get_current_caller)],
  db_session: Annotated[AsyncSession, Depends(get_db)],
  service: Annotated[PurchaseService, Depends(get_purchase_service)],
) -> ApiResponse[PurchaseResponse]:
  """Record a completed purchase of a visible lesson for the signed-in caller."""
  record = await service.record_purchase(db_session, request.lesson_id, caller)
  data = PurchaseResponse(
    id=record.id,
    lesson_id=record.lesson_id,
    user_id=record.user_id,
    amount=record.amount,
    platform_fee=record.platform_fee,
    instructor_earnings=record.instructor_earnings,
    status=record.status.value,
  )
  return ApiResponse(data=data, message="Purchase recorded", timestamp=format_timestamp(datetime.datetime.now(datetime.UTC)))
